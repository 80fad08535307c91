"""Ordered route table mapping request paths to handlers."""

from collections.abc import Callable

from request import HTTPRequest
from response import HTTPResponse

Handler = Callable[[HTTPRequest], HTTPResponse]
Predicate = Callable[[str], bool]


class Router:
    """First matching (predicate, handler) pair wins; otherwise the fallback."""

    def __init__(self, fallback: Handler | None = None) -> None:
        self._routes: list[tuple[Predicate, Handler]] = []
        self._literal_paths: set[str] = set()
        self.fallback = fallback

    def add_route(self, path: str, handler: Handler) -> None:
        if not path.startswith("/"):
            raise ValueError("path must start with '/'")
        if path in self._literal_paths:
            raise ValueError(f"route already registered for {path}")
        self._literal_paths.add(path)
        self._routes.append((lambda candidate: candidate == path, handler))

    def add_predicate(self, predicate: Predicate, handler: Handler) -> None:
        self._routes.append((predicate, handler))

    def is_reserved(self, path: str) -> bool:
        return path in self._literal_paths

    def resolve(self, path: str) -> Handler | None:
        for predicate, handler in self._routes:
            if predicate(path):
                return handler
        return self.fallback
