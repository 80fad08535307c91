"""Map request paths onto files under the served root."""

from __future__ import annotations

import re
from collections.abc import Sequence
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import unquote

from config import INDEX_NAMES
from errors import InvalidPath

INVALID_HOST = "invalid-host"
_HOST_UNSAFE_CHARS = re.compile(r"[^a-z0-9.\-]")
_REPEATED_SLASHES = re.compile(r"/{2,}")


@dataclass(frozen=True, slots=True)
class ResolvedPath:
    """Outcome of resolving a request path.

    ``kind`` is ``"file"`` for a concrete file target (which may not exist) and
    ``"directory"`` when the target is a directory without any index file.
    ``url_path`` is the decoded request path without any virtual host prefix.
    """

    fs_path: Path
    kind: str
    url_path: str

    @property
    def is_directory(self) -> bool:
        return self.kind == "directory"


def sanitize_host(host: str | None) -> str:
    if not host:
        return INVALID_HOST
    name = host.strip().lower()
    if name.startswith("["):
        # IPv6 literal, keep the bracketed address and drop the port.
        name = name[1:].split("]", 1)[0]
    else:
        name = name.split(":", 1)[0]
    name = _HOST_UNSAFE_CHARS.sub("_", name)
    if name in {"", ".", ".."}:
        return INVALID_HOST
    return name


class PathResolver:
    def __init__(
        self,
        root: str | Path,
        *,
        vhost: bool = False,
        index_names: Sequence[str] = INDEX_NAMES,
    ) -> None:
        self.root = Path(root).resolve()
        self.vhost = vhost
        self.index_names = tuple(index_names)

    def resolve(self, request_path: str, host: str | None = None) -> ResolvedPath:
        """Resolve a request path, raising InvalidPath on traversal attempts."""
        url_path = unquote(request_path or "/")
        if "\x00" in url_path or "\\" in url_path:
            raise InvalidPath(f"Unsafe characters in path {request_path!r}")
        url_path = _REPEATED_SLASHES.sub("/", url_path)
        if not url_path.startswith("/"):
            url_path = "/" + url_path

        base = self.root
        if self.vhost:
            base = self.root / sanitize_host(host)

        candidate = (base / url_path.lstrip("/")).resolve()
        try:
            candidate.relative_to(base.resolve())
        except ValueError as exc:
            raise InvalidPath(f"Path {request_path!r} escapes the served root") from exc

        if _is_dir(candidate):
            for index_name in self.index_names:
                index_path = candidate / index_name
                if _is_file(index_path):
                    return ResolvedPath(fs_path=index_path, kind="file", url_path=url_path)
            return ResolvedPath(fs_path=candidate, kind="directory", url_path=url_path)

        return ResolvedPath(fs_path=candidate, kind="file", url_path=url_path)


def _is_dir(path: Path) -> bool:
    # Over-long names raise ENAMETOOLONG instead of reporting a missing path.
    try:
        return path.is_dir()
    except OSError:
        return False


def _is_file(path: Path) -> bool:
    try:
        return path.is_file()
    except OSError:
        return False
