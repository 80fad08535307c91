"""Thread-safe process counters exposed on /stats."""

from __future__ import annotations

import re
import threading

FS_CALLS = "fsCalls"
FS_OK_RESPONSES = "fsOKResponses"
FS_NOT_MODIFIED_RESPONSES = "fsNotModifiedResponses"
FS_NOT_FOUND_RESPONSES = "fsNotFoundResponses"
FS_OTHER_RESPONSES = "fsOtherResponses"
FS_RESPONSE_BODY_BYTES = "fsResponseBodyBytes"

HTTP_CONNECTIONS = "httpConnections"
HTTP_REQUESTS = "httpRequests"
HTTP_READ_ERRORS = "httpReadErrors"
HTTP_WRITE_ERRORS = "httpWriteErrors"
HTTP_QUEUE_REJECTIONS = "httpQueueRejections"

DEFAULT_COUNTERS = (
    FS_CALLS,
    FS_OK_RESPONSES,
    FS_NOT_MODIFIED_RESPONSES,
    FS_NOT_FOUND_RESPONSES,
    FS_OTHER_RESPONSES,
    FS_RESPONSE_BODY_BYTES,
    HTTP_CONNECTIONS,
    HTTP_REQUESTS,
    HTTP_READ_ERRORS,
    HTTP_WRITE_ERRORS,
    HTTP_QUEUE_REJECTIONS,
)


class StatsRegistry:
    """Monotonic named counters shared by all request handlers."""

    def __init__(self, names: tuple[str, ...] = DEFAULT_COUNTERS) -> None:
        self._lock = threading.Lock()
        self._values: dict[str, int] = dict.fromkeys(names, 0)

    def add(self, name: str, delta: int = 1) -> None:
        if delta < 0:
            raise ValueError("counters never decrease")
        with self._lock:
            self._bump_locked(name, delta)

    def get(self, name: str) -> int:
        with self._lock:
            return self._values.get(name, 0)

    def record_fs_response(self, status_code: int, content_length: int) -> None:
        """Account one static pipeline response."""
        with self._lock:
            self._bump_locked(FS_CALLS, 1)
            if status_code == 200:
                self._bump_locked(FS_OK_RESPONSES, 1)
                self._bump_locked(FS_RESPONSE_BODY_BYTES, max(0, content_length))
            elif status_code == 304:
                self._bump_locked(FS_NOT_MODIFIED_RESPONSES, 1)
            elif status_code == 404:
                self._bump_locked(FS_NOT_FOUND_RESPONSES, 1)
            else:
                self._bump_locked(FS_OTHER_RESPONSES, 1)

    def snapshot(self, pattern: str | None = None) -> dict[str, int]:
        """Return counters whose names match ``pattern`` (a regex search).

        Raises ``re.error`` for an invalid pattern.
        """
        matcher = re.compile(pattern) if pattern else None
        with self._lock:
            values = dict(self._values)
        return {
            name: value
            for name, value in sorted(values.items())
            if matcher is None or matcher.search(name)
        }

    def render_text(self, pattern: str | None = None) -> str:
        return "".join(f"{name} {value}\n" for name, value in self.snapshot(pattern).items())

    def _bump_locked(self, name: str, delta: int) -> None:
        self._values[name] = self._values.get(name, 0) + delta
