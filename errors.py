"""Error taxonomy for the static file pipeline."""


class StaticFileError(Exception):
    """Static pipeline failure carrying the HTTP status to answer with."""

    status_code: int = 500
    reason: str = "Internal Server Error"

    def __init__(self, message: str = "", *, headers: dict[str, str] | None = None) -> None:
        super().__init__(message or self.reason)
        self.headers = dict(headers or {})


class InvalidPath(StaticFileError):
    """Raised when a request path escapes the served root or is malformed."""

    status_code = 403
    reason = "Forbidden"


class NotFound(StaticFileError):
    status_code = 404
    reason = "Not Found"


class NotModified(StaticFileError):
    """Raised when a conditional request matches the current file version."""

    status_code = 304
    reason = "Not Modified"


class RangeUnsatisfiable(StaticFileError):
    status_code = 416
    reason = "Range Not Satisfiable"


class IndexDisabled(StaticFileError):
    """Raised for directory requests without an index file when listings are off."""

    status_code = 403
    reason = "Forbidden"
