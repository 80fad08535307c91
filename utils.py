"""Utility helpers shared across server modules."""

import mimetypes
from email.utils import formatdate, parsedate_to_datetime
from pathlib import Path

TEXT_CHARSET_TYPES = {"application/javascript", "application/json", "image/svg+xml"}


def get_content_type(file_path: Path) -> str:
    content_type, _encoding = mimetypes.guess_type(file_path.name)
    if content_type is None:
        return "application/octet-stream"
    if content_type.startswith("text/") or content_type in TEXT_CHARSET_TYPES:
        return f"{content_type}; charset=utf-8"
    return content_type


def format_http_date(timestamp: float) -> str:
    return formatdate(timestamp, usegmt=True)


def parse_http_date(value: str) -> float | None:
    """Parse an RFC 7231 date header into a POSIX timestamp, or None if invalid."""
    try:
        return parsedate_to_datetime(value).timestamp()
    except (TypeError, ValueError, OverflowError, IndexError):
        return None
