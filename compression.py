"""Gzip negotiation for static responses."""

from __future__ import annotations

import gzip

from config import GZIP_LEVEL

GZIP = "gzip"
IDENTITY = "identity"

INCOMPRESSIBLE_PREFIXES = ("image/", "audio/", "video/")
COMPRESSIBLE_IMAGE_TYPES = {"image/svg+xml", "image/x-icon", "image/bmp"}
INCOMPRESSIBLE_TYPES = {
    "application/gzip",
    "application/x-gzip",
    "application/zip",
    "application/x-7z-compressed",
    "application/x-bzip2",
    "application/x-rar-compressed",
    "application/x-xz",
    "application/zstd",
    "application/pdf",
    "application/wasm",
    "font/woff",
    "font/woff2",
}


def accepts_gzip(accept_encoding: str | None) -> bool:
    """Return True when an Accept-Encoding value allows gzip."""
    if not accept_encoding:
        return False

    wildcard_allowed = False
    for token in accept_encoding.split(","):
        coding, _sep, params = token.strip().partition(";")
        coding = coding.strip().lower()
        quality = _parse_quality(params)
        if coding in {"gzip", "x-gzip"}:
            return quality > 0
        if coding == "*":
            wildcard_allowed = quality > 0
    return wildcard_allowed


def is_compressible(content_type: str) -> bool:
    media_type = content_type.split(";", 1)[0].strip().lower()
    if media_type in COMPRESSIBLE_IMAGE_TYPES:
        return True
    if media_type.startswith(INCOMPRESSIBLE_PREFIXES):
        return False
    return media_type not in INCOMPRESSIBLE_TYPES


def negotiate_encoding(
    accept_encoding: str | None,
    *,
    enabled: bool,
    content_type: str,
) -> str:
    if not enabled:
        return IDENTITY
    if not is_compressible(content_type):
        return IDENTITY
    if not accepts_gzip(accept_encoding):
        return IDENTITY
    return GZIP


def gzip_bytes(data: bytes, level: int = GZIP_LEVEL) -> bytes:
    # mtime=0 keeps output stable for identical input.
    return gzip.compress(data, compresslevel=level, mtime=0)


def _parse_quality(params: str) -> float:
    for param in params.split(";"):
        name, _sep, value = param.strip().partition("=")
        if name.strip().lower() != "q":
            continue
        try:
            return float(value.strip())
        except ValueError:
            return 0.0
    return 1.0
