"""Unit tests for gzip negotiation."""

import gzip

import pytest

from compression import GZIP, IDENTITY, accepts_gzip, gzip_bytes, is_compressible, negotiate_encoding


@pytest.mark.parametrize(
    ("header", "expected"),
    [
        ("gzip", True),
        ("deflate, gzip;q=0.5", True),
        ("GZIP", True),
        ("x-gzip", True),
        ("*", True),
        ("gzip;q=0", False),
        ("*;q=0", False),
        ("deflate, br", False),
        ("", False),
        (None, False),
    ],
)
def test_accepts_gzip(header: str | None, expected: bool) -> None:
    assert accepts_gzip(header) is expected


def test_compressibility_by_content_type() -> None:
    assert is_compressible("text/html; charset=utf-8")
    assert is_compressible("application/json")
    assert is_compressible("image/svg+xml; charset=utf-8")
    assert not is_compressible("image/png")
    assert not is_compressible("video/mp4")
    assert not is_compressible("application/zip")
    assert not is_compressible("font/woff2")


def test_negotiation_requires_flag_client_and_type() -> None:
    assert negotiate_encoding("gzip", enabled=True, content_type="text/css") == GZIP
    assert negotiate_encoding("gzip", enabled=False, content_type="text/css") == IDENTITY
    assert negotiate_encoding("br", enabled=True, content_type="text/css") == IDENTITY
    assert negotiate_encoding("gzip", enabled=True, content_type="image/jpeg") == IDENTITY


def test_gzip_bytes_round_trip_is_stable() -> None:
    data = b"hello " * 100

    first = gzip_bytes(data)

    assert gzip.decompress(first) == data
    assert gzip_bytes(data) == first
