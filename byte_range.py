"""Range header parsing for single byte ranges."""

from __future__ import annotations

from dataclasses import dataclass

WHOLE = "whole"
PARTIAL = "partial"
UNSATISFIABLE = "unsatisfiable"


@dataclass(frozen=True, slots=True)
class RangeSpec:
    kind: str
    start: int = 0
    end: int = -1

    @property
    def is_partial(self) -> bool:
        return self.kind == PARTIAL

    @property
    def is_unsatisfiable(self) -> bool:
        return self.kind == UNSATISFIABLE

    @property
    def length(self) -> int:
        if self.kind != PARTIAL:
            return 0
        return self.end - self.start + 1

    def slice(self, payload: bytes) -> bytes:
        if self.kind == PARTIAL:
            return payload[self.start : self.end + 1]
        return payload


WHOLE_FILE = RangeSpec(kind=WHOLE)
UNSATISFIABLE_RANGE = RangeSpec(kind=UNSATISFIABLE)


def parse_range(header: str | None, size: int, *, enabled: bool) -> RangeSpec:
    """Parse a ``Range`` header against a payload of ``size`` bytes.

    Malformed headers are treated like absent ones and yield the whole file.
    Only the first range of a multi-range request is honored.
    """
    if not enabled or not header:
        return WHOLE_FILE

    unit, sep, ranges = header.strip().partition("=")
    if not sep or unit.strip().lower() != "bytes":
        return WHOLE_FILE

    first_range = ranges.split(",", 1)[0].strip()
    start_token, sep, end_token = first_range.partition("-")
    if not sep:
        return WHOLE_FILE
    start_token = start_token.strip()
    end_token = end_token.strip()

    if not start_token:
        # Suffix form: the last N bytes.
        if not _is_decimal(end_token):
            return WHOLE_FILE
        suffix_length = int(end_token)
        if suffix_length == 0 or size == 0:
            return UNSATISFIABLE_RANGE
        return RangeSpec(kind=PARTIAL, start=max(0, size - suffix_length), end=size - 1)

    if not _is_decimal(start_token):
        return WHOLE_FILE
    start = int(start_token)

    if end_token:
        if not _is_decimal(end_token):
            return WHOLE_FILE
        end = int(end_token)
        if start > end:
            return UNSATISFIABLE_RANGE
    else:
        end = size - 1

    if start >= size:
        return UNSATISFIABLE_RANGE

    return RangeSpec(kind=PARTIAL, start=start, end=min(end, size - 1))


def content_range(spec: RangeSpec, size: int) -> str:
    if spec.kind == PARTIAL:
        return f"bytes {spec.start}-{spec.end}/{size}"
    return f"bytes */{size}"


def _is_decimal(token: str) -> bool:
    # str.isdigit() also accepts characters like "²" that int() rejects.
    return token.isascii() and token.isdigit()
