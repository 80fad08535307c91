"""Static file pipeline: resolve, negotiate, cache, slice and respond."""

from __future__ import annotations

import errno
import logging
import stat
from dataclasses import dataclass
from pathlib import Path

from byte_range import content_range, parse_range
from compression import GZIP, gzip_bytes, negotiate_encoding
from config import (
    BYTE_RANGE,
    CACHE_MAX_ENTRIES,
    COMPRESS,
    GENERATE_INDEX_PAGES,
    INDEX_NAMES,
    SERVE_DIR,
    VHOST,
)
from errors import IndexDisabled, NotFound, NotModified, RangeUnsatisfiable, StaticFileError
from file_cache import CacheEntry, FileCache
from index_page import list_directory, render_index_page
from path_resolver import PathResolver, ResolvedPath
from request import HTTPRequest
from response import HTTPResponse, text_response
from utils import format_http_date, get_content_type, parse_http_date

logger = logging.getLogger(__name__)

INDEX_CONTENT_TYPE = "text/html; charset=utf-8"
MISSING_PATH_ERRNOS = frozenset({errno.ENOENT, errno.ENOTDIR, errno.ENAMETOOLONG})


@dataclass(frozen=True, slots=True)
class FSOptions:
    root: str = SERVE_DIR
    index_names: tuple[str, ...] = INDEX_NAMES
    generate_index_pages: bool = GENERATE_INDEX_PAGES
    compress: bool = COMPRESS
    accept_byte_range: bool = BYTE_RANGE
    vhost: bool = VHOST
    cache_max_entries: int | None = CACHE_MAX_ENTRIES


class StaticFileHandler:
    """Serve files below ``options.root`` for GET requests."""

    def __init__(self, options: FSOptions | None = None, *, cache: FileCache | None = None) -> None:
        self.options = options or FSOptions()
        self.resolver = PathResolver(
            self.options.root,
            vhost=self.options.vhost,
            index_names=self.options.index_names,
        )
        self.cache = cache or FileCache(max_entries=self.options.cache_max_entries)

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        if request.method not in {"GET", "HEAD"}:
            return text_response(405, headers={"Allow": "GET, HEAD"})
        try:
            resolved = self.resolver.resolve(request.path, request.host)
            if resolved.is_directory:
                return self._serve_index(request, resolved)
            return self._serve_file(request, resolved.fs_path)
        except StaticFileError as exc:
            return _error_response(exc)
        except OSError:
            logger.exception("Failed to read static path %s", request.path)
            return text_response(500)

    def _serve_index(self, request: HTTPRequest, resolved: ResolvedPath) -> HTTPResponse:
        if not self.options.generate_index_pages:
            raise IndexDisabled(f"Directory listing disabled for {resolved.url_path}")

        page = render_index_page(resolved.url_path, list_directory(resolved.fs_path))
        body = page.encode("utf-8")
        headers = {"Content-Type": INDEX_CONTENT_TYPE}
        encoding = negotiate_encoding(
            request.header("accept-encoding"),
            enabled=self.options.compress,
            content_type=INDEX_CONTENT_TYPE,
        )
        if encoding == GZIP:
            body = gzip_bytes(body)
            headers["Content-Encoding"] = GZIP
            headers["Vary"] = "Accept-Encoding"
        return HTTPResponse(status_code=200, headers=headers, body=body)

    def _serve_file(self, request: HTTPRequest, path: Path) -> HTTPResponse:
        try:
            file_stat = path.stat()
        except OSError as exc:
            if exc.errno not in MISSING_PATH_ERRNOS:
                raise
            raise NotFound(f"No such file {path}") from exc
        if not stat.S_ISREG(file_stat.st_mode):
            raise NotFound(f"Not a regular file {path}")

        validators = _validators(file_stat.st_mtime_ns, file_stat.st_size)
        if _is_not_modified(request, file_stat.st_mtime, validators["ETag"]):
            raise NotModified(headers=validators)

        content_type = get_content_type(path)
        encoding = negotiate_encoding(
            request.header("accept-encoding"),
            enabled=self.options.compress,
            content_type=content_type,
        )
        try:
            entry = self.cache.load(path, encoding)
        except OSError as exc:
            if exc.errno not in MISSING_PATH_ERRNOS:
                raise
            raise NotFound(f"File vanished {path}") from exc

        headers = {"Content-Type": content_type, **_entry_validators(entry)}
        if encoding == GZIP:
            headers["Content-Encoding"] = GZIP
        if self.options.compress:
            headers["Vary"] = "Accept-Encoding"
        if self.options.accept_byte_range:
            headers["Accept-Ranges"] = "bytes"

        payload = entry.payload
        byte_range = parse_range(
            request.header("range"),
            len(payload),
            enabled=self.options.accept_byte_range,
        )
        if byte_range.is_unsatisfiable:
            raise RangeUnsatisfiable(
                headers={"Content-Range": content_range(byte_range, len(payload))}
            )
        if byte_range.is_partial:
            headers["Content-Range"] = content_range(byte_range, len(payload))
            return HTTPResponse(status_code=206, headers=headers, body=byte_range.slice(payload))

        return HTTPResponse(status_code=200, headers=headers, body=payload)


def _validators(mtime_ns: int, size: int) -> dict[str, str]:
    return {
        "ETag": f'W/"{mtime_ns:x}-{size:x}"',
        "Last-Modified": format_http_date(mtime_ns / 1_000_000_000),
    }


def _entry_validators(entry: CacheEntry) -> dict[str, str]:
    return _validators(entry.mtime_ns, entry.source_size)


def _is_not_modified(request: HTTPRequest, mtime: float, etag: str) -> bool:
    if_none_match = request.header("if-none-match")
    if if_none_match is not None:
        candidates = {token.strip() for token in if_none_match.split(",")}
        return "*" in candidates or etag in candidates

    if_modified_since = request.header("if-modified-since")
    if if_modified_since is None:
        return False
    since_ts = parse_http_date(if_modified_since)
    if since_ts is None:
        return False
    return int(mtime) <= int(since_ts)


def _error_response(exc: StaticFileError) -> HTTPResponse:
    if exc.status_code in {304, 416}:
        return HTTPResponse(status_code=exc.status_code, headers=exc.headers, body=b"")
    return text_response(exc.status_code, exc.reason, headers=exc.headers)
