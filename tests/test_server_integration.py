"""Socket-level integration tests for the static file server."""

from __future__ import annotations

import gzip
import socket
import threading
from concurrent.futures import ThreadPoolExecutor
from pathlib import Path

import pytest

from handlers.static_handler import FSOptions
from server import HTTPServer
from stats import FS_CALLS, FS_NOT_FOUND_RESPONSES, FS_OK_RESPONSES, FS_RESPONSE_BODY_BYTES


@pytest.fixture()
def site(tmp_path: Path) -> Path:
    (tmp_path / "index.html").write_text("<h1>home</h1>")
    (tmp_path / "data.txt").write_bytes(b"0123456789" * 10)
    (tmp_path / "style.css").write_text("body { color: red; }\n" * 50)
    (tmp_path / "listing").mkdir()
    (tmp_path / "listing" / "b.txt").write_text("b")
    (tmp_path / "listing" / "a").mkdir()
    return tmp_path


def _start_server(root: Path, **fs_options: object) -> tuple[HTTPServer, threading.Thread]:
    server = HTTPServer(
        host="127.0.0.1",
        port=0,
        fs_options=FSOptions(root=str(root), **fs_options),  # type: ignore[arg-type]
        stream_interval_secs=0,
    )
    thread = threading.Thread(target=server.start, daemon=True)
    thread.start()

    if not server.wait_until_ready(timeout=3):
        raise RuntimeError("Server did not bind to a port")
    return server, thread


def _stop_server(server: HTTPServer, thread: threading.Thread) -> None:
    server.stop()
    thread.join(timeout=3)


def _recv_http_response(sock: socket.socket, *, head_only: bool = False) -> bytes:
    buffer = bytearray()
    while b"\r\n\r\n" not in buffer:
        chunk = sock.recv(4096)
        if not chunk:
            break
        buffer.extend(chunk)

    header_end = buffer.find(b"\r\n\r\n")
    if header_end == -1:
        return bytes(buffer)

    head = bytes(buffer[:header_end])
    body = bytes(buffer[header_end + 4 :])
    if head_only:
        return head + b"\r\n\r\n" + body

    headers: dict[bytes, bytes] = {}
    for line in head.split(b"\r\n")[1:]:
        key, value = line.split(b":", 1)
        headers[key.strip().lower()] = value.strip().lower()

    content_length = int(headers.get(b"content-length", b"0"))
    while len(body) < content_length:
        chunk = sock.recv(4096)
        if not chunk:
            break
        body += chunk

    return head + b"\r\n\r\n" + body


def _get(server: HTTPServer, path: str, *extra_headers: str, method: str = "GET") -> bytes:
    lines = [f"{method} {path} HTTP/1.1", "Host: localhost", "Connection: close", *extra_headers]
    payload = ("\r\n".join(lines) + "\r\n\r\n").encode("ascii")
    with socket.create_connection((server.host, server.port), timeout=3) as sock:
        sock.sendall(payload)
        return _recv_http_response(sock, head_only=method == "HEAD")


def _split(raw: bytes) -> tuple[bytes, dict[str, str], bytes]:
    head, body = raw.split(b"\r\n\r\n", 1)
    lines = head.decode("iso-8859-1").split("\r\n")
    headers: dict[str, str] = {}
    for line in lines[1:]:
        key, value = line.split(": ", 1)
        headers[key.lower()] = value
    return lines[0].encode("iso-8859-1"), headers, body


def test_index_file_is_served_and_counted(site: Path) -> None:
    server, thread = _start_server(site)
    try:
        status, headers, body = _split(_get(server, "/"))
    finally:
        _stop_server(server, thread)

    assert status == b"HTTP/1.1 200 OK"
    assert headers["content-type"] == "text/html; charset=utf-8"
    assert body == b"<h1>home</h1>"
    assert server.stats.get(FS_CALLS) == 1
    assert server.stats.get(FS_OK_RESPONSES) == 1
    assert server.stats.get(FS_RESPONSE_BODY_BYTES) == len(body)


def test_open_range_returns_206_with_full_content_range(site: Path) -> None:
    server, thread = _start_server(site, accept_byte_range=True)
    try:
        status, headers, body = _split(_get(server, "/data.txt", "Range: bytes=0-"))
    finally:
        _stop_server(server, thread)

    assert status == b"HTTP/1.1 206 Partial Content"
    assert headers["content-range"] == "bytes 0-99/100"
    assert headers["accept-ranges"] == "bytes"
    assert body == b"0123456789" * 10


def test_range_starting_past_end_returns_416(site: Path) -> None:
    server, thread = _start_server(site, accept_byte_range=True)
    try:
        status, headers, body = _split(_get(server, "/data.txt", "Range: bytes=100-110"))
    finally:
        _stop_server(server, thread)

    assert status == b"HTTP/1.1 416 Range Not Satisfiable"
    assert headers["content-range"] == "bytes */100"
    assert headers["content-length"] == "0"
    assert body == b""


def test_compression_negotiated_per_request(site: Path) -> None:
    server, thread = _start_server(site, compress=True)
    try:
        _status, gz_headers, gz_body = _split(
            _get(server, "/style.css", "Accept-Encoding: gzip")
        )
        _status, plain_headers, plain_body = _split(_get(server, "/style.css"))
    finally:
        _stop_server(server, thread)

    assert gz_headers["content-encoding"] == "gzip"
    assert gzip.decompress(gz_body) == plain_body
    assert "content-encoding" not in plain_headers


def test_directory_listing_toggle(site: Path) -> None:
    server, thread = _start_server(site, generate_index_pages=False)
    try:
        disabled_status, _headers, _body = _split(_get(server, "/listing/"))
    finally:
        _stop_server(server, thread)

    server, thread = _start_server(site, generate_index_pages=True)
    try:
        enabled_status, headers, body = _split(_get(server, "/listing/"))
    finally:
        _stop_server(server, thread)

    assert disabled_status == b"HTTP/1.1 403 Forbidden"
    assert enabled_status == b"HTTP/1.1 200 OK"
    assert headers["content-type"] == "text/html; charset=utf-8"
    assert body.index(b"a/") < body.index(b"b.txt")


def test_stats_filter_returns_only_matching_counters(site: Path) -> None:
    server, thread = _start_server(site)
    try:
        _get(server, "/data.txt")
        _get(server, "/missing.txt")
        status, headers, body = _split(_get(server, "/stats?r=fsOK"))
        _status, _headers, full_body = _split(_get(server, "/stats"))
    finally:
        _stop_server(server, thread)

    assert status == b"HTTP/1.1 200 OK"
    assert headers["content-type"] == "text/plain; charset=utf-8"
    assert body == b"fsOKResponses 1\n"
    assert b"fsNotFoundResponses 1\n" in full_body
    assert b"fsCalls 2\n" in full_body
    assert server.stats.get(FS_NOT_FOUND_RESPONSES) == 1


def test_stats_with_invalid_pattern_returns_400(site: Path) -> None:
    server, thread = _start_server(site)
    try:
        status, _headers, _body = _split(_get(server, "/stats?r=%28"))
    finally:
        _stop_server(server, thread)

    assert status == b"HTTP/1.1 400 Bad Request"


def test_demo_routes_do_not_touch_fs_counters(site: Path) -> None:
    (site / "hello").write_text("never served")
    server, thread = _start_server(site)
    try:
        _status, hello_headers, hello_body = _split(_get(server, "/hello"))
        _status, json_headers, json_body = _split(_get(server, "/json"))
    finally:
        _stop_server(server, thread)

    assert hello_body == b"<h1>Hello, world!</h1>"
    assert hello_headers["x-my-header"] == "my-header-value"
    assert json_headers["content-encoding"] == "gzip"
    assert b"Thay Cuong is happy" in gzip.decompress(json_body)
    assert server.stats.get(FS_CALLS) == 0


def test_stream_route_returns_chunked_json_lines(site: Path) -> None:
    server, thread = _start_server(site)
    try:
        with socket.create_connection((server.host, server.port), timeout=3) as sock:
            sock.sendall(b"GET /stream HTTP/1.1\r\nHost: localhost\r\nConnection: close\r\n\r\n")
            chunks: list[bytes] = []
            while True:
                chunk = sock.recv(4096)
                if not chunk:
                    break
                chunks.append(chunk)
        response = b"".join(chunks)
    finally:
        _stop_server(server, thread)

    assert response.startswith(b"HTTP/1.1 200 OK")
    assert b"Transfer-Encoding: chunked\r\n" in response
    assert b'"Latitude": 37.819929' in response
    assert response.endswith(b"0\r\n\r\n")


def test_head_returns_headers_without_body(site: Path) -> None:
    server, thread = _start_server(site)
    try:
        raw = _get(server, "/data.txt", method="HEAD")
    finally:
        _stop_server(server, thread)

    status, headers, body = _split(raw)
    assert status == b"HTTP/1.1 200 OK"
    assert headers["content-length"] == "100"
    assert body == b""
    assert server.stats.get(FS_OK_RESPONSES) == 1
    assert server.stats.get(FS_RESPONSE_BODY_BYTES) == 100


def test_unsupported_method_on_demo_route_returns_405(site: Path) -> None:
    server, thread = _start_server(site)
    try:
        status, headers, _body = _split(_get(server, "/hello", method="DELETE"))
    finally:
        _stop_server(server, thread)

    assert status == b"HTTP/1.1 405 Method Not Allowed"
    assert headers["allow"] == "GET, HEAD"


def test_keep_alive_serves_multiple_requests(site: Path) -> None:
    server, thread = _start_server(site)
    try:
        with socket.create_connection((server.host, server.port), timeout=3) as sock:
            sock.sendall(b"GET /data.txt HTTP/1.1\r\nHost: localhost\r\n\r\n")
            first = _recv_http_response(sock)
            sock.sendall(b"GET /index.html HTTP/1.1\r\nHost: localhost\r\nConnection: close\r\n\r\n")
            second = _recv_http_response(sock)
    finally:
        _stop_server(server, thread)

    assert b"Connection: keep-alive\r\n" in first
    assert first.endswith(b"0123456789" * 10)
    assert second.endswith(b"<h1>home</h1>")


def test_malformed_request_returns_400(site: Path) -> None:
    server, thread = _start_server(site)
    try:
        with socket.create_connection((server.host, server.port), timeout=3) as sock:
            sock.sendall(b"BROKEN\r\n\r\n")
            response = _recv_http_response(sock)
    finally:
        _stop_server(server, thread)

    assert response.startswith(b"HTTP/1.1 400 Bad Request")


def test_concurrent_static_requests_are_all_counted(site: Path) -> None:
    request_count = 24
    server, thread = _start_server(site)
    try:
        with ThreadPoolExecutor(max_workers=request_count) as executor:
            futures = [
                executor.submit(_get, server, "/data.txt") for _ in range(request_count)
            ]
            responses = [future.result() for future in futures]
    finally:
        _stop_server(server, thread)

    assert all(response.startswith(b"HTTP/1.1 200 OK") for response in responses)
    assert server.stats.get(FS_CALLS) == request_count
    assert server.stats.get(FS_OK_RESPONSES) == request_count
    assert server.stats.get(FS_RESPONSE_BODY_BYTES) == 100 * request_count


def test_leading_double_slash_serves_the_file(site: Path) -> None:
    server, thread = _start_server(site)
    try:
        status, _headers, body = _split(_get(server, "//data.txt"))
    finally:
        _stop_server(server, thread)

    assert status == b"HTTP/1.1 200 OK"
    assert body == b"0123456789" * 10
