"""Static file server entry point and connection lifecycle orchestration."""

from __future__ import annotations

import argparse
import json
import logging
import re
import socket
import ssl
import sys
import threading
import time
from dataclasses import dataclass

from config import (
    ADDR,
    ADDR_TLS,
    BYTE_RANGE,
    CACHE_MAX_ENTRIES,
    CERT_FILE,
    COMPRESS,
    GENERATE_INDEX_PAGES,
    HOST,
    INDEX_NAMES,
    KEEPALIVE_TIMEOUT_SECS,
    KEY_FILE,
    LOG_FORMAT,
    LOG_LEVEL,
    MAX_KEEPALIVE_REQUESTS,
    PORT,
    REQUEST_QUEUE_SIZE,
    SERVE_DIR,
    SOCKET_TIMEOUT_SECS,
    STREAM_INTERVAL_SECS,
    VHOST,
    WORKER_COUNT,
)
from handlers.demo_handlers import StreamDemo, gzip_json, hello
from handlers.static_handler import FSOptions, StaticFileHandler
from request import HTTPRequest, HTTPRequestParseError
from response import HTTPResponse, text_response
from router import Router
from socket_handler import HTTPReadError, read_http_request_message, write_http_response_message
from stats import (
    HTTP_CONNECTIONS,
    HTTP_QUEUE_REJECTIONS,
    HTTP_READ_ERRORS,
    HTTP_REQUESTS,
    HTTP_WRITE_ERRORS,
    StatsRegistry,
)
from thread_pool import ThreadPool

logger = logging.getLogger(__name__)

SERVED_METHODS = {"GET", "HEAD"}


@dataclass(slots=True)
class AcceptedConnection:
    sock: socket.socket
    tls: bool


class HTTPServer:
    def __init__(
        self,
        host: str = HOST,
        port: int = PORT,
        router: Router | None = None,
        worker_count: int = WORKER_COUNT,
        request_queue_size: int = REQUEST_QUEUE_SIZE,
        *,
        fs_options: FSOptions | None = None,
        stats: StatsRegistry | None = None,
        enable_http: bool = True,
        tls_host: str | None = None,
        tls_port: int | None = None,
        cert_file: str = CERT_FILE,
        key_file: str = KEY_FILE,
        keepalive_timeout_secs: int = KEEPALIVE_TIMEOUT_SECS,
        log_format: str = LOG_FORMAT,
        stream_interval_secs: float = STREAM_INTERVAL_SECS,
    ) -> None:
        if not enable_http and tls_port is None:
            raise ValueError("at least one of the HTTP or TLS listeners must be enabled")

        self.host = host
        self.port = port
        self.enable_http = enable_http
        self.tls_host = tls_host or host
        self.tls_port = tls_port
        self.cert_file = cert_file
        self.key_file = key_file
        self.worker_count = worker_count
        self.request_queue_size = request_queue_size
        self.keepalive_timeout_secs = keepalive_timeout_secs
        self.log_format = log_format
        self.stream_interval_secs = stream_interval_secs

        self.stats = stats or StatsRegistry()
        self.static_handler = StaticFileHandler(fs_options)
        self.router = router or self._build_default_router()
        if self.router.fallback is None:
            self.router.fallback = self._serve_static

        self._ssl_context: ssl.SSLContext | None = None
        self._listeners: list[tuple[socket.socket, bool]] = []
        self._accept_threads: list[threading.Thread] = []
        self._pool: ThreadPool | None = None
        self._running = False
        self._stop_event = threading.Event()
        self.ready = threading.Event()

    def _build_default_router(self) -> Router:
        router = Router(fallback=self._serve_static)
        router.add_route("/stats", self._serve_stats)
        router.add_route("/hello", hello)
        router.add_route("/json", gzip_json)
        router.add_route("/stream", StreamDemo(interval_secs=self.stream_interval_secs))
        return router

    def start(self) -> None:
        """Bind the configured listeners and serve until stop() is called.

        Bind failures and unreadable TLS certificate/key files raise before
        any connection is accepted.
        """
        if self.tls_port is not None:
            self._ssl_context = self._load_ssl_context()

        try:
            if self.enable_http:
                http_socket = self._bind(self.host, self.port, tls=False)
                self.port = http_socket.getsockname()[1]
            if self.tls_port is not None:
                tls_socket = self._bind(self.tls_host, self.tls_port, tls=True)
                self.tls_port = tls_socket.getsockname()[1]
        except OSError:
            self._close_listeners()
            raise

        self._pool = ThreadPool(
            worker_count=self.worker_count,
            queue_size=self.request_queue_size,
            handler=self._handle_client,
        )
        self._pool.start()
        self._running = True

        for listener, is_tls in self._listeners:
            thread = threading.Thread(
                target=self._accept_loop,
                args=(listener, is_tls),
                name=f"http-accept-{'tls' if is_tls else 'plain'}",
                daemon=True,
            )
            self._accept_threads.append(thread)
            thread.start()

        self.ready.set()
        try:
            while not self._stop_event.wait(timeout=0.2):
                pass
        finally:
            self._running = False
            self._close_listeners()
            for thread in self._accept_threads:
                thread.join(timeout=1.0)
            if self._pool is not None:
                self._pool.shutdown()
                self._pool = None

    def wait_until_ready(self, timeout: float | None = None) -> bool:
        return self.ready.wait(timeout)

    def stop(self) -> None:
        self._running = False
        self._stop_event.set()
        self._close_listeners()

    def _load_ssl_context(self) -> ssl.SSLContext:
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_SERVER)
        context.load_cert_chain(certfile=self.cert_file, keyfile=self.key_file)
        return context

    def _bind(self, host: str, port: int, *, tls: bool) -> socket.socket:
        server_socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        try:
            server_socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            server_socket.bind((host, port))
            server_socket.listen(128)
            server_socket.settimeout(0.2)
        except OSError:
            server_socket.close()
            raise
        self._listeners.append((server_socket, tls))
        return server_socket

    def _close_listeners(self) -> None:
        listeners, self._listeners = self._listeners, []
        for listener, _is_tls in listeners:
            try:
                listener.close()
            except OSError:
                pass

    def _accept_loop(self, server_socket: socket.socket, is_tls: bool) -> None:
        while self._running:
            try:
                client_socket, address = server_socket.accept()
            except socket.timeout:
                continue
            except OSError:
                break

            self.stats.add(HTTP_CONNECTIONS)
            client_socket.settimeout(None)
            connection = AcceptedConnection(sock=client_socket, tls=is_tls)
            if self._pool is None or not self._pool.submit(connection, address):
                self.stats.add(HTTP_QUEUE_REJECTIONS)
                self._reject_connection(connection)

    def _reject_connection(self, connection: AcceptedConnection) -> None:
        with connection.sock:
            if connection.tls:
                # No handshake has happened yet, so there is no way to answer.
                return
            response = text_response(503, headers={"Connection": "close"})
            try:
                write_http_response_message(connection.sock, response)
            except OSError:
                self.stats.add(HTTP_WRITE_ERRORS)

    def _handle_client(self, connection: AcceptedConnection, address: tuple[str, int]) -> None:
        client_socket: socket.socket = connection.sock
        client_socket.settimeout(min(SOCKET_TIMEOUT_SECS, self.keepalive_timeout_secs))
        if connection.tls and self._ssl_context is not None:
            try:
                client_socket = self._ssl_context.wrap_socket(client_socket, server_side=True)
            except (ssl.SSLError, OSError) as exc:
                logger.warning("TLS handshake with %s failed: %s", address[0], exc)
                connection.sock.close()
                return

        with client_socket:
            self._serve_connection(client_socket, address)

    def _serve_connection(self, client_socket: socket.socket, address: tuple[str, int]) -> None:
        request_count = 0
        carry = b""
        while request_count < MAX_KEEPALIVE_REQUESTS:
            started_at = time.perf_counter()
            try:
                raw_request, carry = read_http_request_message(client_socket, carry)
            except HTTPReadError as exc:
                self.stats.add(HTTP_READ_ERRORS)
                self._respond_and_close(client_socket, address, exc.status_code, started_at)
                return
            except OSError:
                return

            if not raw_request:
                return

            try:
                request = HTTPRequest.from_bytes(raw_request)
            except HTTPRequestParseError as exc:
                self._respond_and_close(client_socket, address, exc.status_code, started_at)
                return

            request_count += 1
            self.stats.add(HTTP_REQUESTS)
            response = self._dispatch(request)
            should_close = (not request.keep_alive) or request_count >= MAX_KEEPALIVE_REQUESTS
            if should_close:
                response.headers.setdefault("Connection", "close")
            else:
                response.headers.setdefault("Connection", "keep-alive")
                response.headers.setdefault(
                    "Keep-Alive",
                    (
                        f"timeout={self.keepalive_timeout_secs}, "
                        f"max={MAX_KEEPALIVE_REQUESTS - request_count}"
                    ),
                )

            try:
                bytes_sent = write_http_response_message(client_socket, response)
            except OSError as exc:
                self.stats.add(HTTP_WRITE_ERRORS)
                logger.debug("Write to %s failed: %s", address[0], exc)
                return

            self._record_and_log(
                address=address,
                method=request.method,
                path=request.path,
                response=response,
                payload_size=bytes_sent,
                started_at=started_at,
                request_id=request_count,
            )
            if should_close:
                return

    def _respond_and_close(
        self,
        client_socket: socket.socket,
        address: tuple[str, int],
        status_code: int,
        started_at: float,
    ) -> None:
        response = text_response(status_code, headers={"Connection": "close"})
        try:
            bytes_sent = write_http_response_message(client_socket, response)
        except OSError:
            self.stats.add(HTTP_WRITE_ERRORS)
            return
        self._record_and_log(
            address=address,
            method="-",
            path="-",
            response=response,
            payload_size=bytes_sent,
            started_at=started_at,
            request_id=0,
        )

    def _dispatch(self, request: HTTPRequest) -> HTTPResponse:
        handler = self.router.resolve(request.path)
        if handler is None:
            return text_response(404)

        is_static = handler == self.router.fallback
        if not is_static and request.method not in SERVED_METHODS:
            return text_response(405, headers={"Allow": "GET, HEAD"})

        is_head = request.method == "HEAD"
        effective_request = request.with_method("GET") if is_head else request
        try:
            response = handler(effective_request)
        except Exception:
            logger.exception("Unhandled error in handler for %s", request.path)
            response = text_response(500)

        if is_head:
            return self._as_head_response(response)
        return response

    def _serve_static(self, request: HTTPRequest) -> HTTPResponse:
        try:
            response = self.static_handler(request)
        except Exception:
            logger.exception("Unhandled error serving %s", request.path)
            response = text_response(500)
        body = response.body if isinstance(response.body, bytes) else b""
        self.stats.record_fs_response(response.status_code, len(body))
        return response

    def _serve_stats(self, request: HTTPRequest) -> HTTPResponse:
        pattern = request.query_value("r")
        try:
            text = self.stats.render_text(pattern)
        except re.error as exc:
            return text_response(400, f"cannot parse r={pattern!r}: {exc}")
        return HTTPResponse(
            status_code=200,
            headers={"Content-Type": "text/plain; charset=utf-8"},
            body=text,
        )

    def _record_and_log(
        self,
        *,
        address: tuple[str, int],
        method: str,
        path: str,
        response: HTTPResponse,
        payload_size: int,
        started_at: float,
        request_id: int,
    ) -> None:
        duration_ms = (time.perf_counter() - started_at) * 1000
        event = {
            "client": address[0],
            "method": method,
            "path": path,
            "status": response.status_code,
            "request_id": request_id,
            "bytes_out": payload_size,
            "latency_ms": round(duration_ms, 3),
        }
        if self.log_format == "json":
            logger.info(json.dumps(event, sort_keys=True))
            return

        logger.info(
            "client=%s method=%s path=%s status=%s request_id=%s bytes_out=%s duration_ms=%.2f",
            event["client"],
            event["method"],
            event["path"],
            event["status"],
            event["request_id"],
            event["bytes_out"],
            duration_ms,
        )

    def _as_head_response(self, get_response: HTTPResponse) -> HTTPResponse:
        headers = dict(get_response.headers)
        if get_response.stream is not None:
            close = getattr(get_response.stream, "close", None)
            if close is not None:
                close()
            headers.setdefault("Transfer-Encoding", "chunked")
            return HTTPResponse(
                status_code=get_response.status_code,
                reason_phrase=get_response.reason_phrase,
                headers=headers,
                body=b"",
            )

        body_bytes = get_response.body
        if isinstance(body_bytes, str):
            body_bytes = body_bytes.encode("utf-8")
        return HTTPResponse(
            status_code=get_response.status_code,
            reason_phrase=get_response.reason_phrase,
            headers=headers,
            body=b"",
            content_length_override=len(body_bytes),
        )


def split_address(address: str) -> tuple[str, int]:
    """Split ``host:port`` (``:port`` binds all interfaces)."""
    host, sep, port_text = address.rpartition(":")
    if not sep:
        raise ValueError(f"address {address!r} must look like host:port")
    try:
        port = int(port_text)
    except ValueError as exc:
        raise ValueError(f"invalid port in address {address!r}") from exc
    host = host.strip("[]") or "0.0.0.0"
    return host, port


def _parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve static files from a directory")
    parser.add_argument("--addr", default=ADDR, help="TCP address to listen to")
    parser.add_argument(
        "--addr-tls",
        default=ADDR_TLS,
        help="TCP address to listen to TLS requests; empty disables TLS",
    )
    parser.add_argument(
        "--byte-range",
        action=argparse.BooleanOptionalAction,
        default=BYTE_RANGE,
        help="Enable byte range requests",
    )
    parser.add_argument("--cert-file", default=CERT_FILE, help="Path to TLS certificate file")
    parser.add_argument("--key-file", default=KEY_FILE, help="Path to TLS key file")
    parser.add_argument(
        "--compress",
        action=argparse.BooleanOptionalAction,
        default=COMPRESS,
        help="Enable transparent gzip response compression",
    )
    parser.add_argument("--dir", default=SERVE_DIR, help="Directory to serve static files from")
    parser.add_argument(
        "--generate-index-pages",
        action=argparse.BooleanOptionalAction,
        default=GENERATE_INDEX_PAGES,
        help="Generate directory index pages",
    )
    parser.add_argument(
        "--vhost",
        action=argparse.BooleanOptionalAction,
        default=VHOST,
        help="Prefix the requested path with the requested hostname",
    )
    parser.add_argument("--workers", type=int, default=WORKER_COUNT)
    parser.add_argument("--queue-size", type=int, default=REQUEST_QUEUE_SIZE)
    parser.add_argument("--log-format", choices=["plain", "json"], default=LOG_FORMAT)
    parser.add_argument("--log-level", default=LOG_LEVEL)
    return parser.parse_args(argv)


def build_server(args: argparse.Namespace) -> HTTPServer:
    if not args.addr and not args.addr_tls:
        raise ValueError("either --addr or --addr-tls must be set")

    host, port = split_address(args.addr) if args.addr else (HOST, 0)
    tls_host, tls_port = split_address(args.addr_tls) if args.addr_tls else (None, None)
    fs_options = FSOptions(
        root=args.dir,
        index_names=INDEX_NAMES,
        generate_index_pages=args.generate_index_pages,
        compress=args.compress,
        accept_byte_range=args.byte_range,
        vhost=args.vhost,
        cache_max_entries=CACHE_MAX_ENTRIES,
    )
    return HTTPServer(
        host=host,
        port=port,
        worker_count=args.workers,
        request_queue_size=args.queue_size,
        fs_options=fs_options,
        enable_http=bool(args.addr),
        tls_host=tls_host,
        tls_port=tls_port,
        cert_file=args.cert_file,
        key_file=args.key_file,
        log_format=args.log_format,
    )


def main(argv: list[str] | None = None) -> int:
    args = _parse_args(argv)
    logging.basicConfig(
        level=args.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
    )
    try:
        server = build_server(args)
    except ValueError as exc:
        logger.error("Invalid configuration: %s", exc)
        return 2

    if args.addr:
        logger.info("Starting HTTP server on %r", args.addr)
    if args.addr_tls:
        logger.info("Starting HTTPS server on %r", args.addr_tls)
    logger.info("Serving files from directory %r", args.dir)
    if args.addr:
        logger.info("See stats at http://%s/stats", args.addr)

    try:
        server.start()
    except KeyboardInterrupt:
        server.stop()
    except OSError as exc:
        logger.error("Failed to start listeners: %s", exc)
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
