"""Low-level socket read/write utilities."""

from __future__ import annotations

import socket

from config import (
    BUFFER_SIZE,
    MAX_BODY_BYTES,
    MAX_HEADER_BYTES,
    MAX_REQUEST_BYTES,
    READ_CHUNK_SIZE,
)
from response import HTTPResponse, iter_chunked_encoded, prepare_response


class HTTPReadError(Exception):
    """Raised when a client request cannot be safely read from the socket."""

    status_code: int = 400


class MalformedRequestError(HTTPReadError):
    """Raised when socket bytes do not form a complete HTTP request."""


class HeaderTooLargeError(HTTPReadError):
    """Raised when HTTP headers exceed configured maximum size."""

    status_code = 431


class PayloadTooLargeError(HTTPReadError):
    """Raised when request body exceeds configured maximum size."""

    status_code = 413


class SocketTimeoutError(HTTPReadError):
    """Raised when a client times out while sending request bytes."""

    status_code = 408


def _extract_content_length(header_bytes: bytes) -> int:
    for line in header_bytes.decode("iso-8859-1").split("\r\n")[1:]:
        if not line:
            continue
        if ":" not in line:
            raise MalformedRequestError("Malformed header while reading request")
        name, value = line.split(":", 1)
        if name.strip().lower() != "content-length":
            continue
        try:
            parsed_length = int(value.strip())
        except ValueError as exc:
            raise MalformedRequestError("Invalid Content-Length header") from exc
        if parsed_length < 0:
            raise MalformedRequestError("Negative Content-Length header")
        return parsed_length
    return 0


def extract_http_request_message(buffer: bytes) -> tuple[bytes, bytes] | None:
    """Extract one complete HTTP request from a bytes buffer, if present."""
    if len(buffer) > MAX_REQUEST_BYTES:
        raise PayloadTooLargeError("Request exceeded MAX_REQUEST_BYTES")

    header_end_index = buffer.find(b"\r\n\r\n")
    if header_end_index == -1:
        if len(buffer) > MAX_HEADER_BYTES:
            raise HeaderTooLargeError("Headers exceeded MAX_HEADER_BYTES")
        return None
    if header_end_index + 4 > MAX_HEADER_BYTES:
        raise HeaderTooLargeError("Headers exceeded MAX_HEADER_BYTES")

    body_length = _extract_content_length(buffer[:header_end_index])
    if body_length > MAX_BODY_BYTES:
        raise PayloadTooLargeError("Body exceeded MAX_BODY_BYTES")

    request_length = header_end_index + 4 + body_length
    if len(buffer) < request_length:
        return None
    return buffer[:request_length], buffer[request_length:]


def read_http_request_message(
    client_socket: socket.socket,
    initial_buffer: bytes = b"",
) -> tuple[bytes, bytes]:
    """Read one HTTP/1.1 request and return (request_bytes, leftover_bytes)."""
    buffer = bytearray(initial_buffer)

    while True:
        extracted = extract_http_request_message(bytes(buffer))
        if extracted is not None:
            return extracted

        try:
            chunk = client_socket.recv(max(BUFFER_SIZE, READ_CHUNK_SIZE))
        except socket.timeout as exc:
            raise SocketTimeoutError("Timed out waiting for request bytes") from exc

        if not chunk:
            if not buffer:
                return b"", b""
            raise MalformedRequestError("Connection closed before request completed")

        buffer.extend(chunk)


def write_http_response_message(client_socket: socket.socket, response: HTTPResponse) -> int:
    """Write an HTTPResponse, streaming chunked bodies as they are produced."""
    prepared = prepare_response(response)
    client_socket.sendall(prepared.head)
    bytes_sent = len(prepared.head)

    if prepared.body:
        client_socket.sendall(prepared.body)
        bytes_sent += len(prepared.body)
        return bytes_sent

    if prepared.stream is not None:
        try:
            for encoded_chunk in iter_chunked_encoded(prepared.stream):
                client_socket.sendall(encoded_chunk)
                bytes_sent += len(encoded_chunk)
        finally:
            close = getattr(prepared.stream, "close", None)
            if close is not None:
                close()

    return bytes_sent
