"""Illustrative endpoints served next to the static files."""

from __future__ import annotations

import json
import time
from dataclasses import dataclass

from compression import gzip_bytes
from config import STREAM_INTERVAL_SECS, STREAM_QUEUE_SIZE
from request import HTTPRequest
from response import HTTPResponse
from streaming import BoundedStream, start_producer

JSON_CONTENT_TYPE = "application/json; charset=utf-8"

VERTEX = {"X": 1, "Y": 2, "Rock": "Thay Cuong is happy", "Z": 10}

LOCATIONS = (
    {"Altitude": -97, "Latitude": 37.819929, "Longitude": -122.478255},
    {"Altitude": 1899, "Latitude": 39.096849, "Longitude": -120.032351},
    {"Altitude": 2619, "Latitude": 37.865101, "Longitude": -119.538329},
    {"Altitude": 42, "Latitude": 33.812092, "Longitude": -117.918974},
    {"Altitude": 15, "Latitude": 37.77493, "Longitude": -122.419416},
    {"Altitude": 2613, "Latitude": 67.865101, "Longitude": -119.538329},
    {"Altitude": 44, "Latitude": 53.812092, "Longitude": -117.918974},
    {"Altitude": 25, "Latitude": 57.77493, "Longitude": -122.419416},
)


def hello(request: HTTPRequest) -> HTTPResponse:
    _ = request
    return HTTPResponse(
        status_code=200,
        headers={
            "Content-Type": "text/html; charset=utf-8",
            "X-My-Header": "my-header-value",
            "Set-Cookie": "cookie-name=cookie-value",
        },
        body="<h1>Hello, world!</h1>",
    )


def gzip_json(request: HTTPRequest) -> HTTPResponse:
    """JSON body that is always gzip encoded, whatever the client accepts."""
    _ = request
    payload = json.dumps(VERTEX).encode("utf-8")
    return HTTPResponse(
        status_code=200,
        headers={
            "Content-Type": JSON_CONTENT_TYPE,
            "Content-Encoding": "gzip",
        },
        body=gzip_bytes(payload),
    )


@dataclass
class StreamDemo:
    """Emit one JSON location per chunk, pausing between chunks."""

    interval_secs: float = STREAM_INTERVAL_SECS
    queue_size: int = STREAM_QUEUE_SIZE

    def __call__(self, request: HTTPRequest) -> HTTPResponse:
        _ = request
        stream = start_producer(self._produce, maxsize=self.queue_size)
        return HTTPResponse(
            status_code=200,
            headers={"Content-Type": JSON_CONTENT_TYPE},
            stream=stream,
        )

    def _produce(self, stream: BoundedStream) -> None:
        for index, location in enumerate(LOCATIONS):
            if index and self.interval_secs > 0:
                time.sleep(self.interval_secs)
            line = json.dumps(location) + "\n"
            if not stream.put(line.encode("utf-8")):
                return
