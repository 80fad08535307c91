"""Bounded producer/consumer channel for streamed response bodies."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable, Iterator

logger = logging.getLogger(__name__)

_CLOSED = object()


class BoundedStream:
    """Chunks written by a producer thread and consumed as an iterator.

    ``close()`` may be called from either side. After close, ``put`` returns
    False and iteration ends once buffered chunks are drained.
    """

    def __init__(self, maxsize: int = 4, *, poll_interval: float = 0.1) -> None:
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self._queue: queue.Queue[object] = queue.Queue(maxsize=maxsize)
        self._closed = threading.Event()
        self._poll_interval = poll_interval

    @property
    def closed(self) -> bool:
        return self._closed.is_set()

    def put(self, chunk: bytes) -> bool:
        while not self._closed.is_set():
            try:
                self._queue.put(chunk, timeout=self._poll_interval)
            except queue.Full:
                continue
            return True
        return False

    def close(self) -> None:
        if self._closed.is_set():
            return
        self._closed.set()
        try:
            self._queue.put_nowait(_CLOSED)
        except queue.Full:
            # Consumer notices the closed flag on its next poll.
            pass

    def __iter__(self) -> Iterator[bytes]:
        try:
            while True:
                try:
                    item = self._queue.get(timeout=self._poll_interval)
                except queue.Empty:
                    if self._closed.is_set():
                        return
                    continue
                if item is _CLOSED:
                    return
                yield item  # type: ignore[misc]
        finally:
            # Consumer went away (client disconnect or normal end).
            self.close()


def start_producer(
    produce: Callable[[BoundedStream], None],
    *,
    maxsize: int = 4,
    name: str = "stream-producer",
) -> BoundedStream:
    """Run ``produce`` on a daemon thread and close the stream when it returns."""
    stream = BoundedStream(maxsize=maxsize)

    def _run() -> None:
        try:
            produce(stream)
        except Exception:
            logger.exception("Stream producer failed")
        finally:
            stream.close()
            logger.info("Stream reader closed")

    threading.Thread(target=_run, name=name, daemon=True).start()
    return stream
