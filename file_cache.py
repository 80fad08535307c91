"""In-memory cache of file payloads keyed by path and content encoding."""

from __future__ import annotations

import logging
import os
import threading
from collections import OrderedDict
from dataclasses import dataclass
from pathlib import Path

from compression import GZIP, gzip_bytes

logger = logging.getLogger(__name__)

CacheKey = tuple[str, str]


@dataclass(frozen=True, slots=True)
class CacheEntry:
    payload: bytes
    mtime_ns: int
    source_size: int

    def matches(self, file_stat: os.stat_result) -> bool:
        return self.mtime_ns == file_stat.st_mtime_ns and self.source_size == file_stat.st_size


class FileCache:
    """Thread-safe payload cache with lazy invalidation on mtime changes.

    The map lock only guards lookups and mutations. File reads and gzip work
    happen outside it, serialized per key so concurrent misses on the same key
    build the payload once while unrelated keys rebuild in parallel.
    """

    def __init__(self, max_entries: int | None = None) -> None:
        if max_entries is not None and max_entries <= 0:
            raise ValueError("max_entries must be positive")
        self._max_entries = max_entries
        self._lock = threading.Lock()
        self._entries: OrderedDict[CacheKey, CacheEntry] = OrderedDict()
        self._build_locks: dict[CacheKey, threading.Lock] = {}
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def load(self, path: Path, encoding: str) -> CacheEntry:
        """Return the payload for ``path`` in ``encoding``, rebuilding if stale.

        Raises ``FileNotFoundError`` / ``OSError`` when the file cannot be read.
        """
        key = (str(path), encoding)
        current = path.stat()
        entry = self._lookup(key, current)
        if entry is not None:
            return entry

        build_lock = self._build_lock_for(key)
        with build_lock:
            # Another worker may have rebuilt the entry while we waited.
            entry = self._lookup(key, path.stat(), count=False)
            if entry is not None:
                return entry
            entry = self._build(path, encoding)
            self._store(key, entry)
            return entry

    def invalidate(self, path: Path | None = None) -> None:
        with self._lock:
            if path is None:
                self._entries.clear()
                return
            for key in [key for key in self._entries if key[0] == str(path)]:
                del self._entries[key]

    def _lookup(
        self,
        key: CacheKey,
        file_stat: os.stat_result,
        *,
        count: bool = True,
    ) -> CacheEntry | None:
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.matches(file_stat):
                self._entries.move_to_end(key)
                if count:
                    self.hits += 1
                return entry
            if count:
                self.misses += 1
            return None

    def _build_lock_for(self, key: CacheKey) -> threading.Lock:
        with self._lock:
            return self._build_locks.setdefault(key, threading.Lock())

    def _build(self, path: Path, encoding: str) -> CacheEntry:
        with path.open("rb") as file_obj:
            file_stat = os.fstat(file_obj.fileno())
            data = file_obj.read()
        if encoding == GZIP:
            data = gzip_bytes(data)
        logger.debug("Cached %s (%s, %d bytes)", path, encoding, len(data))
        return CacheEntry(
            payload=data,
            mtime_ns=file_stat.st_mtime_ns,
            source_size=file_stat.st_size,
        )

    def _store(self, key: CacheKey, entry: CacheEntry) -> None:
        with self._lock:
            self._entries[key] = entry
            self._entries.move_to_end(key)
            if self._max_entries is None:
                return
            while len(self._entries) > self._max_entries:
                evicted_key, _evicted = self._entries.popitem(last=False)
                self._build_locks.pop(evicted_key, None)
