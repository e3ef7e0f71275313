"""
app/services/latest_cache.py

Bounded, expiring cache of stored latest-projection timestamps.
"""

from __future__ import annotations

import threading
import time
from collections import OrderedDict
from typing import Callable


class LatestTimestampCache:
    """
    Path -> timestamp map with a TTL and a size cap.

    At capacity the oldest inserted entry is evicted. Owned by one service
    instance; share it only between imports against the same store.
    """

    def __init__(
        self,
        *,
        max_entries: int = 5000,
        ttl_seconds: float = 300.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._max_entries = max(1, max_entries)
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._entries: OrderedDict[str, tuple[int, float]] = OrderedDict()
        self._lock = threading.Lock()

    def get(self, path: str) -> int | None:
        with self._lock:
            entry = self._entries.get(path)
            if entry is None:
                return None
            timestamp_sec, stored_at = entry
            if self._ttl_seconds > 0 and self._clock() - stored_at > self._ttl_seconds:
                del self._entries[path]
                return None
            return timestamp_sec

    def put(self, path: str, timestamp_sec: int) -> None:
        with self._lock:
            if path in self._entries:
                del self._entries[path]
            elif len(self._entries) >= self._max_entries:
                self._entries.popitem(last=False)
            self._entries[path] = (int(timestamp_sec), self._clock())

    def forget(self, path: str) -> None:
        with self._lock:
            self._entries.pop(path, None)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
