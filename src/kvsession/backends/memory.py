"""In-memory cache backend."""

from __future__ import annotations

import threading
import time
from typing import Callable, NamedTuple

from cachetools import TLRUCache


class _Entry(NamedTuple):
    value: str
    ttl: int


def _entry_expiry(_key: str, entry: _Entry, now: float) -> float:
    return now + entry.ttl


class MemoryCacheBackend:
    """In-memory cache backend using cachetools TLRUCache (per-entry TTL).

    Suitable for single-process deployments, development and tests.
    """

    def __init__(self, maxsize: int = 10000, timer: Callable[[], float] = time.monotonic):
        self._cache: TLRUCache = TLRUCache(maxsize=maxsize, ttu=_entry_expiry, timer=timer)
        self._lock = threading.Lock()

    def get(self, key: str) -> str | None:
        with self._lock:
            entry = self._cache.get(key)
        return entry.value if entry is not None else None

    def set(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            self._cache[key] = _Entry(value, ttl)

    def delete(self, key: str) -> None:
        with self._lock:
            self._cache.pop(key, None)

    def list_keys(self) -> list[str]:
        with self._lock:
            self._cache.expire()
            return list(self._cache.keys())
