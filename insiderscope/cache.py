"""Injected get/set/TTL caches.

The pipeline and snapshot readers take a cache in their constructor instead of
reaching for process-global state, so tests can pass a NullCache or a MemoryCache
with a fake clock.
"""

from __future__ import annotations

import time
from typing import Any, Callable, Dict, Optional, Protocol, Tuple


class Cache(Protocol):
    def get(self, key: str) -> Any: ...

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None: ...


class NullCache:
    """Never stores anything."""

    def get(self, key: str) -> Any:
        return None

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        return None


class MemoryCache:
    """Per-instance dict cache with optional expiry.

    `get` returns None for missing or expired keys, so None is not a cacheable value.
    """

    def __init__(self, default_ttl_seconds: float | None = None, clock: Callable[[], float] = time.monotonic):
        self._default_ttl = default_ttl_seconds
        self._clock = clock
        self._data: Dict[str, Tuple[Optional[float], Any]] = {}

    def get(self, key: str) -> Any:
        hit = self._data.get(key)
        if hit is None:
            return None
        expires_at, value = hit
        if expires_at is not None and self._clock() >= expires_at:
            del self._data[key]
            return None
        return value

    def set(self, key: str, value: Any, ttl_seconds: float | None = None) -> None:
        ttl = self._default_ttl if ttl_seconds is None else ttl_seconds
        expires_at = self._clock() + ttl if ttl is not None else None
        self._data[key] = (expires_at, value)

    def __len__(self) -> int:
        return len(self._data)
