"""
In-process cache for slow-changing reference data (cities, cuisines).

One instance is created per application in the lifespan hook and handed to route
handlers through `api.deps`; writes that touch cities or cuisines invalidate it.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any, TypeVar

from .metrics import cache_hits_total, cache_misses_total

T = TypeVar("T")


class ReferenceCache:
    def __init__(self, ttl_seconds: float, *, name: str = "reference") -> None:
        self._ttl = ttl_seconds
        self._name = name
        self._entries: dict[str, tuple[float, Any]] = {}
        self._lock = asyncio.Lock()
        self.hits = 0
        self.misses = 0

    async def get_or_load(self, key: str, loader: Callable[[], Awaitable[T]]) -> T:
        entry = self._entries.get(key)
        now = time.monotonic()
        if entry is not None and entry[0] > now:
            self.hits += 1
            cache_hits_total.labels(cache_name=self._name).inc()
            return entry[1]
        async with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry[0] > time.monotonic():
                self.hits += 1
                cache_hits_total.labels(cache_name=self._name).inc()
                return entry[1]
            self.misses += 1
            cache_misses_total.labels(cache_name=self._name).inc()
            value = await loader()
            if self._ttl > 0:
                self._entries[key] = (time.monotonic() + self._ttl, value)
            return value

    def invalidate(self, *keys: str) -> None:
        if not keys:
            self._entries.clear()
            return
        for key in keys:
            self._entries.pop(key, None)

    def stats(self) -> dict[str, Any]:
        return {
            "entries": len(self._entries),
            "ttl_seconds": self._ttl,
            "hits": self.hits,
            "misses": self.misses,
        }
