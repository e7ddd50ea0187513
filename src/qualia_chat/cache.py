"""Size- and time-bounded key/value cache.

One class serves every cache purpose (assistant messages, search results,
synthesized audio); each instance carries its own capacity and TTL.
"""

import asyncio
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Hashable, Optional, TypeVar

from qualia_chat.errors import CacheMiss

logger = logging.getLogger(__name__)

K = TypeVar("K", bound=Hashable)
V = TypeVar("V")


@dataclass
class CacheEntry(Generic[V]):
    value: V
    timestamp: float


class BoundedCache(Generic[K, V]):
    """Mapping with a maximum entry count and a shared entry lifetime.

    Expiry is lazy: ``get`` treats stale entries as misses without removing
    them, and ``sweep`` (or the background sweeper) drops them. When full,
    inserting a new key evicts the entry with the oldest timestamp.
    A ``ttl`` of ``None`` disables expiry; a ``max_size`` of 0 disables the
    cache entirely.
    """

    def __init__(
        self,
        name: str,
        max_size: int,
        ttl: Optional[float] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.max_size = max_size
        self.ttl = ttl
        self._clock = clock
        self._entries: dict[K, CacheEntry[V]] = {}
        self._lock = threading.Lock()
        self._sweeper: Optional[asyncio.Task[None]] = None

    def _is_expired(self, entry: CacheEntry[V], now: float) -> bool:
        return self.ttl is not None and now - entry.timestamp >= self.ttl

    def get(self, key: K, default: Optional[V] = None) -> Optional[V]:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
            if entry is None or self._is_expired(entry, now):
                logger.debug(f"{self.name} cache miss: {key!r}")
                return default
        logger.debug(f"{self.name} cache hit: {key!r}")
        return entry.value

    def __getitem__(self, key: K) -> V:
        sentinel = object()
        value = self.get(key, sentinel)  # type: ignore[arg-type]
        if value is sentinel:
            raise CacheMiss(key)
        return value  # type: ignore[return-value]

    def __contains__(self, key: object) -> bool:
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)  # type: ignore[arg-type]
            return entry is not None and not self._is_expired(entry, now)

    def __len__(self) -> int:
        return len(self._entries)

    def put(self, key: K, value: V) -> bool:
        """Store a value. Returns False when the cache is disabled."""
        if self.max_size <= 0:
            return False
        with self._lock:
            if key not in self._entries and len(self._entries) >= self.max_size:
                oldest = min(self._entries, key=lambda k: self._entries[k].timestamp)
                del self._entries[oldest]
                logger.debug(f"{self.name} cache evicted {oldest!r}")
            self._entries[key] = CacheEntry(value=value, timestamp=self._clock())
        return True

    def invalidate(self, key: K) -> bool:
        with self._lock:
            return self._entries.pop(key, None) is not None

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def sweep(self) -> int:
        """Remove expired entries and return how many were dropped."""
        if self.ttl is None:
            return 0
        now = self._clock()
        with self._lock:
            dead_keys = [k for k, entry in self._entries.items() if self._is_expired(entry, now)]
            for k in dead_keys:
                del self._entries[k]
        if dead_keys:
            logger.debug(f"{self.name} cache swept {len(dead_keys)} expired entries")
        return len(dead_keys)

    def start_sweeper(self, interval: float) -> asyncio.Task[None]:
        """Sweep expired entries every ``interval`` seconds until stopped."""
        if self._sweeper and not self._sweeper.done():
            return self._sweeper
        self._sweeper = asyncio.create_task(self._sweep_forever(interval))
        return self._sweeper

    async def stop_sweeper(self) -> None:
        if self._sweeper is None:
            return
        self._sweeper.cancel()
        try:
            await self._sweeper
        except asyncio.CancelledError:
            pass
        self._sweeper = None

    async def _sweep_forever(self, interval: float) -> None:
        while True:
            await asyncio.sleep(interval)
            self.sweep()
