# chuk_ai_context_assembler/cache.py
"""
Sharded TTL cache shared by the delta cache and the compression cache.

Both caches are keyed maps hit concurrently by many requests. Operations
on one key must be atomic, but different keys need no coordination, so
the map is split into shards, each with its own lock. A key always lands
in the same shard.

Eviction:
- TTL: entries older than ``ttl_seconds`` are dropped on read and by
  ``sweep()``.
- Capacity: each shard holds at most ``ceil(max_entries / num_shards)``
  entries; at capacity the oldest-stored entry in that shard goes first
  (insertion order, refreshed on every put - an approximate LRU).
"""

from __future__ import annotations

import hashlib
import logging
import math
import threading
import time
from collections import OrderedDict
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from typing import Generic, TypeVar

from .models import CacheStats

logger = logging.getLogger(__name__)

V = TypeVar("V")

Clock = Callable[[], float]


class _Shard(Generic[V]):
    __slots__ = ("lock", "entries")

    def __init__(self) -> None:
        self.lock = threading.RLock()
        # key -> (stored_at, value), oldest first
        self.entries: OrderedDict[str, tuple[float, V]] = OrderedDict()


class ShardedTTLCache(Generic[V]):
    """
    Keyed map with per-shard locking, TTL expiry and bounded capacity.

    ``clock`` returns seconds (monotonic by default) and is injectable so
    expiry can be tested without sleeping.
    """

    def __init__(
        self,
        ttl_seconds: float,
        max_entries: int = 1000,
        num_shards: int = 16,
        clock: Clock | None = None,
        name: str = "cache",
    ) -> None:
        if num_shards < 1:
            raise ValueError("num_shards must be >= 1")
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.num_shards = min(num_shards, max_entries)
        self.name = name
        self._clock = clock or time.monotonic
        self._shard_capacity = math.ceil(max_entries / self.num_shards)
        self._shards: list[_Shard[V]] = [_Shard() for _ in range(self.num_shards)]
        self._stats_lock = threading.Lock()
        self._stats = {
            "hits": 0,
            "misses": 0,
            "evictions": 0,
            "expirations": 0,
        }

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _shard_for(self, key: str) -> _Shard[V]:
        digest = hashlib.blake2b(key.encode("utf-8"), digest_size=4).digest()
        return self._shards[int.from_bytes(digest, "big") % self.num_shards]

    def _bump(self, stat: str, count: int = 1) -> None:
        with self._stats_lock:
            self._stats[stat] += count

    def _expired(self, stored_at: float, now: float) -> bool:
        return now - stored_at > self.ttl_seconds

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    @contextmanager
    def locked(self, key: str) -> Iterator[None]:
        """
        Hold the shard lock for ``key`` across several operations.

        The lock is re-entrant, so get/put may be called inside the block.
        """
        shard = self._shard_for(key)
        with shard.lock:
            yield

    def get(self, key: str) -> V | None:
        """Return the live value for ``key`` or None if absent or expired."""
        item = self.get_with_timestamp(key)
        return None if item is None else item[1]

    def get_with_timestamp(self, key: str) -> tuple[float, V] | None:
        """Return ``(stored_at, value)`` for a live entry."""
        shard = self._shard_for(key)
        with shard.lock:
            item = shard.entries.get(key)
            if item is None:
                self._bump("misses")
                return None
            if self._expired(item[0], self._clock()):
                del shard.entries[key]
                self._bump("expirations")
                self._bump("misses")
                return None
            self._bump("hits")
            return item

    def put(self, key: str, value: V) -> None:
        """Store ``value``, refreshing its timestamp; evict oldest in shard if full."""
        shard = self._shard_for(key)
        with shard.lock:
            shard.entries.pop(key, None)
            while len(shard.entries) >= self._shard_capacity:
                evicted_key, _ = shard.entries.popitem(last=False)
                self._bump("evictions")
                logger.debug("%s: evicted %s under capacity pressure", self.name, evicted_key)
            shard.entries[key] = (self._clock(), value)

    def delete(self, key: str) -> bool:
        shard = self._shard_for(key)
        with shard.lock:
            return shard.entries.pop(key, None) is not None

    def sweep(self) -> int:
        """Drop every expired entry. Returns the number removed."""
        now = self._clock()
        removed = 0
        for shard in self._shards:
            with shard.lock:
                stale = [k for k, (stored_at, _) in shard.entries.items() if self._expired(stored_at, now)]
                for key in stale:
                    del shard.entries[key]
                removed += len(stale)
        if removed:
            self._bump("expirations", removed)
            logger.debug("%s: swept %d expired entries", self.name, removed)
        return removed

    def clear(self) -> None:
        for shard in self._shards:
            with shard.lock:
                shard.entries.clear()

    def __len__(self) -> int:
        return sum(len(shard.entries) for shard in self._shards)

    def __contains__(self, key: str) -> bool:
        return self.get_with_timestamp(key) is not None

    def get_stats(self) -> CacheStats:
        with self._stats_lock:
            stats = dict(self._stats)
        return CacheStats(
            size=len(self),
            max_size=self.max_entries,
            ttl_seconds=self.ttl_seconds,
            **stats,
        )
