# chuk_ai_context_assembler/delta_cache.py
"""
Per-user incremental delta cache.

Remembers the turn IDs of the last assembled context per user so that a
follow-up request only sends what is new plus a short continuity
boundary instead of the whole history.

State per user key::

    Empty ──store──> Populated ──ttl──> Expired (== Empty)
                       │   ▲
                       └───┘ store (overwrite, refresh stored_at)

``compute_delta`` is a pure function of (stored IDs, current IDs). The
cache only supplies the stored IDs and persists the new ones; ``exchange``
does both under the key's shard lock so concurrent requests for the same
user never interleave a diff and a store.

Usage::

    cache = DeltaCache()
    result = cache.exchange(user_id, [t.id for t in window], max_delta_size=10)
    result.strategy        # ContextStrategy.FULL on the first call
    result.saved_entries   # turns not re-sent
"""

from __future__ import annotations

import logging
import time
from collections.abc import Sequence

from pydantic import BaseModel, Field, ValidationError

from .cache import Clock, ShardedTTLCache
from .config import DeltaCacheConfig
from .exceptions import CacheCorruption
from .models import CacheStats, ContextStrategy, DeltaResult

logger = logging.getLogger(__name__)

# Turns of the previous context re-sent for continuity
CONTINUITY_BOUNDARY = 2


class DeltaCacheEntry(BaseModel):
    """IDs of the last assembled context for one user, oldest first."""

    model_config = {"frozen": True}

    turn_ids: tuple[str, ...] = Field(default_factory=tuple)
    stored_at: float = Field(default=0.0, description="Cache clock reading at store time")


# =============================================================================
# Pure delta computation
# =============================================================================


def compute_delta(
    previous_ids: Sequence[str] | None,
    current_ids: Sequence[str],
    max_delta_size: int = 10,
) -> DeltaResult:
    """
    Diff the current window against the previously stored one.

    - No previous IDs: ``full`` with the whole window, or ``minimal`` with
      the newest ``max_delta_size`` IDs when the window is larger.
    - No new IDs: ``no-changes`` with the last 2 IDs.
    - Otherwise: ``incremental`` with the last 2 previous IDs still present
      plus up to ``max_delta_size`` newest new IDs, de-duplicated and in
      window order.
    """
    current = list(current_ids)
    total = len(current)

    if not current:
        return DeltaResult(turn_ids=[], strategy=ContextStrategy.FULL, new_entries=0, total_entries=0)

    if not previous_ids:
        if total <= max_delta_size:
            return DeltaResult(
                turn_ids=current,
                strategy=ContextStrategy.FULL,
                new_entries=total,
                total_entries=total,
            )
        limited = current[-max_delta_size:]
        return DeltaResult(
            turn_ids=limited,
            strategy=ContextStrategy.MINIMAL,
            new_entries=len(limited),
            total_entries=total,
        )

    previous = set(previous_ids)
    new_ids = [tid for tid in current if tid not in previous]

    if not new_ids:
        return DeltaResult(
            turn_ids=current[-CONTINUITY_BOUNDARY:],
            strategy=ContextStrategy.NO_CHANGES,
            new_entries=0,
            total_entries=total,
        )

    present = set(current)
    boundary = [tid for tid in previous_ids if tid in present][-CONTINUITY_BOUNDARY:]
    wanted = set(boundary) | set(new_ids[-max_delta_size:])
    delta = [tid for tid in current if tid in wanted]

    return DeltaResult(
        turn_ids=delta,
        strategy=ContextStrategy.INCREMENTAL,
        new_entries=len(new_ids),
        total_entries=total,
    )


# =============================================================================
# Cache
# =============================================================================


class DeltaCache:
    """
    Bounded, TTL-expiring map of user ID -> last assembled turn IDs.

    Corrupt entries are logged and treated as absent; they never surface
    as errors.
    """

    def __init__(
        self,
        config: DeltaCacheConfig | None = None,
        clock: Clock | None = None,
    ) -> None:
        self.config = config or DeltaCacheConfig()
        self._clock = clock or time.monotonic
        self._cache: ShardedTTLCache[DeltaCacheEntry] = ShardedTTLCache(
            ttl_seconds=self.config.ttl_seconds,
            max_entries=self.config.max_entries,
            num_shards=self.config.num_shards,
            clock=self._clock,
            name="delta_cache",
        )

    # ------------------------------------------------------------------
    # Entry access
    # ------------------------------------------------------------------

    def _validate(self, user_id: str, raw: object) -> DeltaCacheEntry:
        if isinstance(raw, DeltaCacheEntry):
            return raw
        try:
            return DeltaCacheEntry.model_validate(raw)
        except ValidationError as exc:
            raise CacheCorruption(user_id, str(exc)) from exc

    def load(self, user_id: str, max_age_seconds: float | None = None) -> tuple[DeltaCacheEntry | None, bool]:
        """
        Return ``(entry, corrupted)`` for a user.

        A corrupt entry is dropped and reported as ``(None, True)``.
        ``max_age_seconds`` applies a per-call TTL stricter than the cache's.
        """
        raw = self._cache.get(user_id)
        if raw is None:
            return None, False
        try:
            entry = self._validate(user_id, raw)
        except CacheCorruption as exc:
            logger.warning("Discarding corrupt delta cache entry: %s", exc)
            self._cache.delete(user_id)
            return None, True
        if max_age_seconds is not None and self._clock() - entry.stored_at > max_age_seconds:
            return None, False
        return entry, False

    def get_previous(self, user_id: str) -> list[str] | None:
        entry, _ = self.load(user_id)
        return None if entry is None else list(entry.turn_ids)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def diff(
        self,
        user_id: str,
        current_ids: Sequence[str],
        max_delta_size: int = 10,
        force_full: bool = False,
        max_age_seconds: float | None = None,
    ) -> DeltaResult:
        """
        Diff against the stored entry without modifying the cache.

        ``force_full`` skips the diff and returns the whole window with the
        ``full`` strategy.
        """
        if force_full:
            ids = list(current_ids)
            return DeltaResult(
                turn_ids=ids,
                strategy=ContextStrategy.FULL,
                new_entries=len(ids),
                total_entries=len(ids),
            )
        entry, corrupted = self.load(user_id, max_age_seconds)
        previous = None if entry is None else entry.turn_ids
        result = compute_delta(previous, current_ids, max_delta_size)
        if corrupted:
            result = result.model_copy(update={"cache_corrupted": True})
        return result

    def store(self, user_id: str, turn_ids: Sequence[str]) -> None:
        """Overwrite the user's entry with the full current ID list."""
        self._cache.put(user_id, DeltaCacheEntry(turn_ids=tuple(turn_ids), stored_at=self._clock()))

    def exchange(
        self,
        user_id: str,
        current_ids: Sequence[str],
        max_delta_size: int = 10,
        force_full: bool = False,
        max_age_seconds: float | None = None,
    ) -> DeltaResult:
        """
        Diff then store, atomically for this user.

        With ``force_full`` the window is still stored for the next request.
        """
        with self._cache.locked(user_id):
            result = self.diff(user_id, current_ids, max_delta_size, force_full, max_age_seconds)
            self.store(user_id, current_ids)

        logger.debug(
            "Delta for %s: %s, %d new, sending %d of %d (saved %d)",
            user_id,
            result.strategy.value,
            result.new_entries,
            len(result.turn_ids),
            result.total_entries,
            result.saved_entries,
        )
        return result

    def invalidate(self, user_id: str) -> bool:
        return self._cache.delete(user_id)

    def sweep(self) -> int:
        """Remove expired entries. Returns how many were removed."""
        return self._cache.sweep()

    def clear(self) -> None:
        self._cache.clear()

    def __len__(self) -> int:
        return len(self._cache)

    def __contains__(self, user_id: str) -> bool:
        return self.get_previous(user_id) is not None

    def get_stats(self) -> CacheStats:
        return self._cache.get_stats()
