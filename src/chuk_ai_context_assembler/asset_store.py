# chuk_ai_context_assembler/asset_store.py
"""
Asset store interface and an in-memory implementation.

The asset store is the durable home of raw turns and original images.
The assembler only reads from it, through ``fetch``, which returns the
user's recent turns newest first; the caller re-sorts.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime, timedelta, timezone
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field, PrivateAttr

from .models import RawTurn, ensure_utc

logger = logging.getLogger(__name__)


@runtime_checkable
class AssetStore(Protocol):
    """Read access to persisted turns."""

    async def fetch(
        self,
        user_id: str,
        since_minutes: int,
        max_messages: int,
    ) -> list[RawTurn]:
        """
        Turns for ``user_id`` from the last ``since_minutes`` minutes,
        at most ``max_messages``, in descending timestamp order.
        """
        ...


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class InMemoryAssetStore(BaseModel):
    """
    Process-local asset store for tests and development.

    Not persistent - turns are lost when the process exits.
    """

    model_config = {"arbitrary_types_allowed": True}

    turns: dict[str, list[RawTurn]] = Field(default_factory=dict, description="user_id -> turns, oldest first")
    clock: Callable[[], datetime] = Field(default=_utcnow, exclude=True)

    _lock: asyncio.Lock = PrivateAttr(default_factory=asyncio.Lock)

    async def save(self, turn: RawTurn) -> None:
        """Append a turn. Turns are immutable, so a repeated ID is ignored."""
        async with self._lock:
            stream = self.turns.setdefault(turn.user_id, [])
            if any(existing.id == turn.id for existing in stream):
                logger.debug("Turn %s already stored for %s", turn.id, turn.user_id)
                return
            stream.append(turn)
            # Stable sort keeps insertion order for equal timestamps
            stream.sort(key=lambda t: t.timestamp)

    async def save_many(self, turns: list[RawTurn]) -> None:
        for turn in turns:
            await self.save(turn)

    async def fetch(
        self,
        user_id: str,
        since_minutes: int,
        max_messages: int,
    ) -> list[RawTurn]:
        cutoff = ensure_utc(self.clock()) - timedelta(minutes=since_minutes)
        async with self._lock:
            stream = list(self.turns.get(user_id, []))
        recent = [t for t in stream if t.timestamp >= cutoff]
        return list(reversed(recent))[:max_messages]

    async def clear_older_than(self, cutoff: datetime, user_id: str | None = None) -> int:
        """Remove turns persisted before ``cutoff``. Returns how many were removed."""
        cutoff = ensure_utc(cutoff)
        removed = 0
        async with self._lock:
            users = [user_id] if user_id is not None else list(self.turns)
            for uid in users:
                stream = self.turns.get(uid, [])
                kept = [t for t in stream if t.timestamp >= cutoff]
                removed += len(stream) - len(kept)
                if kept:
                    self.turns[uid] = kept
                else:
                    self.turns.pop(uid, None)
        if removed:
            logger.debug("Cleared %d turns older than %s", removed, cutoff.isoformat())
        return removed

    def count(self, user_id: str) -> int:
        return len(self.turns.get(user_id, []))
