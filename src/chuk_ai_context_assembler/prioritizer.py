# chuk_ai_context_assembler/prioritizer.py
"""
Prioritized selection of a bounded working set of scored turns.

Selection:
1. The ``preserve_recent_n`` most recent turns are always kept (floor set).
2. From the remainder, turns scoring at least ``min_score`` are kept,
   highest score first, ties broken by the more recent timestamp.
3. Floor + remainder is truncated to ``max_count`` and re-sorted
   chronologically. Scores decide inclusion only, never ordering.

Usage::

    prioritizer = Prioritizer()
    kept = prioritizer.select(scored, SelectionOptions(max_count=20, min_score=20))
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from pydantic import BaseModel, Field

from .models import ScoredTurn

logger = logging.getLogger(__name__)


class SelectionOptions(BaseModel):
    """Bounds for one selection."""

    max_count: int = Field(default=20, ge=1, description="Maximum turns returned")
    min_score: float = Field(default=20.0, ge=0.0, le=100.0, description="Inclusion threshold outside the floor")
    preserve_recent_n: int = Field(default=5, ge=0, description="Most recent turns always kept")


def chronological(turns: Sequence[ScoredTurn]) -> list[ScoredTurn]:
    """Oldest first; insertion position breaks timestamp ties."""
    return sorted(turns, key=lambda t: t.chronological_key)


def split_floor(turns: Sequence[ScoredTurn], preserve_recent_n: int) -> tuple[list[ScoredTurn], list[ScoredTurn]]:
    """Split into (floor set, remainder), both chronological."""
    ordered = chronological(turns)
    if preserve_recent_n <= 0:
        return [], ordered
    cut = max(0, len(ordered) - preserve_recent_n)
    return ordered[cut:], ordered[:cut]


class Prioritizer:
    """Selects which scored turns make it into the context."""

    def __init__(self, options: SelectionOptions | None = None) -> None:
        self.options = options or SelectionOptions()

    def select(
        self,
        scored: Sequence[ScoredTurn],
        options: SelectionOptions | None = None,
    ) -> list[ScoredTurn]:
        """
        Return the selected turns in chronological order.

        With fewer turns than the floor size, every turn is returned.
        """
        opts = options or self.options
        if len(scored) <= opts.preserve_recent_n:
            return chronological(scored)

        floor, remainder = split_floor(scored, opts.preserve_recent_n)

        eligible = [t for t in remainder if t.importance_score >= opts.min_score]
        eligible.sort(key=lambda t: (-t.importance_score, -t.timestamp.timestamp(), -t.position))

        # Newest floor turns first so a max_count below the floor size keeps the latest
        selected = (floor[::-1] + eligible)[: opts.max_count]

        logger.debug(
            "Selected %d of %d turns (floor=%d, eligible=%d, below threshold=%d)",
            len(selected),
            len(scored),
            len(floor),
            len(eligible),
            len(remainder) - len(eligible),
        )
        return chronological(selected)
