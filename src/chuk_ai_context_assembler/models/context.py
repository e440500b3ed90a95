# chuk_ai_context_assembler/models/context.py
"""Scored turns, token budgets, delta results and the assembled context."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from chuk_ai_context_assembler.models.enums import (
    AssemblyWarning,
    ContextStrategy,
    Resolution,
    Role,
)
from chuk_ai_context_assembler.models.image import ProcessedImage
from chuk_ai_context_assembler.models.stats import ImageUsage
from chuk_ai_context_assembler.models.turn import RawTurn


class ScoredTurn(BaseModel):
    """
    A RawTurn plus its importance score and derived flags.

    The score is a pure function of (turn, now, neighborhood). It is
    recomputed on every assembly and never cached across requests.
    """

    turn: RawTurn
    importance_score: float = Field(default=0.0, ge=0.0, le=100.0)
    age_hours: float = Field(default=0.0, ge=0.0)
    position: int = Field(default=0, description="Index in the chronological window (tie-breaker)")

    # Filled in by the assembler once resolution and cost are known
    images: list[ProcessedImage] = Field(default_factory=list)
    token_estimate: int = Field(default=0, ge=0)

    @property
    def id(self) -> str:
        return self.turn.id

    @property
    def role(self) -> Role:
        return self.turn.role

    @property
    def content(self) -> str:
        return self.turn.content

    @property
    def timestamp(self) -> datetime:
        return self.turn.timestamp

    @property
    def has_attachments(self) -> bool:
        return self.turn.has_attachments

    @property
    def chronological_key(self) -> tuple[datetime, int]:
        return (self.turn.timestamp, self.position)


class TokenBudget(BaseModel):
    """
    Externally computed upper bound on context size.

    The assembler never decides what the budget is, only how to fit in it.
    """

    total_limit: int = Field(..., ge=0, description="Maximum tokens for the assembled history")
    reserved: int = Field(default=0, ge=0, description="Held back for system prompt and reply")
    label: str = Field(default="standard", description="Profile the budget was derived from")

    @property
    def available(self) -> int:
        return max(0, self.total_limit - self.reserved)

    def can_fit(self, tokens: int) -> bool:
        return tokens <= self.available


class DeltaResult(BaseModel):
    """Turn IDs to send for this request and how they were derived."""

    turn_ids: list[str] = Field(default_factory=list, description="Chronologically ordered")
    strategy: ContextStrategy = Field(default=ContextStrategy.FULL)
    new_entries: int = Field(default=0)
    total_entries: int = Field(default=0)
    cache_corrupted: bool = Field(default=False)

    @property
    def saved_entries(self) -> int:
        return max(0, self.total_entries - len(self.turn_ids))

    @property
    def is_incremental(self) -> bool:
        return self.strategy in (ContextStrategy.INCREMENTAL, ContextStrategy.NO_CHANGES)


class AssembledContext(BaseModel):
    """
    Final, ordered, budgeted context handed to the completion caller.

    ``turns`` are ordered oldest to newest. ``total_tokens_estimate`` never
    exceeds ``budget`` unless ``truncated`` is set.
    """

    user_id: str
    turns: list[ScoredTurn] = Field(default_factory=list)
    total_tokens_estimate: int = Field(default=0, ge=0)
    budget: int = Field(default=0, ge=0)
    strategy: ContextStrategy = Field(default=ContextStrategy.FULL)
    truncated: bool = Field(default=False)
    warnings: list[AssemblyWarning] = Field(default_factory=list)
    resolution: Resolution = Field(default=Resolution.THUMBNAIL)
    dropped_turn_ids: list[str] = Field(default_factory=list, description="Dropped to fit the budget")
    window_size: int = Field(default=0, description="Turns in the fetched window")
    image_usage: ImageUsage = Field(default_factory=ImageUsage)

    @property
    def turn_ids(self) -> list[str]:
        return [t.id for t in self.turns]

    @property
    def is_empty(self) -> bool:
        return not self.turns

    @property
    def saved_entries(self) -> int:
        return max(0, self.window_size - len(self.turns))
