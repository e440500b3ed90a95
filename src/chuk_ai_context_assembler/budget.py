# chuk_ai_context_assembler/budget.py
"""
Token budget advice from conversation statistics.

The assembler treats the budget as an opaque input. This module is one
way for the request layer to compute it: profile the recent turns
(message length, questions, technical vocabulary, emotional intensity,
images, depth) and map the profile to a context type.

    detailed   technical ratio > 0.3 or average length > 100 chars
    minimal    question ratio < 0.1 and average length < 30 chars
    focused    the current request carries images
    standard   otherwise

An emotionally intense conversation (> 0.7) gets a bonus on top.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence
from typing import Any

from pydantic import BaseModel, Field

from .models import ContextType, RawTurn, Role, TokenBudget
from .scoring import ImportanceScorer

logger = logging.getLogger(__name__)


class ConversationProfile(BaseModel):
    """Statistics over the user-authored turns of a window."""

    average_message_length: float = Field(default=0.0, ge=0.0)
    question_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    technical_terms_ratio: float = Field(default=0.0, ge=0.0, le=1.0)
    emotional_intensity: float = Field(default=0.0, ge=0.0, le=1.0)
    has_images: bool = Field(default=False)
    depth: int = Field(default=0, ge=0, description="Turns in the window")

    @classmethod
    def from_turns(
        cls,
        turns: Sequence[RawTurn],
        has_images: bool | None = None,
        scorer: ImportanceScorer | None = None,
    ) -> ConversationProfile:
        """
        Profile a window. ``has_images`` defaults to whether any turn has
        attachments; pass it explicitly for the current request instead.
        """
        scorer = scorer or ImportanceScorer()
        user_turns = [t for t in turns if t.role == Role.USER]
        if has_images is None:
            has_images = any(t.has_attachments for t in turns)
        if not user_turns:
            return cls(has_images=has_images, depth=len(turns))

        count = len(user_turns)
        technical = scorer.tables.technical_pattern
        return cls(
            average_message_length=sum(len(t.content) for t in user_turns) / count,
            question_ratio=sum(1 for t in user_turns if "?" in t.content) / count,
            technical_terms_ratio=sum(1 for t in user_turns if technical.search(t.content)) / count,
            emotional_intensity=sum(scorer.emotional(t.content) for t in user_turns) / count,
            has_images=has_images,
            depth=len(turns),
        )


class BudgetAdvisorConfig(BaseModel):
    """Token limits per context type and the thresholds that select them."""

    standard_tokens: int = 4000
    detailed_tokens: int = 6400
    minimal_tokens: int = 1600
    focused_tokens: int = 3000
    emotional_bonus_tokens: int = 800
    reserved_tokens: int = Field(default=0, description="Held back for system prompt and reply")

    detailed_technical_ratio: float = 0.3
    detailed_message_length: float = 100.0
    minimal_question_ratio: float = 0.1
    minimal_message_length: float = 30.0
    emotional_threshold: float = 0.7

    # Window sizing for the asset store fetch and delta cap
    max_messages: int = 50
    focused_max_messages: int = 20
    max_delta_size: int = 15
    focused_max_delta_size: int = 8

    # Reply length
    max_response_tokens: int = 1000


class BudgetRecommendation(BaseModel):
    """A budget plus the window settings that go with it."""

    context_type: ContextType
    budget: TokenBudget
    include_emotional_context: bool = False
    max_messages: int
    max_delta_size: int
    response_tokens: int = Field(..., description="Suggested completion length")

    def assembly_overrides(self) -> dict[str, Any]:
        """Per-call overrides for ``AssemblyConfig``."""
        return {
            "fetch_max_messages": self.max_messages,
            "max_delta_size": self.max_delta_size,
        }


class BudgetAdvisor:
    """Maps a ConversationProfile to a TokenBudget."""

    def __init__(self, config: BudgetAdvisorConfig | None = None) -> None:
        self.config = config or BudgetAdvisorConfig()

    def classify(self, profile: ConversationProfile) -> ContextType:
        cfg = self.config
        if profile.has_images:
            return ContextType.FOCUSED
        if (
            profile.technical_terms_ratio > cfg.detailed_technical_ratio
            or profile.average_message_length > cfg.detailed_message_length
        ):
            return ContextType.DETAILED
        if (
            profile.question_ratio < cfg.minimal_question_ratio
            and profile.average_message_length < cfg.minimal_message_length
        ):
            return ContextType.MINIMAL
        return ContextType.STANDARD

    def response_tokens(self, profile: ConversationProfile) -> int:
        """Reply length: longer for long messages, question-heavy or deep conversations."""
        if profile.average_message_length < 100:
            base = 300
        elif profile.average_message_length > 200:
            base = 700
        else:
            base = 500
        modifier = 1.2 if profile.question_ratio > 0.3 else 1.0
        modifier *= 1.1 if profile.depth > 10 else 1.0
        return min(self.config.max_response_tokens, int(base * modifier))

    def recommend(self, profile: ConversationProfile) -> BudgetRecommendation:
        cfg = self.config
        context_type = self.classify(profile)
        limit = {
            ContextType.STANDARD: cfg.standard_tokens,
            ContextType.DETAILED: cfg.detailed_tokens,
            ContextType.MINIMAL: cfg.minimal_tokens,
            ContextType.FOCUSED: cfg.focused_tokens,
        }[context_type]

        emotional = profile.emotional_intensity > cfg.emotional_threshold
        if emotional:
            limit += cfg.emotional_bonus_tokens

        focused = context_type == ContextType.FOCUSED
        recommendation = BudgetRecommendation(
            context_type=context_type,
            budget=TokenBudget(total_limit=limit, reserved=cfg.reserved_tokens, label=context_type.value),
            include_emotional_context=emotional,
            max_messages=cfg.focused_max_messages if focused else cfg.max_messages,
            max_delta_size=cfg.focused_max_delta_size if focused else cfg.max_delta_size,
            response_tokens=self.response_tokens(profile),
        )
        logger.debug(
            "Budget recommendation: %s, %d tokens (emotional=%s)",
            context_type.value,
            limit,
            emotional,
        )
        return recommendation
