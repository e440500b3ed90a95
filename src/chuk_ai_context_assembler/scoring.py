# chuk_ai_context_assembler/scoring.py
"""
Importance scoring for historical conversation turns.

A turn's score (0-100) decides whether it is included in the context,
never where it goes. It is a weighted sum of five normalized factors:

    recency    40%   40 * exp(-age_hours / 12)
    richness   25%   length, questions, technical terms, attachments
    emotional  20%   lexicon buckets + exclamation / ALL-CAPS intensity
    engagement 10%   questions, follow-up connectives, detail requests, user role
    relevance   5%   keyword overlap with the 5 most recent neighbors

followed by flat adjustments (+15 attachments, +5 user, +5 long text),
a 0.7 multiplier for near-duplicates of a neighbor, and a clamp.

All keyword heuristics live in ``ScoringTables`` so the scorer is a pure
map from (turn, now, neighborhood, tables) to a number.

Usage::

    scorer = ImportanceScorer()
    score = scorer.score(turn, now, window)
    scored = scorer.score_all(window, now)
"""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Sequence
from datetime import datetime
from functools import cached_property

from pydantic import BaseModel, Field

from .models import RawTurn, Role, ScoredTurn, ensure_utc

logger = logging.getLogger(__name__)

# =============================================================================
# Tables
# =============================================================================

STOP_WORDS: frozenset[str] = frozenset(
    {
        "the", "a", "an", "and", "or", "but", "in", "on", "at", "to", "for", "of",
        "with", "by", "is", "are", "was", "were", "be", "been", "have", "has", "had",
        "do", "does", "did", "will", "would", "could", "should", "may", "might", "can",
        "shall", "must", "i", "you", "he", "she", "it", "we", "they", "me", "him",
        "her", "us", "them",
    }
)  # fmt: skip


class Lexicon(BaseModel):
    """A bucket of terms; each distinct term present adds ``weight``."""

    model_config = {"frozen": True}

    terms: tuple[str, ...]
    weight: float

    def count_matches(self, text: str) -> int:
        return sum(1 for pattern in _term_patterns(self.terms) if pattern.search(text))


def _term_patterns(terms: tuple[str, ...]) -> list[re.Pattern[str]]:
    return [_compile_term(term) for term in terms]


_PATTERN_CACHE: dict[str, re.Pattern[str]] = {}


def _compile_term(term: str) -> re.Pattern[str]:
    pattern = _PATTERN_CACHE.get(term)
    if pattern is None:
        pattern = re.compile(rf"\b{re.escape(term)}\b", re.IGNORECASE)
        _PATTERN_CACHE[term] = pattern
    return pattern


class ScoringTables(BaseModel):
    """Lexicons driving the content heuristics."""

    model_config = {"frozen": True}

    technical_terms: tuple[str, ...] = (
        "code", "bug", "error", "feature", "implement", "analyze", "solution", "problem",
    )  # fmt: skip

    emotional: dict[str, Lexicon] = Field(
        default_factory=lambda: {
            "high": Lexicon(
                terms=("love", "hate", "excited", "frustrated", "amazing", "terrible", "perfect", "disaster"),
                weight=0.3,
            ),
            "medium": Lexicon(
                terms=("like", "dislike", "good", "bad", "nice", "okay", "fine", "interesting"),
                weight=0.15,
            ),
            "positive": Lexicon(
                terms=("thanks", "grateful", "appreciate", "wonderful", "excellent", "great"),
                weight=0.1,
            ),
            "negative": Lexicon(
                terms=("sorry", "apologize", "mistake", "wrong", "problem", "issue", "concern"),
                weight=0.2,
            ),
        }
    )

    follow_up: Lexicon = Field(
        default_factory=lambda: Lexicon(
            terms=("also", "additionally", "furthermore", "by the way", "speaking of"),
            weight=0.1,
        )
    )
    detail_requests: Lexicon = Field(
        default_factory=lambda: Lexicon(
            terms=("explain", "how", "why", "what", "when", "where", "tell me more"),
            weight=0.1,
        )
    )

    @cached_property
    def technical_pattern(self) -> re.Pattern[str]:
        alternatives = "|".join(re.escape(t) for t in self.technical_terms)
        return re.compile(rf"\b(?:{alternatives})\b", re.IGNORECASE)


class ScoringWeights(BaseModel):
    """Factor weights and flat adjustments. Factor weights sum to 100."""

    recency: float = 40.0
    richness: float = 25.0
    emotional: float = 20.0
    engagement: float = 10.0
    relevance: float = 5.0

    half_life_hours: float = Field(default=12.0, gt=0, description="Recency decay constant")
    richness_saturation_chars: int = Field(default=300, gt=0)

    attachment_bonus: float = 15.0
    user_bonus: float = 5.0
    long_text_bonus: float = 5.0
    long_text_chars: int = 200

    duplicate_threshold: float = Field(default=0.8, ge=0.0, le=1.0)
    duplicate_penalty: float = Field(default=0.7, ge=0.0, le=1.0)

    relevance_window: int = Field(default=5, ge=1, description="Most recent neighbors compared")
    default_relevance: float = Field(default=0.5, description="Used when there are no neighbors")
    max_keywords: int = 10


# =============================================================================
# Keyword helpers
# =============================================================================

_NON_WORD = re.compile(r"[^\w\s]")
_QUESTION = re.compile(r"\?")
_EXCLAMATION = re.compile(r"!")
_CAPS_WORD = re.compile(r"\b[A-Z]{2,}\b")


def extract_keywords(content: str, limit: int = 10) -> list[str]:
    """First ``limit`` meaningful lower-cased words (stop words and short words removed)."""
    if not content:
        return []
    words = _NON_WORD.sub(" ", content.lower()).split()
    return [w for w in words if len(w) > 2 and w not in STOP_WORDS][:limit]


def keyword_similarity(text1: str, text2: str, limit: int = 10) -> float:
    """Jaccard similarity of the two texts' keyword sets."""
    words1 = set(extract_keywords(text1, limit))
    words2 = set(extract_keywords(text2, limit))
    union = words1 | words2
    if not union:
        return 0.0
    return len(words1 & words2) / len(union)


# =============================================================================
# Scorer
# =============================================================================


class ImportanceScorer:
    """
    Computes importance scores for turns.

    Stateless apart from its configuration; safe to share across requests.
    """

    def __init__(
        self,
        weights: ScoringWeights | None = None,
        tables: ScoringTables | None = None,
    ) -> None:
        self.weights = weights or ScoringWeights()
        self.tables = tables or ScoringTables()

    # ------------------------------------------------------------------
    # Factors (each normalized to 0-1 except recency)
    # ------------------------------------------------------------------

    def recency(self, age_hours: float) -> float:
        return max(0.0, self.weights.recency * math.exp(-age_hours / self.weights.half_life_hours))

    def richness(self, content: str, has_attachments: bool) -> float:
        score = min(1.0, len(content) / self.weights.richness_saturation_chars) * 0.3
        score += min(0.2, len(_QUESTION.findall(content)) * 0.1)
        score += min(0.2, len(self.tables.technical_pattern.findall(content)) * 0.05)
        if has_attachments:
            score += 0.3
        return min(1.0, score)

    def emotional(self, content: str) -> float:
        score = sum(bucket.count_matches(content) * bucket.weight for bucket in self.tables.emotional.values())
        intensity = len(_EXCLAMATION.findall(content)) + len(_CAPS_WORD.findall(content))
        score += min(0.2, intensity * 0.05)
        return min(1.0, score)

    def engagement(self, content: str, role: Role) -> float:
        score = min(0.4, len(_QUESTION.findall(content)) * 0.2)
        score += self.tables.follow_up.count_matches(content) * self.tables.follow_up.weight
        score += self.tables.detail_requests.count_matches(content) * self.tables.detail_requests.weight
        if role == Role.USER:
            score += 0.1
        return min(1.0, score)

    def relevance(self, turn: RawTurn, neighbors: Sequence[RawTurn]) -> float:
        """Keyword overlap with the most recent neighbors (turn itself excluded)."""
        if not neighbors:
            return self.weights.default_relevance
        limit = self.weights.max_keywords
        turn_words = extract_keywords(turn.content, limit)
        recent = neighbors[-self.weights.relevance_window :]
        recent_words = {w for n in recent for w in extract_keywords(n.content, limit)}
        overlap = sum(1 for w in turn_words if w in recent_words)
        max_overlap = max(len(turn_words), len(recent_words))
        if max_overlap == 0:
            return 0.0
        return overlap / max_overlap

    def is_repetitive(self, turn: RawTurn, neighborhood: Sequence[RawTurn]) -> bool:
        limit = self.weights.max_keywords
        return any(
            keyword_similarity(turn.content, other.content, limit) >= self.weights.duplicate_threshold
            for other in neighborhood
            if other.id != turn.id
        )

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def score(self, turn: RawTurn, now: datetime, neighborhood: Sequence[RawTurn] = ()) -> float:
        """
        Importance score in [0, 100].

        ``neighborhood`` is the surrounding window in chronological order.
        Empty content leaves the score dominated by recency.
        """
        w = self.weights
        content = turn.content
        age_hours = turn.age_hours(now)
        neighbors = [n for n in neighborhood if n.id != turn.id]

        score = (
            self.recency(age_hours)
            + self.richness(content, turn.has_attachments) * w.richness
            + self.emotional(content) * w.emotional
            + self.engagement(content, turn.role) * w.engagement
            + self.relevance(turn, neighbors) * w.relevance
        )

        if turn.has_attachments:
            score += w.attachment_bonus
        if turn.role == Role.USER:
            score += w.user_bonus
        if len(content) > w.long_text_chars:
            score += w.long_text_bonus

        if content and self.is_repetitive(turn, neighbors):
            score *= w.duplicate_penalty

        return min(100.0, max(0.0, score))

    def score_all(self, window: Sequence[RawTurn], now: datetime) -> list[ScoredTurn]:
        """
        Score every turn of a chronologically ordered window.

        Each turn's neighborhood is the whole window.
        """
        now = ensure_utc(now)
        scored = [
            ScoredTurn(
                turn=turn,
                importance_score=self.score(turn, now, window),
                age_hours=turn.age_hours(now),
                position=i,
            )
            for i, turn in enumerate(window)
        ]
        if scored:
            avg = sum(s.importance_score for s in scored) / len(scored)
            logger.debug("Scored %d turns (avg score %.1f)", len(scored), avg)
        return scored
