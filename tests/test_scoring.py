# tests/test_scoring.py
"""
Tests for importance scoring.

Covers:
- Recency decay (40 * exp(-age/12)) dominating empty turns
- Richness, emotional and engagement sub-scores from lexicon tables
- Relevance against the most recent neighbors
- Flat adjustments, near-duplicate penalty and clamping
- Keyword extraction helpers
- score_all over a window
"""

import math

import pytest

from chuk_ai_context_assembler.models import ImageRef, RawTurn, Role
from chuk_ai_context_assembler.scoring import (
    ImportanceScorer,
    ScoringTables,
    ScoringWeights,
    extract_keywords,
    keyword_similarity,
)


@pytest.fixture
def scorer():
    return ImportanceScorer()


def _attachment() -> ImageRef:
    return ImageRef(hash="abc", original_size=10, data=b"0123456789")


# =============================================================================
# Keyword helpers
# =============================================================================


class TestKeywordHelpers:
    """Tests for extract_keywords and keyword_similarity."""

    def test_extract_drops_stop_words_and_short_words(self):
        words = extract_keywords("The quick brown fox, and the lazy dog!")
        assert words == ["quick", "brown", "fox", "lazy", "dog"]

    def test_extract_limits_to_first_n(self):
        text = " ".join(f"word{i}" for i in range(20))
        assert len(extract_keywords(text)) == 10
        assert len(extract_keywords(text, limit=3)) == 3

    def test_extract_empty(self):
        assert extract_keywords("") == []

    def test_similarity(self):
        assert keyword_similarity("deploy kubernetes cluster", "deploy kubernetes cluster") == 1.0
        assert keyword_similarity("deploy kubernetes", "bake bread") == 0.0
        assert keyword_similarity("", "") == 0.0
        assert keyword_similarity("alpha beta", "beta gamma") == pytest.approx(1 / 3)


# =============================================================================
# Factors
# =============================================================================


class TestFactors:
    """Tests for the individual normalized factors."""

    def test_recency_decay(self, scorer):
        assert scorer.recency(0) == pytest.approx(40.0)
        assert scorer.recency(12) == pytest.approx(40 * math.exp(-1))
        assert scorer.recency(6) == pytest.approx(24.26, abs=0.01)

    def test_richness(self, scorer):
        text = "Is there a bug in this code?"
        expected = len(text) / 300 * 0.3 + 0.1 + 0.1
        assert scorer.richness(text, has_attachments=False) == pytest.approx(expected)
        assert scorer.richness(text, has_attachments=True) == pytest.approx(expected + 0.3)

    def test_richness_saturates(self, scorer):
        assert scorer.richness("x" * 3000, has_attachments=False) == pytest.approx(0.3)

    def test_emotional_buckets_and_intensity(self, scorer):
        # love (high .3) + thanks (positive .1) + one exclamation (.05)
        assert scorer.emotional("I love this, thanks!") == pytest.approx(0.45)

    def test_emotional_caps_words(self, scorer):
        assert scorer.emotional("THIS IS broken") == pytest.approx(0.1)

    def test_emotional_whole_word_matching(self, scorer):
        assert scorer.emotional("it is likely finished") == 0.0

    def test_emotional_capped(self, scorer):
        text = "love hate excited frustrated amazing terrible perfect disaster!!!!"
        assert scorer.emotional(text) == 1.0

    def test_engagement(self, scorer):
        text = "Why? Also, how?"
        # two questions (.4) + also (.1) + why, how (.2)
        assert scorer.engagement(text, Role.ASSISTANT) == pytest.approx(0.7)
        assert scorer.engagement(text, Role.USER) == pytest.approx(0.8)

    def test_engagement_multi_word_terms(self, scorer):
        assert scorer.engagement("by the way, tell me more", Role.ASSISTANT) == pytest.approx(0.2)

    def test_relevance_defaults_without_neighbors(self, scorer, make_turn):
        turn = make_turn("t1", content="kubernetes cluster")
        assert scorer.relevance(turn, []) == 0.5

    def test_relevance_overlap(self, scorer, make_turn):
        turn = make_turn("t1", content="kubernetes cluster upgrade")
        neighbor = make_turn("t2", content="kubernetes cluster")
        # 2 of 3 turn keywords overlap; max(3, 2) = 3
        assert scorer.relevance(turn, [neighbor]) == pytest.approx(2 / 3)

    def test_relevance_uses_only_recent_neighbors(self, scorer, make_turn):
        turn = make_turn("t", content="kubernetes")
        old = make_turn("old", hours_ago=10, content="kubernetes")
        recent = [make_turn(f"r{i}", hours_ago=1, content=f"unrelated{i}") for i in range(5)]
        assert scorer.relevance(turn, [old, *recent]) == 0.0


# =============================================================================
# Full score
# =============================================================================


class TestScore:
    """Tests for ImportanceScorer.score."""

    def test_empty_content_is_recency_only(self, scorer, make_turn, now):
        turn = make_turn("t1", content="", role=Role.ASSISTANT)
        neighbor = make_turn("t0", hours_ago=1, content="", role=Role.ASSISTANT)
        assert scorer.score(turn, now, [neighbor, turn]) == pytest.approx(40.0)

        old = make_turn("t2", hours_ago=12, content="", role=Role.ASSISTANT)
        assert scorer.score(old, now, [old, turn]) == pytest.approx(40 * math.exp(-1))

    def test_none_content_does_not_raise(self, scorer, now):
        turn = RawTurn(id="t", user_id="u", role=Role.ASSISTANT, content=None, timestamp=now)
        other = RawTurn(id="o", user_id="u", role=Role.ASSISTANT, content=None, timestamp=now)
        assert turn.content == ""
        assert scorer.score(turn, now, [other, turn]) == pytest.approx(40.0)

    def test_attachment_adjustment(self, scorer, make_turn, now):
        neighbor = make_turn("n", content="", role=Role.ASSISTANT)
        plain = make_turn("a", content="", role=Role.ASSISTANT)
        with_image = make_turn("b", content="", role=Role.ASSISTANT, attachments=[_attachment()])
        diff = scorer.score(with_image, now, [neighbor]) - scorer.score(plain, now, [neighbor])
        # richness attachment bonus (0.3 * 25) + flat 15
        assert diff == pytest.approx(22.5)

    def test_user_adjustment(self, scorer, make_turn, now):
        neighbor = make_turn("n", content="", role=Role.ASSISTANT)
        assistant = make_turn("a", content="", role=Role.ASSISTANT)
        user = make_turn("u", content="", role=Role.USER)
        diff = scorer.score(user, now, [neighbor]) - scorer.score(assistant, now, [neighbor])
        # engagement user boost (0.1 * 10) + flat 5
        assert diff == pytest.approx(6.0)

    def test_long_text_adjustment(self, scorer, make_turn, now):
        short = make_turn("s", hours_ago=48, content="a" * 200, role=Role.ASSISTANT)
        long = make_turn("l", hours_ago=48, content="a" * 201, role=Role.ASSISTANT)
        diff = scorer.score(long, now, [short, long]) - scorer.score(short, now, [short, long])
        assert diff == pytest.approx(5.0 + (1 / 300) * 0.3 * 25)

    def test_near_duplicate_penalty(self, scorer, make_turn, now):
        text = "deploy kubernetes cluster tonight"
        turn = make_turn("t1", hours_ago=1, content=text, role=Role.ASSISTANT)
        twin = make_turn("t2", content=text, role=Role.ASSISTANT)
        unrelated = make_turn("t3", content="bake sourdough bread recipe", role=Role.ASSISTANT)

        base = scorer.score(turn, now, [turn, unrelated])
        penalized = scorer.score(turn, now, [turn, twin])
        # twin also raises relevance to 1.0 (+5) before the 0.7 multiplier
        assert penalized == pytest.approx((base + 5.0) * 0.7)

    def test_score_clamped(self, scorer, make_turn, now):
        text = ("I LOVE this amazing perfect code!!! Why? How? Also explain the bug. " * 10).strip()
        turn = make_turn("t", content=text, attachments=[_attachment()])
        score = scorer.score(turn, now, [])
        assert 0.0 <= score <= 100.0
        assert score == 100.0

    def test_score_is_pure(self, scorer, make_turn, now):
        turn = make_turn("t", hours_ago=3, content="What went wrong with the deploy?")
        window = [make_turn("a", hours_ago=4, content="deploy failed"), turn]
        assert scorer.score(turn, now, window) == scorer.score(turn, now, window)

    def test_future_timestamp_treated_as_now(self, scorer, make_turn, now):
        turn = make_turn("t", hours_ago=-2, content="", role=Role.ASSISTANT)
        assert scorer.score(turn, now, [turn, make_turn("n", role=Role.ASSISTANT)]) == pytest.approx(40.0)


# =============================================================================
# Configuration
# =============================================================================


class TestConfiguration:
    """Custom weights and tables."""

    def test_default_weights_sum_to_100(self):
        w = ScoringWeights()
        assert w.recency + w.richness + w.emotional + w.engagement + w.relevance == pytest.approx(100.0)

    def test_custom_technical_terms(self, make_turn):
        tables = ScoringTables(technical_terms=("kubernetes",))
        scorer = ImportanceScorer(tables=tables)
        assert scorer.richness("kubernetes", False) > ImportanceScorer().richness("kubernetes", False)

    def test_custom_half_life(self, make_turn, now):
        scorer = ImportanceScorer(weights=ScoringWeights(half_life_hours=24))
        assert scorer.recency(24) == pytest.approx(40 * math.exp(-1))


# =============================================================================
# score_all
# =============================================================================


class TestScoreAll:
    """Tests for scoring a whole window."""

    def test_scores_every_turn_in_order(self, scorer, make_window, now):
        window = make_window(6)
        scored = scorer.score_all(window, now)
        assert [s.id for s in scored] == [t.id for t in window]
        assert [s.position for s in scored] == list(range(6))
        assert all(0.0 <= s.importance_score <= 100.0 for s in scored)

    def test_age_hours(self, scorer, make_turn, now):
        scored = scorer.score_all([make_turn("t", hours_ago=6)], now)
        assert scored[0].age_hours == pytest.approx(6.0)

    def test_empty_window(self, scorer, now):
        assert scorer.score_all([], now) == []
