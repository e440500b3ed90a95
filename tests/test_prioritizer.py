# tests/test_prioritizer.py
"""
Tests for prioritized selection.

Covers:
- Recency floor kept regardless of score
- Threshold filtering and score ordering of the remainder
- max_count truncation
- Chronological output ordering
- Small windows and the three-turn scoring scenario
"""

from datetime import datetime, timedelta, timezone

import pytest

from chuk_ai_context_assembler.models import RawTurn, Role, ScoredTurn
from chuk_ai_context_assembler.prioritizer import Prioritizer, SelectionOptions, split_floor
from chuk_ai_context_assembler.scoring import ImportanceScorer

BASE = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def _scored(turn_id: str, minutes_ago: int, score: float, position: int = 0) -> ScoredTurn:
    turn = RawTurn(
        id=turn_id,
        user_id="u",
        role=Role.USER,
        content=turn_id,
        timestamp=BASE - timedelta(minutes=minutes_ago),
    )
    return ScoredTurn(turn=turn, importance_score=score, position=position)


def _ids(turns) -> list[str]:
    return [t.id for t in turns]


# =============================================================================
# SelectionOptions
# =============================================================================


class TestSelectionOptions:
    def test_defaults(self):
        opts = SelectionOptions()
        assert opts.max_count == 20
        assert opts.min_score == 20.0
        assert opts.preserve_recent_n == 5

    def test_validation(self):
        with pytest.raises(ValueError):
            SelectionOptions(max_count=0)
        with pytest.raises(ValueError):
            SelectionOptions(min_score=150)


# =============================================================================
# Selection
# =============================================================================


class TestSelect:
    """Tests for Prioritizer.select."""

    def test_floor_kept_regardless_of_score(self):
        turns = [
            _scored("old-high", 50, 90),
            _scored("recent-low-1", 2, 1),
            _scored("recent-low-2", 1, 0),
        ]
        result = Prioritizer().select(turns, SelectionOptions(preserve_recent_n=2, min_score=20))
        assert _ids(result) == ["old-high", "recent-low-1", "recent-low-2"]

    def test_below_threshold_dropped(self):
        turns = [
            _scored("a", 40, 10),
            _scored("b", 30, 25),
            _scored("c", 20, 19.99),
            _scored("d", 1, 5),
        ]
        result = Prioritizer().select(turns, SelectionOptions(preserve_recent_n=1, min_score=20))
        assert _ids(result) == ["b", "d"]

    def test_threshold_inclusive(self):
        turns = [_scored("a", 10, 20.0), _scored("b", 1, 0)]
        result = Prioritizer().select(turns, SelectionOptions(preserve_recent_n=1, min_score=20))
        assert _ids(result) == ["a", "b"]

    def test_truncation_prefers_high_scores(self):
        turns = [
            _scored("a", 50, 30),
            _scored("b", 40, 80),
            _scored("c", 30, 60),
            _scored("d", 20, 70),
            _scored("e", 1, 0),
        ]
        result = Prioritizer().select(turns, SelectionOptions(max_count=3, preserve_recent_n=1, min_score=20))
        # floor e, then b (80), d (70); output chronological
        assert _ids(result) == ["b", "d", "e"]

    def test_equal_scores_prefer_more_recent(self):
        turns = [
            _scored("older", 30, 50),
            _scored("newer", 20, 50),
            _scored("floor", 1, 0),
        ]
        result = Prioritizer().select(turns, SelectionOptions(max_count=2, preserve_recent_n=1, min_score=20))
        assert _ids(result) == ["newer", "floor"]

    def test_output_chronological_regardless_of_input_order(self):
        turns = [
            _scored("c", 10, 90),
            _scored("a", 30, 95),
            _scored("d", 1, 0),
            _scored("b", 20, 99),
        ]
        result = Prioritizer().select(turns, SelectionOptions(preserve_recent_n=1, min_score=20))
        assert _ids(result) == ["a", "b", "c", "d"]
        timestamps = [t.timestamp for t in result]
        assert timestamps == sorted(timestamps)

    def test_fewer_turns_than_floor_returns_all(self):
        turns = [_scored("b", 1, 0), _scored("a", 5, 0)]
        result = Prioritizer().select(turns, SelectionOptions(preserve_recent_n=5))
        assert _ids(result) == ["a", "b"]

    def test_max_count_below_floor_keeps_newest(self):
        turns = [_scored(f"t{i}", 10 - i, 0) for i in range(6)]
        result = Prioritizer().select(turns, SelectionOptions(max_count=2, preserve_recent_n=5))
        assert _ids(result) == ["t4", "t5"]

    def test_zero_floor(self):
        turns = [_scored("a", 10, 50), _scored("b", 1, 5)]
        result = Prioritizer().select(turns, SelectionOptions(preserve_recent_n=0, min_score=20))
        assert _ids(result) == ["a"]

    def test_empty(self):
        assert Prioritizer().select([]) == []

    def test_timestamp_ties_use_position(self):
        turns = [_scored("second", 5, 50, position=1), _scored("first", 5, 50, position=0)]
        result = Prioritizer().select(turns, SelectionOptions(preserve_recent_n=0, min_score=0))
        assert _ids(result) == ["first", "second"]

    def test_default_options_from_constructor(self):
        prioritizer = Prioritizer(SelectionOptions(max_count=1, preserve_recent_n=1))
        turns = [_scored("a", 10, 99), _scored("b", 1, 0)]
        assert _ids(prioritizer.select(turns)) == ["b"]


class TestSplitFloor:
    def test_split(self):
        turns = [_scored("b", 2, 0), _scored("a", 3, 0), _scored("c", 1, 0)]
        floor, rest = split_floor(turns, 2)
        assert _ids(floor) == ["b", "c"]
        assert _ids(rest) == ["a"]


# =============================================================================
# Scenario: three prior turns scored at now
# =============================================================================


class TestThreeTurnScenario:
    """Turns at 0h (~40), 6h (~24) and 30h (~3) with min score 20 and a floor of 1."""

    def test_keeps_recent_and_six_hour_turn(self, make_turn, now):
        window = [
            make_turn("t30h", hours_ago=30, role=Role.ASSISTANT),
            make_turn("t6h", hours_ago=6, role=Role.ASSISTANT),
            make_turn("t0h", hours_ago=0, role=Role.ASSISTANT),
        ]
        scored = ImportanceScorer().score_all(window, now)
        by_id = {s.id: s.importance_score for s in scored}
        assert by_id["t0h"] == pytest.approx(40.0)
        assert by_id["t6h"] == pytest.approx(24.26, abs=0.01)
        assert by_id["t30h"] < 20

        result = Prioritizer().select(scored, SelectionOptions(min_score=20, preserve_recent_n=1))
        assert _ids(result) == ["t6h", "t0h"]
