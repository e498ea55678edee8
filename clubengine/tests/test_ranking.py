"""
Tests for the rolling ranking: best 6 wins within 90 days, valued by the
beaten opponent's tier at match time.
"""
from __future__ import annotations

from datetime import datetime, timedelta, timezone

import pytest

from clubengine.models import MatchRecord
from clubengine.ranking import (
    TIER_POINTS,
    RankingEngine,
    compute_rank,
    points_for_win,
    tier_for,
)

AS_OF = datetime(2026, 6, 1, tzinfo=timezone.utc)


def _win(opponent_rank, days_ago: float = 1, as_player1: bool = True, n: int = 0) -> MatchRecord:
    at = AS_OF - timedelta(days=days_ago)
    if as_player1:
        return MatchRecord(f"m{n}-{days_ago}", "me", "opp", True, 100.0, opponent_rank, at)
    return MatchRecord(f"m{n}-{days_ago}", "opp", "me", False, opponent_rank, 100.0, at)


def _loss(opponent_rank, days_ago: float = 1) -> MatchRecord:
    return MatchRecord(f"l-{days_ago}", "me", "opp", False, 100.0, opponent_rank, AS_OF - timedelta(days=days_ago))


class TestTiers:
    @pytest.mark.parametrize(
        "points,label",
        [
            (0, "P12"),
            (20.99, "P12"),
            (21, "P11"),
            (41, "P10"),
            (71, "D9"),
            (101, "D8"),
            (131, "D7"),
            (161, "R6"),
            (201, "R5"),
            (251, "R4"),
            (301, "N3"),
            (371, "N2"),
            (450, "N2"),
            (451, "N1"),
            (10_000, "N1"),
        ],
    )
    def test_thresholds(self, points, label):
        assert tier_for(points) == label

    def test_point_table_increases_with_tier(self):
        ordered = ["P12", "P11", "P10", "D9", "D8", "D7", "R6", "R5", "R4", "N3", "N2", "N1"]
        values = [TIER_POINTS[t] for t in ordered]
        assert values == sorted(values)
        assert TIER_POINTS["P12"] == 5
        assert TIER_POINTS["N1"] == 93

    def test_points_for_win_uses_opponent_tier(self):
        assert points_for_win(500) == 93
        assert points_for_win(0) == 5


def test_six_wins_against_n1_opponents():
    history = [_win(500, days_ago=i + 1, n=i) for i in range(6)]
    result = compute_rank("me", history, AS_OF)
    assert result.points == 558.0
    assert result.label == "N1"


def test_no_wins_is_zero_p12():
    result = compute_rank("me", [_loss(500), _loss(300)], AS_OF)
    assert result.points == 0
    assert result.label == "P12"


def test_empty_history():
    result = compute_rank("me", [], AS_OF)
    assert result.points == 0
    assert result.label == "P12"


def test_only_top_six_values_count():
    # Seven N1 wins and three P12 wins: top six are the N1 ones
    history = [_win(500, days_ago=i + 1, n=i) for i in range(7)]
    history += [_win(0, days_ago=2, n=10 + i) for i in range(3)]
    assert compute_rank("me", history, AS_OF).points == 558.0


def test_largest_values_not_most_recent():
    # Six recent low-tier wins, then older high-tier wins
    recent = [_win(0, days_ago=1 + i * 0.1, n=i) for i in range(6)]
    older = [_win(500, days_ago=50, n=20 + i) for i in range(2)]
    result = compute_rank("me", recent + older, AS_OF)
    assert result.points == round(2 * 93 + 4 * 5, 2)


def test_wins_outside_window_are_ignored():
    history = [_win(500, days_ago=91, n=1), _win(500, days_ago=89, n=2)]
    assert compute_rank("me", history, AS_OF).points == 93


def test_win_as_player2_counts():
    history = [_win(500, as_player1=False)]
    assert compute_rank("me", history, AS_OF).points == 93


def test_non_numeric_opponent_rank_excluded():
    history = [_win(None, n=1), _win("N1", n=2), _win(True, n=3), _win(300, n=4)]
    result = compute_rank("me", history, AS_OF)
    assert result.points == TIER_POINTS["R4"]


def test_points_rounded_to_two_decimals():
    history = [_win(25, n=i) for i in range(3)]  # P11 = 7.67 each
    assert compute_rank("me", history, AS_OF).points == 23.01


def test_decay_as_wins_age_out():
    engine = RankingEngine()
    history = [_win(500, days_ago=80, n=1), _win(500, days_ago=10, n=2)]
    assert engine.compute("me", history, AS_OF).points == 186
    later = AS_OF + timedelta(days=15)
    assert engine.compute("me", history, later).points == 93


def test_points_are_never_negative():
    history = [_loss(500, days_ago=i + 1) for i in range(20)]
    assert compute_rank("me", history, AS_OF).points >= 0


def test_custom_window_and_top_n():
    history = [_win(500, days_ago=5, n=i) for i in range(4)]
    result = compute_rank("me", history, AS_OF, window_days=3, top_n=2)
    assert result.points == 0
    result = compute_rank("me", history, AS_OF, window_days=30, top_n=2)
    assert result.points == 186
