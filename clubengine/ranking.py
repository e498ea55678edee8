"""
Rolling ranking: best 6 wins of the last 90 days, each worth the tier points of
the beaten opponent's rank at match time.

A loss never subtracts. Old wins fall out of the window, so the rank decays.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Iterable

from clubengine.models import MatchRecord

logger = logging.getLogger(__name__)

# (inclusive minimum points, label), highest first
TIER_THRESHOLDS: tuple[tuple[float, str], ...] = (
    (451, "N1"),
    (371, "N2"),
    (301, "N3"),
    (251, "R4"),
    (201, "R5"),
    (161, "R6"),
    (131, "D7"),
    (101, "D8"),
    (71, "D9"),
    (41, "P10"),
    (21, "P11"),
)
LOWEST_TIER = "P12"

TIER_POINTS: dict[str, float] = {
    "P12": 5,
    "P11": 7.67,
    "P10": 12.67,
    "D9": 17.67,
    "D8": 22.67,
    "D7": 27.67,
    "R6": 34.33,
    "R5": 42.67,
    "R4": 51,
    "N3": 62.67,
    "N2": 77,
    "N1": 93,
}

DEFAULT_WINDOW_DAYS = 90
DEFAULT_TOP_N = 6


def tier_for(points: float) -> str:
    for minimum, label in TIER_THRESHOLDS:
        if points >= minimum:
            return label
    return LOWEST_TIER


def points_for_win(opponent_rank: float) -> float:
    """Points awarded for beating an opponent ranked opponent_rank."""
    return TIER_POINTS[tier_for(opponent_rank)]


@dataclass(frozen=True)
class RankResult:
    points: float
    label: str


def _is_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool)


def _aware(dt: datetime) -> datetime:
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


class RankingEngine:
    """Computes a player's rank from play history. Pure; persistence is the caller's job."""

    def __init__(self, window_days: int = DEFAULT_WINDOW_DAYS, top_n: int = DEFAULT_TOP_N) -> None:
        self.window_days = window_days
        self.top_n = top_n

    def win_values(self, player_id: str, history: Iterable[MatchRecord], as_of: datetime) -> list[float]:
        """Tier points of every qualifying win in the window, unsorted."""
        cutoff = _aware(as_of) - timedelta(days=self.window_days)
        values: list[float] = []
        for record in history:
            if _aware(record.created_at) < cutoff:
                continue
            if record.player1_id == player_id and record.result:
                opponent_rank = record.player2_rank
            elif record.player2_id == player_id and not record.result:
                opponent_rank = record.player1_rank
            else:
                continue
            # CPU and unranked opponents do not count
            if not _is_number(opponent_rank):
                continue
            values.append(points_for_win(opponent_rank))
        return values

    def compute(self, player_id: str, history: Iterable[MatchRecord], as_of: datetime) -> RankResult:
        values = sorted(self.win_values(player_id, history, as_of), reverse=True)
        points = round(sum(values[: self.top_n]), 2)
        logger.debug("Rank for %s: %d qualifying wins, %.2f points", player_id, len(values), points)
        return RankResult(points=points, label=tier_for(points))


def compute_rank(
    player_id: str,
    history: Iterable[MatchRecord],
    as_of: datetime,
    window_days: int = DEFAULT_WINDOW_DAYS,
    top_n: int = DEFAULT_TOP_N,
) -> RankResult:
    """Points and tier label for player_id as of as_of."""
    return RankingEngine(window_days, top_n).compute(player_id, history, as_of)
