"""
Shared result types for the match simulator.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any


@dataclass(frozen=True)
class SetScore:
    """Final points of one set, player1 (or home) first."""
    p1: int
    p2: int

    @property
    def winner(self) -> int:
        """1 or 2."""
        return 1 if self.p1 > self.p2 else 2

    def __str__(self) -> str:
        return f"{self.p1}-{self.p2}"


@dataclass
class MatchConfig:
    """Set rules for a singles simulation: rally point to 21, win by 2, hard cap at 30."""
    best_of: int = 3
    points_to_win_set: int = 21
    win_by: int = 2
    point_cap: int = 30


@dataclass
class MatchResult:
    """
    Outcome of one simulated (or bye / fallback) match.
    score is player1-first, e.g. "21-15, 18-21, 21-19".
    """
    winner_id: str
    loser_id: str | None
    score: str
    sets: list[SetScore] = field(default_factory=list)
    match_duration_estimate: int = 0  # minutes
    player1_strength: float = 0.0
    player2_strength: float = 0.0
    player1_final_strength: float = 0.0
    player2_final_strength: float = 0.0
    is_bye: bool = False
    is_fallback: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "winner_id": self.winner_id,
            "loser_id": self.loser_id,
            "score": self.score,
            "match_duration_estimate": self.match_duration_estimate,
            "player1_strength": self.player1_strength,
            "player2_strength": self.player2_strength,
            "player1_final_strength": self.player1_final_strength,
            "player2_final_strength": self.player2_final_strength,
            "is_bye": self.is_bye,
            "is_fallback": self.is_fallback,
        }


@dataclass
class CategoryOutcome:
    """Interclub category result. winner_side is 'home' or 'away'; score is home-first."""
    winner_side: str
    score: str
    home_strength: float
    away_strength: float
    home_performance: float
    away_performance: float
