"""
Match simulator.

Singles: effective strength per player (StrengthModel), a 0.85-1.15 variance
multiplier per competitor drawn once per match, then point-by-point sets.
Byes short-circuit to 21-0, 21-0. Interclub category matches use the lighter
rank-based model with a fixed pool of score strings. Missing player data never
raises: a randomized fallback keeps progression moving.
"""
from __future__ import annotations

import logging
import math

from clubengine.models import Player, epoch_ms, utcnow

from .rng import SeededRNG
from .schemas import CategoryOutcome, MatchConfig, MatchResult
from .set_simulator import format_score, point_probability, simulate_sets, swap_score
from .strength import StrengthModel

logger = logging.getLogger(__name__)

BYE_SCORE = "21-0, 21-0"
FALLBACK_SCORE = "21-19, 21-17"

VARIANCE_RANGE = (0.85, 1.15)
PERFORMANCE_RANGE = (0.8, 1.2)
DEFAULT_CATEGORY_RANK = 500.0

# Winner-first score strings for category matches
DOMINANT_SCORES = ("21-15, 21-18", "21-12, 21-16", "21-18, 19-21, 21-15")
UPSET_SCORES = ("19-21, 21-18, 21-19", "15-21, 21-19, 21-17")

BASE_DURATION_MINUTES = 45
DURATION_JITTER_MINUTES = 15


def estimate_duration(strength_a: float, strength_b: float, rng: SeededRNG) -> int:
    """Close matches run longer: 45 min scaled by 0.8-1.2, plus up to 15 min."""
    factor = max(0.8, 1.2 - abs(strength_a - strength_b) / 100)
    return math.floor(BASE_DURATION_MINUTES * factor + rng.random() * DURATION_JITTER_MINUTES)


class MatchSimulator:
    """Simulates singles and category matches. One instance per tick; RNG injected."""

    def __init__(
        self,
        rng: SeededRNG | None = None,
        strength_model: StrengthModel | None = None,
        config: MatchConfig | None = None,
    ) -> None:
        self.rng = rng or SeededRNG()
        self.strength_model = strength_model or StrengthModel()
        self.config = config or MatchConfig()

    # ---------- Singles ----------

    def simulate_bye(self, player_id: str) -> MatchResult:
        return MatchResult(winner_id=player_id, loser_id=None, score=BYE_SCORE, is_bye=True)

    def simulate_fallback(self, player1_id: str, player2_id: str) -> MatchResult:
        """Coin-flip result used when player data is missing."""
        winner, loser = (player1_id, player2_id) if self.rng.random() < 0.5 else (player2_id, player1_id)
        score = FALLBACK_SCORE if winner == player1_id else swap_score(FALLBACK_SCORE)
        return MatchResult(
            winner_id=winner,
            loser_id=loser,
            score=score,
            match_duration_estimate=estimate_duration(0, 0, self.rng),
            is_fallback=True,
        )

    def simulate_match(
        self,
        player1: Player | None,
        player2: Player | None,
        now_ms: int | None = None,
        player1_id: str | None = None,
        player2_id: str | None = None,
    ) -> MatchResult:
        """
        Simulate one singles match. player2 None with no player2_id is a bye.
        When an id is given but its Player could not be loaded, the result is a
        randomized fallback rather than an error.
        """
        p1_id = player1.id if player1 is not None else player1_id
        p2_id = player2.id if player2 is not None else player2_id
        if p1_id is None:
            raise ValueError("player1 is required")
        if p2_id is None:
            return self.simulate_bye(p1_id)
        if player1 is None or player2 is None:
            logger.warning("Missing player data for %s vs %s; using fallback result", p1_id, p2_id)
            return self.simulate_fallback(p1_id, p2_id)

        now_ms = now_ms if now_ms is not None else epoch_ms(utcnow())
        s1 = self.strength_model.strength(player1, now_ms)
        s2 = self.strength_model.strength(player2, now_ms)
        f1 = s1 * self.rng.uniform(*VARIANCE_RANGE)
        f2 = s2 * self.rng.uniform(*VARIANCE_RANGE)

        sets = simulate_sets(point_probability(f1, f2), self.rng, self.config)
        p1_sets = sum(1 for s in sets if s.winner == 1)
        p1_won = p1_sets * 2 > len(sets)
        winner, loser = (p1_id, p2_id) if p1_won else (p2_id, p1_id)
        return MatchResult(
            winner_id=winner,
            loser_id=loser,
            score=format_score(sets),
            sets=sets,
            match_duration_estimate=estimate_duration(f1, f2, self.rng),
            player1_strength=s1,
            player2_strength=s2,
            player1_final_strength=f1,
            player2_final_strength=f2,
        )

    # ---------- Interclub categories ----------

    def side_strength(self, players: list[Player | None]) -> float:
        """Mean rank of a side; missing players or ranks count as 500."""
        if not players:
            return DEFAULT_CATEGORY_RANK
        ranks = [(p.rank if p is not None and p.rank else DEFAULT_CATEGORY_RANK) for p in players]
        return sum(ranks) / len(ranks)

    def simulate_category(self, home: list[Player | None], away: list[Player | None]) -> CategoryOutcome:
        """
        Category match (singles or doubles) between two sides. The score comes
        from a fixed pool: a dominant line when the stronger side won, an upset
        line otherwise. Score is written home-first.
        """
        if not home or not away:
            winner_side = "home" if self.rng.random() < 0.5 else "away"
            score = FALLBACK_SCORE if winner_side == "home" else swap_score(FALLBACK_SCORE)
            return CategoryOutcome(winner_side, score, 0.0, 0.0, 0.0, 0.0)

        home_strength = self.side_strength(home)
        away_strength = self.side_strength(away)
        home_perf = home_strength * self.rng.uniform(*PERFORMANCE_RANGE)
        away_perf = away_strength * self.rng.uniform(*PERFORMANCE_RANGE)
        home_won = home_perf > away_perf
        winner_side = "home" if home_won else "away"

        stronger_won = (home_strength >= away_strength) == home_won
        winner_first = self.rng.choice(DOMINANT_SCORES if stronger_won else UPSET_SCORES)
        score = winner_first if home_won else swap_score(winner_first)
        return CategoryOutcome(
            winner_side=winner_side,
            score=score,
            home_strength=home_strength,
            away_strength=away_strength,
            home_performance=home_perf,
            away_performance=away_perf,
        )


def simulate_match(
    player1: Player | None,
    player2: Player | None,
    rng: SeededRNG | None = None,
    now_ms: int | None = None,
) -> MatchResult:
    """Standalone singles simulation for admin tooling."""
    return MatchSimulator(rng).simulate_match(player1, player2, now_ms)
