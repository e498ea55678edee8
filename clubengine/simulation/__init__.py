"""
Match simulation: strength model, set-by-set singles play, byes, interclub
category matches and match narratives. Seeded for replayable ticks.
"""
from .schemas import CategoryOutcome, MatchConfig, MatchResult, SetScore
from .rng import SeededRNG
from .strength import StrengthBreakdown, StrengthModel
from .set_simulator import (
    format_score,
    parse_score,
    point_probability,
    set_won,
    sets_to_win_match,
    simulate_set,
    simulate_sets,
    swap_score,
)
from .match_simulator import BYE_SCORE, MatchSimulator, estimate_duration, simulate_match
from .summary import summarize_match

__all__ = [
    "CategoryOutcome",
    "MatchConfig",
    "MatchResult",
    "SetScore",
    "SeededRNG",
    "StrengthBreakdown",
    "StrengthModel",
    "format_score",
    "parse_score",
    "point_probability",
    "set_won",
    "sets_to_win_match",
    "simulate_set",
    "simulate_sets",
    "swap_score",
    "BYE_SCORE",
    "MatchSimulator",
    "estimate_duration",
    "simulate_match",
    "summarize_match",
]
