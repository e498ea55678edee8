"""
Competition engine for a club-management badminton game: single-elimination
tournaments, interclub round-robin leagues, match simulation, rolling rankings
and injuries.
"""
from .config import EngineConfig, load_config
from .injuries import maybe_injure
from .ranking import compute_rank
from .simulation import simulate_match
from .services import advance_bracket, generate_league_schedule, run_competition_tick

__all__ = [
    "EngineConfig",
    "load_config",
    "simulate_match",
    "compute_rank",
    "maybe_injure",
    "generate_league_schedule",
    "advance_bracket",
    "run_competition_tick",
]
