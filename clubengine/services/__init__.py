"""
Service layer: bracket progression, league scheduling and execution, lineups
and the periodic driver. Services orchestrate persistence through repositories.
"""
from .scheduling import (
    BYE,
    Fixture,
    LeagueSchedule,
    berger_rounds,
    bucket_matchdays,
    double_round_robin,
    generate_league_schedule,
    matchday_dates,
)
from .match_effects import MatchEffects
from .bracket_service import (
    BracketScheduler,
    Placements,
    TournamentProgress,
    advance_bracket,
    build_round,
)
from .lineups import auto_generate_lineup, lineup_deadline, validate_lineup
from .league_service import LeagueService, compute_standings, encounter_outcome
from .driver import CompetitionDriver, TickReport, run_competition_tick

__all__ = [
    "BYE",
    "Fixture",
    "LeagueSchedule",
    "berger_rounds",
    "bucket_matchdays",
    "double_round_robin",
    "generate_league_schedule",
    "matchday_dates",
    "MatchEffects",
    "BracketScheduler",
    "Placements",
    "TournamentProgress",
    "advance_bracket",
    "build_round",
    "auto_generate_lineup",
    "lineup_deadline",
    "validate_lineup",
    "LeagueService",
    "compute_standings",
    "encounter_outcome",
    "CompetitionDriver",
    "TickReport",
    "run_competition_tick",
]
