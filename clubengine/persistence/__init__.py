"""
Persistence layer for competition data.
No business logic, no simulation; only read/write interfaces.
"""
from .db import get_connection, init_db
from .repositories import (
    PlayerRepository,
    MatchHistoryRepository,
    TournamentRepository,
    BracketMatchRepository,
    InterclubSeasonRepository,
    InterclubTeamRepository,
    EncounterRepository,
    ResourceLedgerRepository,
)

__all__ = [
    "get_connection",
    "init_db",
    "PlayerRepository",
    "MatchHistoryRepository",
    "TournamentRepository",
    "BracketMatchRepository",
    "InterclubSeasonRepository",
    "InterclubTeamRepository",
    "EncounterRepository",
    "ResourceLedgerRepository",
]
