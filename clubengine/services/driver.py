"""
Competition driver: one tick of the periodic engine.

Each tick starts due tournaments, plays due bracket matches and advances
completed rounds, activates due interclub seasons, moves encounters along and
finalizes finished seasons. Each tournament and season is processed in
isolation: an error is logged, the connection rolled back, and the tick moves
on to the next entity. Redundant or overlapping ticks are safe because every
write underneath is conditional.
"""
from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from clubengine.config import EngineConfig, configure_logging
from clubengine.injuries import InjuryModel
from clubengine.models import SeasonStatus, TournamentStatus, utcnow
from clubengine.persistence.db import get_connection, init_db
from clubengine.persistence.repositories import InterclubSeasonRepository, TournamentRepository
from clubengine.simulation.match_simulator import MatchSimulator
from clubengine.simulation.rng import SeededRNG

from .bracket_service import BracketScheduler
from .league_service import LeagueService
from .match_effects import MatchEffects

logger = logging.getLogger(__name__)


@dataclass
class TickReport:
    tournaments_started: int = 0
    matches_played: int = 0
    rounds_advanced: int = 0
    seasons_activated: int = 0
    encounters_completed: int = 0
    seasons_completed: int = 0
    injuries_purged: int = 0
    errors: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "ok": self.ok,
            "tournaments_started": self.tournaments_started,
            "matches_played": self.matches_played,
            "rounds_advanced": self.rounds_advanced,
            "seasons_activated": self.seasons_activated,
            "encounters_completed": self.encounters_completed,
            "seasons_completed": self.seasons_completed,
            "injuries_purged": self.injuries_purged,
            "errors": list(self.errors),
        }


class CompetitionDriver:
    """Runs ticks against one connection. Collaborators share a single seeded RNG."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        rng: SeededRNG | None = None,
        brackets: BracketScheduler | None = None,
        leagues: LeagueService | None = None,
        tournament_repo: TournamentRepository | None = None,
        season_repo: InterclubSeasonRepository | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.rng = rng or SeededRNG(self.config.seed)
        simulator = MatchSimulator(self.rng)
        effects = MatchEffects(self.config, InjuryModel(self.rng))
        self.effects = effects
        self.brackets = brackets or BracketScheduler(self.config, self.rng, simulator, effects)
        self.leagues = leagues or LeagueService(self.config, self.rng, simulator, effects)
        self._tournament_repo = tournament_repo or TournamentRepository()
        self._season_repo = season_repo or InterclubSeasonRepository()

    def _isolated(
        self,
        conn: sqlite3.Connection,
        report: TickReport,
        label: str,
        step: Callable[[], None],
    ) -> None:
        try:
            step()
        except Exception as e:
            logger.exception("Tick step failed for %s", label)
            report.errors.append(f"{label}: {e}")
            try:
                conn.rollback()
            except sqlite3.Error:
                logger.exception("Rollback failed after error in %s", label)

    # ---------- Tournaments ----------

    def _start_tournaments(self, conn: sqlite3.Connection, now: datetime, report: TickReport) -> None:
        # Ids only; each step loads and validates its own row.
        for tournament_id in self._tournament_repo.ids_due_to_start(conn, now):
            def step(tid: str = tournament_id) -> None:
                if self.brackets.start_tournament(conn, tid, now):
                    report.tournaments_started += 1
            self._isolated(conn, report, f"tournament {tournament_id}", step)

    def _progress_tournaments(self, conn: sqlite3.Connection, now: datetime, report: TickReport) -> None:
        for tournament_id in self._tournament_repo.ids_by_status(conn, TournamentStatus.IN_PROGRESS):
            def step(tid: str = tournament_id) -> None:
                report.matches_played += self.brackets.play_due_matches(conn, tid, now)
                if self.brackets.advance_bracket(conn, tid, now):
                    report.rounds_advanced += 1
            self._isolated(conn, report, f"tournament {tournament_id}", step)

    # ---------- Interclub ----------

    def _activate_seasons(self, conn: sqlite3.Connection, now: datetime, report: TickReport) -> None:
        for season_id in self._season_repo.ids_due_activation(conn, now):
            def step(sid: str = season_id) -> None:
                if self.leagues.activate_season(conn, sid, now):
                    report.seasons_activated += 1
            self._isolated(conn, report, f"season {season_id}", step)

    def _progress_seasons(self, conn: sqlite3.Connection, now: datetime, report: TickReport) -> None:
        for season_id in self._season_repo.ids_by_status(conn, SeasonStatus.ACTIVE):
            def step(sid: str = season_id) -> None:
                report.encounters_completed += self.leagues.advance_encounters(conn, sid, now)
                if self.leagues.finalize_season(conn, sid):
                    report.seasons_completed += 1
            self._isolated(conn, report, f"season {season_id}", step)

    # ---------- Tick ----------

    def tick(self, conn: sqlite3.Connection, now: datetime | None = None) -> TickReport:
        now = now or utcnow()
        report = TickReport()
        self._isolated(conn, report, "tournament start", lambda: self._start_tournaments(conn, now, report))
        self._isolated(conn, report, "tournament progress", lambda: self._progress_tournaments(conn, now, report))
        self._isolated(conn, report, "season activation", lambda: self._activate_seasons(conn, now, report))
        self._isolated(conn, report, "season progress", lambda: self._progress_seasons(conn, now, report))
        if self.config.sweep_expired_injuries:
            def sweep() -> None:
                report.injuries_purged += self.effects.sweep_expired_injuries(conn, now)
            self._isolated(conn, report, "injury sweep", sweep)
        logger.info("Tick finished: %s", report.to_dict())
        return report


def run_competition_tick(
    config: EngineConfig | None = None,
    conn: sqlite3.Connection | None = None,
    now: datetime | None = None,
) -> TickReport:
    """
    Entry point for the external timer. Opens (and closes) a connection to
    config.db_path unless one is passed. report.ok is the success signal.
    """
    config = config or EngineConfig()
    configure_logging(config.log_level)
    owns_conn = conn is None
    if owns_conn:
        init_db(config.db_path)
        conn = get_connection(config.db_path)
    try:
        return CompetitionDriver(config).tick(conn, now)
    finally:
        if owns_conn:
            conn.close()
