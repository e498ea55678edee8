"""
Interclub league service: season state machine, schedule generation, lineups,
encounter execution, standings and season finalization.

Encounter flow: lineup_pending -> ready (both lineups in, or auto-generated
after the deadline) -> in_progress (once match_date has passed) -> completed.
A club that cannot field a lineup after the deadline loses by walkover.
Standings are derived: every refresh rescans all completed encounters.
"""
from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime

from clubengine.config import EngineConfig
from clubengine.errors import LineupError, NotFoundError, TransitionError
from clubengine.injuries import InjuryModel
from clubengine.models import (
    PRIZE_PLACES,
    CategoryResult,
    EncounterStatus,
    GroupStanding,
    InterclubEncounter,
    InterclubSeason,
    InterclubTeam,
    Lineup,
    MatchCategory,
    Player,
    SeasonGroup,
    SeasonStatus,
    epoch_ms,
    utcnow,
)
from clubengine.persistence.repositories import (
    EncounterRepository,
    InterclubSeasonRepository,
    InterclubTeamRepository,
    PlayerRepository,
    ResourceLedgerRepository,
)
from clubengine.simulation.match_simulator import BYE_SCORE, MatchSimulator
from clubengine.simulation.rng import SeededRNG
from clubengine.simulation.set_simulator import swap_score

from .lineups import auto_generate_lineup, coerce_lineup, lineup_deadline, validate_lineup
from .match_effects import MatchEffects
from .scheduling import generate_league_schedule

logger = logging.getLogger(__name__)

POINTS_WIN = 3
POINTS_DRAW = 1
FORM_LENGTH = 5
REWARD_SOURCE = "interclub_reward"

# ---------- Valid transitions ----------

_VALID_TRANSITIONS: dict[SeasonStatus, set[SeasonStatus]] = {
    SeasonStatus.DRAFT: {SeasonStatus.REGISTRATION_OPEN},
    SeasonStatus.REGISTRATION_OPEN: {SeasonStatus.REGISTRATION_CLOSED},
    SeasonStatus.REGISTRATION_CLOSED: {SeasonStatus.ACTIVE},
    SeasonStatus.ACTIVE: {SeasonStatus.COMPLETED},
    SeasonStatus.COMPLETED: set(),
}


# ---------- Standings ----------


def compute_standings(teams: list[InterclubTeam], encounters: list[InterclubEncounter]) -> list[GroupStanding]:
    """
    Group table from scratch: 3 points a win, 1 each for a draw. Ordered by
    points, then individual match differential, then individual wins, then name.
    Form holds the last five results, oldest first.
    """
    table = {t.id: GroupStanding(team_id=t.id, team_name=t.team_name, is_cpu=t.is_cpu) for t in teams}
    played = sorted(
        (e for e in encounters if e.status == EncounterStatus.COMPLETED),
        key=lambda e: (e.matchday_number, e.match_date),
    )
    for enc in played:
        home = table.get(enc.home_team_id)
        away = table.get(enc.away_team_id)
        if home is None or away is None:
            continue
        home_wins = sum(1 for r in enc.results if r.winner_team_id == enc.home_team_id)
        away_wins = sum(1 for r in enc.results if r.winner_team_id == enc.away_team_id)
        for row, won, lost in ((home, home_wins, away_wins), (away, away_wins, home_wins)):
            row.matches_played += 1
            row.individual_matches_won += won
            row.individual_matches_lost += lost
            if won > lost:
                row.encounters_won += 1
                row.points += POINTS_WIN
                row.form.append("W")
            elif won < lost:
                row.encounters_lost += 1
                row.form.append("L")
            else:
                row.encounters_drawn += 1
                row.points += POINTS_DRAW
                row.form.append("D")
            row.form = row.form[-FORM_LENGTH:]

    ordered = sorted(
        table.values(),
        key=lambda s: (-s.points, -s.individual_diff, -s.individual_matches_won, s.team_name, s.team_id),
    )
    for position, row in enumerate(ordered, start=1):
        row.position = position
    return ordered


def encounter_outcome(
    home_team_id: str, away_team_id: str, results: list[CategoryResult]
) -> tuple[str | None, str]:
    """(winner_team_id or None on a draw, "home-away" category score)."""
    home_wins = sum(1 for r in results if r.winner_team_id == home_team_id)
    away_wins = sum(1 for r in results if r.winner_team_id == away_team_id)
    if home_wins > away_wins:
        winner = home_team_id
    elif away_wins > home_wins:
        winner = away_team_id
    else:
        winner = None
    return winner, f"{home_wins}-{away_wins}"


# ---------- LeagueService ----------


class LeagueService:
    """
    Domain logic for interclub seasons: status transitions, scheduling, guards.
    Persistence is delegated to repositories.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        rng: SeededRNG | None = None,
        simulator: MatchSimulator | None = None,
        effects: MatchEffects | None = None,
        season_repo: InterclubSeasonRepository | None = None,
        team_repo: InterclubTeamRepository | None = None,
        encounter_repo: EncounterRepository | None = None,
        player_repo: PlayerRepository | None = None,
        ledger_repo: ResourceLedgerRepository | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.rng = rng or SeededRNG(self.config.seed)
        self.simulator = simulator or MatchSimulator(self.rng)
        self.effects = effects or MatchEffects(self.config, InjuryModel(self.rng))
        self._season_repo = season_repo or InterclubSeasonRepository()
        self._team_repo = team_repo or InterclubTeamRepository()
        self._encounter_repo = encounter_repo or EncounterRepository()
        self._player_repo = player_repo or PlayerRepository()
        self._ledger_repo = ledger_repo or ResourceLedgerRepository()

    def _get_season(self, conn: sqlite3.Connection, season_id: str) -> InterclubSeason:
        season = self._season_repo.get(conn, season_id)
        if season is None:
            raise NotFoundError(f"Season not found: {season_id}")
        return season

    def _get_encounter(self, conn: sqlite3.Connection, encounter_id: str) -> InterclubEncounter:
        encounter = self._encounter_repo.get(conn, encounter_id)
        if encounter is None:
            raise NotFoundError(f"Encounter not found: {encounter_id}")
        return encounter

    # ---------- Status ----------

    def transition_season_status(
        self, conn: sqlite3.Connection, season_id: str, new_status: SeasonStatus
    ) -> bool:
        """
        Move a season one step along draft -> registration_open ->
        registration_closed -> active -> completed. Raises TransitionError on an
        invalid step; returns False if another run changed the status first.
        """
        season = self._get_season(conn, season_id)
        allowed = _VALID_TRANSITIONS.get(season.status, set())
        if new_status not in allowed:
            raise TransitionError(
                f"Invalid transition: {season.status.value} -> {new_status.value}. "
                f"Allowed from {season.status.value}: {sorted(s.value for s in allowed)}"
            )
        return self._season_repo.transition_status(conn, season_id, season.status, new_status)

    def activate_season(self, conn: sqlite3.Connection, season_id: str, now: datetime | None = None) -> bool:
        """registration_closed -> active once start_date has passed, then build the schedule."""
        now = now or utcnow()
        season = self._get_season(conn, season_id)
        if season.status != SeasonStatus.REGISTRATION_CLOSED or season.start_date > now:
            return False
        if not self._season_repo.transition_status(
            conn, season.id, SeasonStatus.REGISTRATION_CLOSED, SeasonStatus.ACTIVE
        ):
            logger.debug("Season %s already activated", season.id)
            return False
        logger.info("Season %s activated", season.id)
        self.ensure_schedule(conn, season.id)
        return True

    # ---------- Scheduling ----------

    def _group_team_ids(self, conn: sqlite3.Connection, season: InterclubSeason, group: SeasonGroup) -> list[str]:
        if group.team_ids:
            return list(group.team_ids)
        return [t.id for t in self._team_repo.list_by_season(conn, season.id, group.group_number)]

    def ensure_schedule(self, conn: sqlite3.Connection, season_id: str) -> int:
        """
        Generate each group's double round robin unless the group already has
        encounters. Returns the number of encounters created by this call.
        """
        season = self._get_season(conn, season_id)
        created = 0
        week_schedule = list(season.week_schedule)
        for group in season.groups:
            if self._encounter_repo.count_by_group(conn, season.id, group.group_number):
                continue
            team_ids = self._group_team_ids(conn, season, group)
            schedule = generate_league_schedule(team_ids, season.start_date, self.config.weeks_per_season)
            encounters = [
                InterclubEncounter(
                    id=str(uuid.uuid4()),
                    season_id=season.id,
                    group_number=group.group_number,
                    week_number=f.week,
                    matchday_number=f.matchday,
                    home_team_id=f.home_team_id,
                    away_team_id=f.away_team_id,
                    match_date=f.match_date,
                    status=EncounterStatus.LINEUP_PENDING,
                )
                for f in schedule.fixtures
            ]
            if not encounters:
                continue
            if not self._encounter_repo.insert_many(conn, encounters):
                logger.debug("Group %d of season %s already scheduled", group.group_number, season.id)
                continue
            created += len(encounters)
            if schedule.total_matchdays > sum(len(w.matchdays) for w in week_schedule):
                week_schedule = schedule.week_schedule
            logger.info(
                "Season %s group %d: %d encounters over %d matchdays",
                season.id, group.group_number, len(encounters), schedule.total_matchdays,
            )
        if week_schedule != season.week_schedule:
            self._season_repo.update_week_schedule(conn, season.id, week_schedule)
        return created

    # ---------- Lineups ----------

    def _roster(self, conn: sqlite3.Connection, team_id: str) -> dict[str, Player]:
        team = self._team_repo.get(conn, team_id)
        if team is None:
            raise NotFoundError(f"Team not found: {team_id}")
        return self._player_repo.get_many(conn, team.player_ids)

    def submit_lineup(
        self,
        conn: sqlite3.Connection,
        encounter_id: str,
        team_id: str,
        lineup: Lineup | dict,
        submitted_by: str | None = None,
        now: datetime | None = None,
    ) -> InterclubEncounter:
        """Validate and store one side's lineup; the encounter becomes ready when both are in."""
        now = now or utcnow()
        encounter = self._get_encounter(conn, encounter_id)
        if team_id not in (encounter.home_team_id, encounter.away_team_id):
            raise LineupError("Team is not part of this encounter")
        if encounter.status not in (EncounterStatus.SCHEDULED, EncounterStatus.LINEUP_PENDING):
            raise LineupError("Lineups are locked for this encounter")
        if now > lineup_deadline(encounter.match_date, self.config.lineup_deadline_hours):
            raise LineupError("The lineup deadline has passed")

        parsed = coerce_lineup(lineup)
        roster = self._roster(conn, team_id)
        validate_lineup(parsed, roster, self.config.max_category_assignments, epoch_ms(now))
        parsed.submitted_by = submitted_by
        parsed.submitted_at = now.isoformat()
        parsed.is_auto_generated = False

        side = "home" if team_id == encounter.home_team_id else "away"
        if not self._encounter_repo.set_lineup(conn, encounter.id, side, parsed):
            raise LineupError("Lineups are locked for this encounter")
        self._encounter_repo.mark_ready_if_complete(conn, encounter.id)
        logger.info("Lineup stored for team %s in encounter %s", team_id, encounter.id)
        return self._get_encounter(conn, encounter.id)

    def fill_missing_lineups(self, conn: sqlite3.Connection, encounter_id: str, now: datetime | None = None) -> bool:
        """After the deadline, auto-generate any missing lineup. True if the encounter became ready."""
        now = now or utcnow()
        encounter = self._get_encounter(conn, encounter_id)
        if encounter.status not in (EncounterStatus.SCHEDULED, EncounterStatus.LINEUP_PENDING):
            return False
        if encounter.home_lineup is None or encounter.away_lineup is None:
            if now < lineup_deadline(encounter.match_date, self.config.lineup_deadline_hours):
                return False
            for side, team_id, current in (
                ("home", encounter.home_team_id, encounter.home_lineup),
                ("away", encounter.away_team_id, encounter.away_lineup),
            ):
                if current is not None:
                    continue
                roster = list(self._roster(conn, team_id).values())
                lineup = auto_generate_lineup(roster, epoch_ms(now), self.config.max_category_assignments)
                lineup.submitted_at = now.isoformat()
                self._encounter_repo.set_lineup(conn, encounter.id, side, lineup)
                logger.info("Auto-generated %s lineup for encounter %s", side, encounter.id)
        return self._encounter_repo.mark_ready_if_complete(conn, encounter.id)

    # ---------- Execution ----------

    def execute_encounter(
        self, conn: sqlite3.Connection, encounter_id: str, now: datetime | None = None
    ) -> InterclubEncounter | None:
        """
        Play the five categories of a ready (or interrupted in_progress)
        encounter whose match date has passed. Returns the completed encounter,
        or None when there was nothing to do or another run finished it.

        The status change, results and every category's history, injuries and
        ranks commit as one transaction; a failure leaves the encounter as it was.
        """
        now = now or utcnow()
        encounter = self._get_encounter(conn, encounter_id)
        if encounter.match_date > now:
            return None
        if encounter.status not in (EncounterStatus.READY, EncounterStatus.IN_PROGRESS):
            return None
        if encounter.home_lineup is None or encounter.away_lineup is None:
            logger.warning("Encounter %s is %s without both lineups", encounter.id, encounter.status.value)
            return None

        player_ids = encounter.home_lineup.assignments() + encounter.away_lineup.assignments()
        players = self.effects.load_players(conn, player_ids)
        results: list[CategoryResult] = []
        for category in MatchCategory:
            home_ids = encounter.home_lineup.players_for(category)
            away_ids = encounter.away_lineup.players_for(category)
            outcome = self.simulator.simulate_category(
                [players.get(pid) for pid in home_ids],
                [players.get(pid) for pid in away_ids],
            )
            results.append(CategoryResult(
                category=category,
                winner_team_id=encounter.home_team_id if outcome.winner_side == "home" else encounter.away_team_id,
                score=outcome.score,
                home_players=home_ids,
                away_players=away_ids,
                home_strength=outcome.home_strength,
                away_strength=outcome.away_strength,
            ))

        winner, final_score = encounter_outcome(encounter.home_team_id, encounter.away_team_id, results)
        with conn:
            if encounter.status == EncounterStatus.READY and not self._encounter_repo.transition_status(
                conn, encounter.id, EncounterStatus.READY, EncounterStatus.IN_PROGRESS, commit=False
            ):
                logger.debug("Encounter %s already started", encounter.id)
                return None
            if not self._encounter_repo.complete(conn, encounter.id, results, winner, final_score, commit=False):
                logger.debug("Encounter %s already completed", encounter.id)
                return None
            for result in results:
                home_won = result.winner_team_id == encounter.home_team_id
                pairings = [(h, a, home_won) for h, a in zip(result.home_players, result.away_players)]
                self.effects.after_match(
                    conn, pairings, players, now,
                    match_key=f"{encounter.id}:{result.category.value}",
                    commit=False,
                )
        self.refresh_standings(conn, encounter.season_id)
        logger.info("Encounter %s completed %s", encounter.id, final_score)
        return self._get_encounter(conn, encounter.id)

    def record_walkover(
        self, conn: sqlite3.Connection, encounter_id: str, now: datetime | None = None
    ) -> InterclubEncounter | None:
        """
        Decide an encounter in which a club cannot field a lineup after the
        deadline. The club that can wins every category 21-0, 21-0; when neither
        can, the encounter is a 0-0 draw. No history, injuries or rank changes.
        Returns None when both clubs can field a lineup or nothing was done.
        """
        now = now or utcnow()
        encounter = self._get_encounter(conn, encounter_id)
        if encounter.status not in (EncounterStatus.SCHEDULED, EncounterStatus.LINEUP_PENDING):
            return None
        if now < lineup_deadline(encounter.match_date, self.config.lineup_deadline_hours):
            return None

        fielded: list[str] = []
        for team_id, current in (
            (encounter.home_team_id, encounter.home_lineup),
            (encounter.away_team_id, encounter.away_lineup),
        ):
            if current is None:
                roster = list(self._roster(conn, team_id).values())
                try:
                    auto_generate_lineup(roster, epoch_ms(now), self.config.max_category_assignments)
                except LineupError as e:
                    logger.warning("Team %s cannot field a lineup in encounter %s: %s", team_id, encounter.id, e.reason)
                    continue
            fielded.append(team_id)
        if len(fielded) == 2:
            return None

        results: list[CategoryResult] = []
        if fielded:
            winner_id = fielded[0]
            score = BYE_SCORE if winner_id == encounter.home_team_id else swap_score(BYE_SCORE)
            results = [
                CategoryResult(category=c, winner_team_id=winner_id, score=score, home_players=[], away_players=[])
                for c in MatchCategory
            ]
        winner, final_score = encounter_outcome(encounter.home_team_id, encounter.away_team_id, results)
        with conn:
            if not self._encounter_repo.transition_status(
                conn, encounter.id, encounter.status, EncounterStatus.IN_PROGRESS, commit=False
            ):
                return None
            if not self._encounter_repo.complete(conn, encounter.id, results, winner, final_score, commit=False):
                return None
        self.refresh_standings(conn, encounter.season_id)
        logger.info("Encounter %s decided by walkover %s", encounter.id, final_score)
        return self._get_encounter(conn, encounter.id)

    def advance_encounters(self, conn: sqlite3.Connection, season_id: str, now: datetime | None = None) -> int:
        """Move every open encounter of an active season as far as the clock allows. Returns encounters completed."""
        now = now or utcnow()
        season = self._get_season(conn, season_id)
        if season.status != SeasonStatus.ACTIVE:
            return 0
        self.ensure_schedule(conn, season.id)
        completed = 0
        for encounter in self._encounter_repo.list_by_season(conn, season.id):
            if encounter.status == EncounterStatus.COMPLETED:
                continue
            if encounter.status == EncounterStatus.SCHEDULED:
                self._encounter_repo.transition_status(
                    conn, encounter.id, EncounterStatus.SCHEDULED, EncounterStatus.LINEUP_PENDING
                )
            if encounter.status in (EncounterStatus.SCHEDULED, EncounterStatus.LINEUP_PENDING):
                if not self._encounter_repo.mark_ready_if_complete(conn, encounter.id):
                    try:
                        self.fill_missing_lineups(conn, encounter.id, now)
                    except LineupError:
                        if self.record_walkover(conn, encounter.id, now) is not None:
                            completed += 1
                        continue
            if self.execute_encounter(conn, encounter.id, now) is not None:
                completed += 1
        return completed

    # ---------- Standings ----------

    def refresh_standings(self, conn: sqlite3.Connection, season_id: str) -> list[SeasonGroup]:
        """Recompute every group table from completed encounters and store it on the season."""
        season = self._get_season(conn, season_id)
        encounters = self._encounter_repo.list_by_season(conn, season.id)
        groups: list[SeasonGroup] = []
        for group in season.groups:
            teams = self._team_repo.list_by_season(conn, season.id, group.group_number)
            if group.team_ids:
                by_id = {t.id: t for t in teams}
                teams = [by_id[tid] for tid in group.team_ids if tid in by_id]
            group_encounters = [e for e in encounters if e.group_number == group.group_number]
            groups.append(SeasonGroup(
                group_number=group.group_number,
                team_ids=[t.id for t in teams],
                standings=compute_standings(teams, group_encounters),
            ))
        self._season_repo.update_groups(conn, season.id, groups)
        return groups

    # ---------- Finalization ----------

    def season_ranking(self, conn: sqlite3.Connection, season_id: str) -> list[GroupStanding]:
        """All teams across groups ordered by points, then individual differential."""
        rows = [s for g in self.refresh_standings(conn, season_id) for s in g.standings]
        return sorted(rows, key=lambda s: (-s.points, -s.individual_diff, -s.individual_matches_won, s.team_id))

    def finalize_season(self, conn: sqlite3.Connection, season_id: str) -> bool:
        """
        Once every encounter is completed: pay the top three clubs (CPU teams
        skipped) and mark the season completed.
        """
        season = self._get_season(conn, season_id)
        if season.status != SeasonStatus.ACTIVE:
            return False
        if not self._encounter_repo.list_by_season(conn, season.id):
            return False
        if self._encounter_repo.count_open(conn, season.id):
            return False

        ranking = self.season_ranking(conn, season.id)
        granted = 0
        for place, standing in zip(PRIZE_PLACES, ranking):
            if standing.is_cpu:
                continue
            team = self._team_repo.get(conn, standing.team_id)
            if team is None or team.user_id is None:
                continue
            for resource, amount in season.prize_pool.for_place(place).items():
                if amount and self._ledger_repo.add(
                    conn, team.user_id, resource, amount, REWARD_SOURCE, season.id, place
                ):
                    granted += 1
        if not self._season_repo.transition_status(conn, season.id, SeasonStatus.ACTIVE, SeasonStatus.COMPLETED):
            logger.debug("Season %s already completed", season.id)
            return False
        logger.info("Season %s completed; %d prize grants", season.id, granted)
        return True
