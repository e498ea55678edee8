"""
Repositories for competition data.
No business logic; only reads, writes and conditional (compare-and-swap) updates.

Status changes are written as UPDATE ... WHERE id = ? AND <expected state>, and
report whether exactly one row changed. A False return means another invocation
got there first, which callers treat as a no-op.

Writes commit immediately unless called with commit=False, in which case the
caller owns the transaction (see the `with conn:` blocks in the services).
"""
from __future__ import annotations

import logging
import sqlite3
import uuid
from datetime import datetime, timezone
from typing import Callable, Iterable, TypeVar

from clubengine.models import (
    BracketMatch,
    CategoryResult,
    EncounterStatus,
    EquipmentItem,
    Gender,
    Injury,
    InterclubEncounter,
    InterclubSeason,
    InterclubTeam,
    LedgerEntry,
    Lineup,
    MatchRecord,
    MatchStatus,
    Player,
    PrizePool,
    RegisteredPlayer,
    SeasonGroup,
    SeasonStatus,
    Tournament,
    TournamentStatus,
    WeekSchedule,
    utcnow,
)

from . import payloads

logger = logging.getLogger(__name__)

T = TypeVar("T")


def _iso(dt: datetime) -> str:
    """Fixed-width UTC timestamp so string comparison in SQL orders correctly."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="microseconds")


def _parse_datetime(s: str | None) -> datetime:
    if s is None:
        raise ValueError("expected datetime string")
    dt = datetime.fromisoformat(s.replace("Z", "+00:00"))
    return dt if dt.tzinfo is not None else dt.replace(tzinfo=timezone.utc)


def _parse_optional_datetime(s: str | None) -> datetime | None:
    return _parse_datetime(s) if s else None


def _new_id() -> str:
    return str(uuid.uuid4())


def _parse_rows(rows: list[sqlite3.Row], parse: Callable[[sqlite3.Row], T], kind: str) -> list[T]:
    """Rows that fail validation are logged and left out of listings."""
    out: list[T] = []
    for r in rows:
        try:
            out.append(parse(r))
        except ValueError as e:  # pydantic.ValidationError and json errors included
            logger.warning("Skipping %s %s with malformed data: %s", kind, r["id"], e)
    return out


# ---------- PlayerRepository ----------


class PlayerRepository:
    """CRUD for players. JSON columns are validated on read."""

    _COLS = (
        "id, name, gender, level, rank, rank_label, user_id, is_cpu, "
        "stats, stat_levels, strategy, equipment, injuries"
    )

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        gender: Gender | str,
        level: int = 1,
        rank: float = 0.0,
        rank_label: str = "P12",
        user_id: str | None = None,
        is_cpu: bool = False,
        stats: dict[str, float] | None = None,
        stat_levels: dict[str, float] | None = None,
        strategy: dict[str, float] | None = None,
        equipment: list[EquipmentItem] | None = None,
        injuries: list[Injury] | None = None,
        id: str | None = None,
    ) -> Player:
        pid = id or _new_id()
        gender = Gender(gender)
        conn.execute(
            f"INSERT INTO players ({self._COLS}, created_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                pid, name, gender.value, level, rank, rank_label, user_id, int(is_cpu),
                payloads.dump_stat_map(stats or {}),
                payloads.dump_stat_map(stat_levels or {}),
                payloads.dump_stat_map(strategy or {}),
                payloads.dump_equipment(equipment or []),
                payloads.dump_injuries(injuries or []),
                _iso(utcnow()),
            ),
        )
        conn.commit()
        return Player(
            id=pid, name=name, gender=gender, level=level, rank=rank, rank_label=rank_label,
            user_id=user_id, is_cpu=is_cpu, stats=dict(stats or {}), stat_levels=dict(stat_levels or {}),
            strategy=dict(strategy or {}), equipment=list(equipment or []), injuries=list(injuries or []),
        )

    def _from_row(self, r: sqlite3.Row) -> Player:
        return Player(
            id=r["id"],
            name=r["name"],
            gender=Gender(r["gender"]),
            level=r["level"],
            rank=r["rank"],
            rank_label=r["rank_label"],
            user_id=r["user_id"],
            is_cpu=bool(r["is_cpu"]),
            stats=payloads.parse_stat_map(r["stats"]),
            stat_levels=payloads.parse_stat_map(r["stat_levels"]),
            strategy=payloads.parse_stat_map(r["strategy"]),
            equipment=payloads.parse_equipment(r["equipment"]),
            injuries=payloads.parse_injuries(r["injuries"]),
        )

    def get(self, conn: sqlite3.Connection, player_id: str) -> Player | None:
        """None when missing or when the stored row fails validation."""
        row = conn.execute(f"SELECT {self._COLS} FROM players WHERE id = ?", (player_id,)).fetchone()
        if row is None:
            return None
        try:
            return self._from_row(row)
        except ValueError as e:  # pydantic.ValidationError included
            logger.warning("Player %s has malformed data: %s", player_id, e)
            return None

    def get_many(self, conn: sqlite3.Connection, player_ids: Iterable[str]) -> dict[str, Player]:
        out: dict[str, Player] = {}
        for pid in dict.fromkeys(player_ids):
            player = self.get(conn, pid)
            if player is not None:
                out[pid] = player
        return out

    def list_cpu(self, conn: sqlite3.Connection, exclude: Iterable[str] = ()) -> list[Player]:
        excluded = set(exclude)
        rows = conn.execute(f"SELECT {self._COLS} FROM players WHERE is_cpu = 1 ORDER BY id").fetchall()
        return _parse_rows([r for r in rows if r["id"] not in excluded], self._from_row, "player")

    def list_with_injuries(self, conn: sqlite3.Connection) -> list[Player]:
        rows = conn.execute(f"SELECT {self._COLS} FROM players WHERE injuries != '[]'").fetchall()
        return _parse_rows(rows, self._from_row, "player")

    def update_rank(
        self, conn: sqlite3.Connection, player_id: str, rank: float, rank_label: str, commit: bool = True
    ) -> None:
        conn.execute(
            "UPDATE players SET rank = ?, rank_label = ? WHERE id = ?",
            (rank, rank_label, player_id),
        )
        if commit:
            conn.commit()

    def update_injuries(
        self, conn: sqlite3.Connection, player_id: str, injuries: list[Injury], commit: bool = True
    ) -> None:
        conn.execute(
            "UPDATE players SET injuries = ? WHERE id = ?",
            (payloads.dump_injuries(injuries), player_id),
        )
        if commit:
            conn.commit()


# ---------- MatchHistoryRepository ----------


class MatchHistoryRepository:
    """
    Append-only play history. match_key names the decided match a row came
    from; (match_key, player1_id) is unique, so a match is recorded once.
    """

    _COLS = "id, match_key, player1_id, player2_id, result, player1_rank, player2_rank, created_at"

    def create(
        self,
        conn: sqlite3.Connection,
        player1_id: str,
        player2_id: str | None,
        result: bool,
        player1_rank: float | None,
        player2_rank: float | None,
        created_at: datetime | None = None,
        match_key: str | None = None,
        commit: bool = True,
    ) -> MatchRecord:
        mid = _new_id()
        at = created_at or utcnow()
        conn.execute(
            f"INSERT INTO match_history ({self._COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (mid, match_key, player1_id, player2_id, int(result), player1_rank, player2_rank, _iso(at)),
        )
        if commit:
            conn.commit()
        return MatchRecord(
            id=mid, player1_id=player1_id, player2_id=player2_id, result=result,
            player1_rank=player1_rank, player2_rank=player2_rank, created_at=at, match_key=match_key,
        )

    def _from_row(self, r: sqlite3.Row) -> MatchRecord:
        return MatchRecord(
            id=r["id"],
            player1_id=r["player1_id"],
            player2_id=r["player2_id"],
            result=bool(r["result"]),
            player1_rank=r["player1_rank"],
            player2_rank=r["player2_rank"],
            created_at=_parse_datetime(r["created_at"]),
            match_key=r["match_key"],
        )

    def list_for_player(
        self, conn: sqlite3.Connection, player_id: str, since: datetime | None = None
    ) -> list[MatchRecord]:
        sql = f"SELECT {self._COLS} FROM match_history WHERE (player1_id = ? OR player2_id = ?)"
        args: tuple = (player_id, player_id)
        if since is not None:
            sql += " AND created_at >= ?"
            args += (_iso(since),)
        rows = conn.execute(sql + " ORDER BY created_at DESC", args).fetchall()
        return [self._from_row(r) for r in rows]

    def recent_results(self, conn: sqlite3.Connection, player_id: str, limit: int = 10) -> list[bool]:
        """Newest-first wins (True) and losses (False) for player_id."""
        rows = conn.execute(
            "SELECT player1_id, result FROM match_history WHERE player1_id = ? OR player2_id = ? "
            "ORDER BY created_at DESC LIMIT ?",
            (player_id, player_id, limit),
        ).fetchall()
        return [bool(r["result"]) == (r["player1_id"] == player_id) for r in rows]


# ---------- TournamentRepository ----------


class TournamentRepository:
    """Tournament rows. Status and round changes are compare-and-swap."""

    _COLS = (
        "id, name, status, start_date, max_participants, current_round_level, round_interval_minutes, "
        "min_player_level, registered_players, prize_pool, entry_fee, champion_id, created_at"
    )

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        start_date: datetime,
        max_participants: int,
        round_interval_minutes: int = 10,
        min_player_level: int = 0,
        prize_pool: PrizePool | None = None,
        entry_fee: dict[str, int] | None = None,
        registered_players: list[RegisteredPlayer] | None = None,
        id: str | None = None,
    ) -> Tournament:
        tid = id or _new_id()
        now = utcnow()
        conn.execute(
            f"INSERT INTO tournaments ({self._COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                tid, name, int(TournamentStatus.REGISTRATION_OPEN), _iso(start_date), max_participants, 0,
                round_interval_minutes, min_player_level,
                payloads.dump_registered_players(registered_players or []),
                payloads.dump_prize_pool(prize_pool or PrizePool()),
                payloads.dump_bundle(entry_fee or {}),
                None, _iso(now),
            ),
        )
        conn.commit()
        return self.get(conn, tid)

    def _from_row(self, r: sqlite3.Row) -> Tournament:
        return Tournament(
            id=r["id"],
            name=r["name"],
            status=TournamentStatus(r["status"]),
            start_date=_parse_datetime(r["start_date"]),
            max_participants=r["max_participants"],
            current_round_level=r["current_round_level"],
            round_interval_minutes=r["round_interval_minutes"],
            min_player_level=r["min_player_level"],
            registered_players=payloads.parse_registered_players(r["registered_players"]),
            prize_pool=payloads.parse_prize_pool(r["prize_pool"]),
            entry_fee=payloads.parse_bundle(r["entry_fee"]),
            champion_id=r["champion_id"],
            created_at=_parse_optional_datetime(r["created_at"]),
        )

    def get(self, conn: sqlite3.Connection, tournament_id: str) -> Tournament | None:
        row = conn.execute(f"SELECT {self._COLS} FROM tournaments WHERE id = ?", (tournament_id,)).fetchone()
        return self._from_row(row) if row is not None else None

    _DUE_TO_START = "FROM tournaments WHERE status = ? AND start_date <= ? ORDER BY start_date"
    _BY_STATUS = "FROM tournaments WHERE status = ? ORDER BY start_date"

    def list_due_to_start(self, conn: sqlite3.Connection, now: datetime) -> list[Tournament]:
        rows = conn.execute(
            f"SELECT {self._COLS} {self._DUE_TO_START}",
            (int(TournamentStatus.REGISTRATION_OPEN), _iso(now)),
        ).fetchall()
        return _parse_rows(rows, self._from_row, "tournament")

    def ids_due_to_start(self, conn: sqlite3.Connection, now: datetime) -> list[str]:
        """Ids only; each tournament is loaded (and validated) by whoever processes it."""
        rows = conn.execute(
            f"SELECT id {self._DUE_TO_START}", (int(TournamentStatus.REGISTRATION_OPEN), _iso(now))
        ).fetchall()
        return [r["id"] for r in rows]

    def ids_by_status(self, conn: sqlite3.Connection, status: TournamentStatus) -> list[str]:
        rows = conn.execute(f"SELECT id {self._BY_STATUS}", (int(status),)).fetchall()
        return [r["id"] for r in rows]

    def update_registered_players(
        self,
        conn: sqlite3.Connection,
        tournament_id: str,
        registered: list[RegisteredPlayer],
        expected_count: int,
    ) -> bool:
        """Replace the registration list if it still has expected_count entries and registration is open."""
        cur = conn.execute(
            "UPDATE tournaments SET registered_players = ? "
            "WHERE id = ? AND status = ? AND json_array_length(registered_players) = ?",
            (
                payloads.dump_registered_players(registered), tournament_id,
                int(TournamentStatus.REGISTRATION_OPEN), expected_count,
            ),
        )
        conn.commit()
        return cur.rowcount == 1

    def mark_started(
        self, conn: sqlite3.Connection, tournament_id: str, registered: list[RegisteredPlayer]
    ) -> bool:
        """registration_open -> in_progress at round 1, with the final (backfilled) field."""
        cur = conn.execute(
            "UPDATE tournaments SET status = ?, current_round_level = 1, registered_players = ? "
            "WHERE id = ? AND status = ?",
            (
                int(TournamentStatus.IN_PROGRESS), payloads.dump_registered_players(registered),
                tournament_id, int(TournamentStatus.REGISTRATION_OPEN),
            ),
        )
        conn.commit()
        return cur.rowcount == 1

    def advance_round(self, conn: sqlite3.Connection, tournament_id: str, from_level: int) -> bool:
        cur = conn.execute(
            "UPDATE tournaments SET current_round_level = ? "
            "WHERE id = ? AND status = ? AND current_round_level = ?",
            (from_level + 1, tournament_id, int(TournamentStatus.IN_PROGRESS), from_level),
        )
        conn.commit()
        return cur.rowcount == 1

    def mark_completed(self, conn: sqlite3.Connection, tournament_id: str, champion_id: str) -> bool:
        cur = conn.execute(
            "UPDATE tournaments SET status = ?, champion_id = ? WHERE id = ? AND status = ?",
            (int(TournamentStatus.COMPLETED), champion_id, tournament_id, int(TournamentStatus.IN_PROGRESS)),
        )
        conn.commit()
        return cur.rowcount == 1


# ---------- BracketMatchRepository ----------


class BracketMatchRepository:
    """Bracket rows. A round is inserted as one batch; a duplicate batch is rejected whole."""

    _COLS = (
        "id, tournament_id, round_level, slot, player1_id, player2_id, winner_id, score, status, "
        "scheduled_start_time, completed_at"
    )

    def insert_round(self, conn: sqlite3.Connection, matches: list[BracketMatch]) -> bool:
        """Insert all matches of one round, or none. False if the round already exists."""
        try:
            conn.executemany(
                f"INSERT INTO bracket_matches ({self._COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        m.id, m.tournament_id, m.round_level, m.slot, m.player1_id, m.player2_id,
                        m.winner_id, m.score, m.status.value, _iso(m.scheduled_start_time),
                        _iso(m.completed_at) if m.completed_at else None,
                    )
                    for m in matches
                ],
            )
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            return False
        return True

    def _from_row(self, r: sqlite3.Row) -> BracketMatch:
        return BracketMatch(
            id=r["id"],
            tournament_id=r["tournament_id"],
            round_level=r["round_level"],
            slot=r["slot"],
            player1_id=r["player1_id"],
            player2_id=r["player2_id"],
            status=MatchStatus(r["status"]),
            scheduled_start_time=_parse_datetime(r["scheduled_start_time"]),
            winner_id=r["winner_id"],
            score=r["score"],
            completed_at=_parse_optional_datetime(r["completed_at"]),
        )

    def get(self, conn: sqlite3.Connection, match_id: str) -> BracketMatch | None:
        row = conn.execute(f"SELECT {self._COLS} FROM bracket_matches WHERE id = ?", (match_id,)).fetchone()
        return self._from_row(row) if row is not None else None

    def list_round(self, conn: sqlite3.Connection, tournament_id: str, round_level: int) -> list[BracketMatch]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM bracket_matches WHERE tournament_id = ? AND round_level = ? ORDER BY slot",
            (tournament_id, round_level),
        ).fetchall()
        return [self._from_row(r) for r in rows]

    def list_by_tournament(self, conn: sqlite3.Connection, tournament_id: str) -> list[BracketMatch]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM bracket_matches WHERE tournament_id = ? ORDER BY round_level, slot",
            (tournament_id,),
        ).fetchall()
        return [self._from_row(r) for r in rows]

    def list_due_pending(
        self, conn: sqlite3.Connection, tournament_id: str, round_level: int, now: datetime
    ) -> list[BracketMatch]:
        rows = conn.execute(
            f"SELECT {self._COLS} FROM bracket_matches "
            "WHERE tournament_id = ? AND round_level = ? AND status = ? AND scheduled_start_time <= ? "
            "ORDER BY slot",
            (tournament_id, round_level, MatchStatus.PENDING.value, _iso(now)),
        ).fetchall()
        return [self._from_row(r) for r in rows]

    def count_completed(self, conn: sqlite3.Connection, tournament_id: str) -> int:
        """Decided non-bye matches."""
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM bracket_matches WHERE tournament_id = ? AND status = ?",
            (tournament_id, MatchStatus.COMPLETED.value),
        ).fetchone()
        return row["n"]

    def complete(
        self,
        conn: sqlite3.Connection,
        match_id: str,
        winner_id: str,
        score: str,
        completed_at: datetime | None = None,
        commit: bool = True,
    ) -> bool:
        """pending -> completed, once."""
        cur = conn.execute(
            "UPDATE bracket_matches SET status = ?, winner_id = ?, score = ?, completed_at = ? "
            "WHERE id = ? AND status = ?",
            (
                MatchStatus.COMPLETED.value, winner_id, score, _iso(completed_at or utcnow()),
                match_id, MatchStatus.PENDING.value,
            ),
        )
        if commit:
            conn.commit()
        return cur.rowcount == 1


# ---------- InterclubSeasonRepository ----------


class InterclubSeasonRepository:
    _COLS = "id, name, tier, status, start_date, groups, week_schedule, prize_pool, created_at"

    def create(
        self,
        conn: sqlite3.Connection,
        name: str,
        tier: str,
        start_date: datetime,
        groups: list[SeasonGroup] | None = None,
        prize_pool: PrizePool | None = None,
        status: SeasonStatus = SeasonStatus.DRAFT,
        id: str | None = None,
    ) -> InterclubSeason:
        sid = id or _new_id()
        conn.execute(
            f"INSERT INTO interclub_seasons ({self._COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                sid, name, tier, SeasonStatus(status).value, _iso(start_date),
                payloads.dump_groups(groups or []), "[]",
                payloads.dump_prize_pool(prize_pool or PrizePool()), _iso(utcnow()),
            ),
        )
        conn.commit()
        return self.get(conn, sid)

    def _from_row(self, r: sqlite3.Row) -> InterclubSeason:
        return InterclubSeason(
            id=r["id"],
            name=r["name"],
            tier=r["tier"],
            status=SeasonStatus(r["status"]),
            start_date=_parse_datetime(r["start_date"]),
            groups=payloads.parse_groups(r["groups"]),
            week_schedule=payloads.parse_week_schedule(r["week_schedule"]),
            prize_pool=payloads.parse_prize_pool(r["prize_pool"]),
            created_at=_parse_optional_datetime(r["created_at"]),
        )

    def get(self, conn: sqlite3.Connection, season_id: str) -> InterclubSeason | None:
        row = conn.execute(f"SELECT {self._COLS} FROM interclub_seasons WHERE id = ?", (season_id,)).fetchone()
        return self._from_row(row) if row is not None else None

    _BY_STATUS = "FROM interclub_seasons WHERE status = ? ORDER BY start_date"
    _DUE_ACTIVATION = "FROM interclub_seasons WHERE status = ? AND start_date <= ? ORDER BY start_date"

    def list_due_activation(self, conn: sqlite3.Connection, now: datetime) -> list[InterclubSeason]:
        rows = conn.execute(
            f"SELECT {self._COLS} {self._DUE_ACTIVATION}",
            (SeasonStatus.REGISTRATION_CLOSED.value, _iso(now)),
        ).fetchall()
        return _parse_rows(rows, self._from_row, "season")

    def ids_by_status(self, conn: sqlite3.Connection, status: SeasonStatus) -> list[str]:
        rows = conn.execute(f"SELECT id {self._BY_STATUS}", (status.value,)).fetchall()
        return [r["id"] for r in rows]

    def ids_due_activation(self, conn: sqlite3.Connection, now: datetime) -> list[str]:
        rows = conn.execute(
            f"SELECT id {self._DUE_ACTIVATION}", (SeasonStatus.REGISTRATION_CLOSED.value, _iso(now))
        ).fetchall()
        return [r["id"] for r in rows]

    def transition_status(
        self, conn: sqlite3.Connection, season_id: str, from_status: SeasonStatus, to_status: SeasonStatus
    ) -> bool:
        cur = conn.execute(
            "UPDATE interclub_seasons SET status = ? WHERE id = ? AND status = ?",
            (to_status.value, season_id, from_status.value),
        )
        conn.commit()
        return cur.rowcount == 1

    def update_groups(self, conn: sqlite3.Connection, season_id: str, groups: list[SeasonGroup]) -> None:
        conn.execute(
            "UPDATE interclub_seasons SET groups = ? WHERE id = ?",
            (payloads.dump_groups(groups), season_id),
        )
        conn.commit()

    def update_week_schedule(self, conn: sqlite3.Connection, season_id: str, weeks: list[WeekSchedule]) -> None:
        conn.execute(
            "UPDATE interclub_seasons SET week_schedule = ? WHERE id = ?",
            (payloads.dump_week_schedule(weeks), season_id),
        )
        conn.commit()


# ---------- InterclubTeamRepository ----------


class InterclubTeamRepository:
    _COLS = "id, season_id, team_name, group_number, user_id, is_cpu, player_ids"

    def create(
        self,
        conn: sqlite3.Connection,
        season_id: str,
        team_name: str,
        group_number: int,
        player_ids: list[str],
        user_id: str | None = None,
        is_cpu: bool = False,
        id: str | None = None,
    ) -> InterclubTeam:
        tid = id or _new_id()
        conn.execute(
            f"INSERT INTO interclub_teams ({self._COLS}) VALUES (?, ?, ?, ?, ?, ?, ?)",
            (tid, season_id, team_name, group_number, user_id, int(is_cpu), payloads.dump_id_list(player_ids)),
        )
        conn.commit()
        return InterclubTeam(
            id=tid, season_id=season_id, team_name=team_name, group_number=group_number,
            player_ids=list(player_ids), user_id=user_id, is_cpu=is_cpu,
        )

    def _from_row(self, r: sqlite3.Row) -> InterclubTeam:
        return InterclubTeam(
            id=r["id"],
            season_id=r["season_id"],
            team_name=r["team_name"],
            group_number=r["group_number"],
            player_ids=payloads.parse_id_list(r["player_ids"]),
            user_id=r["user_id"],
            is_cpu=bool(r["is_cpu"]),
        )

    def get(self, conn: sqlite3.Connection, team_id: str) -> InterclubTeam | None:
        row = conn.execute(f"SELECT {self._COLS} FROM interclub_teams WHERE id = ?", (team_id,)).fetchone()
        return self._from_row(row) if row is not None else None

    def list_by_season(
        self, conn: sqlite3.Connection, season_id: str, group_number: int | None = None
    ) -> list[InterclubTeam]:
        sql = f"SELECT {self._COLS} FROM interclub_teams WHERE season_id = ?"
        args: tuple = (season_id,)
        if group_number is not None:
            sql += " AND group_number = ?"
            args += (group_number,)
        rows = conn.execute(sql + " ORDER BY rowid", args).fetchall()
        return [self._from_row(r) for r in rows]


# ---------- EncounterRepository ----------


class EncounterRepository:
    """Interclub fixtures. A group's schedule is inserted once as a single batch."""

    _COLS = (
        "id, season_id, group_number, week_number, matchday_number, home_team_id, away_team_id, "
        "match_date, status, home_lineup, away_lineup, results, winner_team_id, final_score"
    )

    def insert_many(self, conn: sqlite3.Connection, encounters: list[InterclubEncounter]) -> bool:
        """All-or-nothing insert. False if any fixture already exists."""
        try:
            conn.executemany(
                f"INSERT INTO interclub_encounters ({self._COLS}) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                [
                    (
                        e.id, e.season_id, e.group_number, e.week_number, e.matchday_number,
                        e.home_team_id, e.away_team_id, _iso(e.match_date), e.status.value,
                        payloads.dump_lineup(e.home_lineup), payloads.dump_lineup(e.away_lineup),
                        payloads.dump_results(e.results), e.winner_team_id, e.final_score,
                    )
                    for e in encounters
                ],
            )
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            return False
        return True

    def _from_row(self, r: sqlite3.Row) -> InterclubEncounter:
        return InterclubEncounter(
            id=r["id"],
            season_id=r["season_id"],
            group_number=r["group_number"],
            week_number=r["week_number"],
            matchday_number=r["matchday_number"],
            home_team_id=r["home_team_id"],
            away_team_id=r["away_team_id"],
            match_date=_parse_datetime(r["match_date"]),
            status=EncounterStatus(r["status"]),
            home_lineup=payloads.parse_lineup(r["home_lineup"]),
            away_lineup=payloads.parse_lineup(r["away_lineup"]),
            results=payloads.parse_results(r["results"]),
            winner_team_id=r["winner_team_id"],
            final_score=r["final_score"],
        )

    def get(self, conn: sqlite3.Connection, encounter_id: str) -> InterclubEncounter | None:
        row = conn.execute(
            f"SELECT {self._COLS} FROM interclub_encounters WHERE id = ?", (encounter_id,)
        ).fetchone()
        return self._from_row(row) if row is not None else None

    def list_by_season(
        self,
        conn: sqlite3.Connection,
        season_id: str,
        group_number: int | None = None,
        status: EncounterStatus | None = None,
    ) -> list[InterclubEncounter]:
        sql = f"SELECT {self._COLS} FROM interclub_encounters WHERE season_id = ?"
        args: tuple = (season_id,)
        if group_number is not None:
            sql += " AND group_number = ?"
            args += (group_number,)
        if status is not None:
            sql += " AND status = ?"
            args += (status.value,)
        rows = conn.execute(sql + " ORDER BY matchday_number, match_date, id", args).fetchall()
        return [self._from_row(r) for r in rows]

    def count_by_group(self, conn: sqlite3.Connection, season_id: str, group_number: int) -> int:
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM interclub_encounters WHERE season_id = ? AND group_number = ?",
            (season_id, group_number),
        ).fetchone()
        return row["n"]

    def count_open(self, conn: sqlite3.Connection, season_id: str) -> int:
        row = conn.execute(
            "SELECT COUNT(*) AS n FROM interclub_encounters WHERE season_id = ? AND status != ?",
            (season_id, EncounterStatus.COMPLETED.value),
        ).fetchone()
        return row["n"]

    def set_lineup(
        self,
        conn: sqlite3.Connection,
        encounter_id: str,
        side: str,
        lineup: Lineup,
        allowed_statuses: tuple[EncounterStatus, ...] = (EncounterStatus.SCHEDULED, EncounterStatus.LINEUP_PENDING),
    ) -> bool:
        if side not in ("home", "away"):
            raise ValueError(f"side must be 'home' or 'away', got {side!r}")
        marks = ", ".join("?" for _ in allowed_statuses)
        cur = conn.execute(
            f"UPDATE interclub_encounters SET {side}_lineup = ? WHERE id = ? AND status IN ({marks})",
            (payloads.dump_lineup(lineup), encounter_id, *(s.value for s in allowed_statuses)),
        )
        conn.commit()
        return cur.rowcount == 1

    def transition_status(
        self,
        conn: sqlite3.Connection,
        encounter_id: str,
        from_status: EncounterStatus,
        to_status: EncounterStatus,
        commit: bool = True,
    ) -> bool:
        cur = conn.execute(
            "UPDATE interclub_encounters SET status = ? WHERE id = ? AND status = ?",
            (to_status.value, encounter_id, from_status.value),
        )
        if commit:
            conn.commit()
        return cur.rowcount == 1

    def mark_ready_if_complete(self, conn: sqlite3.Connection, encounter_id: str) -> bool:
        """-> ready once both lineups are stored."""
        cur = conn.execute(
            "UPDATE interclub_encounters SET status = ? "
            "WHERE id = ? AND status IN (?, ?) AND home_lineup IS NOT NULL AND away_lineup IS NOT NULL",
            (
                EncounterStatus.READY.value, encounter_id,
                EncounterStatus.SCHEDULED.value, EncounterStatus.LINEUP_PENDING.value,
            ),
        )
        conn.commit()
        return cur.rowcount == 1

    def complete(
        self,
        conn: sqlite3.Connection,
        encounter_id: str,
        results: list[CategoryResult],
        winner_team_id: str | None,
        final_score: str,
        commit: bool = True,
    ) -> bool:
        """in_progress -> completed, once."""
        cur = conn.execute(
            "UPDATE interclub_encounters SET status = ?, results = ?, winner_team_id = ?, final_score = ? "
            "WHERE id = ? AND status = ?",
            (
                EncounterStatus.COMPLETED.value, payloads.dump_results(results), winner_team_id, final_score,
                encounter_id, EncounterStatus.IN_PROGRESS.value,
            ),
        )
        if commit:
            conn.commit()
        return cur.rowcount == 1


# ---------- ResourceLedgerRepository ----------


class ResourceLedgerRepository:
    """Append-only resource transactions. A balance is the sum of a user's entries."""

    def add(
        self,
        conn: sqlite3.Connection,
        user_id: str,
        resource_type: str,
        amount: int,
        source: str,
        source_id: str | None = None,
        place: str | None = None,
    ) -> bool:
        """Insert one entry. False when a grant with the same key was already recorded."""
        try:
            conn.execute(
                "INSERT INTO resource_transactions (id, user_id, resource_type, amount, source, source_id, place, created_at) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
                (_new_id(), user_id, resource_type, amount, source, source_id, place, _iso(utcnow())),
            )
            conn.commit()
        except sqlite3.IntegrityError:
            conn.rollback()
            return False
        return True

    def balance(self, conn: sqlite3.Connection, user_id: str, resource_type: str) -> int:
        row = conn.execute(
            "SELECT COALESCE(SUM(amount), 0) AS total FROM resource_transactions WHERE user_id = ? AND resource_type = ?",
            (user_id, resource_type),
        ).fetchone()
        return int(row["total"])

    def list_for_user(self, conn: sqlite3.Connection, user_id: str) -> list[LedgerEntry]:
        rows = conn.execute(
            "SELECT id, user_id, resource_type, amount, source, source_id, place, created_at "
            "FROM resource_transactions WHERE user_id = ? ORDER BY created_at",
            (user_id,),
        ).fetchall()
        return [
            LedgerEntry(
                id=r["id"],
                user_id=r["user_id"],
                resource_type=r["resource_type"],
                amount=r["amount"],
                source=r["source"],
                source_id=r["source_id"],
                place=r["place"],
                created_at=_parse_datetime(r["created_at"]),
            )
            for r in rows
        ]
