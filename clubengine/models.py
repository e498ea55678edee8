"""
Data models for the competition engine.
Domain objects only; no persistence or simulation logic.

Tournaments own bracket matches grouped by round level; interclub seasons own
groups of teams and the encounters scheduled between them. Players carry the
stats, injuries and rank the engine reads and writes after every match.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum, IntEnum
from typing import Any


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def epoch_ms(dt: datetime) -> int:
    """Milliseconds since epoch; naive datetimes are treated as UTC."""
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return int(dt.timestamp() * 1000)


# ---------- Player stats ----------
PHYSICAL_STATS = ("endurance", "strength", "agility", "speed", "explosiveness")
TECHNICAL_STATS = ("smash", "defense", "serve", "stick", "slice", "drop")
INJURY_PREVENTION = "injury_prevention"
ALL_STATS = PHYSICAL_STATS + (INJURY_PREVENTION,) + TECHNICAL_STATS


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"


class InjurySeverity(str, Enum):
    MINOR = "minor"
    MODERATE = "moderate"
    SEVERE = "severe"

    @property
    def weight(self) -> int:
        """Numeric weight used by the strength penalty (3 strength per weight point)."""
        return {"minor": 1, "moderate": 2, "severe": 3}[self.value]


# ---------- Tournament status (state machine) ----------
class TournamentStatus(IntEnum):
    """Tournament lifecycle: registration_open → in_progress → completed. Stored as 0/1/2."""
    REGISTRATION_OPEN = 0
    IN_PROGRESS = 1
    COMPLETED = 2


class MatchStatus(str, Enum):
    PENDING = "pending"
    BYE = "bye"
    COMPLETED = "completed"


# ---------- Interclub status ----------
class SeasonStatus(str, Enum):
    """Season lifecycle: draft → registration_open → registration_closed → active → completed."""
    DRAFT = "draft"
    REGISTRATION_OPEN = "registration_open"
    REGISTRATION_CLOSED = "registration_closed"
    ACTIVE = "active"
    COMPLETED = "completed"


class EncounterStatus(str, Enum):
    SCHEDULED = "scheduled"
    LINEUP_PENDING = "lineup_pending"
    READY = "ready"
    IN_PROGRESS = "in_progress"
    COMPLETED = "completed"


class MatchCategory(str, Enum):
    """The five individual matches of an encounter, in play order."""
    MENS_SINGLES = "mens_singles"
    WOMENS_SINGLES = "womens_singles"
    MENS_DOUBLES = "mens_doubles"
    WOMENS_DOUBLES = "womens_doubles"
    MIXED_DOUBLES = "mixed_doubles"


PRIZE_PLACES = ("first", "second", "third")


# ---------- Injury ----------
@dataclass
class Injury:
    """
    One injury. affected_stats holds the reduced stat values computed when the
    injury was created; they are not revised if base stats change later.
    """
    id: str
    type: str
    severity: InjurySeverity
    recovery_time_ms: int
    recovery_end_time: int  # epoch ms
    created_at: int  # epoch ms
    affected_stats: dict[str, float] = field(default_factory=dict)

    def is_active(self, now_ms: int) -> bool:
        return self.recovery_end_time > now_ms

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type,
            "severity": self.severity.value,
            "recoveryTime": self.recovery_time_ms,
            "recoveryEndTime": self.recovery_end_time,
            "createdAt": self.created_at,
            "affectedStats": dict(self.affected_stats),
        }


# ---------- Equipment ----------
@dataclass
class EquipmentItem:
    """An equipped item. stats maps stat name to bonus; None for a plain item."""
    name: str
    stats: dict[str, float] | None = None

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "stats": self.stats}


# ---------- Player ----------
@dataclass
class Player:
    """
    A club player (human-owned or CPU). rank is the rolling point total,
    rank_label its tier. recent_results is the newest-first win/loss form.
    """
    id: str
    name: str
    gender: Gender
    level: int = 1
    rank: float = 0.0
    rank_label: str = "P12"
    user_id: str | None = None
    is_cpu: bool = False
    stats: dict[str, float] = field(default_factory=dict)
    stat_levels: dict[str, float] = field(default_factory=dict)
    strategy: dict[str, float] = field(default_factory=dict)
    equipment: list[EquipmentItem] = field(default_factory=list)
    injuries: list[Injury] = field(default_factory=list)
    recent_results: list[bool] = field(default_factory=list)

    def active_injuries(self, now_ms: int) -> list[Injury]:
        return [i for i in self.injuries if i.is_active(now_ms)]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "gender": self.gender.value,
            "level": self.level,
            "rank": self.rank,
            "rank_label": self.rank_label,
            "user_id": self.user_id,
            "is_cpu": self.is_cpu,
            "stats": dict(self.stats),
            "injuries": [i.to_dict() for i in self.injuries],
        }


# ---------- MatchRecord (play history) ----------
@dataclass
class MatchRecord:
    """
    One row of play history. result is True when player1 won.
    Ranks are the players' points at match time; None for CPU/unranked.
    match_key names the bracket match or encounter category it came from.
    Immutable once written.
    """
    id: str
    player1_id: str
    player2_id: str | None
    result: bool
    player1_rank: float | None
    player2_rank: float | None
    created_at: datetime
    match_key: str | None = None


# ---------- Tournament ----------
@dataclass
class RegisteredPlayer:
    player_id: str
    player_name: str | None = None
    user_id: str | None = None
    team_name: str | None = None
    registered_at: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "player_name": self.player_name,
            "user_id": self.user_id,
            "team_name": self.team_name,
            "registered_at": self.registered_at,
        }


@dataclass
class PrizePool:
    """Resource bundle per place: {'coins': 500, 'diamonds': 2}."""
    first: dict[str, int] = field(default_factory=dict)
    second: dict[str, int] = field(default_factory=dict)
    third: dict[str, int] = field(default_factory=dict)

    def for_place(self, place: str) -> dict[str, int]:
        return dict(getattr(self, place, None) or {})

    def to_dict(self) -> dict[str, Any]:
        return {"first": dict(self.first), "second": dict(self.second), "third": dict(self.third)}


@dataclass
class Tournament:
    """
    Single-elimination tournament. current_round_level only increases;
    status only moves forward.
    """
    id: str
    name: str
    status: TournamentStatus
    start_date: datetime
    max_participants: int
    current_round_level: int = 0
    round_interval_minutes: int = 10
    min_player_level: int = 0
    registered_players: list[RegisteredPlayer] = field(default_factory=list)
    prize_pool: PrizePool = field(default_factory=PrizePool)
    entry_fee: dict[str, int] = field(default_factory=dict)
    champion_id: str | None = None
    created_at: datetime | None = None

    def participant_ids(self) -> list[str]:
        return [r.player_id for r in self.registered_players]

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "status": int(self.status),
            "start_date": self.start_date.isoformat(),
            "max_participants": self.max_participants,
            "current_round_level": self.current_round_level,
            "round_interval_minutes": self.round_interval_minutes,
            "min_player_level": self.min_player_level,
            "registered_players": [r.to_dict() for r in self.registered_players],
            "prize_pool": self.prize_pool.to_dict(),
            "champion_id": self.champion_id,
        }


@dataclass
class BracketMatch:
    """
    A bracket match. player2_id None = bye. Transitions pending → completed once;
    bye rows are created already decided.
    """
    id: str
    tournament_id: str
    round_level: int
    slot: int
    player1_id: str
    player2_id: str | None
    status: MatchStatus
    scheduled_start_time: datetime
    winner_id: str | None = None
    score: str | None = None
    completed_at: datetime | None = None

    @property
    def completed(self) -> bool:
        return self.status in (MatchStatus.COMPLETED, MatchStatus.BYE)

    @property
    def loser_id(self) -> str | None:
        if not self.completed or self.player2_id is None:
            return None
        return self.player2_id if self.winner_id == self.player1_id else self.player1_id

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "tournament_id": self.tournament_id,
            "round_level": self.round_level,
            "slot": self.slot,
            "player1_id": self.player1_id,
            "player2_id": self.player2_id,
            "winner_id": self.winner_id,
            "score": self.score,
            "status": self.status.value,
            "completed": self.completed,
            "scheduled_start_time": self.scheduled_start_time.isoformat(),
        }


# ---------- Interclub ----------
@dataclass
class InterclubTeam:
    """A club's registered squad for one season. CPU teams have no user."""
    id: str
    season_id: str
    team_name: str
    group_number: int
    player_ids: list[str] = field(default_factory=list)
    user_id: str | None = None
    is_cpu: bool = False


@dataclass
class Lineup:
    """
    A team's assignment of players to the five categories.
    Doubles are pairs; mixed doubles is (male, female).
    """
    mens_singles: str
    womens_singles: str
    mens_doubles: tuple[str, str]
    womens_doubles: tuple[str, str]
    mixed_doubles: tuple[str, str]
    submitted_by: str | None = None
    submitted_at: str | None = None
    is_auto_generated: bool = False

    def players_for(self, category: MatchCategory) -> list[str]:
        value = getattr(self, category.value)
        if isinstance(value, str):
            return [value]
        return list(value)

    def assignments(self) -> list[str]:
        """Every player id once per category slot they fill (duplicates kept)."""
        out: list[str] = []
        for category in MatchCategory:
            out.extend(self.players_for(category))
        return out

    def to_dict(self) -> dict[str, Any]:
        return {
            "mens_singles": self.mens_singles,
            "womens_singles": self.womens_singles,
            "mens_doubles": list(self.mens_doubles),
            "womens_doubles": list(self.womens_doubles),
            "mixed_doubles": list(self.mixed_doubles),
            "submitted_by": self.submitted_by,
            "submitted_at": self.submitted_at,
            "is_auto_generated": self.is_auto_generated,
        }


@dataclass
class CategoryResult:
    """Outcome of one category match inside an encounter. score is home-first."""
    category: MatchCategory
    winner_team_id: str
    score: str
    home_players: list[str]
    away_players: list[str]
    home_strength: float = 0.0
    away_strength: float = 0.0

    def to_dict(self) -> dict[str, Any]:
        return {
            "category": self.category.value,
            "winner_team_id": self.winner_team_id,
            "score": self.score,
            "home_players": list(self.home_players),
            "away_players": list(self.away_players),
            "home_strength": self.home_strength,
            "away_strength": self.away_strength,
        }


@dataclass
class GroupStanding:
    """Derived team record within a group. Recomputed, never edited in place."""
    team_id: str
    team_name: str = ""
    is_cpu: bool = False
    position: int = 0
    matches_played: int = 0
    encounters_won: int = 0
    encounters_lost: int = 0
    encounters_drawn: int = 0
    individual_matches_won: int = 0
    individual_matches_lost: int = 0
    points: int = 0
    form: list[str] = field(default_factory=list)

    @property
    def individual_diff(self) -> int:
        return self.individual_matches_won - self.individual_matches_lost

    def to_dict(self) -> dict[str, Any]:
        return {
            "team_id": self.team_id,
            "team_name": self.team_name,
            "is_cpu": self.is_cpu,
            "position": self.position,
            "matches_played": self.matches_played,
            "encounters_won": self.encounters_won,
            "encounters_lost": self.encounters_lost,
            "encounters_drawn": self.encounters_drawn,
            "individual_matches_won": self.individual_matches_won,
            "individual_matches_lost": self.individual_matches_lost,
            "points": self.points,
            "form": list(self.form),
        }


@dataclass
class SeasonGroup:
    group_number: int
    team_ids: list[str] = field(default_factory=list)
    standings: list[GroupStanding] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "group_number": self.group_number,
            "team_ids": list(self.team_ids),
            "standings": [s.to_dict() for s in self.standings],
        }


@dataclass
class WeekSchedule:
    week: int
    matchdays: list[int] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"week": self.week, "matchdays": list(self.matchdays)}


@dataclass
class InterclubSeason:
    id: str
    name: str
    tier: str
    status: SeasonStatus
    start_date: datetime
    groups: list[SeasonGroup] = field(default_factory=list)
    week_schedule: list[WeekSchedule] = field(default_factory=list)
    prize_pool: PrizePool = field(default_factory=PrizePool)
    created_at: datetime | None = None


@dataclass
class InterclubEncounter:
    """One team-vs-team fixture of five category matches."""
    id: str
    season_id: str
    group_number: int
    week_number: int
    matchday_number: int
    home_team_id: str
    away_team_id: str
    match_date: datetime
    status: EncounterStatus
    home_lineup: Lineup | None = None
    away_lineup: Lineup | None = None
    results: list[CategoryResult] = field(default_factory=list)
    winner_team_id: str | None = None
    final_score: str | None = None

    def lineup_for(self, team_id: str) -> Lineup | None:
        if team_id == self.home_team_id:
            return self.home_lineup
        if team_id == self.away_team_id:
            return self.away_lineup
        return None


# ---------- Resource ledger ----------
@dataclass
class LedgerEntry:
    """Append-only resource transaction; balance = sum of entries."""
    id: str
    user_id: str
    resource_type: str
    amount: int
    source: str
    source_id: str | None
    place: str | None
    created_at: datetime
