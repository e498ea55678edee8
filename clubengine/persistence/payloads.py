"""
Validation of JSON columns at the persistence boundary.

Rows are parsed into pydantic models first, then converted into the
dataclasses of clubengine.models. Malformed payloads raise
pydantic.ValidationError (a ValueError) instead of leaking into engine logic.
"""
from __future__ import annotations

import json
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter

from clubengine.models import (
    CategoryResult,
    EquipmentItem,
    GroupStanding,
    Injury,
    InjurySeverity,
    Lineup,
    MatchCategory,
    PrizePool,
    RegisteredPlayer,
    SeasonGroup,
    WeekSchedule,
)


def _loads(raw: str | bytes | None, default: Any) -> Any:
    if raw is None or raw == "":
        return default
    return json.loads(raw)


def _dumps(value: Any) -> str:
    return json.dumps(value, separators=(",", ":"))


# ---------- Player columns ----------

StatMap = dict[str, float]
_stat_map = TypeAdapter(StatMap)


class InjuryPayload(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    id: str
    type: str
    severity: Literal["minor", "moderate", "severe"]
    recovery_time: int = Field(0, alias="recoveryTime", ge=0)
    recovery_end_time: int = Field(..., alias="recoveryEndTime")
    created_at: int = Field(0, alias="createdAt")
    affected_stats: StatMap = Field(default_factory=dict, alias="affectedStats")

    def to_model(self) -> Injury:
        return Injury(
            id=self.id,
            type=self.type,
            severity=InjurySeverity(self.severity),
            recovery_time_ms=self.recovery_time,
            recovery_end_time=self.recovery_end_time,
            created_at=self.created_at,
            affected_stats=dict(self.affected_stats),
        )


class EquipmentPayload(BaseModel):
    name: str
    stats: StatMap | None = None


_injury_list = TypeAdapter(list[InjuryPayload])
_equipment_list = TypeAdapter(list[EquipmentPayload])


def parse_stat_map(raw: str | None) -> dict[str, float]:
    return _stat_map.validate_python(_loads(raw, {}))


def dump_stat_map(values: dict[str, float]) -> str:
    return _dumps(values)


def parse_injuries(raw: str | None) -> list[Injury]:
    return [p.to_model() for p in _injury_list.validate_python(_loads(raw, []))]


def dump_injuries(injuries: list[Injury]) -> str:
    return _dumps([i.to_dict() for i in injuries])


def parse_equipment(raw: str | None) -> list[EquipmentItem]:
    return [EquipmentItem(name=p.name, stats=p.stats) for p in _equipment_list.validate_python(_loads(raw, []))]


def dump_equipment(items: list[EquipmentItem]) -> str:
    return _dumps([i.to_dict() for i in items])


# ---------- Tournament columns ----------

class RegisteredPlayerPayload(BaseModel):
    player_id: str
    player_name: str | None = None
    user_id: str | None = None
    team_name: str | None = None
    registered_at: str | None = None


class PrizePoolPayload(BaseModel):
    first: dict[str, int] = Field(default_factory=dict)
    second: dict[str, int] = Field(default_factory=dict)
    third: dict[str, int] = Field(default_factory=dict)


_registered_list = TypeAdapter(list[RegisteredPlayerPayload])
_bundle = TypeAdapter(dict[str, int])


def parse_registered_players(raw: str | None) -> list[RegisteredPlayer]:
    return [RegisteredPlayer(**p.model_dump()) for p in _registered_list.validate_python(_loads(raw, []))]


def dump_registered_players(players: list[RegisteredPlayer]) -> str:
    return _dumps([p.to_dict() for p in players])


def parse_prize_pool(raw: str | None) -> PrizePool:
    p = PrizePoolPayload.model_validate(_loads(raw, {}))
    return PrizePool(first=p.first, second=p.second, third=p.third)


def dump_prize_pool(pool: PrizePool) -> str:
    return _dumps(pool.to_dict())


def parse_bundle(raw: str | None) -> dict[str, int]:
    """Resource bundle such as an entry fee: {'coins': 100}."""
    return _bundle.validate_python(_loads(raw, {}))


def dump_bundle(bundle: dict[str, int]) -> str:
    return _dumps(bundle)


# ---------- Interclub columns ----------

class LineupPayload(BaseModel):
    mens_singles: str
    womens_singles: str
    mens_doubles: tuple[str, str]
    womens_doubles: tuple[str, str]
    mixed_doubles: tuple[str, str]
    submitted_by: str | None = None
    submitted_at: str | None = None
    is_auto_generated: bool = False

    def to_model(self) -> Lineup:
        return Lineup(**self.model_dump())


class CategoryResultPayload(BaseModel):
    category: MatchCategory
    winner_team_id: str
    score: str
    home_players: list[str] = Field(default_factory=list)
    away_players: list[str] = Field(default_factory=list)
    home_strength: float = 0.0
    away_strength: float = 0.0

    def to_model(self) -> CategoryResult:
        return CategoryResult(**self.model_dump())


class GroupStandingPayload(BaseModel):
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
    form: list[str] = Field(default_factory=list)


class SeasonGroupPayload(BaseModel):
    group_number: int
    team_ids: list[str] = Field(default_factory=list)
    standings: list[GroupStandingPayload] = Field(default_factory=list)

    def to_model(self) -> SeasonGroup:
        return SeasonGroup(
            group_number=self.group_number,
            team_ids=list(self.team_ids),
            standings=[GroupStanding(**s.model_dump()) for s in self.standings],
        )


class WeekSchedulePayload(BaseModel):
    week: int = Field(..., ge=1)
    matchdays: list[int] = Field(default_factory=list)


_result_list = TypeAdapter(list[CategoryResultPayload])
_group_list = TypeAdapter(list[SeasonGroupPayload])
_week_list = TypeAdapter(list[WeekSchedulePayload])
_id_list = TypeAdapter(list[str])


def parse_lineup(raw: str | None) -> Lineup | None:
    data = _loads(raw, None)
    if data is None:
        return None
    return LineupPayload.model_validate(data).to_model()


def validate_lineup(data: dict[str, Any] | Lineup) -> Lineup:
    """Shape check for a submitted lineup (five roles, doubles as pairs)."""
    if isinstance(data, Lineup):
        data = data.to_dict()
    return LineupPayload.model_validate(data).to_model()


def dump_lineup(lineup: Lineup | None) -> str | None:
    return None if lineup is None else _dumps(lineup.to_dict())


def parse_results(raw: str | None) -> list[CategoryResult]:
    return [p.to_model() for p in _result_list.validate_python(_loads(raw, []))]


def dump_results(results: list[CategoryResult]) -> str:
    return _dumps([r.to_dict() for r in results])


def parse_groups(raw: str | None) -> list[SeasonGroup]:
    return [p.to_model() for p in _group_list.validate_python(_loads(raw, []))]


def dump_groups(groups: list[SeasonGroup]) -> str:
    return _dumps([g.to_dict() for g in groups])


def parse_week_schedule(raw: str | None) -> list[WeekSchedule]:
    return [WeekSchedule(week=p.week, matchdays=list(p.matchdays)) for p in _week_list.validate_python(_loads(raw, []))]


def dump_week_schedule(weeks: list[WeekSchedule]) -> str:
    return _dumps([w.to_dict() for w in weeks])


def parse_id_list(raw: str | None) -> list[str]:
    return _id_list.validate_python(_loads(raw, []))


def dump_id_list(ids: list[str]) -> str:
    return _dumps(list(ids))
