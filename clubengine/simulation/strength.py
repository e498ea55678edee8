"""
Strength model: turns a player's stats, levels, strategy, equipment, injuries
and recent form into one effective strength number.

Weights: physical 25%, technical 35%, mental 20%, experience 10%,
strategy effectiveness 10%; then + equipment (capped at 15), - active injuries
(3 per severity point), + form (-5..+5). Floor at 10.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from clubengine.models import (
    INJURY_PREVENTION,
    PHYSICAL_STATS,
    TECHNICAL_STATS,
    EquipmentItem,
    Injury,
    Player,
)

DEFAULT_STAT = 50.0
DEFAULT_LEVEL = 1.0
DEFAULT_STRATEGY = 5.0
DEFAULT_RANK = 1000.0

EQUIPMENT_BONUS_CAP = 15.0
EQUIPMENT_STAT_FACTOR = 0.1
PLAIN_ITEM_BONUS = 1.0
INJURY_PENALTY_PER_SEVERITY = 3.0
FORM_SCALE = 10.0
MIN_STRENGTH = 10.0

WEIGHTS = {
    "physical": 0.25,
    "technical": 0.35,
    "mental": 0.20,
    "experience": 0.10,
    "strategy": 0.10,
}


@dataclass
class StrengthBreakdown:
    """Components of a strength computation, for diagnostics and tests."""
    physical: float
    technical: float
    mental: float
    experience: float
    strategy: float
    base: float
    equipment_bonus: float
    injury_penalty: float
    form: float
    total: float

    def to_dict(self) -> dict[str, Any]:
        return {k: getattr(self, k) for k in (
            "physical", "technical", "mental", "experience", "strategy",
            "base", "equipment_bonus", "injury_penalty", "form", "total",
        )}


def _weighted(stats: dict[str, float], levels: dict[str, float], name: str) -> float:
    return (stats.get(name) or DEFAULT_STAT) * (levels.get(name) or DEFAULT_LEVEL)


def equipment_bonus(equipment: list[EquipmentItem]) -> float:
    bonus = 0.0
    for item in equipment:
        if item.stats:
            bonus += sum(v * EQUIPMENT_STAT_FACTOR for v in item.stats.values() if isinstance(v, (int, float)))
        else:
            bonus += PLAIN_ITEM_BONUS
    return min(bonus, EQUIPMENT_BONUS_CAP)


def injury_penalty(injuries: list[Injury], now_ms: int) -> float:
    return sum(
        injury.severity.weight * INJURY_PENALTY_PER_SEVERITY
        for injury in injuries
        if injury.is_active(now_ms)
    )


def form_factor(recent_results: list[bool]) -> float:
    """(win_rate - 0.5) * 10 over recent matches; 0 with no history."""
    if not recent_results:
        return 0.0
    win_rate = sum(1 for r in recent_results if r) / len(recent_results)
    return (win_rate - 0.5) * FORM_SCALE


class StrengthModel:
    """Computes effective strength. Stateless; safe to share across a tick."""

    def breakdown(self, player: Player, now_ms: int) -> StrengthBreakdown:
        stats = player.stats
        levels = player.stat_levels
        strategy = player.strategy

        physical = sum(_weighted(stats, levels, s) for s in PHYSICAL_STATS) / len(PHYSICAL_STATS)
        technical = sum(_weighted(stats, levels, s) for s in TECHNICAL_STATS) / len(TECHNICAL_STATS)
        mental = (
            (strategy.get("mental_toughness") or DEFAULT_STRATEGY) * 10
            + (strategy.get("self_confidence") or DEFAULT_STRATEGY) * 10
            + _weighted(stats, levels, INJURY_PREVENTION)
        ) / 3
        rank = player.rank or DEFAULT_RANK
        experience = (player.level or 1) * 2 + max(0.0, (DEFAULT_RANK - rank) / 20)
        strategy_eff = (
            (strategy.get("rally_consistency") or DEFAULT_STRATEGY) * 10
            + (strategy.get("attack") or DEFAULT_STRATEGY) * 10
            + (strategy.get("court_defense") or DEFAULT_STRATEGY) * 10
        ) / 3

        base = (
            physical * WEIGHTS["physical"]
            + technical * WEIGHTS["technical"]
            + mental * WEIGHTS["mental"]
            + experience * WEIGHTS["experience"]
            + strategy_eff * WEIGHTS["strategy"]
        )
        equip = equipment_bonus(player.equipment)
        injury = injury_penalty(player.injuries, now_ms)
        form = form_factor(player.recent_results)
        total = max(MIN_STRENGTH, base + equip - injury + form)
        return StrengthBreakdown(
            physical=physical,
            technical=technical,
            mental=mental,
            experience=experience,
            strategy=strategy_eff,
            base=base,
            equipment_bonus=equip,
            injury_penalty=injury,
            form=form,
            total=total,
        )

    def strength(self, player: Player, now_ms: int) -> float:
        return self.breakdown(player, now_ms).total
