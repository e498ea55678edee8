"""
Injury model: per-match injury roll, plus active-injury accessors.

risk = max(0.3, 0.8 - injury_prevention / 200). On a hit, one of five
archetypes is drawn uniformly. Each listed stat is reduced once, at creation,
to max(0, current - penalty); later stat changes do not revise it.
Expiry is passive (recovery_end_time > now means active).
"""
from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from clubengine.models import INJURY_PREVENTION, Injury, InjurySeverity, Player
from clubengine.simulation.rng import SeededRNG

logger = logging.getLogger(__name__)

MIN_RISK = 0.3
MAX_RISK = 0.8
PREVENTION_DIVISOR = 200.0

MINUTE_MS = 60 * 1000


@dataclass(frozen=True)
class InjuryArchetype:
    type: str
    severity: InjurySeverity
    recovery_minutes: int
    affected_stats: tuple[str, ...]
    stat_penalty: int

    @property
    def recovery_time_ms(self) -> int:
        return self.recovery_minutes * MINUTE_MS


INJURY_TYPES: tuple[InjuryArchetype, ...] = (
    InjuryArchetype("Ankle Sprain", InjurySeverity.MINOR, 30, ("speed", "agility"), 20),
    InjuryArchetype("Muscle Strain", InjurySeverity.MINOR, 45, ("strength", "explosiveness"), 25),
    InjuryArchetype("Knee Pain", InjurySeverity.MODERATE, 60, ("speed", "agility", "explosiveness"), 30),
    InjuryArchetype("Wrist Sprain", InjurySeverity.MODERATE, 90, ("smash", "defense", "serve"), 35),
    InjuryArchetype(
        "Back Injury",
        InjurySeverity.SEVERE,
        120,
        ("endurance", "strength", "agility", "speed", "explosiveness"),
        40,
    ),
)


def injury_risk(injury_prevention: float | None) -> float:
    """Per-match injury probability. Floors at 0.3 from prevention 100 upward."""
    prevention = injury_prevention or 0.0
    return max(MIN_RISK, MAX_RISK - prevention / PREVENTION_DIVISOR)


class InjuryModel:
    """Rolls injuries with an injected RNG so ticks can be replayed."""

    def __init__(self, rng: SeededRNG | None = None) -> None:
        self.rng = rng or SeededRNG()

    def build_injury(self, archetype: InjuryArchetype, stats: Mapping[str, float], now_ms: int) -> Injury:
        affected = {
            stat: max(0, (stats.get(stat) or 0) - archetype.stat_penalty)
            for stat in archetype.affected_stats
        }
        return Injury(
            id=f"injury-{now_ms}-{self.rng.token()}",
            type=archetype.type,
            severity=archetype.severity,
            recovery_time_ms=archetype.recovery_time_ms,
            recovery_end_time=now_ms + archetype.recovery_time_ms,
            created_at=now_ms,
            affected_stats=affected,
        )

    def maybe_injure(self, stats: Mapping[str, float], now_ms: int) -> Injury | None:
        risk = injury_risk(stats.get(INJURY_PREVENTION))
        if self.rng.random() >= risk:
            return None
        archetype = self.rng.choice(INJURY_TYPES)
        injury = self.build_injury(archetype, stats, now_ms)
        logger.debug("Injury rolled (risk %.2f): %s", risk, injury.type)
        return injury


def maybe_injure(stats: Mapping[str, float], now_ms: int, rng: SeededRNG | None = None) -> Injury | None:
    """One injury roll for a player with the given stats; None when no injury occurs."""
    return InjuryModel(rng).maybe_injure(stats, now_ms)


# ---------- Accessors ----------

def active_injuries(injuries: list[Injury], now_ms: int) -> list[Injury]:
    return [i for i in injuries if i.is_active(now_ms)]


def is_available(player: Player, now_ms: int) -> bool:
    """A player with any active injury cannot be picked for a lineup."""
    return not active_injuries(player.injuries, now_ms)


def total_injury_effect(injuries: list[Injury], now_ms: int) -> dict[str, float]:
    """Lowest reduced value per stat across all active injuries."""
    effect: dict[str, float] = {}
    for injury in active_injuries(injuries, now_ms):
        for stat, value in injury.affected_stats.items():
            if stat not in effect or value < effect[stat]:
                effect[stat] = value
    return effect


def purge_expired(injuries: list[Injury], now_ms: int) -> tuple[list[Injury], int]:
    """Drop expired injuries. Returns (kept, removed_count)."""
    kept = active_injuries(injuries, now_ms)
    return kept, len(injuries) - len(kept)
