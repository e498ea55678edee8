"""
Lineup rules for interclub encounters.

Five roles: men's singles, women's singles, men's doubles, women's doubles and
mixed doubles (one man, one woman). Every player must be on the team roster and
may fill at most three role slots per encounter. Violations raise LineupError
and nothing is stored.
"""
from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta

from clubengine.errors import LineupError
from clubengine.models import Gender, Lineup, MatchCategory, Player
from clubengine.persistence.payloads import validate_lineup as parse_lineup_shape

DEFAULT_MAX_ASSIGNMENTS = 3

# Required gender for each slot of each category
CATEGORY_GENDERS: dict[MatchCategory, tuple[Gender, ...]] = {
    MatchCategory.MENS_SINGLES: (Gender.MALE,),
    MatchCategory.WOMENS_SINGLES: (Gender.FEMALE,),
    MatchCategory.MENS_DOUBLES: (Gender.MALE, Gender.MALE),
    MatchCategory.WOMENS_DOUBLES: (Gender.FEMALE, Gender.FEMALE),
    MatchCategory.MIXED_DOUBLES: (Gender.MALE, Gender.FEMALE),
}


def lineup_deadline(match_date: datetime, hours: int) -> datetime:
    return match_date - timedelta(hours=hours)


def coerce_lineup(data: Lineup | dict) -> Lineup:
    """Validate the shape of a submitted lineup."""
    try:
        return parse_lineup_shape(data)
    except ValueError as e:
        raise LineupError(f"Malformed lineup: {e}") from e


def validate_lineup(
    lineup: Lineup,
    roster: dict[str, Player],
    max_assignments: int = DEFAULT_MAX_ASSIGNMENTS,
    now_ms: int | None = None,
) -> None:
    """
    Raise LineupError on the first violated rule. With now_ms, players carrying
    an active injury are refused as well.
    """
    for category, genders in CATEGORY_GENDERS.items():
        ids = lineup.players_for(category)
        if len(set(ids)) != len(ids):
            raise LineupError(f"{category.value}: the same player cannot fill both doubles slots")
        for pid in ids:
            if pid not in roster:
                raise LineupError(f"{category.value}: player {pid} is not on the team roster")
        if category is MatchCategory.MIXED_DOUBLES:
            found = sorted(roster[pid].gender.value for pid in ids)
            if found != sorted(g.value for g in genders):
                raise LineupError("mixed_doubles requires exactly one male and one female player")
            continue
        for pid in ids:
            if roster[pid].gender != genders[0]:
                raise LineupError(
                    f"{category.value}: player {pid} must be {genders[0].value}"
                )

    usage = Counter(lineup.assignments())
    for pid, count in usage.items():
        if count > max_assignments:
            raise LineupError(
                f"Player {pid} is assigned to {count} categories (maximum {max_assignments})"
            )

    if now_ms is not None:
        for pid in usage:
            if roster[pid].active_injuries(now_ms):
                raise LineupError(f"Player {pid} is injured")


def auto_generate_lineup(
    roster: list[Player],
    now_ms: int,
    max_assignments: int = DEFAULT_MAX_ASSIGNMENTS,
) -> Lineup:
    """
    Best-ranked eligible players first: uninjured and under the usage cap. When
    nobody qualifies, fall back to any roster player of the right gender.
    """
    ranked = sorted(roster, key=lambda p: (-(p.rank or 0.0), p.id))
    usage: Counter[str] = Counter()

    def pick(gender: Gender, taken: list[str]) -> str:
        candidates = [p for p in ranked if p.gender == gender and p.id not in taken]
        if not candidates:
            raise LineupError(f"No {gender.value} player available on the roster")
        for rule in (
            lambda p: usage[p.id] < max_assignments and not p.active_injuries(now_ms),
            lambda p: usage[p.id] < max_assignments,
            lambda p: True,
        ):
            chosen = next((p for p in candidates if rule(p)), None)
            if chosen is not None:
                usage[chosen.id] += 1
                return chosen.id
        raise LineupError(f"No {gender.value} player available on the roster")

    slots: dict[MatchCategory, list[str]] = {}
    for category, genders in CATEGORY_GENDERS.items():
        taken: list[str] = []
        for gender in genders:
            taken.append(pick(gender, taken))
        slots[category] = taken

    return Lineup(
        mens_singles=slots[MatchCategory.MENS_SINGLES][0],
        womens_singles=slots[MatchCategory.WOMENS_SINGLES][0],
        mens_doubles=tuple(slots[MatchCategory.MENS_DOUBLES]),
        womens_doubles=tuple(slots[MatchCategory.WOMENS_DOUBLES]),
        mixed_doubles=tuple(slots[MatchCategory.MIXED_DOUBLES]),
        is_auto_generated=True,
    )
