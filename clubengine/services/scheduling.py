"""
Deterministic double round-robin schedule generation for interclub groups.

Berger tables: fix the first team, rotate the others one step per matchday, and
pair position i with position N-1-i. Home/away alternates by matchday parity.
The second leg repeats the first with home and away swapped, so every pair
meets twice (once at each venue) over 2*(N-1) matchdays.

BYE handling: with an odd number of teams a virtual BYE is added; any pairing
with BYE is dropped, so one team rests each matchday.

Matchdays are bucketed into weeks: floor(total / weeks) each, the remainder
going to the earliest weeks. Same team list ordering yields the same schedule.
"""
from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timedelta

from clubengine.models import WeekSchedule

# Sentinel for bye when number of teams is odd
BYE = "BYE"

DEFAULT_WEEKS = 4
DAYS_PER_WEEK = 7


@dataclass(frozen=True)
class Fixture:
    matchday: int
    week: int
    home_team_id: str
    away_team_id: str
    match_date: datetime | None = None


@dataclass
class LeagueSchedule:
    fixtures: list[Fixture]
    week_schedule: list[WeekSchedule]

    @property
    def total_matchdays(self) -> int:
        return sum(len(w.matchdays) for w in self.week_schedule)


def berger_rounds(team_ids: list[str]) -> list[list[tuple[str, str]]]:
    """
    First leg: N-1 matchdays (N after BYE padding) of (home, away) pairs.
    Pairs involving BYE are dropped.
    """
    if len(team_ids) < 2:
        return []
    ids = list(team_ids)
    if len(ids) % 2 == 1:
        ids.append(BYE)
    n = len(ids)
    fixed, rotating = ids[0], ids[1:]
    rounds: list[list[tuple[str, str]]] = []
    for r in range(n - 1):
        current = [fixed] + rotating
        pairs: list[tuple[str, str]] = []
        for i in range(n // 2):
            t1, t2 = current[i], current[n - 1 - i]
            if t1 == BYE or t2 == BYE:
                continue
            pairs.append((t1, t2) if r % 2 == 0 else (t2, t1))
        rounds.append(pairs)
        # Rotate: last of the rotating block moves to the front
        rotating = [rotating[-1]] + rotating[:-1]
    return rounds


def double_round_robin(team_ids: list[str]) -> list[list[tuple[str, str]]]:
    """Both legs: 2*(N-1) matchdays. The second leg swaps home and away."""
    first_leg = berger_rounds(team_ids)
    second_leg = [[(away, home) for home, away in day] for day in first_leg]
    return first_leg + second_leg


def bucket_matchdays(total_matchdays: int, weeks: int = DEFAULT_WEEKS) -> list[WeekSchedule]:
    """Spread matchdays 1..total over `weeks` weeks, extras to the earliest weeks."""
    if weeks < 1:
        raise ValueError("weeks must be >= 1")
    base, extra = divmod(total_matchdays, weeks)
    schedule: list[WeekSchedule] = []
    next_md = 1
    for week in range(1, weeks + 1):
        count = base + (1 if week <= extra else 0)
        schedule.append(WeekSchedule(week=week, matchdays=list(range(next_md, next_md + count))))
        next_md += count
    return schedule


def matchday_dates(start_date: datetime, week_schedule: list[WeekSchedule]) -> dict[int, datetime]:
    """
    Week w starts at start_date + 7*(w-1) days; the k-th matchday of a week with
    c matchdays falls k*7/c days into it.
    """
    dates: dict[int, datetime] = {}
    for ws in week_schedule:
        week_start = start_date + timedelta(days=DAYS_PER_WEEK * (ws.week - 1))
        count = len(ws.matchdays)
        for k, md in enumerate(ws.matchdays):
            dates[md] = week_start + timedelta(days=k * DAYS_PER_WEEK / count)
    return dates


def generate_league_schedule(
    team_ids: list[str],
    start_date: datetime | None = None,
    weeks: int = DEFAULT_WEEKS,
) -> LeagueSchedule:
    """
    Full double round robin for one group. Fixtures carry their matchday, week
    and (when start_date is given) match date. Deterministic for a given order.
    """
    matchdays = double_round_robin(team_ids)
    week_schedule = bucket_matchdays(len(matchdays), weeks)
    week_of = {md: ws.week for ws in week_schedule for md in ws.matchdays}
    dates = matchday_dates(start_date, week_schedule) if start_date is not None else {}
    fixtures = [
        Fixture(
            matchday=md,
            week=week_of[md],
            home_team_id=home,
            away_team_id=away,
            match_date=dates.get(md),
        )
        for md, day in enumerate(matchdays, start=1)
        for home, away in day
    ]
    return LeagueSchedule(fixtures=fixtures, week_schedule=week_schedule)
