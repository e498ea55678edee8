"""
Tests for double round-robin schedule generation.
Deterministic; every pair meets twice with venues swapped; no team plays twice
on one matchday.
"""
from __future__ import annotations

from collections import Counter
from datetime import datetime, timedelta, timezone

import pytest

from clubengine.services.scheduling import (
    BYE,
    berger_rounds,
    bucket_matchdays,
    double_round_robin,
    generate_league_schedule,
    matchday_dates,
)

START = datetime(2026, 3, 2, 18, 0, tzinfo=timezone.utc)


def _teams(n: int) -> list[str]:
    return [f"T{i}" for i in range(1, n + 1)]


def test_two_teams():
    """2 teams: 2 matchdays, one at each venue."""
    days = double_round_robin(["A", "B"])
    assert days == [[("A", "B")], [("B", "A")]]


def test_fewer_than_two_teams_is_empty():
    assert berger_rounds([]) == []
    assert berger_rounds(["A"]) == []
    assert generate_league_schedule(["A"]).fixtures == []


def test_six_teams_thirty_fixtures():
    """6 teams: 10 matchdays of 3, 30 fixtures."""
    schedule = generate_league_schedule(_teams(6), START)
    assert len(schedule.fixtures) == 30
    assert schedule.total_matchdays == 10
    per_day = Counter(f.matchday for f in schedule.fixtures)
    assert set(per_day.values()) == {3}


@pytest.mark.parametrize("n", [2, 3, 4, 5, 6, 7, 8])
def test_each_pair_meets_twice_with_venues_swapped(n):
    fixtures = generate_league_schedule(_teams(n)).fixtures
    directed = Counter((f.home_team_id, f.away_team_id) for f in fixtures)
    assert all(c == 1 for c in directed.values())
    teams = _teams(n)
    for i, a in enumerate(teams):
        for b in teams[i + 1:]:
            assert directed[(a, b)] == 1
            assert directed[(b, a)] == 1
    assert len(fixtures) == n * (n - 1)


@pytest.mark.parametrize("n", [3, 4, 5, 6, 7])
def test_no_team_twice_on_a_matchday(n):
    for day in double_round_robin(_teams(n)):
        ids = [t for pair in day for t in pair]
        assert len(ids) == len(set(ids))


def test_odd_count_drops_bye_and_rests_one_team():
    """5 teams: padded to 6, so 10 matchdays of 2 fixtures; one team rests."""
    days = double_round_robin(_teams(5))
    assert len(days) == 10
    for day in days:
        assert len(day) == 2
        assert BYE not in [t for pair in day for t in pair]
    rests = Counter()
    for day in days:
        playing = {t for pair in day for t in pair}
        rests.update(set(_teams(5)) - playing)
    # every team rests once per leg
    assert all(c == 2 for c in rests.values())


def test_home_away_balance_over_season():
    fixtures = generate_league_schedule(_teams(6)).fixtures
    home = Counter(f.home_team_id for f in fixtures)
    assert all(c == 5 for c in home.values())


def test_deterministic_for_same_order():
    a = generate_league_schedule(_teams(6), START)
    b = generate_league_schedule(_teams(6), START)
    assert a.fixtures == b.fixtures


def test_first_team_stays_fixed_in_first_leg():
    """T1 meets a different opponent on each first-leg matchday."""
    rounds = berger_rounds(_teams(6))
    opponents = []
    for day in rounds:
        (pair,) = [p for p in day if "T1" in p]
        opponents.append(pair[0] if pair[1] == "T1" else pair[1])
    assert sorted(opponents) == ["T2", "T3", "T4", "T5", "T6"]


def test_home_away_alternates_by_matchday_parity():
    rounds = berger_rounds(_teams(4))
    assert rounds[0][0][0] == "T1"
    assert rounds[1][0][1] == "T1"


# ---- Week buckets ----
def test_bucket_extras_go_to_earliest_weeks():
    weeks = bucket_matchdays(10, 4)
    assert [w.matchdays for w in weeks] == [[1, 2, 3], [4, 5, 6], [7, 8], [9, 10]]


def test_bucket_always_has_all_weeks():
    weeks = bucket_matchdays(2, 4)
    assert [w.week for w in weeks] == [1, 2, 3, 4]
    assert [w.matchdays for w in weeks] == [[1], [2], [], []]


def test_bucket_rejects_zero_weeks():
    with pytest.raises(ValueError):
        bucket_matchdays(6, 0)


def test_fixture_weeks_follow_buckets():
    schedule = generate_league_schedule(_teams(4), START)
    week_of = {md: ws.week for ws in schedule.week_schedule for md in ws.matchdays}
    assert all(f.week == week_of[f.matchday] for f in schedule.fixtures)
    assert [len(ws.matchdays) for ws in schedule.week_schedule] == [2, 2, 1, 1]


# ---- Dates ----
def test_matchday_dates_spread_within_week():
    dates = matchday_dates(START, bucket_matchdays(10, 4))
    assert dates[1] == START
    assert dates[2] == START + timedelta(days=7 / 3)
    assert dates[3] == START + timedelta(days=14 / 3)
    assert dates[4] == START + timedelta(days=7)
    assert dates[8] == START + timedelta(days=14 + 3.5)


def test_no_dates_without_start():
    fixtures = generate_league_schedule(_teams(4)).fixtures
    assert all(f.match_date is None for f in fixtures)


def test_fixture_dates_ascend_with_matchday():
    fixtures = generate_league_schedule(_teams(6), START).fixtures
    by_day = {f.matchday: f.match_date for f in fixtures}
    ordered = [by_day[md] for md in sorted(by_day)]
    assert ordered == sorted(ordered)
