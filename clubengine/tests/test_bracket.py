"""
Tests for single-elimination tournaments: registration, start with CPU
backfill, byes, round advance, finalization and prizes. Repeated calls must
never duplicate rounds, results or grants.
"""
from __future__ import annotations

import sqlite3
from datetime import timedelta

import pytest

from clubengine.config import EngineConfig
from clubengine.errors import NotFoundError, RegistrationError
from clubengine.injuries import InjuryModel
from clubengine.models import MatchStatus, PrizePool, RegisteredPlayer, TournamentStatus
from clubengine.persistence.repositories import (
    BracketMatchRepository,
    MatchHistoryRepository,
    PlayerRepository,
    ResourceLedgerRepository,
    TournamentRepository,
)
from clubengine.services.bracket_service import (
    REWARD_SOURCE,
    BracketScheduler,
    advance_bracket,
    build_round,
    round_entrants,
)
from clubengine.services.match_effects import MatchEffects
from clubengine.simulation.rng import SeededRNG

PRIZES = PrizePool(first={"coins": 500}, second={"coins": 200}, third={"coins": 100, "diamonds": 1})


@pytest.fixture
def scheduler():
    return BracketScheduler(EngineConfig(seed=7))


@pytest.fixture
def make_tournament(db_conn, now):
    repo = TournamentRepository()

    def _make(max_participants: int = 8, players=(), **kwargs):
        registered = [RegisteredPlayer(player_id=p.id, player_name=p.name, user_id=p.user_id) for p in players]
        return repo.create(
            db_conn,
            name="Spring Open",
            start_date=kwargs.pop("start_date", now - timedelta(minutes=1)),
            max_participants=max_participants,
            registered_players=registered,
            **kwargs,
        )

    return _make


class _FailingOnceHistory(MatchHistoryRepository):
    """First history write fails as if the database were locked."""

    def __init__(self) -> None:
        self.failed = False

    def create(self, conn, *args, **kwargs):
        if not self.failed:
            self.failed = True
            raise sqlite3.OperationalError("database is locked")
        return super().create(conn, *args, **kwargs)


def _run_to_completion(scheduler, conn, tournament_id, start):
    t = start
    for _ in range(20):
        t += timedelta(minutes=11)
        scheduler.play_due_matches(conn, tournament_id, t)
        scheduler.advance_bracket(conn, tournament_id, t)
        if TournamentRepository().get(conn, tournament_id).status == TournamentStatus.COMPLETED:
            return t
    raise AssertionError("tournament did not complete")


# ---- Round building ----
def test_build_round_pairs_in_order_with_bye(now):
    rows = build_round("t1", 1, ["a", "b", "c", "d", "e"], now, now)
    assert [(r.slot, r.player1_id, r.player2_id) for r in rows] == [
        (0, "a", "b"), (1, "c", "d"), (2, "e", None),
    ]
    bye = rows[2]
    assert bye.status == MatchStatus.BYE
    assert bye.winner_id == "e"
    assert bye.score == "21-0, 21-0"
    assert bye.completed
    assert bye.loser_id is None
    assert all(r.status == MatchStatus.PENDING for r in rows[:2])
    assert round_entrants(rows) == ["a", "b", "c", "d", "e"]


def test_insert_round_is_all_or_nothing(db_conn, make_tournament, now):
    t = make_tournament()
    repo = BracketMatchRepository()
    assert repo.insert_round(db_conn, build_round(t.id, 1, ["a", "b", "c", "d"], now, now))
    assert not repo.insert_round(db_conn, build_round(t.id, 1, ["x", "y", "a", "b"], now, now))
    assert [m.player1_id for m in repo.list_round(db_conn, t.id, 1)] == ["a", "c"]


# ---- Start ----
def test_five_players_two_matches_and_a_bye(db_conn, scheduler, make_player, make_tournament, now):
    players = [make_player() for _ in range(5)]
    t = make_tournament(max_participants=5, players=players)
    assert scheduler.start_tournament(db_conn, t.id, now)

    round1 = BracketMatchRepository().list_round(db_conn, t.id, 1)
    assert len(round1) == 3
    assert sum(1 for m in round1 if m.status == MatchStatus.PENDING) == 2
    (bye,) = [m for m in round1 if m.status == MatchStatus.BYE]

    assert scheduler.play_due_matches(db_conn, t.id, now + timedelta(minutes=11)) == 2
    assert scheduler.advance_bracket(db_conn, t.id, now + timedelta(minutes=11))
    round2 = BracketMatchRepository().list_round(db_conn, t.id, 2)
    assert bye.player1_id in round_entrants(round2)
    assert len(round_entrants(round2)) == 3


def test_start_waits_for_start_date(db_conn, scheduler, make_player, make_tournament, now):
    t = make_tournament(players=[make_player(), make_player()], start_date=now + timedelta(hours=1))
    assert not scheduler.start_tournament(db_conn, t.id, now)
    assert TournamentRepository().get(db_conn, t.id).status == TournamentStatus.REGISTRATION_OPEN


def test_start_backfills_with_new_cpu_players(db_conn, scheduler, make_player, make_tournament, now):
    t = make_tournament(max_participants=4, players=[make_player()])
    assert scheduler.start_tournament(db_conn, t.id, now)
    started = TournamentRepository().get(db_conn, t.id)
    assert started.status == TournamentStatus.IN_PROGRESS
    assert started.current_round_level == 1
    assert len(started.registered_players) == 4
    cpu = PlayerRepository().list_cpu(db_conn)
    assert len(cpu) == 3
    assert set(started.participant_ids()) >= {p.id for p in cpu}


def test_start_prefers_existing_cpu_pool(db_conn, scheduler, make_player, make_tournament, now):
    pool = {make_player(is_cpu=True).id for _ in range(5)}
    t = make_tournament(max_participants=4, players=[make_player()])
    scheduler.start_tournament(db_conn, t.id, now)
    started = TournamentRepository().get(db_conn, t.id)
    assert len(set(started.participant_ids()) & pool) == 3
    assert len(PlayerRepository().list_cpu(db_conn)) == 5


def test_start_twice_is_noop(db_conn, scheduler, make_player, make_tournament, now):
    t = make_tournament(max_participants=4, players=[make_player() for _ in range(4)])
    assert scheduler.start_tournament(db_conn, t.id, now)
    assert not scheduler.start_tournament(db_conn, t.id, now)
    assert len(BracketMatchRepository().list_by_tournament(db_conn, t.id)) == 2


def test_start_reuses_stored_round_one(db_conn, scheduler, make_player, make_tournament, now):
    players = [make_player() for _ in range(4)]
    t = make_tournament(max_participants=4, players=players)
    repo = BracketMatchRepository()
    repo.insert_round(db_conn, build_round(t.id, 1, [p.id for p in players], now, now))
    before = [m.id for m in repo.list_round(db_conn, t.id, 1)]

    assert scheduler.start_tournament(db_conn, t.id, now)
    assert [m.id for m in repo.list_round(db_conn, t.id, 1)] == before
    assert TournamentRepository().get(db_conn, t.id).status == TournamentStatus.IN_PROGRESS


# ---- Match play and advance ----
def test_play_due_matches_once(db_conn, scheduler, make_player, make_tournament, now):
    t = make_tournament(max_participants=4, players=[make_player() for _ in range(4)])
    scheduler.start_tournament(db_conn, t.id, now)
    assert scheduler.play_due_matches(db_conn, t.id, now) == 0  # not due yet
    later = now + timedelta(minutes=11)
    assert scheduler.play_due_matches(db_conn, t.id, later) == 2
    assert scheduler.play_due_matches(db_conn, t.id, later) == 0
    rows = BracketMatchRepository().list_round(db_conn, t.id, 1)
    assert all(m.status == MatchStatus.COMPLETED and m.winner_id in (m.player1_id, m.player2_id) for m in rows)


def test_played_match_writes_history(db_conn, scheduler, make_player, make_tournament, now):
    players = [make_player() for _ in range(2)]
    t = make_tournament(max_participants=2, players=players)
    scheduler.start_tournament(db_conn, t.id, now)
    scheduler.play_due_matches(db_conn, t.id, now + timedelta(minutes=11))
    history = MatchHistoryRepository()
    for p in players:
        records = history.list_for_player(db_conn, p.id)
        assert len(records) == 1
    match = BracketMatchRepository().list_round(db_conn, t.id, 1)[0]
    assert records[0].match_key == match.id


def test_failed_history_write_leaves_match_pending(db_conn, make_player, make_tournament, now):
    config = EngineConfig(seed=7)
    rng = SeededRNG(7)
    effects = MatchEffects(config, InjuryModel(rng), history_repo=_FailingOnceHistory())
    scheduler = BracketScheduler(config, rng, effects=effects)
    players = [make_player() for _ in range(2)]
    t = make_tournament(max_participants=2, players=players)
    scheduler.start_tournament(db_conn, t.id, now)
    later = now + timedelta(minutes=11)

    with pytest.raises(sqlite3.OperationalError):
        scheduler.play_due_matches(db_conn, t.id, later)
    match = BracketMatchRepository().list_round(db_conn, t.id, 1)[0]
    assert match.status == MatchStatus.PENDING
    assert match.winner_id is None
    assert all(not MatchHistoryRepository().list_for_player(db_conn, p.id) for p in players)

    assert scheduler.play_due_matches(db_conn, t.id, later) == 1
    for p in players:
        assert len(MatchHistoryRepository().list_for_player(db_conn, p.id)) == 1
    assert scheduler.advance_bracket(db_conn, t.id, later)
    assert TournamentRepository().get(db_conn, t.id).status == TournamentStatus.COMPLETED


def test_advance_waits_for_round_and_is_idempotent(db_conn, scheduler, make_player, make_tournament, now):
    t = make_tournament(max_participants=8, players=[make_player() for _ in range(8)])
    scheduler.start_tournament(db_conn, t.id, now)
    assert not scheduler.advance_bracket(db_conn, t.id, now)

    later = now + timedelta(minutes=11)
    scheduler.play_due_matches(db_conn, t.id, later)
    assert scheduler.advance_bracket(db_conn, t.id, later)
    assert not scheduler.advance_bracket(db_conn, t.id, later)

    repo = BracketMatchRepository()
    assert len(repo.list_round(db_conn, t.id, 2)) == 2
    assert repo.list_round(db_conn, t.id, 3) == []
    assert TournamentRepository().get(db_conn, t.id).current_round_level == 2


def test_module_level_advance_bracket(db_conn, scheduler, make_player, make_tournament, now):
    t = make_tournament(max_participants=4, players=[make_player() for _ in range(4)])
    scheduler.start_tournament(db_conn, t.id, now)
    later = now + timedelta(minutes=11)
    scheduler.play_due_matches(db_conn, t.id, later)
    assert advance_bracket(db_conn, t.id, later, EngineConfig(seed=1))
    assert not advance_bracket(db_conn, t.id, later)


# ---- Finalization ----
def test_full_tournament_completes_with_placements(db_conn, scheduler, make_player, make_tournament, now):
    players = [make_player(user_id=f"user-{i}") for i in range(5)]
    t = make_tournament(max_participants=5, players=players, prize_pool=PRIZES)
    scheduler.start_tournament(db_conn, t.id, now)
    end = _run_to_completion(scheduler, db_conn, t.id, now)

    done = TournamentRepository().get(db_conn, t.id)
    placements = scheduler.placements(db_conn, t.id)
    assert done.champion_id == placements.first
    assert placements.second is not None
    assert placements.third not in (None, placements.first, placements.second)

    owner = {p.id: p.user_id for p in players}
    ledger = ResourceLedgerRepository()
    assert ledger.balance(db_conn, owner[placements.first], "coins") == 500
    assert ledger.balance(db_conn, owner[placements.second], "coins") == 200
    assert ledger.balance(db_conn, owner[placements.third], "coins") == 100
    assert ledger.balance(db_conn, owner[placements.third], "diamonds") == 1

    # further calls change nothing
    assert not scheduler.advance_bracket(db_conn, t.id, end + timedelta(minutes=30))
    assert scheduler._distribute_prizes(db_conn, done, placements) == 0
    assert ledger.balance(db_conn, owner[placements.first], "coins") == 500

    progress = scheduler.tournament_progress(db_conn, t.id)
    assert progress.completed_matches == progress.total_matches == 4
    assert progress.percentage == 100.0


def test_third_place_prefers_higher_rank(db_conn, scheduler, make_player, make_tournament, now):
    ranks = {"a": 100, "b": 200, "c": 300, "d": 50}
    players = [make_player(id=f"p-{k}", rank=r, user_id=f"u-{k}") for k, r in ranks.items()]
    t = make_tournament(max_participants=4, players=players, prize_pool=PRIZES)
    t_repo, m_repo = TournamentRepository(), BracketMatchRepository()
    m_repo.insert_round(db_conn, build_round(t.id, 1, ["p-a", "p-b", "p-c", "p-d"], now, now))
    t_repo.mark_started(db_conn, t.id, t.registered_players)
    semi_ab, semi_cd = m_repo.list_round(db_conn, t.id, 1)
    m_repo.complete(db_conn, semi_ab.id, "p-a", "21-10, 21-10", now)
    m_repo.complete(db_conn, semi_cd.id, "p-d", "21-10, 21-10", now)

    assert scheduler.advance_bracket(db_conn, t.id, now)
    (final,) = m_repo.list_round(db_conn, t.id, 2)
    m_repo.complete(db_conn, final.id, "p-a", "21-18, 21-19", now)
    assert scheduler.advance_bracket(db_conn, t.id, now)

    # ranks are recomputed on completion, so read third place from the grants
    ledger = ResourceLedgerRepository()
    assert ledger.balance(db_conn, "u-a", "coins") == 500
    assert ledger.balance(db_conn, "u-d", "coins") == 200
    assert ledger.balance(db_conn, "u-c", "coins") == 100
    assert ledger.balance(db_conn, "u-b", "coins") == 0


def test_third_place_tie_breaks_on_lower_id(db_conn, scheduler, make_player, make_tournament, now):
    players = [make_player(id=pid, rank=100) for pid in ("p-1", "p-2", "p-3", "p-4")]
    t = make_tournament(max_participants=4, players=players)
    t_repo, m_repo = TournamentRepository(), BracketMatchRepository()
    m_repo.insert_round(db_conn, build_round(t.id, 1, ["p-4", "p-1", "p-3", "p-2"], now, now))
    t_repo.mark_started(db_conn, t.id, t.registered_players)
    s1, s2 = m_repo.list_round(db_conn, t.id, 1)
    m_repo.complete(db_conn, s1.id, "p-4", "21-10, 21-10", now)
    m_repo.complete(db_conn, s2.id, "p-3", "21-10, 21-10", now)
    scheduler.advance_bracket(db_conn, t.id, now)
    (final,) = m_repo.list_round(db_conn, t.id, 2)
    m_repo.complete(db_conn, final.id, "p-3", "21-18, 21-19", now)
    scheduler.advance_bracket(db_conn, t.id, now)
    assert scheduler.placements(db_conn, t.id).third == "p-1"


def test_cpu_winners_get_no_prizes(db_conn, scheduler, make_player, make_tournament, now):
    t = make_tournament(max_participants=4, players=[make_player(is_cpu=True) for _ in range(4)], prize_pool=PRIZES)
    scheduler.start_tournament(db_conn, t.id, now)
    _run_to_completion(scheduler, db_conn, t.id, now)
    rows = db_conn.execute(
        "SELECT COUNT(*) AS n FROM resource_transactions WHERE source = ?", (REWARD_SOURCE,)
    ).fetchone()
    assert rows["n"] == 0


# ---- Registration ----
class TestRegistration:
    def test_register_and_pay_fee(self, db_conn, scheduler, make_player, make_tournament, now):
        ledger = ResourceLedgerRepository()
        ledger.add(db_conn, "u1", "coins", 100, "starting_balance")
        player = make_player(user_id="u1")
        t = make_tournament(entry_fee={"coins": 30}, start_date=now + timedelta(hours=1))
        updated = scheduler.register_player(db_conn, t.id, player.id, now)
        assert updated.participant_ids() == [player.id]
        assert ledger.balance(db_conn, "u1", "coins") == 70

    def test_insufficient_balance(self, db_conn, scheduler, make_player, make_tournament, now):
        player = make_player(user_id="u1")
        t = make_tournament(entry_fee={"coins": 30}, start_date=now + timedelta(hours=1))
        with pytest.raises(RegistrationError, match="Insufficient coins"):
            scheduler.register_player(db_conn, t.id, player.id, now)

    def test_duplicate(self, db_conn, scheduler, make_player, make_tournament, now):
        player = make_player()
        t = make_tournament(start_date=now + timedelta(hours=1))
        scheduler.register_player(db_conn, t.id, player.id, now)
        with pytest.raises(RegistrationError, match="already registered"):
            scheduler.register_player(db_conn, t.id, player.id, now)

    def test_full(self, db_conn, scheduler, make_player, make_tournament, now):
        t = make_tournament(max_participants=2, start_date=now + timedelta(hours=1))
        for _ in range(2):
            scheduler.register_player(db_conn, t.id, make_player().id, now)
        with pytest.raises(RegistrationError, match="full"):
            scheduler.register_player(db_conn, t.id, make_player().id, now)

    def test_level_too_low(self, db_conn, scheduler, make_player, make_tournament, now):
        t = make_tournament(min_player_level=5, start_date=now + timedelta(hours=1))
        with pytest.raises(RegistrationError, match="below the minimum"):
            scheduler.register_player(db_conn, t.id, make_player(level=2).id, now)

    def test_two_players_per_club(self, db_conn, scheduler, make_player, make_tournament, now):
        t = make_tournament(start_date=now + timedelta(hours=1))
        for _ in range(2):
            scheduler.register_player(db_conn, t.id, make_player(user_id="club").id, now)
        with pytest.raises(RegistrationError, match="at most 2"):
            scheduler.register_player(db_conn, t.id, make_player(user_id="club").id, now)

    def test_closed_after_start(self, db_conn, scheduler, make_player, make_tournament, now):
        t = make_tournament(max_participants=2, players=[make_player(), make_player()])
        scheduler.start_tournament(db_conn, t.id, now)
        with pytest.raises(RegistrationError, match="closed"):
            scheduler.register_player(db_conn, t.id, make_player().id, now)

    def test_unknown_ids(self, db_conn, scheduler, make_player, make_tournament, now):
        with pytest.raises(NotFoundError):
            scheduler.register_player(db_conn, "missing", make_player().id, now)
        t = make_tournament(start_date=now + timedelta(hours=1))
        with pytest.raises(NotFoundError):
            scheduler.register_player(db_conn, t.id, "missing", now)
