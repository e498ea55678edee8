"""
Single-elimination tournament progression.

Status only moves forward: registration_open -> in_progress -> completed.
Every step re-reads persisted state and writes through a conditional update or
a unique-keyed batch insert, so a repeated or overlapping call is a no-op:
  - a round is inserted as one batch keyed by (tournament, round_level, slot);
  - a match is decided by pending -> completed, once, in the same transaction
    as its history rows, injury rolls and rank updates;
  - current_round_level moves L -> L+1 only from L;
  - prize grants are unique per (tournament, user, resource, place).
"""
from __future__ import annotations

import logging
import sqlite3
import uuid
from dataclasses import dataclass
from datetime import datetime, timedelta

from clubengine.config import EngineConfig
from clubengine.errors import NotFoundError, RegistrationError
from clubengine.injuries import InjuryModel
from clubengine.models import (
    ALL_STATS,
    PRIZE_PLACES,
    BracketMatch,
    Gender,
    MatchStatus,
    RegisteredPlayer,
    Tournament,
    TournamentStatus,
    epoch_ms,
    utcnow,
)
from clubengine.persistence.repositories import (
    BracketMatchRepository,
    PlayerRepository,
    ResourceLedgerRepository,
    TournamentRepository,
)
from clubengine.simulation.match_simulator import BYE_SCORE, MatchSimulator
from clubengine.simulation.rng import SeededRNG

from .match_effects import MatchEffects

logger = logging.getLogger(__name__)

MAX_PLAYERS_PER_USER = 2
REWARD_SOURCE = "tournament_reward"
ENTRY_FEE_SOURCE = "tournament_entry_fee"
CPU_STAT_RANGE = (30, 70)


@dataclass
class TournamentProgress:
    completed_matches: int
    total_matches: int

    @property
    def percentage(self) -> float:
        if self.total_matches <= 0:
            return 0.0
        return round(100.0 * self.completed_matches / self.total_matches, 1)


@dataclass
class Placements:
    first: str | None = None
    second: str | None = None
    third: str | None = None

    def by_place(self) -> dict[str, str | None]:
        return {"first": self.first, "second": self.second, "third": self.third}


def build_round(
    tournament_id: str,
    round_level: int,
    entrants: list[str],
    start_time: datetime,
    now: datetime,
) -> list[BracketMatch]:
    """
    Pair entrants in order (0-1, 2-3, ...). An odd entrant out gets a bye,
    stored already decided.
    """
    matches: list[BracketMatch] = []
    for slot, i in enumerate(range(0, len(entrants), 2)):
        p1 = entrants[i]
        p2 = entrants[i + 1] if i + 1 < len(entrants) else None
        if p2 is None:
            matches.append(BracketMatch(
                id=str(uuid.uuid4()),
                tournament_id=tournament_id,
                round_level=round_level,
                slot=slot,
                player1_id=p1,
                player2_id=None,
                status=MatchStatus.BYE,
                scheduled_start_time=start_time,
                winner_id=p1,
                score=BYE_SCORE,
                completed_at=now,
            ))
        else:
            matches.append(BracketMatch(
                id=str(uuid.uuid4()),
                tournament_id=tournament_id,
                round_level=round_level,
                slot=slot,
                player1_id=p1,
                player2_id=p2,
                status=MatchStatus.PENDING,
                scheduled_start_time=start_time,
            ))
    return matches


def round_entrants(matches: list[BracketMatch]) -> list[str]:
    """Players of a stored round in slot order."""
    out: list[str] = []
    for m in sorted(matches, key=lambda m: m.slot):
        out.append(m.player1_id)
        if m.player2_id is not None:
            out.append(m.player2_id)
    return out


class BracketScheduler:
    """
    Drives tournaments. Repositories and collaborators are injected; defaults
    are built fresh per instance.
    """

    def __init__(
        self,
        config: EngineConfig | None = None,
        rng: SeededRNG | None = None,
        simulator: MatchSimulator | None = None,
        effects: MatchEffects | None = None,
        tournament_repo: TournamentRepository | None = None,
        match_repo: BracketMatchRepository | None = None,
        player_repo: PlayerRepository | None = None,
        ledger_repo: ResourceLedgerRepository | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.rng = rng or SeededRNG(self.config.seed)
        self.simulator = simulator or MatchSimulator(self.rng)
        self.effects = effects or MatchEffects(self.config, InjuryModel(self.rng))
        self._tournament_repo = tournament_repo or TournamentRepository()
        self._match_repo = match_repo or BracketMatchRepository()
        self._player_repo = player_repo or PlayerRepository()
        self._ledger_repo = ledger_repo or ResourceLedgerRepository()

    def _get(self, conn: sqlite3.Connection, tournament_id: str) -> Tournament:
        tournament = self._tournament_repo.get(conn, tournament_id)
        if tournament is None:
            raise NotFoundError(f"Tournament not found: {tournament_id}")
        return tournament

    # ---------- Registration ----------

    def register_player(
        self, conn: sqlite3.Connection, tournament_id: str, player_id: str, now: datetime | None = None
    ) -> Tournament:
        """Register a player and debit the entry fee. Raises RegistrationError with the reason."""
        now = now or utcnow()
        tournament = self._get(conn, tournament_id)
        if tournament.status != TournamentStatus.REGISTRATION_OPEN:
            raise RegistrationError("Tournament registration is closed")
        registered = tournament.registered_players
        if len(registered) >= tournament.max_participants:
            raise RegistrationError("Tournament is full")
        player = self._player_repo.get(conn, player_id)
        if player is None:
            raise NotFoundError(f"Player not found: {player_id}")
        if any(r.player_id == player_id for r in registered):
            raise RegistrationError("Player is already registered")
        if player.level < tournament.min_player_level:
            raise RegistrationError(
                f"Player level {player.level} is below the minimum of {tournament.min_player_level}"
            )
        if player.user_id is not None:
            owned = sum(1 for r in registered if r.user_id == player.user_id)
            if owned >= MAX_PLAYERS_PER_USER:
                raise RegistrationError(f"A club may register at most {MAX_PLAYERS_PER_USER} players")
            for resource, amount in tournament.entry_fee.items():
                if amount > 0 and self._ledger_repo.balance(conn, player.user_id, resource) < amount:
                    raise RegistrationError(f"Insufficient {resource} for the entry fee")

        entry = RegisteredPlayer(
            player_id=player.id,
            player_name=player.name,
            user_id=player.user_id,
            registered_at=now.isoformat(),
        )
        if not self._tournament_repo.update_registered_players(
            conn, tournament.id, registered + [entry], expected_count=len(registered)
        ):
            raise RegistrationError("Registration changed concurrently; try again")
        if player.user_id is not None:
            for resource, amount in tournament.entry_fee.items():
                if amount > 0:
                    self._ledger_repo.add(
                        conn, player.user_id, resource, -amount, ENTRY_FEE_SOURCE, tournament.id
                    )
        logger.info("Player %s registered for tournament %s", player.id, tournament.id)
        return self._get(conn, tournament.id)

    # ---------- Start ----------

    def _backfill(self, conn: sqlite3.Connection, tournament: Tournament) -> list[RegisteredPlayer]:
        """Registered players plus CPU players up to max_participants."""
        field = list(tournament.registered_players)
        need = tournament.max_participants - len(field)
        if need <= 0:
            return field
        pool = self.rng.shuffled(self._player_repo.list_cpu(conn, exclude=tournament.participant_ids()))
        for cpu in pool[:need]:
            field.append(RegisteredPlayer(player_id=cpu.id, player_name=cpu.name))
        for _ in range(need - min(need, len(pool))):
            cpu = self._player_repo.create(
                conn,
                name=f"CPU {self.rng.token(5).upper()}",
                gender=self.rng.choice(list(Gender)),
                is_cpu=True,
                stats={s: self.rng.randint(*CPU_STAT_RANGE) for s in ALL_STATS},
            )
            field.append(RegisteredPlayer(player_id=cpu.id, player_name=cpu.name))
        return field

    def start_tournament(self, conn: sqlite3.Connection, tournament_id: str, now: datetime | None = None) -> bool:
        """
        registration_open -> in_progress once start_date has passed: backfill CPU
        players, shuffle, insert round 1, then flip the status. True if this call
        started the tournament.
        """
        now = now or utcnow()
        tournament = self._get(conn, tournament_id)
        if tournament.status != TournamentStatus.REGISTRATION_OPEN or tournament.start_date > now:
            return False

        existing = self._match_repo.list_round(conn, tournament.id, 1)
        if existing:
            # Round 1 was stored by an earlier attempt that did not flip the status.
            known = {r.player_id: r for r in tournament.registered_players}
            field = []
            for pid in round_entrants(existing):
                if pid in known:
                    field.append(known[pid])
                else:
                    cpu = self._player_repo.get(conn, pid)
                    field.append(RegisteredPlayer(player_id=pid, player_name=cpu.name if cpu else None))
        else:
            field = self._backfill(conn, tournament)
            if not field:
                logger.warning("Tournament %s has no participants; not starting", tournament.id)
                return False
            entrants = self.rng.shuffled([r.player_id for r in field])
            start_time = now + timedelta(minutes=tournament.round_interval_minutes)
            if not self._match_repo.insert_round(conn, build_round(tournament.id, 1, entrants, start_time, now)):
                logger.debug("Round 1 of %s already inserted by another run", tournament.id)
                return False

        if not self._tournament_repo.mark_started(conn, tournament.id, field):
            logger.debug("Tournament %s already started", tournament.id)
            return False
        logger.info("Tournament %s started with %d players", tournament.id, len(field))
        return True

    # ---------- Match play ----------

    def play_due_matches(self, conn: sqlite3.Connection, tournament_id: str, now: datetime | None = None) -> int:
        """Simulate pending matches of the current round that are due. Returns how many this call decided."""
        now = now or utcnow()
        tournament = self._get(conn, tournament_id)
        if tournament.status != TournamentStatus.IN_PROGRESS:
            return 0
        due = self._match_repo.list_due_pending(conn, tournament.id, tournament.current_round_level, now)
        played = 0
        for match in due:
            players = self.effects.load_players(conn, [match.player1_id, match.player2_id])
            result = self.simulator.simulate_match(
                players.get(match.player1_id),
                players.get(match.player2_id),
                epoch_ms(now),
                player1_id=match.player1_id,
                player2_id=match.player2_id,
            )
            # Result, history, injuries and ranks commit together; any failure leaves the match pending.
            with conn:
                if not self._match_repo.complete(
                    conn, match.id, result.winner_id, result.score, now, commit=False
                ):
                    logger.debug("Match %s already decided", match.id)
                    continue
                if not result.is_bye:
                    self.effects.after_match(
                        conn,
                        [(match.player1_id, match.player2_id, result.winner_id == match.player1_id)],
                        players,
                        now,
                        match_key=match.id,
                        commit=False,
                    )
            played += 1
        if played:
            logger.info("Tournament %s round %d: %d matches played", tournament.id, tournament.current_round_level, played)
        return played

    # ---------- Round advance ----------

    def advance_bracket(self, conn: sqlite3.Connection, tournament_id: str, now: datetime | None = None) -> bool:
        """
        If the current round is complete, either build the next round from its
        winners or, with one winner left, finalize. True when this call moved
        the tournament forward.
        """
        now = now or utcnow()
        tournament = self._get(conn, tournament_id)
        if tournament.status != TournamentStatus.IN_PROGRESS:
            return False
        level = tournament.current_round_level
        matches = self._match_repo.list_round(conn, tournament.id, level)
        if not matches:
            logger.warning("Tournament %s has no matches at round %d", tournament.id, level)
            return False
        if not all(m.completed for m in matches):
            return False

        winners = [m.winner_id for m in matches if m.winner_id]
        if len(winners) == 1:
            return self._finalize(conn, tournament, matches[0], now)

        if not self._match_repo.list_round(conn, tournament.id, level + 1):
            entrants = self.rng.shuffled(winners)
            start_time = now + timedelta(minutes=tournament.round_interval_minutes)
            next_round = build_round(tournament.id, level + 1, entrants, start_time, now)
            if not self._match_repo.insert_round(conn, next_round):
                logger.debug("Round %d of %s already inserted by another run", level + 1, tournament.id)
        if not self._tournament_repo.advance_round(conn, tournament.id, level):
            logger.debug("Tournament %s already past round %d", tournament.id, level)
            return False
        logger.info("Tournament %s advanced to round %d (%d players)", tournament.id, level + 1, len(winners))
        return True

    # ---------- Finalization ----------

    def _third_place(self, conn: sqlite3.Connection, tournament: Tournament, final: BracketMatch) -> str | None:
        """Semifinal loser beaten by a finalist; higher rank wins, then lower player id."""
        if final.round_level <= 1:
            return None
        finalists = {final.player1_id, final.player2_id}
        semis = self._match_repo.list_round(conn, tournament.id, final.round_level - 1)
        candidates = [m.loser_id for m in semis if m.loser_id and m.winner_id in finalists]
        if not candidates:
            return None
        players = self._player_repo.get_many(conn, candidates)

        def key(pid: str) -> tuple[float, str]:
            player = players.get(pid)
            return (-(player.rank if player else 0.0), pid)

        return min(candidates, key=key)

    def placements(self, conn: sqlite3.Connection, tournament_id: str) -> Placements:
        tournament = self._get(conn, tournament_id)
        final_rows = self._match_repo.list_round(conn, tournament.id, tournament.current_round_level)
        if len(final_rows) != 1 or not final_rows[0].completed:
            return Placements()
        final = final_rows[0]
        return Placements(
            first=final.winner_id,
            second=final.loser_id,
            third=self._third_place(conn, tournament, final),
        )

    def _distribute_prizes(self, conn: sqlite3.Connection, tournament: Tournament, placements: Placements) -> int:
        granted = 0
        for place in PRIZE_PLACES:
            player_id = placements.by_place()[place]
            if player_id is None:
                continue
            player = self._player_repo.get(conn, player_id)
            if player is None or player.user_id is None:
                continue
            for resource, amount in tournament.prize_pool.for_place(place).items():
                if amount and self._ledger_repo.add(
                    conn, player.user_id, resource, amount, REWARD_SOURCE, tournament.id, place
                ):
                    granted += 1
        return granted

    def _finalize(
        self, conn: sqlite3.Connection, tournament: Tournament, final: BracketMatch, now: datetime
    ) -> bool:
        placements = Placements(
            first=final.winner_id,
            second=final.loser_id,
            third=self._third_place(conn, tournament, final),
        )
        # Grants are keyed, so a retry after a partial finalize pays nothing twice.
        granted = self._distribute_prizes(conn, tournament, placements)
        if not self._tournament_repo.mark_completed(conn, tournament.id, final.winner_id):
            logger.debug("Tournament %s already completed", tournament.id)
            return False
        for player_id in tournament.participant_ids():
            self.effects.refresh_rank(conn, player_id, now)
        logger.info(
            "Tournament %s completed: champion %s, %d prize grants", tournament.id, final.winner_id, granted
        )
        return True

    # ---------- Progress ----------

    def tournament_progress(self, conn: sqlite3.Connection, tournament_id: str) -> TournamentProgress:
        """Decided matches against the participants - 1 a knockout needs."""
        tournament = self._get(conn, tournament_id)
        total = max(0, len(tournament.registered_players) - 1)
        return TournamentProgress(
            completed_matches=self._match_repo.count_completed(conn, tournament.id),
            total_matches=total,
        )


def advance_bracket(
    conn: sqlite3.Connection,
    tournament_id: str,
    now: datetime | None = None,
    config: EngineConfig | None = None,
) -> bool:
    """Standalone round-advance for admin tooling."""
    return BracketScheduler(config).advance_bracket(conn, tournament_id, now)
