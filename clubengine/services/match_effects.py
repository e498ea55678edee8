"""
Per-match side effects shared by tournaments and interclub encounters:
play history, injury rolls and rank recomputation.
"""
from __future__ import annotations

import logging
import sqlite3
from datetime import datetime, timedelta
from typing import Iterable

from clubengine.config import EngineConfig
from clubengine.injuries import InjuryModel, purge_expired
from clubengine.models import Injury, Player, epoch_ms
from clubengine.persistence.repositories import MatchHistoryRepository, PlayerRepository
from clubengine.ranking import RankingEngine, RankResult

logger = logging.getLogger(__name__)

FORM_WINDOW = 10


def rank_at_match_time(player: Player | None) -> float | None:
    """CPU and missing players are recorded without a rank."""
    if player is None or player.is_cpu:
        return None
    return player.rank


class MatchEffects:
    """Writes the consequences of a decided match. Callers guarantee it runs once per match."""

    def __init__(
        self,
        config: EngineConfig | None = None,
        injury_model: InjuryModel | None = None,
        ranking: RankingEngine | None = None,
        player_repo: PlayerRepository | None = None,
        history_repo: MatchHistoryRepository | None = None,
    ) -> None:
        self.config = config or EngineConfig()
        self.injury_model = injury_model or InjuryModel()
        self.ranking = ranking or RankingEngine(self.config.ranking_window_days, self.config.ranking_top_n)
        self._player_repo = player_repo or PlayerRepository()
        self._history_repo = history_repo or MatchHistoryRepository()

    def load_players(self, conn: sqlite3.Connection, player_ids: Iterable[str | None]) -> dict[str, Player]:
        """Players by id with recent form filled in. Missing or malformed players are absent."""
        players = self._player_repo.get_many(conn, [pid for pid in player_ids if pid])
        for player in players.values():
            player.recent_results = self._history_repo.recent_results(conn, player.id, FORM_WINDOW)
        return players

    def record_result(
        self,
        conn: sqlite3.Connection,
        player1_id: str,
        player2_id: str | None,
        player1_won: bool,
        players: dict[str, Player],
        at: datetime,
        match_key: str | None = None,
        commit: bool = True,
    ) -> None:
        self._history_repo.create(
            conn,
            player1_id,
            player2_id,
            player1_won,
            rank_at_match_time(players.get(player1_id)),
            rank_at_match_time(players.get(player2_id)) if player2_id else None,
            created_at=at,
            match_key=match_key,
            commit=commit,
        )

    def roll_injury(
        self, conn: sqlite3.Connection, player_id: str, now: datetime, commit: bool = True
    ) -> Injury | None:
        # Re-read so injuries added earlier in the same tick are kept.
        player = self._player_repo.get(conn, player_id)
        if player is None:
            return None
        injury = self.injury_model.maybe_injure(player.stats, epoch_ms(now))
        if injury is None:
            return None
        self._player_repo.update_injuries(conn, player.id, player.injuries + [injury], commit=commit)
        logger.info("Player %s injured: %s (%s)", player.id, injury.type, injury.severity.value)
        return injury

    def refresh_rank(
        self, conn: sqlite3.Connection, player_id: str, as_of: datetime, commit: bool = True
    ) -> RankResult | None:
        player = self._player_repo.get(conn, player_id)
        if player is None or player.is_cpu:
            return None
        since = as_of - timedelta(days=self.ranking.window_days)
        history = self._history_repo.list_for_player(conn, player_id, since=since)
        result = self.ranking.compute(player_id, history, as_of)
        if result.points != player.rank or result.label != player.rank_label:
            self._player_repo.update_rank(conn, player_id, result.points, result.label, commit=commit)
            logger.debug("Rank %s: %.2f (%s)", player_id, result.points, result.label)
        return result

    def after_match(
        self,
        conn: sqlite3.Connection,
        pairings: list[tuple[str, str, bool]],
        players: dict[str, Player],
        now: datetime,
        match_key: str | None = None,
        commit: bool = True,
    ) -> list[tuple[str, Injury]]:
        """
        Apply side effects of one decided match. pairings are (player1, player2,
        player1_won) history rows; doubles pass one row per position. Every
        participant gets one injury roll and a rank refresh.

        With commit=False nothing is committed, so the caller can write the
        match result and its effects as one transaction.
        """
        participants: list[str] = []
        for p1, p2, p1_won in pairings:
            self.record_result(conn, p1, p2, p1_won, players, now, match_key, commit)
            for pid in (p1, p2):
                if pid and pid not in participants:
                    participants.append(pid)
        injuries: list[tuple[str, Injury]] = []
        for pid in participants:
            injury = self.roll_injury(conn, pid, now, commit)
            if injury is not None:
                injuries.append((pid, injury))
        for pid in participants:
            self.refresh_rank(conn, pid, now, commit)
        return injuries

    def sweep_expired_injuries(self, conn: sqlite3.Connection, now: datetime) -> int:
        """Remove expired injuries from every player. Returns how many were removed."""
        removed_total = 0
        now_ms = epoch_ms(now)
        for player in self._player_repo.list_with_injuries(conn):
            kept, removed = purge_expired(player.injuries, now_ms)
            if removed:
                self._player_repo.update_injuries(conn, player.id, kept)
                removed_total += removed
        if removed_total:
            logger.info("Removed %d expired injuries", removed_total)
        return removed_total
