"""
SQLite schema for competition entities.
Each table created with IF NOT EXISTS; JSON columns hold nested records.
"""
from __future__ import annotations


def players_schema() -> str:
    """Club players. stats/stat_levels/strategy/equipment/injuries are JSON."""
    return """
    CREATE TABLE IF NOT EXISTS players (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        gender TEXT NOT NULL,
        level INTEGER NOT NULL DEFAULT 1,
        rank REAL NOT NULL DEFAULT 0,
        rank_label TEXT NOT NULL DEFAULT 'P12',
        user_id TEXT,
        is_cpu INTEGER NOT NULL DEFAULT 0,
        stats TEXT NOT NULL DEFAULT '{}',
        stat_levels TEXT NOT NULL DEFAULT '{}',
        strategy TEXT NOT NULL DEFAULT '{}',
        equipment TEXT NOT NULL DEFAULT '[]',
        injuries TEXT NOT NULL DEFAULT '[]',
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_players_user ON players(user_id);
    CREATE INDEX IF NOT EXISTS ix_players_cpu ON players(is_cpu);
    """


def match_history_schema() -> str:
    """Play history. result = 1 when player1 won. Immutable once written; one row per (match_key, player1)."""
    return """
    CREATE TABLE IF NOT EXISTS match_history (
        id TEXT PRIMARY KEY,
        match_key TEXT,
        player1_id TEXT NOT NULL,
        player2_id TEXT,
        result INTEGER NOT NULL,
        player1_rank REAL,
        player2_rank REAL,
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_match_history_p1 ON match_history(player1_id, created_at);
    CREATE INDEX IF NOT EXISTS ix_match_history_p2 ON match_history(player2_id, created_at);
    CREATE UNIQUE INDEX IF NOT EXISTS ix_match_history_match
        ON match_history(match_key, player1_id)
        WHERE match_key IS NOT NULL;
    """


def tournaments_schema() -> str:
    """status: 0 registration_open | 1 in_progress | 2 completed."""
    return """
    CREATE TABLE IF NOT EXISTS tournaments (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        status INTEGER NOT NULL DEFAULT 0,
        start_date TEXT NOT NULL,
        max_participants INTEGER NOT NULL,
        current_round_level INTEGER NOT NULL DEFAULT 0,
        round_interval_minutes INTEGER NOT NULL DEFAULT 10,
        min_player_level INTEGER NOT NULL DEFAULT 0,
        registered_players TEXT NOT NULL DEFAULT '[]',
        prize_pool TEXT NOT NULL DEFAULT '{}',
        entry_fee TEXT NOT NULL DEFAULT '{}',
        champion_id TEXT,
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_tournaments_status ON tournaments(status, start_date);
    """


def bracket_matches_schema() -> str:
    """One row per bracket slot. player2_id NULL = bye. Unique slot per round blocks duplicate rounds."""
    return """
    CREATE TABLE IF NOT EXISTS bracket_matches (
        id TEXT PRIMARY KEY,
        tournament_id TEXT NOT NULL,
        round_level INTEGER NOT NULL,
        slot INTEGER NOT NULL,
        player1_id TEXT NOT NULL,
        player2_id TEXT,
        winner_id TEXT,
        score TEXT,
        status TEXT NOT NULL DEFAULT 'pending',
        scheduled_start_time TEXT NOT NULL,
        completed_at TEXT,
        FOREIGN KEY (tournament_id) REFERENCES tournaments(id)
    );
    CREATE UNIQUE INDEX IF NOT EXISTS ix_bracket_round_slot ON bracket_matches(tournament_id, round_level, slot);
    """


def interclub_seasons_schema() -> str:
    """status: draft | registration_open | registration_closed | active | completed."""
    return """
    CREATE TABLE IF NOT EXISTS interclub_seasons (
        id TEXT PRIMARY KEY,
        name TEXT NOT NULL,
        tier TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'draft',
        start_date TEXT NOT NULL,
        groups TEXT NOT NULL DEFAULT '[]',
        week_schedule TEXT NOT NULL DEFAULT '[]',
        prize_pool TEXT NOT NULL DEFAULT '{}',
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_interclub_seasons_status ON interclub_seasons(status);
    """


def interclub_teams_schema() -> str:
    return """
    CREATE TABLE IF NOT EXISTS interclub_teams (
        id TEXT PRIMARY KEY,
        season_id TEXT NOT NULL,
        team_name TEXT NOT NULL,
        group_number INTEGER NOT NULL,
        user_id TEXT,
        is_cpu INTEGER NOT NULL DEFAULT 0,
        player_ids TEXT NOT NULL DEFAULT '[]',
        FOREIGN KEY (season_id) REFERENCES interclub_seasons(id)
    );
    CREATE INDEX IF NOT EXISTS ix_interclub_teams_season ON interclub_teams(season_id, group_number);
    """


def interclub_encounters_schema() -> str:
    """One fixture per row. Unique (season, group, matchday, home) blocks a second schedule."""
    return """
    CREATE TABLE IF NOT EXISTS interclub_encounters (
        id TEXT PRIMARY KEY,
        season_id TEXT NOT NULL,
        group_number INTEGER NOT NULL,
        week_number INTEGER NOT NULL,
        matchday_number INTEGER NOT NULL,
        home_team_id TEXT NOT NULL,
        away_team_id TEXT NOT NULL,
        match_date TEXT NOT NULL,
        status TEXT NOT NULL DEFAULT 'lineup_pending',
        home_lineup TEXT,
        away_lineup TEXT,
        results TEXT NOT NULL DEFAULT '[]',
        winner_team_id TEXT,
        final_score TEXT,
        FOREIGN KEY (season_id) REFERENCES interclub_seasons(id)
    );
    CREATE INDEX IF NOT EXISTS ix_encounters_season ON interclub_encounters(season_id, status);
    CREATE UNIQUE INDEX IF NOT EXISTS ix_encounters_fixture
        ON interclub_encounters(season_id, group_number, matchday_number, home_team_id);
    """


def resource_transactions_schema() -> str:
    """Append-only ledger. Prize grants are unique per (source, source_id, user, resource, place)."""
    return """
    CREATE TABLE IF NOT EXISTS resource_transactions (
        id TEXT PRIMARY KEY,
        user_id TEXT NOT NULL,
        resource_type TEXT NOT NULL,
        amount INTEGER NOT NULL,
        source TEXT NOT NULL,
        source_id TEXT,
        place TEXT,
        created_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_resource_tx_user ON resource_transactions(user_id, resource_type);
    CREATE UNIQUE INDEX IF NOT EXISTS ix_resource_tx_grant
        ON resource_transactions(source, source_id, user_id, resource_type, place)
        WHERE place IS NOT NULL;
    """


def all_schema_sql() -> str:
    return "\n".join([
        players_schema(),
        match_history_schema(),
        tournaments_schema(),
        bracket_matches_schema(),
        interclub_seasons_schema(),
        interclub_teams_schema(),
        interclub_encounters_schema(),
        resource_transactions_schema(),
    ])
