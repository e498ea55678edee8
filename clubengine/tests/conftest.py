"""
Shared fixtures: a temporary SQLite database and a player factory.
"""
from __future__ import annotations

from datetime import datetime, timezone

import pytest

from clubengine.models import ALL_STATS, Gender
from clubengine.persistence.db import get_connection, init_db
from clubengine.persistence.repositories import PlayerRepository

NOW = datetime(2026, 3, 2, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def db_conn(tmp_path):
    """Temporary DB with the full schema."""
    db_path = tmp_path / "engine_test.db"
    init_db(db_path)
    conn = get_connection(db_path)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def make_player(db_conn):
    """Create a stored player with flat stats."""
    repo = PlayerRepository()
    counter = {"n": 0}

    def _make(
        gender: Gender | str = Gender.MALE,
        stat: float = 50,
        rank: float = 0.0,
        user_id: str | None = None,
        is_cpu: bool = False,
        level: int = 1,
        **kwargs,
    ):
        counter["n"] += 1
        return repo.create(
            db_conn,
            name=kwargs.pop("name", f"Player {counter['n']}"),
            gender=gender,
            level=level,
            rank=rank,
            user_id=user_id,
            is_cpu=is_cpu,
            stats={s: stat for s in ALL_STATS},
            **kwargs,
        )

    return _make
