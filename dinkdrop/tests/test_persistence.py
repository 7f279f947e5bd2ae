"""
Tests for SQLite persistence: schema, player round trip, match history, atomic batch save.
"""
from __future__ import annotations

from datetime import datetime, timezone
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from dinkdrop.models import Match, MatchStatus, MatchType, PeriodStats, Player
from dinkdrop.persistence import (
    InMemoryPlayerStore,
    PlayerRepository,
    SQLitePlayerStore,
    get_connection,
    init_db,
)


@pytest.fixture
def db_conn(tmp_path):
    db_path = tmp_path / "players.db"
    init_db(db_path)
    conn = get_connection(db_path)
    try:
        yield conn
    finally:
        conn.close()


@pytest.fixture
def sqlite_store(tmp_path):
    store = SQLitePlayerStore(tmp_path / "store.db")
    try:
        yield store
    finally:
        store.close()


def _rich_player() -> Player:
    return Player(
        id="sarah-chen",
        display_name="Sarah Chen",
        rating=1234,
        experience=870,
        total_matches=12,
        wins=8,
        losses=4,
        win_streak=2,
        longest_win_streak=5,
        points_scored=120,
        points_conceded=90,
        monthly_stats={"2025-01": PeriodStats(matches=12, wins=8, points_scored=120, points_conceded=90, rating_change=34)},
        opponent_ids={"mike-johnson", "emma-wilson"},
        achievement_ids={"first_match", "ten_matches"},
        location="Seattle",
    )


def test_init_db_is_idempotent(tmp_path):
    db_path = tmp_path / "twice.db"
    init_db(db_path)
    init_db(db_path)
    conn = get_connection(db_path)
    try:
        cols = [row[1] for row in conn.execute("PRAGMA table_info(players)").fetchall()]
    finally:
        conn.close()
    assert "location" in cols


def test_fresh_database_stores_location(tmp_path):
    store = SQLitePlayerStore(tmp_path / "fresh.db")
    try:
        store.add(Player(id="austin-1", display_name="Austin One", location="Austin"))
        assert store.get("austin-1").location == "Austin"
    finally:
        store.close()


def test_repository_round_trip(db_conn):
    repo = PlayerRepository()
    player = _rich_player()
    repo.save(db_conn, player)
    loaded = repo.get(db_conn, player.id)
    assert loaded is not None
    assert loaded.to_dict() == player.to_dict()


def test_repository_create_rejects_duplicate(db_conn):
    repo = PlayerRepository()
    repo.create(db_conn, "p1", "Player One")
    with pytest.raises(ValueError):
        repo.create(db_conn, "p1", "Again")


def test_repository_update_and_list(db_conn):
    repo = PlayerRepository()
    repo.create(db_conn, "low", "Low", rating=900)
    high = repo.create(db_conn, "high", "High", rating=1500)
    high.rating = 1510
    repo.save(db_conn, high)
    players = repo.list_all(db_conn)
    assert [p.id for p in players] == ["high", "low"]
    assert players[0].rating == 1510
    assert repo.delete(db_conn, "low") is True
    assert repo.get(db_conn, "low") is None


def test_get_missing_player_returns_none(sqlite_store):
    assert sqlite_store.get("nobody") is None


def test_sqlite_store_save_many_and_history(sqlite_store):
    a, b = Player(id="a", display_name="A"), Player(id="b", display_name="B")
    sqlite_store.save_many([a, b])
    assert {p.id for p in sqlite_store.list_all()} == {"a", "b"}

    match = Match(
        id="m1",
        match_type=MatchType.RANKED_SINGLES,
        player_a_id="a",
        player_b_id="b",
        created_at=datetime(2025, 2, 1, 10, 0, tzinfo=timezone.utc),
        score_a=11,
        score_b=6,
        status=MatchStatus.COMPLETED,
        winner_id="a",
        rating_delta_a=16,
        rating_delta_b=-16,
        settled_at=datetime(2025, 2, 1, 10, 30, tzinfo=timezone.utc),
    )
    sqlite_store.record_match(match)
    history = sqlite_store.match_history("b")
    assert len(history) == 1
    assert history[0].to_dict() == match.to_dict()
    assert sqlite_store.match_history("zed") == []


def test_sqlite_store_returns_fresh_objects(sqlite_store):
    sqlite_store.add(Player(id="a", display_name="A"))
    first = sqlite_store.get("a")
    first.rating = 2000
    assert sqlite_store.get("a").rating == 1000


def test_in_memory_store_is_live():
    store = InMemoryPlayerStore([Player(id="a", display_name="A")])
    store.get("a").rating = 1200
    assert store.get("a").rating == 1200
    assert "a" in store and len(store) == 1
