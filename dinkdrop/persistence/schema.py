"""
SQLite schema for players and settled matches.
Migration-friendly: each table created with IF NOT EXISTS.
"""
from __future__ import annotations


def players_schema() -> str:
    """Counters are columns; monthly stats and id sets are JSON text."""
    return """
    CREATE TABLE IF NOT EXISTS players (
        id TEXT PRIMARY KEY,
        display_name TEXT NOT NULL,
        rating INTEGER NOT NULL DEFAULT 1000,
        experience INTEGER NOT NULL DEFAULT 0,
        total_matches INTEGER NOT NULL DEFAULT 0,
        wins INTEGER NOT NULL DEFAULT 0,
        losses INTEGER NOT NULL DEFAULT 0,
        win_streak INTEGER NOT NULL DEFAULT 0,
        longest_win_streak INTEGER NOT NULL DEFAULT 0,
        points_scored INTEGER NOT NULL DEFAULT 0,
        points_conceded INTEGER NOT NULL DEFAULT 0,
        monthly_stats TEXT NOT NULL DEFAULT '{}',
        opponent_ids TEXT NOT NULL DEFAULT '[]',
        achievement_ids TEXT NOT NULL DEFAULT '[]',
        location TEXT,
        updated_at TEXT NOT NULL
    );
    CREATE INDEX IF NOT EXISTS ix_players_rating ON players(rating);
    """


def matches_schema() -> str:
    """Settled matches only. status: scheduled | completed."""
    return """
    CREATE TABLE IF NOT EXISTS matches (
        id TEXT PRIMARY KEY,
        match_type TEXT NOT NULL,
        player_a_id TEXT NOT NULL,
        player_b_id TEXT NOT NULL,
        score_a INTEGER,
        score_b INTEGER,
        status TEXT NOT NULL DEFAULT 'scheduled',
        winner_id TEXT,
        rating_delta_a INTEGER,
        rating_delta_b INTEGER,
        created_at TEXT NOT NULL,
        settled_at TEXT,
        proposal_id TEXT,
        FOREIGN KEY (player_a_id) REFERENCES players(id),
        FOREIGN KEY (player_b_id) REFERENCES players(id)
    );
    CREATE INDEX IF NOT EXISTS ix_matches_player_a ON matches(player_a_id);
    CREATE INDEX IF NOT EXISTS ix_matches_player_b ON matches(player_b_id);
    """


def all_schema_sql() -> str:
    return players_schema() + matches_schema()
