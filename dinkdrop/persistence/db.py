"""
Database connection and initialization.
"""
from __future__ import annotations

import sqlite3
from pathlib import Path

from dinkdrop.config import Config

from .schema import all_schema_sql


def get_connection(db_path: str | Path | None = None) -> sqlite3.Connection:
    """
    Return a new SQLite connection.
    Use as context manager or ensure close() is called.
    """
    path = Path(db_path) if db_path else Config.db_path
    path.parent.mkdir(parents=True, exist_ok=True)
    conn = sqlite3.connect(str(path), check_same_thread=False)
    conn.row_factory = sqlite3.Row
    return conn


def init_db(db_path: str | Path | None = None) -> None:
    """Create or ensure all tables exist."""
    conn = get_connection(db_path)
    try:
        conn.executescript(all_schema_sql())
        conn.commit()
    finally:
        conn.close()
