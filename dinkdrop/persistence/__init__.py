"""
Persistence layer for players and match history.
Player and match storage: sqlite repositories and the stores the core consumes.
"""
from .db import get_connection, init_db
from .repositories import MatchRepository, PlayerRepository
from .store import InMemoryPlayerStore, PlayerStore, SQLitePlayerStore

__all__ = [
    "get_connection",
    "init_db",
    "PlayerRepository",
    "MatchRepository",
    "PlayerStore",
    "InMemoryPlayerStore",
    "SQLitePlayerStore",
]
