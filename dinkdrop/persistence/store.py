"""
Player stores consumed by the core: get/save by id.
The core never creates or deletes players; it only reads and writes them back.
"""
from __future__ import annotations

import threading
from pathlib import Path
from typing import Iterable, Protocol

from dinkdrop.models import Match, Player

from .db import get_connection, init_db
from .repositories import MatchRepository, PlayerRepository


class PlayerStore(Protocol):
    def get(self, player_id: str) -> Player | None: ...

    def save(self, player: Player) -> None: ...

    def save_many(self, players: Iterable[Player]) -> None:
        """Write all players or none."""
        ...

    def record_match(self, match: Match) -> None: ...

    def match_history(self, player_id: str, limit: int = 50) -> list[Match]: ...


class InMemoryPlayerStore:
    """Dict-backed store. Returns the stored objects themselves, so edits are live."""

    def __init__(self, players: Iterable[Player] = ()) -> None:
        self._players: dict[str, Player] = {p.id: p for p in players}
        self._history: list[Match] = []
        self._lock = threading.Lock()

    def get(self, player_id: str) -> Player | None:
        return self._players.get(player_id)

    def save(self, player: Player) -> None:
        with self._lock:
            self._players[player.id] = player

    def save_many(self, players: Iterable[Player]) -> None:
        with self._lock:
            for p in players:
                self._players[p.id] = p

    def record_match(self, match: Match) -> None:
        with self._lock:
            self._history.append(match)

    def match_history(self, player_id: str, limit: int = 50) -> list[Match]:
        mine = [m for m in reversed(self._history) if m.has_player(player_id)]
        return mine[:limit]

    def add(self, player: Player) -> Player:
        self.save(player)
        return player

    def list_all(self) -> list[Player]:
        return sorted(self._players.values(), key=lambda p: (-p.rating, p.id))

    def __contains__(self, player_id: str) -> bool:
        return player_id in self._players

    def __len__(self) -> int:
        return len(self._players)


class SQLitePlayerStore:
    """
    PlayerStore over the players table. get() loads a fresh Player each call;
    save_many() writes in one transaction. One shared connection, serialized by a lock.
    """

    def __init__(self, db_path: str | Path | None = None) -> None:
        init_db(db_path)
        self._conn = get_connection(db_path)
        self._players = PlayerRepository()
        self._matches = MatchRepository()
        self._lock = threading.Lock()

    def get(self, player_id: str) -> Player | None:
        with self._lock:
            return self._players.get(self._conn, player_id)

    def save(self, player: Player) -> None:
        with self._lock:
            self._players.save(self._conn, player)

    def save_many(self, players: Iterable[Player]) -> None:
        with self._lock:
            try:
                for p in players:
                    self._players.save(self._conn, p, commit=False)
                self._conn.commit()
            except BaseException:
                self._conn.rollback()
                raise

    def add(self, player: Player) -> Player:
        self.save(player)
        return player

    def list_all(self) -> list[Player]:
        with self._lock:
            return self._players.list_all(self._conn)

    def record_match(self, match: Match) -> None:
        with self._lock:
            self._matches.save(self._conn, match)

    def match_history(self, player_id: str, limit: int = 50) -> list[Match]:
        with self._lock:
            return self._matches.list_for_player(self._conn, player_id, limit)

    def close(self) -> None:
        with self._lock:
            self._conn.close()
