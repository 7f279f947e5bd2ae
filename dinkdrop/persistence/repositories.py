"""
Repository interfaces for players and settled matches.
Plain read/write operations over a connection; rules live in services.
"""
from __future__ import annotations

import json
import sqlite3
from datetime import datetime, timezone
from typing import Any

from dinkdrop.models import Match, MatchStatus, MatchType, PeriodStats, Player


def _parse_datetime(s: str | None) -> datetime | None:
    if s is None:
        return None
    return datetime.fromisoformat(s.replace("Z", "+00:00"))


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


# ---------- PlayerRepository ----------


class PlayerRepository:
    """CRUD for players. save() upserts the whole record."""

    _COLUMNS = (
        "id, display_name, rating, experience, total_matches, wins, losses, win_streak, "
        "longest_win_streak, points_scored, points_conceded, monthly_stats, opponent_ids, "
        "achievement_ids, location"
    )

    def create(
        self,
        conn: sqlite3.Connection,
        id: str,
        display_name: str,
        rating: int = 1000,
        location: str | None = None,
    ) -> Player:
        if self.get(conn, id) is not None:
            raise ValueError(f"Player already exists: {id}")
        player = Player(id=id, display_name=display_name, rating=rating, location=location)
        self.save(conn, player)
        return player

    def get(self, conn: sqlite3.Connection, player_id: str) -> Player | None:
        row = conn.execute(
            f"SELECT {self._COLUMNS} FROM players WHERE id = ?", (player_id,)
        ).fetchone()
        if row is None:
            return None
        return self._row_to_player(row)

    def save(self, conn: sqlite3.Connection, player: Player, commit: bool = True) -> None:
        conn.execute(
            """
            INSERT INTO players (
                id, display_name, rating, experience, total_matches, wins, losses, win_streak,
                longest_win_streak, points_scored, points_conceded, monthly_stats, opponent_ids,
                achievement_ids, location, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            ON CONFLICT(id) DO UPDATE SET
                display_name = excluded.display_name,
                rating = excluded.rating,
                experience = excluded.experience,
                total_matches = excluded.total_matches,
                wins = excluded.wins,
                losses = excluded.losses,
                win_streak = excluded.win_streak,
                longest_win_streak = excluded.longest_win_streak,
                points_scored = excluded.points_scored,
                points_conceded = excluded.points_conceded,
                monthly_stats = excluded.monthly_stats,
                opponent_ids = excluded.opponent_ids,
                achievement_ids = excluded.achievement_ids,
                location = excluded.location,
                updated_at = excluded.updated_at
            """,
            (
                player.id,
                player.display_name,
                player.rating,
                player.experience,
                player.total_matches,
                player.wins,
                player.losses,
                player.win_streak,
                player.longest_win_streak,
                player.points_scored,
                player.points_conceded,
                json.dumps({k: v.to_dict() for k, v in player.monthly_stats.items()}),
                json.dumps(sorted(player.opponent_ids)),
                json.dumps(sorted(player.achievement_ids)),
                player.location,
                _now_iso(),
            ),
        )
        if commit:
            conn.commit()

    def list_all(self, conn: sqlite3.Connection) -> list[Player]:
        rows = conn.execute(f"SELECT {self._COLUMNS} FROM players ORDER BY rating DESC, id").fetchall()
        return [self._row_to_player(r) for r in rows]

    def delete(self, conn: sqlite3.Connection, player_id: str) -> bool:
        cur = conn.execute("DELETE FROM players WHERE id = ?", (player_id,))
        conn.commit()
        return cur.rowcount > 0

    @staticmethod
    def _row_to_player(row: sqlite3.Row) -> Player:
        r = dict(row)
        monthly: dict[str, Any] = json.loads(r["monthly_stats"] or "{}")
        return Player(
            id=r["id"],
            display_name=r["display_name"],
            rating=r["rating"],
            experience=r["experience"],
            total_matches=r["total_matches"],
            wins=r["wins"],
            losses=r["losses"],
            win_streak=r["win_streak"],
            longest_win_streak=r["longest_win_streak"],
            points_scored=r["points_scored"],
            points_conceded=r["points_conceded"],
            monthly_stats={k: PeriodStats.from_dict(v) for k, v in monthly.items()},
            opponent_ids=set(json.loads(r["opponent_ids"] or "[]")),
            achievement_ids=set(json.loads(r["achievement_ids"] or "[]")),
            location=r.get("location"),
        )


# ---------- MatchRepository ----------


class MatchRepository:
    """Settled match history."""

    def save(self, conn: sqlite3.Connection, match: Match, commit: bool = True) -> None:
        conn.execute(
            """
            INSERT OR REPLACE INTO matches (
                id, match_type, player_a_id, player_b_id, score_a, score_b, status, winner_id,
                rating_delta_a, rating_delta_b, created_at, settled_at, proposal_id
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                match.id,
                match.match_type.value,
                match.player_a_id,
                match.player_b_id,
                match.score_a,
                match.score_b,
                match.status.value,
                match.winner_id,
                match.rating_delta_a,
                match.rating_delta_b,
                match.created_at.isoformat(),
                match.settled_at.isoformat() if match.settled_at else None,
                match.proposal_id,
            ),
        )
        if commit:
            conn.commit()

    def get(self, conn: sqlite3.Connection, match_id: str) -> Match | None:
        row = conn.execute("SELECT * FROM matches WHERE id = ?", (match_id,)).fetchone()
        if row is None:
            return None
        return self._row_to_match(row)

    def list_for_player(self, conn: sqlite3.Connection, player_id: str, limit: int = 50) -> list[Match]:
        rows = conn.execute(
            """
            SELECT * FROM matches
            WHERE player_a_id = ? OR player_b_id = ?
            ORDER BY created_at DESC
            LIMIT ?
            """,
            (player_id, player_id, limit),
        ).fetchall()
        return [self._row_to_match(r) for r in rows]

    @staticmethod
    def _row_to_match(row: sqlite3.Row) -> Match:
        r = dict(row)
        return Match(
            id=r["id"],
            match_type=MatchType(r["match_type"]),
            player_a_id=r["player_a_id"],
            player_b_id=r["player_b_id"],
            created_at=_parse_datetime(r["created_at"]),
            score_a=r["score_a"],
            score_b=r["score_b"],
            status=MatchStatus(r["status"]),
            winner_id=r["winner_id"],
            rating_delta_a=r["rating_delta_a"],
            rating_delta_b=r["rating_delta_b"],
            settled_at=_parse_datetime(r["settled_at"]),
            proposal_id=r["proposal_id"],
        )
