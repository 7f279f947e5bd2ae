"""
Data models for the matchmaking and rating core.
Domain objects for players, queue entries, proposals, matches and challenges.

Players are owned by the caller's store; the core mutates them in place.
Queue entries and proposals are owned by the matchmaking queue.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta
from enum import Enum
from typing import Any

from dinkdrop.errors import InvalidStateError


def _iso(dt: datetime | None) -> str | None:
    return dt.isoformat() if dt is not None else None


def period_key(when: datetime | date) -> str:
    """Monthly aggregate bucket, e.g. '2025-03'."""
    return f"{when.year:04d}-{when.month:02d}"


# ---------- Match type ----------
class MatchType(str, Enum):
    """Scopes a queue. Players in different types are never matched together."""
    RANKED_SINGLES = "ranked_singles"
    RANKED_DOUBLES = "ranked_doubles"
    CASUAL_SINGLES = "casual_singles"
    CASUAL_DOUBLES = "casual_doubles"
    PRACTICE = "practice"

    @property
    def is_ranked(self) -> bool:
        """Only ranked matches move ratings."""
        return self in (MatchType.RANKED_SINGLES, MatchType.RANKED_DOUBLES)

    @property
    def base_wait_seconds(self) -> float:
        """Wait-time baseline before any throughput history exists."""
        return _BASE_WAIT_SECONDS[self]


_BASE_WAIT_SECONDS: dict[MatchType, float] = {
    MatchType.RANKED_SINGLES: 120.0,
    MatchType.RANKED_DOUBLES: 180.0,
    MatchType.CASUAL_SINGLES: 90.0,
    MatchType.CASUAL_DOUBLES: 150.0,
    MatchType.PRACTICE: 60.0,
}


# ---------- Queue entry (state machine) ----------
class EntryState(str, Enum):
    """waiting → proposed → {confirmed, dissolved}; waiting → left."""
    WAITING = "waiting"
    PROPOSED = "proposed"
    CONFIRMED = "confirmed"
    DISSOLVED = "dissolved"
    LEFT = "left"


ACTIVE_ENTRY_STATES = frozenset({EntryState.WAITING, EntryState.PROPOSED})


class ProposalResponse(str, Enum):
    PENDING = "pending"
    ACCEPTED = "accepted"
    DECLINED = "declined"


class ProposalStatus(str, Enum):
    OPEN = "open"
    CONFIRMED = "confirmed"
    DISSOLVED = "dissolved"


class MatchStatus(str, Enum):
    SCHEDULED = "scheduled"
    COMPLETED = "completed"


# ---------- Period stats ----------
@dataclass
class PeriodStats:
    """Aggregate for one calendar month."""
    matches: int = 0
    wins: int = 0
    points_scored: int = 0
    points_conceded: int = 0
    rating_change: int = 0

    @property
    def win_rate(self) -> float:
        if self.matches == 0:
            return 0.0
        return self.wins / self.matches

    def to_dict(self) -> dict[str, Any]:
        return {
            "matches": self.matches,
            "wins": self.wins,
            "points_scored": self.points_scored,
            "points_conceded": self.points_conceded,
            "rating_change": self.rating_change,
        }

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> PeriodStats:
        return cls(
            matches=int(d.get("matches", 0)),
            wins=int(d.get("wins", 0)),
            points_scored=int(d.get("points_scored", 0)),
            points_conceded=int(d.get("points_conceded", 0)),
            rating_change=int(d.get("rating_change", 0)),
        )


# ---------- Player ----------
@dataclass
class Player:
    """
    A player record. Created and deleted only by the caller's store;
    settlement updates counters, rating and experience in place.
    """
    id: str
    display_name: str
    rating: int = 1000
    experience: int = 0
    total_matches: int = 0
    wins: int = 0
    losses: int = 0
    win_streak: int = 0
    longest_win_streak: int = 0
    points_scored: int = 0
    points_conceded: int = 0
    monthly_stats: dict[str, PeriodStats] = field(default_factory=dict)
    opponent_ids: set[str] = field(default_factory=set)
    achievement_ids: set[str] = field(default_factory=set)
    location: str | None = None

    @property
    def win_rate(self) -> float:
        if self.total_matches == 0:
            return 0.0
        return self.wins / self.total_matches

    def period(self, when: datetime | date) -> PeriodStats:
        """Bucket for `when`, created on first use."""
        key = period_key(when)
        stats = self.monthly_stats.get(key)
        if stats is None:
            stats = PeriodStats()
            self.monthly_stats[key] = stats
        return stats

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "display_name": self.display_name,
            "rating": self.rating,
            "experience": self.experience,
            "total_matches": self.total_matches,
            "wins": self.wins,
            "losses": self.losses,
            "win_streak": self.win_streak,
            "longest_win_streak": self.longest_win_streak,
            "points_scored": self.points_scored,
            "points_conceded": self.points_conceded,
            "monthly_stats": {k: v.to_dict() for k, v in sorted(self.monthly_stats.items())},
            "opponent_ids": sorted(self.opponent_ids),
            "achievement_ids": sorted(self.achievement_ids),
        }
        if self.location is not None:
            d["location"] = self.location
        return d

    @classmethod
    def from_dict(cls, d: dict[str, Any]) -> Player:
        return cls(
            id=d["id"],
            display_name=d.get("display_name") or d["id"],
            rating=int(d.get("rating", 1000)),
            experience=int(d.get("experience", 0)),
            total_matches=int(d.get("total_matches", 0)),
            wins=int(d.get("wins", 0)),
            losses=int(d.get("losses", 0)),
            win_streak=int(d.get("win_streak", 0)),
            longest_win_streak=int(d.get("longest_win_streak", 0)),
            points_scored=int(d.get("points_scored", 0)),
            points_conceded=int(d.get("points_conceded", 0)),
            monthly_stats={
                k: PeriodStats.from_dict(v) for k, v in (d.get("monthly_stats") or {}).items()
            },
            opponent_ids=set(d.get("opponent_ids") or []),
            achievement_ids=set(d.get("achievement_ids") or []),
            location=d.get("location"),
        )


# ---------- QueueEntry ----------
@dataclass
class QueueEntry:
    """
    A player's standing request to be matched within one match type.
    rating is snapshotted at join time for compatibility checks.
    """
    player_id: str
    match_type: MatchType
    enqueued_at: datetime
    rating: int = 1000
    state: EntryState = EntryState.WAITING
    proposal_id: str | None = None

    @property
    def is_active(self) -> bool:
        return self.state in ACTIVE_ENTRY_STATES

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "player_id": self.player_id,
            "match_type": self.match_type.value,
            "enqueued_at": self.enqueued_at.isoformat(),
            "rating": self.rating,
            "state": self.state.value,
        }
        if self.proposal_id is not None:
            d["proposal_id"] = self.proposal_id
        return d


# ---------- MatchProposal ----------
@dataclass
class MatchProposal:
    """
    Tentative pairing of two waiting entries of the same match type.
    first is the longer-waiting side. Resolves exactly once.
    """
    id: str
    match_type: MatchType
    first: QueueEntry
    second: QueueEntry
    created_at: datetime
    responses: dict[str, ProposalResponse] = field(default_factory=dict)
    status: ProposalStatus = ProposalStatus.OPEN
    resolved_at: datetime | None = None
    match_id: str | None = None

    def __post_init__(self) -> None:
        for pid in self.player_ids:
            self.responses.setdefault(pid, ProposalResponse.PENDING)

    @property
    def player_ids(self) -> tuple[str, str]:
        return (self.first.player_id, self.second.player_id)

    @property
    def is_open(self) -> bool:
        return self.status == ProposalStatus.OPEN

    @property
    def all_accepted(self) -> bool:
        return all(r == ProposalResponse.ACCEPTED for r in self.responses.values())

    @property
    def any_declined(self) -> bool:
        return any(r == ProposalResponse.DECLINED for r in self.responses.values())

    def entry_for(self, player_id: str) -> QueueEntry | None:
        if self.first.player_id == player_id:
            return self.first
        if self.second.player_id == player_id:
            return self.second
        return None

    def other_entry(self, player_id: str) -> QueueEntry:
        return self.second if self.first.player_id == player_id else self.first

    def expires_at(self, timeout_seconds: float) -> datetime:
        return self.created_at + timedelta(seconds=timeout_seconds)

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "match_type": self.match_type.value,
            "player_ids": list(self.player_ids),
            "responses": {pid: r.value for pid, r in self.responses.items()},
            "created_at": self.created_at.isoformat(),
            "status": self.status.value,
        }
        if self.resolved_at is not None:
            d["resolved_at"] = self.resolved_at.isoformat()
        if self.match_id is not None:
            d["match_id"] = self.match_id
        return d


# ---------- Match ----------
@dataclass
class Match:
    """
    Two players, optional final scores, and (once settled) the recorded
    rating deltas and winner. Created when a proposal confirms.
    Immutable after settlement; scores are filled in by the caller before.
    """
    id: str
    match_type: MatchType
    player_a_id: str
    player_b_id: str
    created_at: datetime
    score_a: int | None = None
    score_b: int | None = None
    status: MatchStatus = MatchStatus.SCHEDULED
    winner_id: str | None = None
    rating_delta_a: int | None = None
    rating_delta_b: int | None = None
    settled_at: datetime | None = None
    proposal_id: str | None = None

    @property
    def player_ids(self) -> tuple[str, str]:
        return (self.player_a_id, self.player_b_id)

    @property
    def is_scored(self) -> bool:
        return self.score_a is not None and self.score_b is not None

    @property
    def is_settled(self) -> bool:
        return self.status == MatchStatus.COMPLETED

    def has_player(self, player_id: str) -> bool:
        return player_id in self.player_ids

    def opponent_of(self, player_id: str) -> str:
        if player_id == self.player_a_id:
            return self.player_b_id
        if player_id == self.player_b_id:
            return self.player_a_id
        raise InvalidStateError(f"Player {player_id} is not in match {self.id}")

    def record_score(self, score_a: int, score_b: int) -> None:
        """Fill in the final score. Draws are not modeled."""
        if self.is_settled:
            raise InvalidStateError(f"Match {self.id} is already settled")
        if score_a < 0 or score_b < 0:
            raise InvalidStateError("Scores must be non-negative")
        if score_a == score_b:
            raise InvalidStateError("Draws are not supported; scores must differ")
        self.score_a = score_a
        self.score_b = score_b

    def scores_for(self, player_id: str) -> tuple[int, int]:
        """(points scored, points conceded) from player_id's side."""
        if not self.is_scored:
            raise InvalidStateError(f"Match {self.id} has no final score")
        if player_id == self.player_a_id:
            return (self.score_a, self.score_b)  # type: ignore[return-value]
        if player_id == self.player_b_id:
            return (self.score_b, self.score_a)  # type: ignore[return-value]
        raise InvalidStateError(f"Player {player_id} is not in match {self.id}")

    def to_dict(self) -> dict[str, Any]:
        d: dict[str, Any] = {
            "id": self.id,
            "match_type": self.match_type.value,
            "player_a_id": self.player_a_id,
            "player_b_id": self.player_b_id,
            "score_a": self.score_a,
            "score_b": self.score_b,
            "status": self.status.value,
            "created_at": self.created_at.isoformat(),
        }
        if self.winner_id is not None:
            d["winner_id"] = self.winner_id
            d["rating_delta_a"] = self.rating_delta_a
            d["rating_delta_b"] = self.rating_delta_b
            d["settled_at"] = _iso(self.settled_at)
        if self.proposal_id is not None:
            d["proposal_id"] = self.proposal_id
        return d


# ---------- MatchResult ----------
@dataclass(frozen=True)
class MatchResult:
    """
    Outcome of a match from one player's side, fed into settlement.
    rating_delta None = compute with the rating engine during settlement.
    """
    is_win: bool
    points_scored: int
    points_conceded: int
    rating_delta: int | None = None

    @property
    def is_perfect_game(self) -> bool:
        """Win without conceding a point."""
        return self.is_win and self.points_conceded == 0

    def mirrored(self, rating_delta: int | None = None) -> MatchResult:
        """The opponent's view of the same match."""
        return MatchResult(
            is_win=not self.is_win,
            points_scored=self.points_conceded,
            points_conceded=self.points_scored,
            rating_delta=rating_delta,
        )

    @classmethod
    def from_match(cls, match: Match, player_id: str, rating_delta: int | None = None) -> MatchResult:
        scored, conceded = match.scores_for(player_id)
        return cls(
            is_win=scored > conceded,
            points_scored=scored,
            points_conceded=conceded,
            rating_delta=rating_delta,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "is_win": self.is_win,
            "points_scored": self.points_scored,
            "points_conceded": self.points_conceded,
            "rating_delta": self.rating_delta,
        }


# ---------- Daily challenges ----------
class ChallengeType(str, Enum):
    PLAY_MATCH = "play_match"
    WIN_MATCH = "win_match"
    SOCIAL_PLAYER = "social_player"
    PERFECT_GAME = "perfect_game"
    WIN_STREAK = "win_streak"


@dataclass
class DailyChallenge:
    """One objective for one day. Discarded (not carried forward) at regeneration."""
    type: ChallengeType
    day: date
    target: int
    xp_reward: int
    progress: int = 0
    completed: bool = False

    @property
    def progress_fraction(self) -> float:
        if self.target <= 0:
            return 1.0
        return min(1.0, self.progress / self.target)

    def to_dict(self) -> dict[str, Any]:
        return {
            "type": self.type.value,
            "day": self.day.isoformat(),
            "target": self.target,
            "progress": self.progress,
            "completed": self.completed,
            "xp_reward": self.xp_reward,
        }


# ---------- Notifications ----------
class NotificationType(str, Enum):
    LEVEL_UP = "level_up"
    ACHIEVEMENT = "achievement"
    MATCH_COMPLETE = "match_complete"
    CHALLENGE_COMPLETE = "challenge_complete"
    GENERAL = "general"


@dataclass
class Notification:
    """Typed, timestamped message emitted as a side effect of settlement or progression."""
    id: str
    type: NotificationType
    title: str
    message: str
    created_at: datetime
    payload: dict[str, Any] = field(default_factory=dict)
    read: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.type.value,
            "title": self.title,
            "message": self.message,
            "created_at": self.created_at.isoformat(),
            "payload": dict(self.payload),
            "read": self.read,
        }
