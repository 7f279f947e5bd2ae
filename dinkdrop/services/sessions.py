"""
Per-player session context: the current player's daily challenges and notification feed.
Settlement requires a session to know who "the current player" is.
"""
from __future__ import annotations

import threading
from datetime import date

from dinkdrop.challenges import DEFAULT_CHALLENGES_PER_DAY, ChallengeEvent, ChallengeTracker
from dinkdrop.clock import Clock, utc_now
from dinkdrop.models import DailyChallenge, Notification
from dinkdrop.notifications import DEFAULT_CAPACITY, NotificationFeed
from dinkdrop.rng import SeededRNG


class PlayerSession:
    """Challenge tracker and notification feed for one player. Challenges roll over per UTC day."""

    def __init__(
        self,
        player_id: str,
        tracker: ChallengeTracker,
        feed: NotificationFeed,
        clock: Clock = utc_now,
    ) -> None:
        self.player_id = player_id
        self.tracker = tracker
        self.feed = feed
        self._clock = clock

    def today(self) -> date:
        return self._clock().date()

    def ensure_day(self) -> bool:
        """Regenerate challenges if the day changed since the last call."""
        return self.tracker.ensure_day(self.today())

    def challenges(self) -> list[DailyChallenge]:
        self.ensure_day()
        return list(self.tracker.challenges)

    def record(self, event: ChallengeEvent) -> list[DailyChallenge]:
        self.ensure_day()
        return self.tracker.record(event)

    def notifications(self) -> list[Notification]:
        return self.feed.items()


class SessionRegistry:
    """
    Creates sessions on first use. Each session's challenge RNG is seeded from
    the registry RNG, so a fixed seed and creation order replay identically.
    """

    def __init__(
        self,
        rng: SeededRNG,
        clock: Clock = utc_now,
        challenge_count: int = DEFAULT_CHALLENGES_PER_DAY,
        notification_capacity: int = DEFAULT_CAPACITY,
    ) -> None:
        self._rng = rng
        self._clock = clock
        self._challenge_count = challenge_count
        self._notification_capacity = notification_capacity
        self._sessions: dict[str, PlayerSession] = {}
        self._lock = threading.Lock()

    def get(self, player_id: str) -> PlayerSession:
        with self._lock:
            session = self._sessions.get(player_id)
            if session is None:
                tracker = ChallengeTracker(
                    SeededRNG(self._rng.randint(0, 2**31 - 1)),
                    size=self._challenge_count,
                )
                session = PlayerSession(
                    player_id,
                    tracker,
                    NotificationFeed(self._notification_capacity),
                    self._clock,
                )
                self._sessions[player_id] = session
        return session

    def existing(self, player_id: str) -> PlayerSession | None:
        return self._sessions.get(player_id)

    def __len__(self) -> int:
        return len(self._sessions)
