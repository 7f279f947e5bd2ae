"""
Daily challenge tracker: a small rotating set of objectives per day.
Selection randomness and the day itself are injected so regeneration is replayable.
"""
from __future__ import annotations

import copy
from dataclasses import dataclass
from datetime import date
from enum import Enum

from dinkdrop.logger import setup_logger
from dinkdrop.models import ChallengeType, DailyChallenge
from dinkdrop.rng import SeededRNG

logger = setup_logger(__name__)

DEFAULT_CHALLENGES_PER_DAY = 3


@dataclass(frozen=True)
class ChallengeSpec:
    target: int
    xp_reward: int
    description: str


CHALLENGE_CATALOG: dict[ChallengeType, ChallengeSpec] = {
    ChallengeType.PLAY_MATCH: ChallengeSpec(1, 50, "Complete 1 match today"),
    ChallengeType.WIN_MATCH: ChallengeSpec(1, 75, "Win 1 match today"),
    ChallengeType.SOCIAL_PLAYER: ChallengeSpec(2, 100, "Play 2 new opponents"),
    ChallengeType.PERFECT_GAME: ChallengeSpec(1, 150, "Win a match without conceding a point"),
    ChallengeType.WIN_STREAK: ChallengeSpec(3, 125, "Win 3 matches in a row"),
}


class ChallengeEvent(str, Enum):
    """Qualifying events reported by settlement."""
    MATCH_PLAYED = "match_played"
    MATCH_WON = "match_won"
    MATCH_LOST = "match_lost"
    PERFECT_GAME = "perfect_game"
    SOCIAL_MATCH = "social_match"


_EVENT_TYPES: dict[ChallengeEvent, tuple[ChallengeType, ...]] = {
    ChallengeEvent.MATCH_PLAYED: (ChallengeType.PLAY_MATCH,),
    ChallengeEvent.MATCH_WON: (ChallengeType.WIN_MATCH, ChallengeType.WIN_STREAK),
    ChallengeEvent.MATCH_LOST: (),
    ChallengeEvent.PERFECT_GAME: (ChallengeType.PERFECT_GAME,),
    ChallengeEvent.SOCIAL_MATCH: (ChallengeType.SOCIAL_PLAYER,),
}


def new_challenge(challenge_type: ChallengeType, day: date) -> DailyChallenge:
    spec = CHALLENGE_CATALOG[challenge_type]
    return DailyChallenge(type=challenge_type, day=day, target=spec.target, xp_reward=spec.xp_reward)


class ChallengeTracker:
    """
    Holds the active challenges for one player and one day.
    record() advances matching challenges by exactly 1, capped at target,
    and returns the ones that completed on this call.
    """

    def __init__(self, rng: SeededRNG, size: int = DEFAULT_CHALLENGES_PER_DAY) -> None:
        if not 1 <= size <= len(CHALLENGE_CATALOG):
            raise ValueError(f"size must be between 1 and {len(CHALLENGE_CATALOG)} (got {size})")
        self._rng = rng
        self._size = size
        self._day: date | None = None
        self._challenges: list[DailyChallenge] = []

    @property
    def day(self) -> date | None:
        return self._day

    @property
    def challenges(self) -> tuple[DailyChallenge, ...]:
        return tuple(self._challenges)

    def regenerate(self, day: date) -> list[DailyChallenge]:
        """Draw a fresh set of distinct types for `day`. Previous challenges are discarded."""
        types = self._rng.sample(list(ChallengeType), self._size)
        self._challenges = [new_challenge(t, day) for t in types]
        self._day = day
        logger.info("Daily challenges for %s: %s", day.isoformat(), ", ".join(t.value for t in types))
        return list(self._challenges)

    def ensure_day(self, day: date) -> bool:
        """Regenerate only when the day changed. Returns True if it regenerated."""
        if self._day == day:
            return False
        self.regenerate(day)
        return True

    def record(self, event: ChallengeEvent) -> list[DailyChallenge]:
        if event == ChallengeEvent.MATCH_LOST:
            for ch in self._challenges:
                if ch.type == ChallengeType.WIN_STREAK and not ch.completed:
                    ch.progress = 0
            return []
        matching = _EVENT_TYPES[event]
        completed: list[DailyChallenge] = []
        for ch in self._challenges:
            if ch.completed or ch.type not in matching:
                continue
            ch.progress = min(ch.target, ch.progress + 1)
            if ch.progress >= ch.target:
                ch.completed = True
                completed.append(ch)
                logger.info("Daily challenge completed: %s", ch.type.value)
        return completed

    def to_dict(self) -> dict:
        return {
            "day": self._day.isoformat() if self._day else None,
            "challenges": [c.to_dict() for c in self._challenges],
        }

    def state(self) -> tuple:
        """Opaque copy of day, challenges and RNG position, for restore()."""
        return (self._day, copy.deepcopy(self._challenges), self._rng.getstate())

    def restore(self, state: tuple) -> None:
        day, challenges, rng_state = state
        self._day = day
        self._challenges = copy.deepcopy(challenges)
        self._rng.setstate(rng_state)
