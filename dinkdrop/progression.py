"""
Experience and leveling.

Level curve: level 1 starts at 0 XP and the XP span of level n is
int(BASE_XP_PER_LEVEL * XP_MULTIPLIER ** (n - 1)), so spans are 100, 120, 144, ...
Everything here is a pure function of its inputs except apply_reward /
grant_experience, which add to a Player's experience in place.
"""
from __future__ import annotations

from dataclasses import dataclass
from enum import IntEnum

from dinkdrop.logger import setup_logger
from dinkdrop.models import Player

logger = setup_logger(__name__)

# ---------- Curve ----------
BASE_XP_PER_LEVEL = 100
XP_MULTIPLIER = 1.2


# ---------- Reward catalog ----------
class XPReward(IntEnum):
    """Experience granted per event kind."""
    MATCH_COMPLETE = 50
    MATCH_WIN = 100
    MATCH_LOSS = 25
    WIN_STREAK_3 = 75
    WIN_STREAK_5 = 150
    WIN_STREAK_10 = 300
    PERFECT_GAME = 200
    DAILY_CHALLENGE_COMPLETE = 110
    ACHIEVEMENT_EARNED = 160
    SOCIAL_MATCH = 35

    @property
    def description(self) -> str:
        return _REWARD_DESCRIPTIONS[self]


_REWARD_DESCRIPTIONS: dict[XPReward, str] = {
    XPReward.MATCH_COMPLETE: "completing a match",
    XPReward.MATCH_WIN: "winning a match",
    XPReward.MATCH_LOSS: "match participation",
    XPReward.WIN_STREAK_3: "3-match win streak",
    XPReward.WIN_STREAK_5: "5-match win streak",
    XPReward.WIN_STREAK_10: "10-match win streak",
    XPReward.PERFECT_GAME: "perfect game victory",
    XPReward.DAILY_CHALLENGE_COMPLETE: "daily challenge completion",
    XPReward.ACHIEVEMENT_EARNED: "earning an achievement",
    XPReward.SOCIAL_MATCH: "playing a new opponent",
}

STREAK_MILESTONES: dict[int, XPReward] = {
    3: XPReward.WIN_STREAK_3,
    5: XPReward.WIN_STREAK_5,
    10: XPReward.WIN_STREAK_10,
}


def streak_reward(win_streak: int) -> XPReward | None:
    """Milestone reward when the streak is exactly 3, 5 or 10; otherwise None."""
    return STREAK_MILESTONES.get(win_streak)


# ---------- Level calculations ----------


def level_span(level: int) -> int:
    """XP needed to go from `level` to `level + 1`."""
    return int(BASE_XP_PER_LEVEL * XP_MULTIPLIER ** (level - 1))


def calculate_level(xp: int) -> int:
    """Level for a cumulative XP total. Non-decreasing in xp; 0 XP is level 1."""
    xp = max(0, xp)
    level = 1
    total = 0
    span = level_span(level)
    while total + span <= xp:
        total += span
        level += 1
        span = level_span(level)
    return level


def xp_required_for_level(level: int) -> int:
    """Cumulative XP at which `level` starts."""
    return sum(level_span(n) for n in range(1, max(1, level)))


def xp_to_next_level(xp: int) -> int:
    return xp_required_for_level(calculate_level(xp) + 1) - max(0, xp)


@dataclass(frozen=True)
class XPProgress:
    """XP earned inside the current level, the level's span, and current/required."""
    current: int
    required: int
    progress: float

    def to_dict(self) -> dict[str, float | int]:
        return {"current": self.current, "required": self.required, "progress": self.progress}


def xp_progress(xp: int) -> XPProgress:
    xp = max(0, xp)
    level = calculate_level(xp)
    start = xp_required_for_level(level)
    required = xp_required_for_level(level + 1) - start
    current = xp - start
    progress = current / required if required > 0 else 0.0
    return XPProgress(current=current, required=required, progress=progress)


# ---------- Awarding ----------


@dataclass(frozen=True)
class RewardOutcome:
    """What one grant did to a player's experience."""
    amount: int
    reason: str
    old_level: int
    new_level: int

    @property
    def leveled_up(self) -> bool:
        return self.new_level > self.old_level


def grant_experience(player: Player, amount: int, reason: str) -> RewardOutcome:
    """Add `amount` XP to the player and report whether the level went up."""
    old_level = calculate_level(player.experience)
    player.experience += amount
    new_level = calculate_level(player.experience)
    logger.info("Player %s gained %d XP for %s", player.id, amount, reason)
    if new_level > old_level:
        logger.info("Player %s leveled up from %d to %d", player.id, old_level, new_level)
    return RewardOutcome(amount=amount, reason=reason, old_level=old_level, new_level=new_level)


def apply_reward(player: Player, reward: XPReward, context: str = "") -> RewardOutcome:
    return grant_experience(player, int(reward), context or reward.description)
