"""
Achievement catalog: predicates over a player's updated stats.
The catalog is data; settlement receives it as a parameter so callers can supply their own.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Iterable

from dinkdrop.models import Player
from dinkdrop.progression import calculate_level


@dataclass(frozen=True)
class Achievement:
    id: str
    title: str
    description: str
    predicate: Callable[[Player], bool]

    def to_dict(self) -> dict[str, str]:
        return {"id": self.id, "title": self.title, "description": self.description}


DEFAULT_ACHIEVEMENTS: tuple[Achievement, ...] = (
    Achievement("first_match", "First Dink", "Play your first match", lambda p: p.total_matches >= 1),
    Achievement("first_win", "First Victory", "Win your first match", lambda p: p.wins >= 1),
    Achievement("ten_matches", "Regular", "Play 10 matches", lambda p: p.total_matches >= 10),
    Achievement("fifty_matches", "Court Rat", "Play 50 matches", lambda p: p.total_matches >= 50),
    Achievement("streak_5", "On Fire", "Reach a 5-match win streak", lambda p: p.longest_win_streak >= 5),
    Achievement("streak_10", "Unstoppable", "Reach a 10-match win streak", lambda p: p.longest_win_streak >= 10),
    Achievement("rating_1200", "Contender", "Reach a 1200 rating", lambda p: p.rating >= 1200),
    Achievement("rating_1500", "Elite", "Reach a 1500 rating", lambda p: p.rating >= 1500),
    Achievement("social_5", "Social Butterfly", "Play 5 different opponents", lambda p: len(p.opponent_ids) >= 5),
    Achievement("level_5", "Rising Star", "Reach level 5", lambda p: calculate_level(p.experience) >= 5),
)


def detect_new_achievements(player: Player, catalog: Iterable[Achievement]) -> list[Achievement]:
    """Achievements whose predicate now holds and that the player has not unlocked yet."""
    return [a for a in catalog if a.id not in player.achievement_ids and a.predicate(player)]


def unlock(player: Player, achievements: Iterable[Achievement]) -> None:
    for a in achievements:
        player.achievement_ids.add(a.id)
