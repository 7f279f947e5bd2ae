"""
Derived player statistics and match predictions.
Read-only: consumes Player records, returns structured stats dicts.
Used by GET /players/{id}/stats. No persistence, no mutation.
"""
from __future__ import annotations

import asyncio
import functools
from datetime import datetime
from typing import Any

from dinkdrop import rating as rating_engine
from dinkdrop.models import Player, period_key
from dinkdrop.progression import calculate_level, xp_progress

# Matches played by the less experienced side at which a prediction is fully trusted
_CONFIDENT_AFTER_MATCHES = 20


def _per_match(total: int, matches: int) -> float:
    return round(total / matches, 2) if matches else 0.0


def monthly_trend(player: Player, months: int = 6) -> list[dict[str, Any]]:
    """Most recent `months` monthly buckets, oldest first."""
    keys = sorted(player.monthly_stats)[-months:] if months > 0 else []
    trend = []
    for key in keys:
        s = player.monthly_stats[key]
        trend.append({
            "period": key,
            "matches": s.matches,
            "wins": s.wins,
            "win_rate": round(s.win_rate, 3),
            "rating_change": s.rating_change,
            "avg_points_scored": _per_match(s.points_scored, s.matches),
        })
    return trend


def player_overview(player: Player, now: datetime | None = None) -> dict[str, Any]:
    """Overview, performance, streaks and progression for one player."""
    current = player.monthly_stats.get(period_key(now)) if now is not None else None
    return {
        "player_id": player.id,
        "display_name": player.display_name,
        "overview": {
            "total_matches": player.total_matches,
            "wins": player.wins,
            "losses": player.losses,
            "win_rate": round(player.win_rate, 3),
            "rating": player.rating,
            "rating_change_this_month": current.rating_change if current else 0,
        },
        "performance": {
            "avg_points_scored": _per_match(player.points_scored, player.total_matches),
            "avg_points_conceded": _per_match(player.points_conceded, player.total_matches),
            "point_differential": player.points_scored - player.points_conceded,
        },
        "streaks": {
            "current": player.win_streak,
            "longest": player.longest_win_streak,
        },
        "progression": {
            "experience": player.experience,
            "level": calculate_level(player.experience),
            **xp_progress(player.experience).to_dict(),
        },
        "social": {
            "unique_opponents": len(player.opponent_ids),
            "achievements": sorted(player.achievement_ids),
        },
        "trend": monthly_trend(player),
    }


def predict_match(
    player: Player,
    opponent: Player,
    k_factor: float = rating_engine.DEFAULT_K_FACTOR,
) -> dict[str, Any]:
    """
    Win probability from the rating engine, the rating swing either way, and a
    confidence that grows with how many matches the less experienced side has played.
    """
    p = rating_engine.win_probability(player.rating, opponent.rating)
    on_win = rating_engine.rating_delta(player.rating, opponent.rating, True, k_factor)
    on_loss = rating_engine.rating_delta(player.rating, opponent.rating, False, k_factor)
    experience = min(player.total_matches, opponent.total_matches)
    confidence = min(1.0, experience / _CONFIDENT_AFTER_MATCHES)
    factors = [
        {
            "name": "rating_gap",
            "impact": round(p - 0.5, 3),
            "description": f"Rating {player.rating} vs {opponent.rating}",
        },
        {
            "name": "form",
            "impact": round(player.win_rate - opponent.win_rate, 3),
            "description": "Difference in overall win rate",
        },
    ]
    return {
        "player_id": player.id,
        "opponent_id": opponent.id,
        "win_probability": round(p, 4),
        "rating_change_on_win": on_win,
        "rating_change_on_loss": on_loss,
        "expected_rating_change": round(p * on_win + (1 - p) * on_loss, 2),
        "confidence": round(confidence, 2),
        "factors": factors,
    }


async def player_overview_async(player: Player, now: datetime | None = None) -> dict[str, Any]:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(player_overview, player, now))


async def predict_match_async(
    player: Player,
    opponent: Player,
    k_factor: float = rating_engine.DEFAULT_K_FACTOR,
) -> dict[str, Any]:
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(predict_match, player, opponent, k_factor))
