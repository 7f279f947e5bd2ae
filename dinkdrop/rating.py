"""
ELO rating engine. Pure functions, no state.
Binary win/loss only: draws are deliberately not modeled.
"""
from __future__ import annotations

import math

from dinkdrop.errors import InvalidStateError

# ---------- Constants ----------
DEFAULT_RATING = 1000
DEFAULT_K_FACTOR = 32
PROVISIONAL_K_FACTOR = 40
PROVISIONAL_MATCH_COUNT = 5
RATING_SCALE = 400.0


def expected_score(rating: int, opponent_rating: int) -> float:
    """
    Logistic expected score for `rating` against `opponent_rating`, in (0, 1).
    expected_score(r, r) == 0.5 and expected_score(a, b) + expected_score(b, a) == 1.
    """
    return 1.0 / (1.0 + math.pow(10.0, (opponent_rating - rating) / RATING_SCALE))


win_probability = expected_score


def round_half_away(value: float) -> int:
    """Round to nearest integer, .5 away from zero (Python's round() is banker's)."""
    if value >= 0:
        return int(math.floor(value + 0.5))
    return -int(math.floor(-value + 0.5))


def rating_delta(current: int, opponent: int, did_win: bool, k_factor: float = DEFAULT_K_FACTOR) -> int:
    """Signed rating change for one side."""
    actual = 1.0 if did_win else 0.0
    return round_half_away(k_factor * (actual - expected_score(current, opponent)))


def new_rating(current: int, opponent: int, did_win: bool, k_factor: float = DEFAULT_K_FACTOR) -> int:
    """current + round(k * (actual - expected)). 1000 vs 1000, K=32: win 1016, loss 984."""
    return current + rating_delta(current, opponent, did_win, k_factor)


def updated_ratings(
    rating_a: int,
    rating_b: int,
    score_a: int,
    score_b: int,
    k_factor: float = DEFAULT_K_FACTOR,
) -> tuple[int, int]:
    """New (rating_a, rating_b) from a final score. Equal scores are rejected."""
    if score_a == score_b:
        raise InvalidStateError("Draws are not supported; scores must differ")
    a_won = score_a > score_b
    return (
        new_rating(rating_a, rating_b, a_won, k_factor),
        new_rating(rating_b, rating_a, not a_won, k_factor),
    )


def k_factor_for(matches_played: int, standard: float = DEFAULT_K_FACTOR) -> float:
    """Higher K while a player is provisional (first few matches)."""
    if matches_played < PROVISIONAL_MATCH_COUNT:
        return PROVISIONAL_K_FACTOR
    return standard
