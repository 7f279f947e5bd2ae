"""
Sample players and match play for demos, seeding and tests.
All randomness comes from the injected SeededRNG, so a seed reproduces the same data.
"""
from __future__ import annotations

from datetime import date, timedelta
from typing import Any

from dinkdrop.logger import setup_logger
from dinkdrop.models import MatchType, Player
from dinkdrop.rng import SeededRNG
from dinkdrop.services.core import DinkDropCore
from dinkdrop.services.settlement import SettlementOutcome

logger = setup_logger(__name__)

SAMPLE_NAMES = (
    "Sarah Chen", "Mike Johnson", "Emma Wilson", "Alex Turner",
    "Lisa Park", "David Kim", "Rachel Green", "Tom Brown",
)
SAMPLE_LOCATIONS = ("San Francisco", "Los Angeles", "New York", "Seattle")

WINNING_SCORE = 11


def _slug(name: str) -> str:
    return name.lower().replace(" ", "-")


def generate_sample_players(rng: SeededRNG, count: int = 8, fresh: bool = False) -> list[Player]:
    """
    Players with plausible history (or a clean slate with fresh=True).
    Names cycle with a numeric suffix past the built-in list.
    """
    players = []
    for i in range(count):
        name = SAMPLE_NAMES[i % len(SAMPLE_NAMES)]
        if i >= len(SAMPLE_NAMES):
            name = f"{name} {i // len(SAMPLE_NAMES) + 1}"
        player = Player(
            id=_slug(name),
            display_name=name,
            rating=rng.randint(800, 2000) if not fresh else 1000,
            location=rng.choice(SAMPLE_LOCATIONS),
        )
        if not fresh:
            total = rng.randint(5, 100)
            wins = rng.randint(0, total)
            player.total_matches = total
            player.wins = wins
            player.losses = total - wins
            player.win_streak = rng.randint(0, min(wins, 10))
            player.longest_win_streak = max(player.win_streak, rng.randint(0, min(wins, 12)))
            player.experience = rng.randint(100, 5000)
            player.points_scored = total * rng.randint(6, 11)
            player.points_conceded = total * rng.randint(4, 11)
        players.append(player)
    return players


def generate_rating_history(
    rng: SeededRNG,
    days: int = 30,
    start_rating: int = 1000,
    end: date | None = None,
) -> list[dict[str, Any]]:
    """Daily rating points ending at `end`: 0-3 matches a day, +/-10 per net win."""
    end = end or date.today()
    rating = start_rating
    history = []
    for offset in range(days - 1, -1, -1):
        matches = rng.randint(0, 3)
        wins = rng.randint(0, matches)
        rating += (wins - (matches - wins)) * 10
        history.append({
            "date": (end - timedelta(days=offset)).isoformat(),
            "rating": rating,
            "matches": matches,
            "wins": wins,
        })
    return history


def random_score(rng: SeededRNG) -> tuple[int, int]:
    """A finished game to 11: (winner points, loser points)."""
    return (WINNING_SCORE, rng.randint(0, WINNING_SCORE - 2))


def play_sample_matches(
    core: DinkDropCore,
    rng: SeededRNG,
    player_ids: list[str],
    rounds: int = 1,
    match_type: MatchType = MatchType.RANKED_SINGLES,
) -> list[SettlementOutcome]:
    """
    Drive full matches through the core: everyone joins, both sides accept,
    a random score is recorded and the first player of each match settles it.
    """
    outcomes: list[SettlementOutcome] = []
    for _ in range(rounds):
        order = rng.sample(list(player_ids), len(player_ids))
        proposals = []
        for pid in order:
            joined = core.join_queue(pid, match_type)
            if joined.proposal is not None:
                proposals.append(joined.proposal)
        for proposal in proposals:
            first, second = proposal.player_ids
            core.respond_to_proposal(proposal.id, first, True)
            confirmed = core.respond_to_proposal(proposal.id, second, True)
            match = confirmed.match
            if match is None:
                continue
            winner_pts, loser_pts = random_score(rng)
            if rng.random() < 0.5:
                core.record_score(match.id, winner_pts, loser_pts)
            else:
                core.record_score(match.id, loser_pts, winner_pts)
            outcomes.append(core.settle_match(match.id, None, match.player_a_id))
        # odd player out goes home
        for pid in order:
            core.leave_queue(pid)
    logger.info("Played %d sample matches", len(outcomes))
    return outcomes
