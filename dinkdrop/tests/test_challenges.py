"""
Tests for daily challenge generation and progress tracking.
"""
from __future__ import annotations

from datetime import date
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from dinkdrop.challenges import CHALLENGE_CATALOG, ChallengeEvent, ChallengeTracker, new_challenge
from dinkdrop.models import ChallengeType
from dinkdrop.rng import SeededRNG

DAY = date(2025, 3, 14)


def _tracker_with(*types: ChallengeType) -> ChallengeTracker:
    tracker = ChallengeTracker(SeededRNG(1), size=len(types))
    tracker.regenerate(DAY)
    # pin the set so tests don't depend on the shuffle
    tracker._challenges = [new_challenge(t, DAY) for t in types]
    return tracker


def test_regenerate_draws_distinct_types():
    tracker = ChallengeTracker(SeededRNG(7))
    challenges = tracker.regenerate(DAY)
    assert len(challenges) == 3
    assert len({c.type for c in challenges}) == 3
    assert all(c.day == DAY and c.progress == 0 and not c.completed for c in challenges)


def test_regenerate_is_deterministic_under_seed():
    a = ChallengeTracker(SeededRNG(99)).regenerate(DAY)
    b = ChallengeTracker(SeededRNG(99)).regenerate(DAY)
    assert [c.type for c in a] == [c.type for c in b]


def test_catalog_targets_and_rewards():
    assert CHALLENGE_CATALOG[ChallengeType.PLAY_MATCH].target == 1
    assert CHALLENGE_CATALOG[ChallengeType.SOCIAL_PLAYER].target == 2
    assert CHALLENGE_CATALOG[ChallengeType.WIN_STREAK].target == 3
    assert CHALLENGE_CATALOG[ChallengeType.PERFECT_GAME].xp_reward == 150


def test_ensure_day_regenerates_only_on_new_day():
    tracker = ChallengeTracker(SeededRNG(3))
    assert tracker.ensure_day(DAY) is True
    first = tracker.challenges
    assert tracker.ensure_day(DAY) is False
    assert tracker.challenges == first
    assert tracker.ensure_day(date(2025, 3, 15)) is True
    assert all(c.day == date(2025, 3, 15) for c in tracker.challenges)


def test_record_completes_single_target_challenge():
    tracker = _tracker_with(ChallengeType.PLAY_MATCH, ChallengeType.WIN_MATCH)
    done = tracker.record(ChallengeEvent.MATCH_PLAYED)
    assert [c.type for c in done] == [ChallengeType.PLAY_MATCH]
    assert tracker.challenges[0].completed
    assert not tracker.challenges[1].completed


def test_progress_caps_at_target_and_completes_once():
    tracker = _tracker_with(ChallengeType.SOCIAL_PLAYER)
    assert tracker.record(ChallengeEvent.SOCIAL_MATCH) == []
    assert len(tracker.record(ChallengeEvent.SOCIAL_MATCH)) == 1
    assert tracker.record(ChallengeEvent.SOCIAL_MATCH) == []
    ch = tracker.challenges[0]
    assert ch.progress == ch.target == 2
    assert ch.progress_fraction == 1.0


def test_win_streak_resets_on_loss():
    tracker = _tracker_with(ChallengeType.WIN_STREAK)
    tracker.record(ChallengeEvent.MATCH_WON)
    tracker.record(ChallengeEvent.MATCH_WON)
    tracker.record(ChallengeEvent.MATCH_LOST)
    assert tracker.challenges[0].progress == 0
    for _ in range(3):
        tracker.record(ChallengeEvent.MATCH_WON)
    assert tracker.challenges[0].completed


def test_unrelated_event_leaves_progress_alone():
    tracker = _tracker_with(ChallengeType.PERFECT_GAME)
    tracker.record(ChallengeEvent.MATCH_WON)
    assert tracker.challenges[0].progress == 0


def test_state_restore_round_trip():
    tracker = _tracker_with(ChallengeType.PLAY_MATCH)
    saved = tracker.state()
    tracker.record(ChallengeEvent.MATCH_PLAYED)
    tracker.restore(saved)
    assert tracker.challenges[0].progress == 0
    assert not tracker.challenges[0].completed


def test_invalid_size_rejected():
    with pytest.raises(ValueError):
        ChallengeTracker(SeededRNG(1), size=0)
    with pytest.raises(ValueError):
        ChallengeTracker(SeededRNG(1), size=len(CHALLENGE_CATALOG) + 1)
