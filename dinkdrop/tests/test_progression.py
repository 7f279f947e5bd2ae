"""
Tests for XP, levels and reward application.
"""
from __future__ import annotations

from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from dinkdrop.models import Player
from dinkdrop.progression import (
    XPReward,
    apply_reward,
    calculate_level,
    grant_experience,
    level_span,
    streak_reward,
    xp_progress,
    xp_required_for_level,
    xp_to_next_level,
)


def test_level_boundaries():
    assert calculate_level(0) == 1
    assert calculate_level(99) == 1
    assert calculate_level(100) == 2
    assert calculate_level(219) == 2
    assert calculate_level(220) == 3


def test_negative_xp_is_level_one():
    assert calculate_level(-50) == 1


def test_level_is_non_decreasing():
    levels = [calculate_level(xp) for xp in range(0, 6000, 7)]
    assert levels == sorted(levels)


def test_required_xp_matches_level_start():
    assert xp_required_for_level(1) == 0
    assert xp_required_for_level(2) == 100
    assert xp_required_for_level(3) == 220
    for level in range(1, 15):
        start = xp_required_for_level(level)
        assert calculate_level(start) == level
        if start > 0:
            assert calculate_level(start - 1) == level - 1


def test_spans_grow():
    assert level_span(1) == 100
    assert level_span(2) == 120
    assert all(level_span(n + 1) > level_span(n) for n in range(1, 20))


def test_xp_progress_inside_level():
    p = xp_progress(150)
    assert p.current == 50
    assert p.required == 120
    assert p.progress == pytest.approx(50 / 120)
    assert 0.0 <= xp_progress(0).progress < 1.0


def test_xp_progress_in_unit_interval_everywhere():
    for xp in range(0, 3000, 13):
        p = xp_progress(xp)
        assert 0 <= p.current < p.required
        assert 0.0 <= p.progress < 1.0


def test_xp_to_next_level():
    assert xp_to_next_level(0) == 100
    assert xp_to_next_level(150) == 70


def test_streak_milestones_exact_only():
    assert streak_reward(3) == XPReward.WIN_STREAK_3
    assert streak_reward(5) == XPReward.WIN_STREAK_5
    assert streak_reward(10) == XPReward.WIN_STREAK_10
    assert streak_reward(4) is None
    assert streak_reward(11) is None


def test_apply_reward_detects_level_up():
    p = Player(id="p1", display_name="P1", experience=50)
    out = apply_reward(p, XPReward.MATCH_WIN)
    assert p.experience == 150
    assert out.amount == 100
    assert out.old_level == 1 and out.new_level == 2
    assert out.leveled_up


def test_apply_reward_without_level_up():
    p = Player(id="p1", display_name="P1")
    out = apply_reward(p, XPReward.MATCH_LOSS, "Match participation")
    assert p.experience == 25
    assert not out.leveled_up
    assert out.reason == "Match participation"


def test_grant_experience_can_skip_levels():
    p = Player(id="p1", display_name="P1")
    out = grant_experience(p, 400, "bulk")
    assert out.new_level == calculate_level(400)
    assert out.new_level >= 3
