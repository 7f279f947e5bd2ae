"""
Tests for match settlement: stats, ratings, XP, achievements, challenges,
notifications, preconditions and all-or-nothing behavior.
"""
from __future__ import annotations

import asyncio
import threading
from pathlib import Path

import pytest

import sys
sys.path.insert(0, str(Path(__file__).resolve().parent.parent.parent))

from dinkdrop.achievements import DEFAULT_ACHIEVEMENTS, Achievement
from dinkdrop.challenges import CHALLENGE_CATALOG, ChallengeTracker
from dinkdrop.clock import ManualClock
from dinkdrop.errors import InvalidStateError, NotFoundError, PreconditionError
from dinkdrop.models import (
    ChallengeType,
    Match,
    MatchResult,
    MatchStatus,
    MatchType,
    NotificationType,
    Player,
    period_key,
)
from dinkdrop.notifications import NotificationFeed
from dinkdrop.persistence.store import InMemoryPlayerStore
from dinkdrop.progression import XPReward, calculate_level
from dinkdrop.rng import SeededRNG
from dinkdrop.services.sessions import PlayerSession
from dinkdrop.services.settlement import MatchSettlement


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def store():
    return InMemoryPlayerStore([
        Player(id="a", display_name="A"),
        Player(id="b", display_name="B"),
        Player(id="c", display_name="C"),
    ])


@pytest.fixture
def settlement(store, clock):
    return MatchSettlement(store, clock=clock)


def _session(player_id: str, clock) -> PlayerSession:
    """Session tracking every challenge type, so completions don't depend on the daily draw."""
    tracker = ChallengeTracker(SeededRNG(5), size=len(CHALLENGE_CATALOG))
    return PlayerSession(player_id, tracker, NotificationFeed(), clock)


def _match(clock, a="a", b="b", score=(11, 0), match_type=MatchType.RANKED_SINGLES, mid="m1") -> Match:
    m = Match(id=mid, match_type=match_type, player_a_id=a, player_b_id=b, created_at=clock())
    if score is not None:
        m.record_score(*score)
    return m


def test_perfect_win_updates_both_players(settlement, store, clock):
    match = _match(clock)
    out = settlement.settle(match, None, _session("a", clock))
    a, b = store.get("a"), store.get("b")

    assert (a.total_matches, a.wins, a.losses, a.win_streak) == (1, 1, 0, 1)
    assert (b.total_matches, b.wins, b.losses, b.win_streak) == (1, 0, 1, 0)
    assert (a.points_scored, a.points_conceded) == (11, 0)
    assert (b.points_scored, b.points_conceded) == (0, 11)
    assert a.rating == 1016 and b.rating == 984
    assert out.rating_before == {"a": 1000, "b": 1000}
    assert out.rating_after == {"a": 1016, "b": 984}
    assert "b" in a.opponent_ids and "a" in b.opponent_ids


def test_xp_breakdown_for_both_sides(settlement, store, clock):
    settlement.settle(_match(clock), None, _session("a", clock))
    a, b = store.get("a"), store.get("b")
    # a: first_match + first_win achievements, win, perfect game, new opponent,
    # plus play_match, win_match and perfect_game challenges
    achievements = 2 * XPReward.ACHIEVEMENT_EARNED
    match_xp = XPReward.MATCH_WIN + XPReward.PERFECT_GAME + XPReward.SOCIAL_MATCH
    challenge_xp = sum(
        CHALLENGE_CATALOG[t].xp_reward for t in CHALLENGE_CATALOG
        if t.value in ("play_match", "win_match", "perfect_game")
    )
    assert a.experience == achievements + match_xp + challenge_xp
    # b: first_match achievement, loss, new opponent; no opponent session, so no challenges
    assert b.experience == XPReward.ACHIEVEMENT_EARNED + XPReward.MATCH_LOSS + XPReward.SOCIAL_MATCH


def test_notifications_for_current_player(settlement, clock):
    session = _session("a", clock)
    out = settlement.settle(_match(clock), None, session)
    types = [n.type for n in out.notifications]
    assert types.count(NotificationType.ACHIEVEMENT) == 2
    assert types.count(NotificationType.CHALLENGE_COMPLETE) == 3
    assert types.count(NotificationType.LEVEL_UP) == 1
    assert types[-1] == NotificationType.MATCH_COMPLETE
    summary = out.notifications[-1]
    assert summary.message == "ELO: 1000 → 1016 (+16)"
    assert summary.payload["rating_delta"] == 16
    # feed is newest first
    assert session.feed.items()[0].id == summary.id
    level_up = next(n for n in out.notifications if n.type == NotificationType.LEVEL_UP)
    assert level_up.payload["level"] == calculate_level(out.updated_players[0].experience)


def test_loss_summary_shows_negative_delta(settlement, clock):
    out = settlement.settle(_match(clock, score=(4, 11)), None, _session("a", clock))
    assert out.notifications[-1].message == "ELO: 1000 → 984 (-16)"
    assert out.notifications[-1].title == "Match Complete"


def test_opponent_achievements_returned_not_notified(settlement, clock):
    out = settlement.settle(_match(clock), None, _session("a", clock))
    assert [a.id for a in out.achievements["b"]] == ["first_match"]
    assert len([n for n in out.notifications if n.type == NotificationType.ACHIEVEMENT]) == 2


def test_match_marked_settled_with_deltas(settlement, clock):
    match = _match(clock, score=(7, 11))
    settlement.settle(match, None, _session("b", clock))
    assert match.status == MatchStatus.COMPLETED
    assert match.winner_id == "b"
    assert (match.rating_delta_a, match.rating_delta_b) == (-16, 16)
    assert match.settled_at is not None


def test_monthly_bucket_uses_match_date(settlement, store, clock):
    match = _match(clock)
    settlement.settle(match, None, _session("a", clock))
    bucket = store.get("a").monthly_stats[period_key(match.created_at)]
    assert (bucket.matches, bucket.wins, bucket.rating_change) == (1, 1, 16)


def test_unranked_match_keeps_ratings(settlement, store, clock):
    match = _match(clock, match_type=MatchType.CASUAL_SINGLES)
    out = settlement.settle(match, None, _session("a", clock))
    assert store.get("a").rating == 1000 and store.get("b").rating == 1000
    assert out.notifications[-1].message.endswith("(+0)")


def test_supplied_rating_delta_is_used_and_negated(settlement, store, clock):
    result = MatchResult(is_win=True, points_scored=11, points_conceded=3, rating_delta=10)
    settlement.settle(_match(clock, score=(11, 3)), result, _session("a", clock))
    assert store.get("a").rating == 1010
    assert store.get("b").rating == 990


def test_streak_milestone_reward(settlement, store, clock):
    store.get("a").win_streak = 2
    out = settlement.settle(_match(clock, score=(11, 5)), None, _session("a", clock))
    reasons = [r.reason for r in out.rewards["a"]]
    assert XPReward.WIN_STREAK_3.description in reasons
    assert store.get("a").win_streak == 3


def test_streak_three_reward_not_regranted_at_four(settlement, store, clock):
    store.get("a").win_streak = 2
    third = settlement.settle(_match(clock, mid="m1", score=(11, 5)), None, _session("a", clock))
    fourth = settlement.settle(_match(clock, mid="m2", score=(11, 7)), None, _session("a", clock))
    reasons = [r.reason for r in third.rewards["a"] + fourth.rewards["a"]]
    assert reasons.count(XPReward.WIN_STREAK_3.description) == 1
    assert store.get("a").win_streak == 4


def test_loss_resets_streak(settlement, store, clock):
    store.get("a").win_streak = 4
    store.get("a").longest_win_streak = 4
    settlement.settle(_match(clock, score=(2, 11)), None, _session("a", clock))
    assert store.get("a").win_streak == 0
    assert store.get("a").longest_win_streak == 4


def test_social_bonus_only_first_meeting(settlement, clock):
    first = settlement.settle(_match(clock, mid="m1"), None, _session("a", clock))
    second = settlement.settle(_match(clock, mid="m2", score=(11, 5)), None, _session("a", clock))
    social = XPReward.SOCIAL_MATCH.description
    assert social in [r.reason for r in first.rewards["a"]]
    assert social not in [r.reason for r in second.rewards["a"]]


def test_settling_twice_raises(settlement, clock):
    match = _match(clock)
    settlement.settle(match, None, _session("a", clock))
    with pytest.raises(InvalidStateError):
        settlement.settle(match, None, _session("b", clock))


def test_missing_context_is_precondition_failure(settlement, clock):
    with pytest.raises(PreconditionError):
        settlement.settle(_match(clock), None, None)


def test_context_not_in_match_is_precondition_failure(settlement, clock):
    with pytest.raises(PreconditionError):
        settlement.settle(_match(clock), None, _session("c", clock))


def test_unscored_match_rejected(settlement, clock):
    with pytest.raises(InvalidStateError):
        settlement.settle(_match(clock, score=None), None, _session("a", clock))


def test_result_contradicting_score_rejected(settlement, clock):
    bogus = MatchResult(is_win=False, points_scored=11, points_conceded=2)
    with pytest.raises(InvalidStateError):
        settlement.settle(_match(clock, score=(11, 2)), bogus, _session("a", clock))


def test_result_points_contradicting_score_rejected(settlement, store, clock):
    inflated = MatchResult(is_win=True, points_scored=11, points_conceded=0)
    with pytest.raises(InvalidStateError):
        settlement.settle(_match(clock, score=(11, 5)), inflated, _session("a", clock))
    assert store.get("a").points_conceded == 0 and store.get("a").total_matches == 0
    assert store.get("b").points_scored == 0 and store.get("b").experience == 0


def test_unknown_player_not_found(settlement, clock):
    with pytest.raises(NotFoundError):
        settlement.settle(_match(clock, b="ghost"), None, _session("a", clock))


class _FailingStore(InMemoryPlayerStore):
    def save_many(self, players):
        raise RuntimeError("disk full")


def test_failed_save_leaves_everything_unchanged(clock):
    store = _FailingStore([Player(id="a", display_name="A"), Player(id="b", display_name="B")])
    settlement = MatchSettlement(store, clock=clock)
    session = _session("a", clock)
    session.ensure_day()
    before = {pid: store.get(pid).to_dict() for pid in ("a", "b")}
    challenges_before = [c.to_dict() for c in session.tracker.challenges]
    match = _match(clock)

    with pytest.raises(RuntimeError):
        settlement.settle(match, None, session)

    assert {pid: store.get(pid).to_dict() for pid in ("a", "b")} == before
    assert [c.to_dict() for c in session.tracker.challenges] == challenges_before
    assert match.status == MatchStatus.SCHEDULED
    assert len(session.feed) == 0


def test_failing_achievement_predicate_rolls_back(store, clock):
    def explode(player):
        raise ZeroDivisionError("bad predicate")

    catalog = DEFAULT_ACHIEVEMENTS + (Achievement("boom", "Boom", "Always fails", explode),)
    settlement = MatchSettlement(store, clock=clock, achievements=catalog)
    before = store.get("a").to_dict()
    with pytest.raises(ZeroDivisionError):
        settlement.settle(_match(clock), None, _session("a", clock))
    assert store.get("a").to_dict() == before
    # a retry with a sane catalog still works
    ok = MatchSettlement(store, clock=clock)
    ok.settle(_match(clock, mid="m9"), None, _session("a", clock))
    assert store.get("a").total_matches == 1


def test_provisional_k_applies_to_new_players(store, clock):
    settlement = MatchSettlement(store, clock=clock, provisional_k=True)
    settlement.settle(_match(clock), None, _session("a", clock))
    assert store.get("a").rating == 1020


def test_concurrent_settlements_sharing_a_player(settlement, store, clock):
    m1 = _match(clock, a="a", b="b", mid="m1")
    m2 = _match(clock, a="a", b="c", mid="m2", score=(3, 11))
    barrier = threading.Barrier(2)
    errors = []

    def run(match, pid):
        barrier.wait()
        try:
            settlement.settle(match, None, _session(pid, clock))
        except Exception as e:  # surfaced via the assertion below
            errors.append(e)

    threads = [
        threading.Thread(target=run, args=(m1, "b")),
        threading.Thread(target=run, args=(m2, "c")),
    ]
    for t in threads:
        t.start()
    for t in threads:
        t.join()
    assert errors == []
    a = store.get("a")
    assert a.total_matches == 2
    assert a.wins == 1 and a.losses == 1


def test_settle_async(settlement, store, clock):
    out = asyncio.run(settlement.settle_async(_match(clock), None, _session("a", clock)))
    assert out.rating_after["a"] == 1016
    assert store.get("a").total_matches == 1


def test_opponent_session_gets_challenges_and_notifications(settlement, store, clock):
    a_session, b_session = _session("a", clock), _session("b", clock)
    out = settlement.settle(_match(clock), None, a_session, b_session)

    assert [c.type for c in out.opponent_completed_challenges] == [ChallengeType.PLAY_MATCH]
    social = next(c for c in b_session.challenges() if c.type == ChallengeType.SOCIAL_PLAYER)
    assert social.progress == 1
    assert store.get("b").experience == (
        XPReward.ACHIEVEMENT_EARNED + XPReward.MATCH_LOSS + XPReward.SOCIAL_MATCH
        + CHALLENGE_CATALOG[ChallengeType.PLAY_MATCH].xp_reward
    )

    b_notes = b_session.feed.items()
    assert b_notes[0].type == NotificationType.MATCH_COMPLETE
    assert b_notes[0].message == "ELO: 1000 → 984 (-16)"
    assert NotificationType.ACHIEVEMENT in [n.type for n in b_notes]
    # each side only sees its own notifications
    assert {n.id for n in b_notes}.isdisjoint(n.id for n in a_session.feed.items())


def test_wrong_opponent_session_is_precondition_failure(settlement, clock):
    with pytest.raises(PreconditionError):
        settlement.settle(_match(clock), None, _session("a", clock), _session("c", clock))


def test_failed_save_restores_opponent_challenges(clock):
    store = _FailingStore([Player(id="a", display_name="A"), Player(id="b", display_name="B")])
    settlement = MatchSettlement(store, clock=clock)
    a_session, b_session = _session("a", clock), _session("b", clock)
    b_session.ensure_day()
    before = [c.to_dict() for c in b_session.tracker.challenges]

    with pytest.raises(RuntimeError):
        settlement.settle(_match(clock), None, a_session, b_session)

    assert [c.to_dict() for c in b_session.tracker.challenges] == before
    assert len(b_session.feed) == 0


def test_settlement_writes_match_history(settlement, store, clock):
    match = _match(clock)
    settlement.settle(match, None, _session("a", clock))
    assert [m.id for m in store.match_history("b")] == [match.id]
