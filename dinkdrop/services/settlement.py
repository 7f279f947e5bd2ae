"""
Match settlement: applies a finished match to both players' records.

Order per player: stats, points, monthly bucket, rating, achievements, XP.
Then, for each side with a session: daily challenges and notifications.
All-or-nothing: both players and the session challenge trackers are snapshotted
first and restored if anything raises; the match is marked settled and written
to match history only on success.
"""
from __future__ import annotations

import asyncio
import copy
import functools
import threading
from contextlib import ExitStack
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Iterable

from dinkdrop import rating as rating_engine
from dinkdrop.achievements import DEFAULT_ACHIEVEMENTS, Achievement, detect_new_achievements, unlock
from dinkdrop.challenges import ChallengeEvent
from dinkdrop.clock import Clock, utc_now
from dinkdrop.errors import InvalidStateError, NotFoundError, PreconditionError
from dinkdrop.logger import setup_logger
from dinkdrop.models import (
    DailyChallenge,
    Match,
    MatchResult,
    MatchStatus,
    Notification,
    NotificationType,
    Player,
)
from dinkdrop.notifications import make_notification
from dinkdrop.persistence.store import PlayerStore
from dinkdrop.progression import (
    RewardOutcome,
    XPReward,
    apply_reward,
    calculate_level,
    grant_experience,
    streak_reward,
)
from dinkdrop.services.sessions import PlayerSession

logger = setup_logger(__name__)


@dataclass
class SettlementOutcome:
    """Everything a settlement changed, keyed by player id where it applies to both sides."""
    match: Match
    updated_players: tuple[Player, Player]
    notifications: list[Notification] = field(default_factory=list)
    achievements: dict[str, list[Achievement]] = field(default_factory=dict)
    rating_before: dict[str, int] = field(default_factory=dict)
    rating_after: dict[str, int] = field(default_factory=dict)
    rewards: dict[str, list[RewardOutcome]] = field(default_factory=dict)
    completed_challenges: list[DailyChallenge] = field(default_factory=list)
    opponent_notifications: list[Notification] = field(default_factory=list)
    opponent_completed_challenges: list[DailyChallenge] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "match": self.match.to_dict(),
            "players": [p.to_dict() for p in self.updated_players],
            "notifications": [n.to_dict() for n in self.notifications],
            "achievements": {pid: [a.to_dict() for a in al] for pid, al in self.achievements.items()},
            "rating_before": dict(self.rating_before),
            "rating_after": dict(self.rating_after),
            "xp_gained": {pid: sum(r.amount for r in rl) for pid, rl in self.rewards.items()},
            "completed_challenges": [c.to_dict() for c in self.completed_challenges],
            "opponent_completed_challenges": [c.to_dict() for c in self.opponent_completed_challenges],
        }


def _format_delta(delta: int) -> str:
    return f"+{delta}" if delta >= 0 else str(delta)


def apply_match_stats(player: Player, result: MatchResult, when: datetime, rating_delta: int) -> None:
    """Counters, streak, points, monthly bucket and rating for one side."""
    player.total_matches += 1
    if result.is_win:
        player.wins += 1
        player.win_streak += 1
        player.longest_win_streak = max(player.longest_win_streak, player.win_streak)
    else:
        player.losses += 1
        player.win_streak = 0
    player.points_scored += result.points_scored
    player.points_conceded += result.points_conceded
    player.rating += rating_delta

    bucket = player.period(when)
    bucket.matches += 1
    if result.is_win:
        bucket.wins += 1
    bucket.points_scored += result.points_scored
    bucket.points_conceded += result.points_conceded
    bucket.rating_change += rating_delta


def match_rewards(player: Player, result: MatchResult, first_meeting: bool) -> list[XPReward]:
    """XP rewards earned by one side, in grant order. Expects stats already applied."""
    rewards = [XPReward.MATCH_WIN if result.is_win else XPReward.MATCH_LOSS]
    if result.is_perfect_game:
        rewards.append(XPReward.PERFECT_GAME)
    if result.is_win:
        milestone = streak_reward(player.win_streak)
        if milestone is not None:
            rewards.append(milestone)
    if first_meeting:
        rewards.append(XPReward.SOCIAL_MATCH)
    return rewards


class MatchSettlement:
    def __init__(
        self,
        store: PlayerStore,
        clock: Clock = utc_now,
        achievements: Iterable[Achievement] = DEFAULT_ACHIEVEMENTS,
        k_factor: int = rating_engine.DEFAULT_K_FACTOR,
        provisional_k: bool = False,
    ) -> None:
        self._store = store
        self._clock = clock
        self._achievements = tuple(achievements)
        self._k_factor = k_factor
        self._provisional_k = provisional_k
        self._player_locks: dict[str, threading.Lock] = {}
        self._registry_lock = threading.Lock()

    def _lock_for(self, player_id: str) -> threading.Lock:
        with self._registry_lock:
            lock = self._player_locks.get(player_id)
            if lock is None:
                lock = threading.Lock()
                self._player_locks[player_id] = lock
            return lock

    def _k_for(self, player: Player) -> float:
        if self._provisional_k:
            return rating_engine.k_factor_for(player.total_matches, self._k_factor)
        return self._k_factor

    def _load(self, player_id: str) -> Player:
        player = self._store.get(player_id)
        if player is None:
            raise NotFoundError(f"Player not found: {player_id}")
        return player

    def settle(
        self,
        match: Match,
        result: MatchResult | None,
        context: PlayerSession | None,
        opponent_context: PlayerSession | None = None,
    ) -> SettlementOutcome:
        """
        Settle `match` from the current player's side. `result` None derives it from
        the recorded score. With `opponent_context` the opponent's challenges advance
        and its notifications go to that session's feed.
        Raises PreconditionError without a current player in the match,
        InvalidStateError for unscored/settled/inconsistent results,
        NotFoundError for players missing from the store.
        """
        if context is None:
            raise PreconditionError("Settlement requires a current player")
        me_id = context.player_id
        if not match.has_player(me_id):
            raise PreconditionError(f"Current player {me_id} is not in match {match.id}")
        if not match.is_scored:
            raise InvalidStateError(f"Match {match.id} has no final score")
        if match.is_settled:
            raise InvalidStateError(f"Match {match.id} is already settled")
        opp_id = match.opponent_of(me_id)
        if opponent_context is not None and opponent_context.player_id != opp_id:
            raise PreconditionError(f"Session for {opponent_context.player_id} is not the opponent {opp_id}")
        if result is None:
            result = MatchResult.from_match(match, me_id)
        scored, conceded = match.scores_for(me_id)
        if result.is_win != (scored > conceded):
            raise InvalidStateError(
                f"Result ({'win' if result.is_win else 'loss'}) contradicts score {scored}-{conceded}"
            )
        if (result.points_scored, result.points_conceded) != (scored, conceded):
            raise InvalidStateError(
                f"Result points {result.points_scored}-{result.points_conceded} "
                f"contradict score {scored}-{conceded}"
            )

        sessions = [s for s in (context, opponent_context) if s is not None]
        with ExitStack() as stack:
            for pid in sorted((me_id, opp_id)):
                stack.enter_context(self._lock_for(pid))
            # re-check under the player locks: a concurrent settle may have won
            if match.is_settled:
                raise InvalidStateError(f"Match {match.id} is already settled")
            me = self._load(me_id)
            opp = self._load(opp_id)
            snapshots = (copy.deepcopy(me), copy.deepcopy(opp))
            tracker_states = [(s, s.tracker.state()) for s in sessions]
            try:
                outcome = self._apply(match, result, context, opponent_context, me, opp)
                self._store.save_many((me, opp))
            except BaseException:
                for live, saved in zip((me, opp), snapshots):
                    live.__dict__.update(saved.__dict__)
                for session, state in tracker_states:
                    session.tracker.restore(state)
                logger.error("Settlement of match %s failed; players restored", match.id)
                raise
            self._mark_settled(match, me, outcome)
            self._store.record_match(match)

        context.feed.extend(outcome.notifications)
        if opponent_context is not None:
            opponent_context.feed.extend(outcome.opponent_notifications)
        logger.info(
            "Settled match %s: %s %s, rating %d -> %d",
            match.id, me_id, "won" if result.is_win else "lost",
            outcome.rating_before[me_id], outcome.rating_after[me_id],
        )
        return outcome

    async def settle_async(
        self,
        match: Match,
        result: MatchResult | None,
        context: PlayerSession | None,
        opponent_context: PlayerSession | None = None,
    ) -> SettlementOutcome:
        """
        Offload settle() to a worker thread. Cancelling the awaiting task does not stop
        the worker: the settlement either completes in full (history included) or not at all.
        """
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self.settle, match, result, context, opponent_context)
        )

    # ---------- Internals ----------

    def _rating_deltas(self, match: Match, result: MatchResult, me: Player, opp: Player) -> tuple[int, int]:
        if result.rating_delta is not None:
            return (result.rating_delta, -result.rating_delta)
        if not match.match_type.is_ranked:
            return (0, 0)
        return (
            rating_engine.rating_delta(me.rating, opp.rating, result.is_win, self._k_for(me)),
            rating_engine.rating_delta(opp.rating, me.rating, not result.is_win, self._k_for(opp)),
        )

    def _apply(
        self,
        match: Match,
        result: MatchResult,
        context: PlayerSession,
        opponent_context: PlayerSession | None,
        me: Player,
        opp: Player,
    ) -> SettlementOutcome:
        now = self._clock()
        my_delta, opp_delta = self._rating_deltas(match, result, me, opp)
        opp_result = result.mirrored(opp_delta)
        outcome = SettlementOutcome(
            match=match,
            updated_players=(me, opp),
            rating_before={me.id: me.rating, opp.id: opp.rating},
        )

        first_meeting: dict[str, bool] = {}
        for player, res, delta, other in ((me, result, my_delta, opp), (opp, opp_result, opp_delta, me)):
            first_meeting[player.id] = other.id not in player.opponent_ids
            apply_match_stats(player, res, match.created_at, delta)
            player.opponent_ids.add(other.id)

            unlocked = detect_new_achievements(player, self._achievements)
            unlock(player, unlocked)
            outcome.achievements[player.id] = unlocked
            granted = [apply_reward(player, XPReward.ACHIEVEMENT_EARNED, a.title) for a in unlocked]
            granted += [apply_reward(player, r) for r in match_rewards(player, res, first_meeting[player.id])]
            outcome.rewards[player.id] = granted

        outcome.rating_after = {me.id: me.rating, opp.id: opp.rating}

        outcome.notifications, outcome.completed_challenges = self._session_updates(
            match, me, result, context, first_meeting[me.id], outcome, now,
        )
        if opponent_context is not None:
            outcome.opponent_notifications, outcome.opponent_completed_challenges = self._session_updates(
                match, opp, opp_result, opponent_context, first_meeting[opp.id], outcome, now,
            )
        return outcome

    def _session_updates(
        self,
        match: Match,
        player: Player,
        result: MatchResult,
        session: PlayerSession,
        first_meeting: bool,
        outcome: SettlementOutcome,
        now: datetime,
    ) -> tuple[list[Notification], list[DailyChallenge]]:
        """Challenges, challenge XP and the notification list for one side's session."""
        notes: list[Notification] = []
        for a in outcome.achievements[player.id]:
            notes.append(make_notification(
                NotificationType.ACHIEVEMENT, "Achievement Unlocked!", a.title, now,
                {"achievement": a.id},
            ))

        completed: list[DailyChallenge] = []
        for event in self._challenge_events(result, first_meeting):
            for ch in session.record(event):
                completed.append(ch)
                granted = grant_experience(player, ch.xp_reward, f"daily challenge: {ch.type.value}")
                outcome.rewards[player.id].append(granted)
                notes.append(make_notification(
                    NotificationType.CHALLENGE_COMPLETE, "Challenge Complete!",
                    f"{ch.type.value.replace('_', ' ').capitalize()} (+{ch.xp_reward} XP)", now,
                    {"challenge": ch.type.value, "xp": ch.xp_reward},
                ))

        if any(r.leveled_up for r in outcome.rewards[player.id]):
            new_level = calculate_level(player.experience)
            notes.append(make_notification(
                NotificationType.LEVEL_UP, "Level Up!", f"You reached level {new_level}!", now,
                {"level": new_level},
            ))

        before, after = outcome.rating_before[player.id], outcome.rating_after[player.id]
        notes.append(make_notification(
            NotificationType.MATCH_COMPLETE,
            "Victory!" if result.is_win else "Match Complete",
            f"ELO: {before} → {after} ({_format_delta(after - before)})",
            now,
            {
                "match_id": match.id,
                "rating_before": before,
                "rating_after": after,
                "rating_delta": after - before,
            },
        ))
        return notes, completed

    @staticmethod
    def _challenge_events(result: MatchResult, first_meeting: bool) -> list[ChallengeEvent]:
        events = [ChallengeEvent.MATCH_PLAYED]
        events.append(ChallengeEvent.MATCH_WON if result.is_win else ChallengeEvent.MATCH_LOST)
        if result.is_perfect_game:
            events.append(ChallengeEvent.PERFECT_GAME)
        if first_meeting:
            events.append(ChallengeEvent.SOCIAL_MATCH)
        return events

    def _mark_settled(self, match: Match, me: Player, outcome: SettlementOutcome) -> None:
        deltas = {
            pid: outcome.rating_after[pid] - outcome.rating_before[pid] for pid in match.player_ids
        }
        scored, conceded = match.scores_for(me.id)
        match.winner_id = me.id if scored > conceded else match.opponent_of(me.id)
        match.rating_delta_a = deltas[match.player_a_id]
        match.rating_delta_b = deltas[match.player_b_id]
        match.settled_at = self._clock()
        match.status = MatchStatus.COMPLETED
