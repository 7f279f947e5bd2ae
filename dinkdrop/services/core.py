"""
DinkDropCore: the owned, session-scoped object wiring store, clock, RNG,
matchmaking queue, settlement and per-player sessions together.
Create one per process/session and pass it around; nothing here is global.
"""
from __future__ import annotations

import threading
from typing import Any, Iterable

from dinkdrop import progression
from dinkdrop.achievements import DEFAULT_ACHIEVEMENTS, Achievement
from dinkdrop.clock import Clock, utc_now
from dinkdrop.config import Config
from dinkdrop.errors import NotFoundError, PreconditionError
from dinkdrop.logger import setup_logger
from dinkdrop.models import (
    DailyChallenge,
    Match,
    MatchResult,
    MatchType,
    Notification,
    Player,
    ProposalResponse,
)
from dinkdrop.persistence.store import PlayerStore
from dinkdrop.rng import SeededRNG
from dinkdrop.services import statistics
from dinkdrop.services.matchmaking import (
    JoinOutcome,
    MatchmakingQueue,
    QueueStatus,
    RespondOutcome,
    rating_band,
)
from dinkdrop.services.sessions import PlayerSession, SessionRegistry
from dinkdrop.services.settlement import MatchSettlement, SettlementOutcome

logger = setup_logger(__name__)


class DinkDropCore:
    def __init__(
        self,
        store: PlayerStore,
        config: Config | None = None,
        clock: Clock = utc_now,
        rng: SeededRNG | None = None,
        achievements: Iterable[Achievement] = DEFAULT_ACHIEVEMENTS,
    ) -> None:
        self.config = config or Config()
        self.store = store
        self.clock = clock
        self.rng = rng or SeededRNG()
        band = self.config.rating_band
        self.queue = MatchmakingQueue(
            clock=clock,
            compatibility=rating_band(band) if band is not None else None,
            proposal_timeout=self.config.proposal_timeout_seconds,
        )
        self.settlement = MatchSettlement(
            store,
            clock=clock,
            achievements=achievements,
            k_factor=self.config.k_factor,
            provisional_k=self.config.provisional_k,
        )
        self.sessions = SessionRegistry(
            self.rng,
            clock=clock,
            challenge_count=self.config.daily_challenge_count,
            notification_capacity=self.config.notification_capacity,
        )
        self._matches: dict[str, Match] = {}
        self._matches_lock = threading.Lock()

    # ---------- Lookups ----------

    def get_player(self, player_id: str) -> Player:
        player = self.store.get(player_id)
        if player is None:
            raise NotFoundError(f"Player not found: {player_id}")
        return player

    def get_match(self, match_id: str) -> Match:
        match = self._matches.get(match_id)
        if match is None:
            raise NotFoundError(f"Match not found: {match_id}")
        return match

    def session(self, player_id: str | None) -> PlayerSession:
        """Session for the current player. Missing id is a precondition failure."""
        if not player_id:
            raise PreconditionError("No current player")
        self.get_player(player_id)
        return self.sessions.get(player_id)

    # ---------- Queue ----------

    def join_queue(self, player_id: str, match_type: MatchType | str) -> JoinOutcome:
        player = self.get_player(player_id)
        self.queue.expire_proposals()
        return self.queue.join_queue(player, match_type)

    def leave_queue(self, player_id: str) -> bool:
        return self.queue.leave_queue(player_id)

    def queue_status(self, player_id: str) -> QueueStatus | None:
        self.queue.expire_proposals()
        return self.queue.status(player_id)

    def respond_to_proposal(self, proposal_id: str, player_id: str, accept: bool) -> RespondOutcome:
        response = ProposalResponse.ACCEPTED if accept else ProposalResponse.DECLINED
        outcome = self.queue.respond_to_proposal(proposal_id, player_id, response)
        if outcome.match is not None:
            with self._matches_lock:
                self._matches[outcome.match.id] = outcome.match
        return outcome

    # ---------- Matches ----------

    def record_score(self, match_id: str, score_a: int, score_b: int) -> Match:
        match = self.get_match(match_id)
        match.record_score(score_a, score_b)
        logger.info("Recorded score %d-%d for match %s", score_a, score_b, match_id)
        return match

    def settle_match(
        self,
        match_id: str,
        result: MatchResult | None,
        player_id: str | None,
    ) -> SettlementOutcome:
        match = self.get_match(match_id)
        context = self.session(player_id) if player_id else None
        return self.settlement.settle(match, result, context, self._opponent_session(match, player_id))

    async def settle_match_async(
        self,
        match_id: str,
        result: MatchResult | None,
        player_id: str | None,
    ) -> SettlementOutcome:
        match = self.get_match(match_id)
        context = self.session(player_id) if player_id else None
        return await self.settlement.settle_async(
            match, result, context, self._opponent_session(match, player_id)
        )

    def _opponent_session(self, match: Match, player_id: str | None) -> PlayerSession | None:
        if not player_id or not match.has_player(player_id):
            return None
        return self.sessions.get(match.opponent_of(player_id))

    # ---------- Progression / sessions ----------

    @staticmethod
    def calculate_level(xp: int) -> int:
        return progression.calculate_level(xp)

    @staticmethod
    def xp_progress(xp: int) -> progression.XPProgress:
        return progression.xp_progress(xp)

    def notifications(self, player_id: str) -> list[Notification]:
        return self.session(player_id).notifications()

    def challenges(self, player_id: str) -> list[DailyChallenge]:
        return self.session(player_id).challenges()

    def player_stats(self, player_id: str) -> dict[str, Any]:
        return statistics.player_overview(self.get_player(player_id), self.clock())

    def predict(self, player_id: str, opponent_id: str) -> dict[str, Any]:
        return statistics.predict_match(
            self.get_player(player_id), self.get_player(opponent_id), self.config.k_factor
        )

    def match_history(self, player_id: str, limit: int = 50) -> list[Match]:
        self.get_player(player_id)
        return self.store.match_history(player_id, limit)
