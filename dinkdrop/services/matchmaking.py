"""
Matchmaking queue: per-match-type FIFO queues, proposals, responses, timeouts.

Entry state machine: waiting → proposed → {confirmed, dissolved}; waiting → left.
A player has at most one active (waiting or proposed) entry across all match types.

Concurrency: every mutation of a match type's queue runs under that type's lock;
the cross-type player index has its own lock, always taken after a type lock.
Reads (position, wait estimate, status) come from immutable snapshots published
at the end of each mutation and take no lock.
"""
from __future__ import annotations

import asyncio
import functools
import threading
import uuid
from collections import OrderedDict, deque
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable

from dinkdrop.clock import Clock, utc_now
from dinkdrop.errors import InvalidStateError, NotFoundError
from dinkdrop.logger import setup_logger
from dinkdrop.models import (
    EntryState,
    Match,
    MatchProposal,
    MatchType,
    Player,
    ProposalResponse,
    ProposalStatus,
    QueueEntry,
)

logger = setup_logger(__name__)

Compatibility = Callable[[QueueEntry, QueueEntry], bool]

DEFAULT_PROPOSAL_TIMEOUT_SECONDS = 30.0
DEFAULT_THROUGHPUT_WINDOW = 20
_RESOLVED_HISTORY = 1000

# Pairing suggestion weights: rating closeness vs. time already waited
_SUGGEST_RATING_WEIGHT = 0.7
_SUGGEST_WAIT_WEIGHT = 0.3
_SUGGEST_RATING_SPAN = 500.0
_SUGGEST_WAIT_SPAN_SECONDS = 300.0


def rating_band(max_diff: int) -> Compatibility:
    """Compatibility predicate: ratings (at join time) within max_diff of each other."""

    def _within_band(a: QueueEntry, b: QueueEntry) -> bool:
        return abs(a.rating - b.rating) <= max_diff

    return _within_band


def estimate_wait_seconds(position: int, interval_seconds: float) -> float:
    """
    Expected wait for the entry at 1-based `position`: each confirmation takes two
    players off the queue, one confirmation every `interval_seconds` on average.
    Strictly increasing in position; 0 for position 0 (already proposed).
    """
    if position <= 0:
        return 0.0
    return interval_seconds * position / 2.0


# ---------- Read models ----------


@dataclass(frozen=True)
class WaitingView:
    player_id: str
    rating: int
    enqueued_at: datetime


@dataclass(frozen=True)
class QueueSnapshot:
    """Consistent view of one match type's queue at the end of a mutation."""
    match_type: MatchType
    waiting: tuple[WaitingView, ...]
    proposed: frozenset[str]
    wait_interval_seconds: float
    taken_at: datetime

    def position(self, player_id: str) -> int | None:
        """1-based rank among waiting entries; 0 if proposed; None if not queued here."""
        if player_id in self.proposed:
            return 0
        for i, w in enumerate(self.waiting):
            if w.player_id == player_id:
                return i + 1
        return None

    def estimated_wait(self, position: int) -> float:
        return estimate_wait_seconds(position, self.wait_interval_seconds)


@dataclass(frozen=True)
class QueueStatus:
    player_id: str
    match_type: MatchType
    state: EntryState
    position: int
    estimated_wait: float
    proposal_id: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_id": self.player_id,
            "match_type": self.match_type.value,
            "state": self.state.value,
            "position": self.position,
            "estimated_wait": self.estimated_wait,
            "proposal_id": self.proposal_id,
        }


@dataclass(frozen=True)
class JoinOutcome:
    match_type: MatchType
    position: int
    estimated_wait: float
    proposal: MatchProposal | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "match_type": self.match_type.value,
            "position": self.position,
            "estimated_wait": self.estimated_wait,
            "proposal": self.proposal.to_dict() if self.proposal else None,
        }


@dataclass(frozen=True)
class RespondOutcome:
    proposal: MatchProposal
    match: Match | None = None
    dissolved: bool = False
    expired: bool = False
    new_proposals: tuple[MatchProposal, ...] = field(default_factory=tuple)

    def to_dict(self) -> dict[str, Any]:
        return {
            "proposal": self.proposal.to_dict(),
            "resolved_match": self.match.to_dict() if self.match else None,
            "dissolved": self.dissolved,
            "expired": self.expired,
            "new_proposals": [p.to_dict() for p in self.new_proposals],
        }


@dataclass(frozen=True)
class PairingSuggestion:
    player_a_id: str
    player_b_id: str
    rating_diff: int
    score: float

    def to_dict(self) -> dict[str, Any]:
        return {
            "player_a_id": self.player_a_id,
            "player_b_id": self.player_b_id,
            "rating_diff": self.rating_diff,
            "score": round(self.score, 4),
        }


# ---------- Queue ----------


class MatchmakingQueue:
    """
    Owned, session-scoped matchmaking component. Create one per session and
    discard it at session end; it holds no process-wide state.
    """

    def __init__(
        self,
        clock: Clock = utc_now,
        compatibility: Compatibility | None = None,
        proposal_timeout: float = DEFAULT_PROPOSAL_TIMEOUT_SECONDS,
        throughput_window: int = DEFAULT_THROUGHPUT_WINDOW,
    ) -> None:
        if proposal_timeout <= 0:
            raise ValueError("proposal_timeout must be positive")
        self._clock = clock
        self._compatible = compatibility
        self._proposal_timeout = proposal_timeout
        self._entries: dict[MatchType, list[QueueEntry]] = {mt: [] for mt in MatchType}
        self._by_player: dict[str, QueueEntry] = {}
        self._proposals: dict[str, MatchProposal] = {}
        self._resolved: OrderedDict[str, MatchProposal] = OrderedDict()
        self._confirmations: dict[MatchType, deque[datetime]] = {
            mt: deque(maxlen=max(2, throughput_window)) for mt in MatchType
        }
        self._type_locks: dict[MatchType, threading.Lock] = {mt: threading.Lock() for mt in MatchType}
        self._index_lock = threading.Lock()
        now = self._clock()
        self._snapshots: dict[MatchType, QueueSnapshot] = {
            mt: QueueSnapshot(mt, (), frozenset(), mt.base_wait_seconds, now) for mt in MatchType
        }

    @property
    def proposal_timeout(self) -> float:
        return self._proposal_timeout

    # ---------- Mutations ----------

    def join_queue(self, player: Player, match_type: MatchType | str) -> JoinOutcome:
        """
        Enqueue the player and try to pair them with the longest-waiting compatible
        entry of the same type. Raises InvalidStateError if already queued anywhere.
        """
        match_type = MatchType(match_type)
        with self._type_locks[match_type]:
            now = self._clock()
            with self._index_lock:
                existing = self._by_player.get(player.id)
                if existing is not None:
                    raise InvalidStateError(
                        f"Player {player.id} is already queued for {existing.match_type.value} "
                        f"({existing.state.value})"
                    )
                entry = QueueEntry(
                    player_id=player.id,
                    match_type=match_type,
                    enqueued_at=now,
                    rating=player.rating,
                )
                self._by_player[player.id] = entry
            self._entries[match_type].append(entry)
            logger.info("Player %s joined %s queue", player.id, match_type.value)
            new_proposals = self._pair_waiting(match_type, now)
            snapshot = self._publish(match_type, now)

        proposal = next((p for p in new_proposals if player.id in p.player_ids), None)
        if proposal is not None:
            return JoinOutcome(match_type=match_type, position=0, estimated_wait=0.0, proposal=proposal)
        position = snapshot.position(player.id) or 0
        return JoinOutcome(
            match_type=match_type,
            position=position,
            estimated_wait=snapshot.estimated_wait(position),
        )

    def leave_queue(self, player_id: str) -> bool:
        """Remove a waiting entry. No-op (False) if not queued or currently proposed."""
        entry = self._by_player.get(player_id)
        if entry is None:
            return False
        match_type = entry.match_type
        with self._type_locks[match_type]:
            with self._index_lock:
                current = self._by_player.get(player_id)
                if current is not entry or entry.state != EntryState.WAITING:
                    return False
                entry.state = EntryState.LEFT
                del self._by_player[player_id]
            self._entries[match_type].remove(entry)
            self._publish(match_type, self._clock())
        logger.info("Player %s left %s queue", player_id, match_type.value)
        return True

    def respond_to_proposal(
        self,
        proposal_id: str,
        player_id: str,
        response: ProposalResponse | str,
    ) -> RespondOutcome:
        """
        Record accept/decline for one side.
        Both accepted → exactly one Match. Any decline → dissolved; the decliner
        leaves the queue and the other side goes back to waiting.
        A response after the timeout resolves the proposal as expired instead.
        """
        response = ProposalResponse(response)
        if response == ProposalResponse.PENDING:
            raise InvalidStateError("Response must be accepted or declined")
        proposal = self._find_proposal(proposal_id)
        match_type = proposal.match_type
        with self._type_locks[match_type]:
            if not proposal.is_open:
                raise InvalidStateError(f"Proposal {proposal_id} is already {proposal.status.value}")
            if proposal.entry_for(player_id) is None:
                raise NotFoundError(f"Player {player_id} is not part of proposal {proposal_id}")
            now = self._clock()
            if now >= proposal.expires_at(self._proposal_timeout):
                new_proposals = self._expire(proposal, now)
                self._publish(match_type, now)
                return RespondOutcome(
                    proposal=proposal,
                    dissolved=True,
                    expired=True,
                    new_proposals=tuple(new_proposals),
                )
            if proposal.responses[player_id] != ProposalResponse.PENDING:
                raise InvalidStateError(f"Player {player_id} already responded to proposal {proposal_id}")

            proposal.responses[player_id] = response
            match: Match | None = None
            new_proposals: list[MatchProposal] = []
            if response == ProposalResponse.DECLINED:
                self._dissolve(proposal, now, removed={player_id})
                new_proposals = self._pair_waiting(match_type, now)
            elif proposal.all_accepted:
                match = self._confirm(proposal, now)
            self._publish(match_type, now)

        if response == ProposalResponse.DECLINED:
            logger.warning("Proposal %s declined by %s", proposal_id, player_id)
            return RespondOutcome(proposal=proposal, dissolved=True, new_proposals=tuple(new_proposals))
        logger.info("Player %s accepted proposal %s", player_id, proposal_id)
        return RespondOutcome(proposal=proposal, match=match)

    def expire_proposals(self, now: datetime | None = None) -> list[MatchProposal]:
        """
        Dissolve every open proposal older than the timeout. Sides that never
        responded count as declining and leave the queue; accepted sides wait again.
        """
        expired: list[MatchProposal] = []
        for match_type in MatchType:
            with self._type_locks[match_type]:
                at = now or self._clock()
                due = [
                    p for p in self._proposals.values()
                    if p.match_type == match_type and at >= p.expires_at(self._proposal_timeout)
                ]
                if not due:
                    continue
                for proposal in due:
                    self._expire(proposal, at, pair=False)
                    expired.append(proposal)
                self._pair_waiting(match_type, at)
                self._publish(match_type, at)
        return expired

    def force_dissolve(self, proposal_id: str) -> MatchProposal:
        """Dissolve an open proposal without penalizing either side; both wait again."""
        proposal = self._find_proposal(proposal_id)
        with self._type_locks[proposal.match_type]:
            if not proposal.is_open:
                raise InvalidStateError(f"Proposal {proposal_id} is already {proposal.status.value}")
            now = self._clock()
            self._dissolve(proposal, now, removed=set())
            self._publish(proposal.match_type, now)
        logger.warning("Proposal %s force-dissolved", proposal_id)
        return proposal

    # ---------- Reads (snapshot, lock-free) ----------

    def snapshot(self, match_type: MatchType | str) -> QueueSnapshot:
        return self._snapshots[MatchType(match_type)]

    def status(self, player_id: str) -> QueueStatus | None:
        entry = self._by_player.get(player_id)
        if entry is None:
            return None
        snap = self._snapshots[entry.match_type]
        position = snap.position(player_id)
        if position is None:
            return None
        return QueueStatus(
            player_id=player_id,
            match_type=entry.match_type,
            state=EntryState.PROPOSED if position == 0 else EntryState.WAITING,
            position=position,
            estimated_wait=snap.estimated_wait(position),
            proposal_id=entry.proposal_id if position == 0 else None,
        )

    def position(self, player_id: str) -> int | None:
        s = self.status(player_id)
        return s.position if s else None

    def estimated_wait(self, player_id: str) -> float | None:
        s = self.status(player_id)
        return s.estimated_wait if s else None

    def waiting_count(self, match_type: MatchType | str) -> int:
        return len(self.snapshot(match_type).waiting)

    def get_proposal(self, proposal_id: str) -> MatchProposal | None:
        return self._proposals.get(proposal_id) or self._resolved.get(proposal_id)

    def open_proposals(self) -> list[MatchProposal]:
        return list(self._proposals.values())

    def proposal_for(self, player_id: str) -> MatchProposal | None:
        entry = self._by_player.get(player_id)
        if entry is None or entry.proposal_id is None:
            return None
        return self._proposals.get(entry.proposal_id)

    def suggest_pairings(
        self,
        match_type: MatchType | str,
        limit: int = 5,
        now: datetime | None = None,
    ) -> list[PairingSuggestion]:
        """
        Rank candidate pairs among waiting players by rating closeness and time waited.
        Read-only: works on a snapshot and never changes the queue.
        """
        snap = self.snapshot(match_type)
        at = now or self._clock()
        waiting = snap.waiting
        suggestions: list[PairingSuggestion] = []
        for i in range(len(waiting)):
            for j in range(i + 1, len(waiting)):
                a, b = waiting[i], waiting[j]
                diff = abs(a.rating - b.rating)
                rating_fit = max(0.0, 1.0 - diff / _SUGGEST_RATING_SPAN)
                avg_wait = ((at - a.enqueued_at).total_seconds() + (at - b.enqueued_at).total_seconds()) / 2
                wait_fit = min(1.0, max(0.0, avg_wait) / _SUGGEST_WAIT_SPAN_SECONDS)
                score = rating_fit * _SUGGEST_RATING_WEIGHT + wait_fit * _SUGGEST_WAIT_WEIGHT
                suggestions.append(PairingSuggestion(a.player_id, b.player_id, diff, score))
        suggestions.sort(key=lambda s: (-s.score, s.rating_diff))
        return suggestions[:limit]

    async def suggest_pairings_async(
        self,
        match_type: MatchType | str,
        limit: int = 5,
    ) -> list[PairingSuggestion]:
        """Run suggest_pairings in a worker thread so the event loop is not blocked."""
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(
            None, functools.partial(self.suggest_pairings, match_type, limit)
        )

    # ---------- Internals (caller holds the type lock) ----------

    def _find_proposal(self, proposal_id: str) -> MatchProposal:
        proposal = self._proposals.get(proposal_id)
        if proposal is not None:
            return proposal
        resolved = self._resolved.get(proposal_id)
        if resolved is not None:
            raise InvalidStateError(f"Proposal {proposal_id} is already {resolved.status.value}")
        raise NotFoundError(f"Proposal not found: {proposal_id}")

    def _is_compatible(self, a: QueueEntry, b: QueueEntry) -> bool:
        return self._compatible is None or self._compatible(a, b)

    def _pair_waiting(self, match_type: MatchType, now: datetime) -> list[MatchProposal]:
        """
        Pair waiting entries in FIFO order: the oldest waiting entry takes the
        oldest compatible partner. Repeats until no compatible pair remains.
        """
        created: list[MatchProposal] = []
        while True:
            waiting = [e for e in self._entries[match_type] if e.state == EntryState.WAITING]
            pair = None
            for i, a in enumerate(waiting):
                partner = next((b for b in waiting[i + 1:] if self._is_compatible(a, b)), None)
                if partner is not None:
                    pair = (a, partner)
                    break
            if pair is None:
                return created
            created.append(self._propose(pair[0], pair[1], now))

    def _propose(self, first: QueueEntry, second: QueueEntry, now: datetime) -> MatchProposal:
        proposal = MatchProposal(
            id=str(uuid.uuid4()),
            match_type=first.match_type,
            first=first,
            second=second,
            created_at=now,
        )
        for entry in (first, second):
            entry.state = EntryState.PROPOSED
            entry.proposal_id = proposal.id
        self._proposals[proposal.id] = proposal
        logger.info(
            "Proposed %s match %s: %s vs %s",
            proposal.match_type.value, proposal.id, first.player_id, second.player_id,
        )
        return proposal

    def _confirm(self, proposal: MatchProposal, now: datetime) -> Match:
        match = Match(
            id=str(uuid.uuid4()),
            match_type=proposal.match_type,
            player_a_id=proposal.first.player_id,
            player_b_id=proposal.second.player_id,
            created_at=now,
            proposal_id=proposal.id,
        )
        for entry in (proposal.first, proposal.second):
            entry.state = EntryState.CONFIRMED
            self._remove_entry(entry)
        proposal.match_id = match.id
        self._resolve(proposal, ProposalStatus.CONFIRMED, now)
        self._confirmations[proposal.match_type].append(now)
        logger.info("Proposal %s confirmed as match %s", proposal.id, match.id)
        return match

    def _dissolve(self, proposal: MatchProposal, now: datetime, removed: set[str]) -> None:
        for entry in (proposal.first, proposal.second):
            if entry.player_id in removed:
                entry.state = EntryState.DISSOLVED
                self._remove_entry(entry)
            else:
                # keeps enqueued_at, so FIFO priority is preserved
                entry.state = EntryState.WAITING
                entry.proposal_id = None
        self._resolve(proposal, ProposalStatus.DISSOLVED, now)

    def _expire(self, proposal: MatchProposal, now: datetime, pair: bool = True) -> list[MatchProposal]:
        silent = {pid for pid, r in proposal.responses.items() if r == ProposalResponse.PENDING}
        for pid in silent:
            proposal.responses[pid] = ProposalResponse.DECLINED
        self._dissolve(proposal, now, removed=silent)
        logger.warning(
            "Proposal %s expired; no response from %s", proposal.id, ", ".join(sorted(silent)) or "nobody",
        )
        if pair:
            return self._pair_waiting(proposal.match_type, now)
        return []

    def _resolve(self, proposal: MatchProposal, status: ProposalStatus, now: datetime) -> None:
        proposal.status = status
        proposal.resolved_at = now
        self._proposals.pop(proposal.id, None)
        self._resolved[proposal.id] = proposal
        while len(self._resolved) > _RESOLVED_HISTORY:
            self._resolved.popitem(last=False)

    def _remove_entry(self, entry: QueueEntry) -> None:
        with self._index_lock:
            if self._by_player.get(entry.player_id) is entry:
                del self._by_player[entry.player_id]
        entries = self._entries[entry.match_type]
        if entry in entries:
            entries.remove(entry)

    def _wait_interval(self, match_type: MatchType) -> float:
        history = self._confirmations[match_type]
        if len(history) < 2:
            return match_type.base_wait_seconds
        span = (history[-1] - history[0]).total_seconds()
        interval = span / (len(history) - 1)
        return interval if interval > 0 else match_type.base_wait_seconds

    def _publish(self, match_type: MatchType, now: datetime) -> QueueSnapshot:
        entries = self._entries[match_type]
        snapshot = QueueSnapshot(
            match_type=match_type,
            waiting=tuple(
                WaitingView(e.player_id, e.rating, e.enqueued_at)
                for e in entries if e.state == EntryState.WAITING
            ),
            proposed=frozenset(e.player_id for e in entries if e.state == EntryState.PROPOSED),
            wait_interval_seconds=self._wait_interval(match_type),
            taken_at=now,
        )
        self._snapshots[match_type] = snapshot
        return snapshot
