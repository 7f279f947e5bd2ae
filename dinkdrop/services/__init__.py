"""
Service layer: matchmaking state machine, settlement, sessions, statistics.
DinkDropCore wires them over a player store.
"""
from .core import DinkDropCore
from .matchmaking import JoinOutcome, MatchmakingQueue, RespondOutcome, rating_band
from .sessions import PlayerSession, SessionRegistry
from .settlement import MatchSettlement, SettlementOutcome

__all__ = [
    "DinkDropCore",
    "MatchmakingQueue",
    "JoinOutcome",
    "RespondOutcome",
    "rating_band",
    "PlayerSession",
    "SessionRegistry",
    "MatchSettlement",
    "SettlementOutcome",
]
