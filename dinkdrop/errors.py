"""
Failure taxonomy for the matchmaking and rating core.
Every error is reported to the caller; nothing here is retried or fatal.
"""
from __future__ import annotations


class DinkDropError(ValueError):
    """Base class for all core failures."""


class InvalidStateError(DinkDropError):
    """Operation not allowed in the current state (e.g. joining while already queued)."""


class NotFoundError(DinkDropError):
    """Unknown player, proposal or match id."""


class PreconditionError(DinkDropError):
    """Missing caller context, e.g. no identifiable current player."""
