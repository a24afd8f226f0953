"""Game-economy error taxonomy.

Every error carries a stable ``reason`` code. Operations catch these at their
boundary and turn them into a failed ``OperationResult``; callers decide
whether a reason is terminal or transient (see ``TRANSIENT_REASONS``).
"""

from __future__ import annotations


class GameError(Exception):
    """Base class for expected, recoverable game-economy failures."""

    reason = "error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class NotFoundError(GameError):
    """Referenced user or entity does not exist."""

    reason = "not_found"


class InvalidArgumentError(GameError, ValueError):
    """Malformed amount, unknown booster type, unknown product, and similar."""

    reason = "invalid_argument"


class InsufficientResourceError(GameError):
    """Not enough grace passes or gems for the requested action."""

    reason = "insufficient_resource"


class ConflictError(GameError):
    """Concurrent mutation detected; the transaction should be retried."""

    reason = "conflict"


TRANSIENT_REASONS = frozenset({ConflictError.reason})
