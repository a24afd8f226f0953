"""Structured operation results.

Public game operations never raise ``GameError`` to their caller. They return
an ``OperationResult`` whose ``reason`` mirrors the error taxonomy, so the API
layer, the offline replay worker and the purchase webhook can all apply their
own retry/drop policy to the same value.
"""

from __future__ import annotations

import functools
import logging
from collections.abc import Awaitable, Callable
from typing import Any, ParamSpec

from pydantic import BaseModel, Field

from sloop.errors import TRANSIENT_REASONS, GameError

logger = logging.getLogger(__name__)

P = ParamSpec("P")


class OperationResult(BaseModel):
    success: bool
    reason: str | None = None
    message: str | None = None
    already_processed: bool = False
    data: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def ok(cls, *, already_processed: bool = False, message: str | None = None, **data: Any) -> OperationResult:
        return cls(success=True, already_processed=already_processed, message=message, data=data)

    @classmethod
    def failed(cls, error: GameError) -> OperationResult:
        return cls(success=False, reason=error.reason, message=error.message)

    @property
    def is_transient_failure(self) -> bool:
        return not self.success and self.reason in TRANSIENT_REASONS


def operation(
    func: Callable[P, Awaitable[OperationResult]],
) -> Callable[P, Awaitable[OperationResult]]:
    """Recover ``GameError`` at the operation boundary."""

    @functools.wraps(func)
    async def wrapper(*args: P.args, **kwargs: P.kwargs) -> OperationResult:
        try:
            return await func(*args, **kwargs)
        except GameError as exc:
            logger.info("%s rejected (%s): %s", func.__name__, exc.reason, exc.message)
            return OperationResult.failed(exc)

    return wrapper
