"""
Deadlines for suspend-capable operations.

Every call that waits on the browser (navigation, tracing, network
windows, DOM evaluation) is wrapped with :func:`bounded` so a stuck
page produces a typed failure instead of an indefinite hang.  A
:class:`Deadline` can be threaded through a multi-step operation so
the steps share one overall budget.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable
from typing import TypeVar

from extimpact.utils import errors

T = TypeVar("T")


class Deadline:
    """An absolute point in monotonic time after which work must stop."""

    def __init__(self, budget_ms: float) -> None:
        self._expires_at = time.monotonic() + budget_ms / 1000

    @classmethod
    def after(cls, budget_ms: float) -> Deadline:
        """Create a deadline *budget_ms* milliseconds from now."""
        return cls(budget_ms)

    def remaining_ms(self) -> float:
        """Milliseconds left, never negative."""
        return max(0.0, (self._expires_at - time.monotonic()) * 1000)

    @property
    def expired(self) -> bool:
        return time.monotonic() >= self._expires_at

    def cap(self, timeout_ms: float) -> float:
        """Return *timeout_ms* shortened to fit inside this deadline."""
        return min(timeout_ms, self.remaining_ms())


async def bounded(
    awaitable: Awaitable[T],
    timeout_ms: float,
    *,
    error_type: type[errors.ImpactError] = errors.TargetUnreachable,
    operation: str,
    deadline: Deadline | None = None,
    page_url: str | None = None,
) -> T:
    """Await *awaitable* for at most *timeout_ms*.

    The timeout is additionally capped by *deadline* when one is
    given.  On expiry the awaitable is cancelled and *error_type* is
    raised with the operation name attached.

    Args:
        awaitable: The coroutine or future to wait on.
        timeout_ms: Per-call bound in milliseconds.
        error_type: Typed error raised on timeout.
        operation: Name of the operation, for the error context.
        deadline: Optional overall deadline shared across calls.
        page_url: Page being worked on, for the error context.

    Returns:
        The awaitable's result.
    """
    effective_ms = deadline.cap(timeout_ms) if deadline else timeout_ms
    if effective_ms <= 0 or (deadline is not None and deadline.expired):
        # Still await-and-cancel so the coroutine is not left un-awaited.
        effective_ms = 0.001
    try:
        return await asyncio.wait_for(awaitable, timeout=effective_ms / 1000)
    except asyncio.TimeoutError as exc:
        raise error_type(
            f"{operation} timed out after {int(effective_ms)}ms",
            operation=operation,
            page_url=page_url,
        ) from exc
