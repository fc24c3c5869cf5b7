"""
Error taxonomy for measurement and page-state operations.

Every error raised by the core carries enough context (operation,
page, iteration) for a caller to act on it without reading logs.
"""

from __future__ import annotations


class ImpactError(Exception):
    """Base class for all typed measurement failures."""

    def __init__(
        self,
        message: str,
        *,
        operation: str | None = None,
        page_url: str | None = None,
        iteration: int | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.page_url = page_url
        self.iteration = iteration

    def context(self) -> dict[str, object]:
        """Return the non-empty context fields for logging."""
        ctx: dict[str, object] = {"errorType": type(self).__name__}
        if self.operation:
            ctx["operation"] = self.operation
        if self.page_url:
            ctx["pageUrl"] = self.page_url
        if self.iteration is not None:
            ctx["iteration"] = self.iteration
        return ctx


class CollectionError(ImpactError):
    """Instrumentation (trace buffers, counters, network events) was unavailable."""


class DetectionTimeout(ImpactError):
    """A page-state or dialog check exceeded its time bound."""


class ElementNotFound(ImpactError):
    """A DOM target vanished between detection and action."""


class TargetUnreachable(ImpactError):
    """The browser or tab closed, or never answered, mid-operation."""


def get_error_message(error: BaseException | object) -> str:
    """
    Safely extract an error message from an unknown error type.

    Falls back to the exception class name when the message is empty
    (e.g. a bare ``asyncio.TimeoutError()``).
    """
    if isinstance(error, BaseException):
        return str(error) or type(error).__name__
    return "Unknown error"
