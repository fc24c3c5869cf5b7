"""
PageStateDetector - classify whether the page is blocked.

A pending native dialog always blocks.  Otherwise a visible custom
modal blocks when it covers at least ``BLOCKING_COVERAGE`` of the
viewport in both dimensions.  Every call classifies from scratch.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from extimpact import config
from extimpact.models import page_state
from extimpact.page_state import dialogs as dialogs_mod
from extimpact.utils import deadline as deadline_mod
from extimpact.utils import errors, logger

if TYPE_CHECKING:
    from extimpact.browser import session as session_mod

log = logger.create_logger("PageState")

BLOCKING_COVERAGE = 0.3


def _coverage(record: page_state.DialogRecord, viewport: page_state.ElementBounds | None) -> float:
    """Smaller of the width and height fractions the modal covers."""
    bounds = record.element.bounds
    if bounds is None or viewport is None or viewport.width <= 0 or viewport.height <= 0:
        return 0.0
    return min(bounds.width / viewport.width, bounds.height / viewport.height)


def blocking_modal(detection: page_state.DialogDetection) -> page_state.DialogRecord | None:
    """Return the custom modal that blocks the page, if any (largest wins)."""
    candidates = [
        (cov, record) for record in detection.custom_dialogs
        if (cov := _coverage(record, detection.viewport)) >= BLOCKING_COVERAGE
    ]
    if not candidates:
        return None
    return max(candidates, key=lambda c: c[0])[1]


class PageStateDetector:
    """One-shot page-state classification and remediation."""

    def __init__(
        self,
        session: session_mod.BrowserSession,
        dialogs: dialogs_mod.DialogManager | None = None,
        settings: config.ProbeSettings | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or config.get_settings()
        self._dialogs = dialogs or dialogs_mod.DialogManager(session, self._settings)

    @property
    def dialogs(self) -> dialogs_mod.DialogManager:
        return self._dialogs

    async def classify(self) -> page_state.PageState:
        """Classify the page within the detection bound.

        Raises:
            DetectionTimeout: The page did not answer in time.
        """
        started = time.monotonic()
        state = await deadline_mod.bounded(
            self._classify(),
            self._settings.detection_timeout_ms,
            error_type=errors.DetectionTimeout,
            operation="page_state",
        )
        state.execution_time = round((time.monotonic() - started) * 1000, 2)
        return state

    async def _classify(self) -> page_state.PageState:
        native = self._session.pending_native_dialog()
        if native is not None:
            return page_state.PageState(
                state="blocked",
                is_blocked=True,
                blocking_element=page_state.BlockingElement(
                    type="browser_dialog", message=native, can_auto_handle=True,
                ),
                recommendations=["A native browser dialog is open; accept or dismiss it to continue."],
            )

        detection = await self._dialogs.detect()
        modal = blocking_modal(detection)
        if modal is None:
            return page_state.PageState.normal()

        can_handle = bool(modal.buttons)
        recs = [f"A modal dialog ({modal.element.tag_name}) covers the page."]
        if can_handle:
            recs.append("It can be dismissed automatically through its buttons.")
        else:
            recs.append("It has no buttons; manual intervention is required.")
        return page_state.PageState(
            state="blocked",
            is_blocked=True,
            blocking_element=page_state.BlockingElement(
                type="custom_modal",
                message=modal.message,
                selector=modal.selector,
                can_auto_handle=can_handle,
            ),
            recommendations=recs,
        )

    async def detect(self) -> page_state.PageState:
        """Tool-facing classification; failures become ``unknown``."""
        started = time.monotonic()
        try:
            return await self.classify()
        except errors.ImpactError as exc:
            log.warn("Page state detection failed", {**exc.context(), "error": str(exc)})
            return page_state.PageState.unknown(
                errors.get_error_message(exc),
                execution_time=round((time.monotonic() - started) * 1000, 2),
            )
        except Exception as exc:
            log.error("Page state detection raised", {"errorType": type(exc).__name__, "error": str(exc)})
            return page_state.PageState.unknown(
                errors.get_error_message(exc),
                execution_time=round((time.monotonic() - started) * 1000, 2),
            )

    async def resolve(self, state: page_state.PageState) -> bool:
        """Clear a blocked state: dismiss a custom modal, accept a native dialog."""
        element = state.blocking_element
        if not state.is_blocked or element is None or not element.can_auto_handle:
            return False
        if element.type == "custom_modal":
            return await self._dialogs.handle("dismiss", element.selector)
        return await self._dialogs.handle("accept")

    async def clear_if_blocked(self) -> bool:
        """Classify and, if the page is blocked, try to clear it.

        Detection and lookup failures are logged and treated as
        "nothing cleared"; an unreachable tab still raises.
        """
        try:
            state = await self.classify()
            if not state.is_blocked:
                return False
            log.info("Page blocked before measurement", {
                "type": state.blocking_element.type if state.blocking_element else None,
            })
            cleared = await self.resolve(state)
        except (errors.DetectionTimeout, errors.ElementNotFound) as exc:
            log.warn("Could not clear page state", {**exc.context(), "error": str(exc)})
            return False
        if cleared:
            log.success("Blocking state cleared")
        return cleared
