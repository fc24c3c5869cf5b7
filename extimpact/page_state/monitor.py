"""
PageStateMonitor - periodic page-state classification.

Runs as a single asyncio task.  Each tick classifies the page, fires
the state-change callback only on an edge, and optionally clears a
blocked state.  Ticks never overlap: a tick that overruns the interval
causes the missed ticks to be skipped and counted.
"""

from __future__ import annotations

import asyncio
import collections
import dataclasses
import inspect
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime

from extimpact import config
from extimpact.models import page_state
from extimpact.page_state import detection
from extimpact.utils import errors, logger

log = logger.create_logger("PageStateMonitor")

StateCallback = Callable[[page_state.PageState], Awaitable[None] | None]

TRANSITION_HISTORY = 50
# Slack on top of one tick's worst case when waiting for the task to stop.
_STOP_GRACE_MS = 1000


def _failure(exc: Exception) -> dict[str, object]:
    if isinstance(exc, errors.ImpactError):
        return {**exc.context(), "error": str(exc)}
    return {"errorType": type(exc).__name__, "error": errors.get_error_message(exc)}


@dataclasses.dataclass
class _Session:
    interval_ms: int
    auto_handle: bool
    on_state_change: StateCallback | None
    last_state: page_state.PageState = dataclasses.field(default_factory=page_state.PageState.normal)
    ticks: int = 0
    skipped_ticks: int = 0
    failed_ticks: int = 0
    transitions: collections.deque[page_state.StateTransition] = dataclasses.field(
        default_factory=lambda: collections.deque(maxlen=TRANSITION_HISTORY)
    )
    stop_event: asyncio.Event = dataclasses.field(default_factory=asyncio.Event)
    task: asyncio.Task[None] | None = None


class PageStateMonitor:
    """Holds at most one monitoring session at a time."""

    def __init__(
        self,
        detector: detection.PageStateDetector,
        settings: config.ProbeSettings | None = None,
    ) -> None:
        self._detector = detector
        self._settings = settings or config.get_settings()
        self._session: _Session | None = None
        self._lock = asyncio.Lock()

    async def start(
        self,
        interval_ms: int | None = None,
        auto_handle: bool = True,
        on_state_change: StateCallback | None = None,
    ) -> page_state.MonitoringStatus:
        """Start monitoring, replacing any running session.

        Raises:
            ValueError: *interval_ms* is not a positive integer.
        """
        interval = self._settings.monitor_interval_ms if interval_ms is None else interval_ms
        if isinstance(interval, bool) or not isinstance(interval, int) or interval <= 0:
            raise ValueError(f"interval_ms must be a positive integer, got {interval!r}")

        async with self._lock:
            if self._session is not None:
                log.info("Replacing running monitor session")
                await self._shutdown(self._session)
            session = _Session(interval_ms=interval, auto_handle=auto_handle, on_state_change=on_state_change)
            session.task = asyncio.create_task(self._run(session), name="page-state-monitor")
            self._session = session
        log.info("Page state monitoring started", {"intervalMs": interval, "autoHandle": auto_handle})
        return self.status()

    async def stop(self) -> page_state.MonitorStopResult:
        """Stop monitoring.  Stopping an idle monitor is a successful no-op."""
        async with self._lock:
            session, self._session = self._session, None
            if session is None:
                return page_state.MonitorStopResult(was_active=False)
            await self._shutdown(session)
        log.info("Page state monitoring stopped", {"ticks": session.ticks, "skipped": session.skipped_ticks})
        return page_state.MonitorStopResult(was_active=True, ticks=session.ticks)

    def status(self) -> page_state.MonitoringStatus:
        session = self._session
        if session is None or session.task is None or session.task.done():
            return page_state.MonitoringStatus(active=False)
        return page_state.MonitoringStatus(
            active=True,
            interval_ms=session.interval_ms,
            auto_handle=session.auto_handle,
            last_state=session.last_state,
            ticks=session.ticks,
            skipped_ticks=session.skipped_ticks,
            failed_ticks=session.failed_ticks,
            transitions=list(session.transitions),
        )

    async def _shutdown(self, session: _Session) -> None:
        session.stop_event.set()
        task = session.task
        if task is None or task.done() or task is asyncio.current_task():
            return
        s = self._settings
        bound = (s.detection_timeout_ms + s.dialog_handle_timeout_ms + _STOP_GRACE_MS) / 1000
        try:
            await asyncio.wait_for(task, timeout=bound)
        except asyncio.TimeoutError:
            log.warn("Monitor tick did not finish in time, cancelled it")

    async def _run(self, session: _Session) -> None:
        loop = asyncio.get_running_loop()
        interval = session.interval_ms / 1000
        next_tick = loop.time()
        while not session.stop_event.is_set():
            await self._tick(session)
            next_tick += interval
            now = loop.time()
            if now > next_tick:
                missed = int((now - next_tick) // interval) + 1
                session.skipped_ticks += missed
                next_tick += missed * interval
                log.debug("Monitor tick overran, skipping", {"missed": missed})
            try:
                await asyncio.wait_for(session.stop_event.wait(), timeout=max(0.0, next_tick - now))
            except asyncio.TimeoutError:
                pass

    async def _tick(self, session: _Session) -> None:
        session.ticks += 1
        try:
            state = await self._detector.classify()
        except Exception as exc:
            session.failed_ticks += 1
            log.warn("Monitor tick failed, skipping", _failure(exc))
            return

        previous = session.last_state
        session.last_state = state
        transition: page_state.StateTransition | None = None
        if state.state != previous.state:
            transition = page_state.StateTransition(
                from_state=previous.state, to_state=state.state, at=datetime.now(UTC).isoformat(),
            )
            session.transitions.append(transition)
            log.info("Page state changed", {"from": previous.state, "to": state.state})
            await self._notify(session, state)

        if session.stop_event.is_set():
            return
        element = state.blocking_element
        if state.is_blocked and element is not None and element.can_auto_handle and session.auto_handle:
            try:
                handled = await self._detector.resolve(state)
            except Exception as exc:
                session.failed_ticks += 1
                log.warn("Auto-handle failed", _failure(exc))
                return
            if handled:
                state.auto_handled = True
                if transition is not None:
                    transition.auto_handled = True

    async def _notify(self, session: _Session, state: page_state.PageState) -> None:
        if session.on_state_change is None:
            return
        try:
            result = session.on_state_change(state)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:
            log.error("State change callback raised", {"error": errors.get_error_message(exc)})
