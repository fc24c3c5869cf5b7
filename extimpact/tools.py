"""
Tool operations exposed to callers.

Each operation attaches the browser session on demand, runs one
measurement or page-state action and returns a JSON-encodable dict
with camelCase keys.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from extimpact import config
from extimpact.measurement import collector, network_tracker
from extimpact.models import network, page_state
from extimpact.page_state import detection, monitor
from extimpact.pipeline import orchestrator
from extimpact.scoring import recommendations
from extimpact.utils import logger, serialization

if TYPE_CHECKING:
    from extimpact.browser import session as session_mod

log = logger.create_logger("Tools")


def _require_extension_id(extension_id: str) -> str:
    if not isinstance(extension_id, str) or not extension_id.strip():
        raise ValueError("extension_id is required")
    return extension_id.strip()


def _log_state_change(state: page_state.PageState) -> None:
    element = state.blocking_element
    log.info("Monitored page state changed", {
        "state": state.state,
        "blockingType": element.type if element else None,
    })


class ImpactTools:
    """Binds the measurement components to one browser session."""

    def __init__(
        self,
        session: session_mod.BrowserSession,
        settings: config.ProbeSettings | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or config.get_settings()
        self._collector = collector.MetricsCollector(session, self._settings)
        self._tracker = network_tracker.NetworkTracker(session, self._settings)
        self._detector = detection.PageStateDetector(session, settings=self._settings)
        self._monitor = monitor.PageStateMonitor(self._detector, self._settings)

    @property
    def session(self) -> session_mod.BrowserSession:
        return self._session

    async def analyze_extension_performance(
        self,
        extension_id: str,
        test_url: str,
        duration: int | None = None,
        wait_for_idle: bool = False,
    ) -> dict[str, Any]:
        """Before/after performance snapshots and their delta for one page."""
        extension_id = _require_extension_id(extension_id)
        await self._session.attach()
        result = await self._collector.measure(extension_id, test_url, duration, wait_for_idle)
        recs = recommendations.evaluate(result.delta, network.NetworkSummary.empty(extension_id))
        document = serialization.to_document(result)
        document["recommendations"] = [r.message for r in recs]
        return document

    async def track_extension_network(
        self,
        extension_id: str,
        duration: int | None = None,
        test_url: str | None = None,
        include_requests: bool = False,
    ) -> dict[str, Any]:
        """Summarise the extension's network activity over a window."""
        extension_id = _require_extension_id(extension_id)
        await self._session.attach()
        summary = await self._tracker.track(extension_id, duration, test_url, include_requests)
        return serialization.to_document(summary)

    async def measure_extension_impact(
        self,
        extension_id: str,
        test_pages: list[str | dict[str, Any]],
        iterations: int | None = None,
        performance_duration: int | None = None,
        network_duration: int | None = None,
        include_network_details: bool = False,
    ) -> dict[str, Any]:
        """Full multi-page, multi-iteration impact report."""
        extension_id = _require_extension_id(extension_id)
        await self._session.attach()
        runner = orchestrator.ImpactOrchestrator(
            self._session,
            self._settings,
            collector=self._collector,
            tracker=self._tracker,
            detector=self._detector,
        )
        report = await runner.run(
            extension_id,
            test_pages,
            iterations=iterations,
            performance_duration=performance_duration,
            network_duration=network_duration,
            include_network_details=include_network_details,
        )
        return serialization.to_document(report)

    async def list_tabs(self) -> list[dict[str, str]]:
        await self._session.attach()
        return await self._session.list_tabs()

    async def open_tab(self, url: str | None = None) -> list[dict[str, str]]:
        """Open a new tab for measurement and return the updated tab list."""
        await self._session.attach()
        await self._session.open_tab(url)
        return await self._session.list_tabs()

    async def detect_page_state(self) -> dict[str, Any]:
        await self._session.attach()
        return serialization.to_document(await self._detector.detect())

    async def start_page_state_monitoring(
        self,
        interval_ms: int | None = None,
        auto_handle: bool = True,
    ) -> dict[str, Any]:
        await self._session.attach()
        status = await self._monitor.start(interval_ms, auto_handle, _log_state_change)
        return serialization.to_document(status)

    async def stop_page_state_monitoring(self) -> dict[str, Any]:
        return serialization.to_document(await self._monitor.stop())

    async def get_page_state_monitoring_status(self) -> dict[str, Any]:
        return serialization.to_document(self._monitor.status())

    async def close(self) -> None:
        """Stop monitoring and detach from the browser."""
        await self._monitor.stop()
        await self._session.close()
