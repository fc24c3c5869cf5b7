"""
Sampler - one performance snapshot of a traced page load.
"""

from __future__ import annotations

from datetime import UTC, datetime
from typing import TYPE_CHECKING

from extimpact import config
from extimpact.measurement import trace
from extimpact.models import metrics
from extimpact.utils import deadline as deadline_mod
from extimpact.utils import errors, logger

if TYPE_CHECKING:
    from extimpact.browser import session as session_mod

log = logger.create_logger("Sampler")

BYTES_PER_MB = 1024 * 1024

HEAP_SCRIPT = "() => (performance.memory ? performance.memory.usedJSHeapSize : null)"


class Sampler:
    """Records a trace of one navigation and reduces it to a snapshot."""

    def __init__(
        self,
        session: session_mod.BrowserSession,
        settings: config.ProbeSettings | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or config.get_settings()

    async def capture(
        self,
        url: str,
        duration_ms: int,
        *,
        wait_for_idle: bool = False,
        exclude_extension_id: str | None = None,
        deadline: deadline_mod.Deadline | None = None,
    ) -> metrics.PerformanceSnapshot:
        """Trace a fresh load of *url* and return its snapshot.

        Args:
            url: Page to load.
            duration_ms: How long to keep tracing after navigation.
            wait_for_idle: Also wait for network idle before stopping.
            exclude_extension_id: Drop work attributed to this
                extension from the script, layout and paint sums.
            deadline: Optional overall budget shared with the caller.

        Raises:
            CollectionError: The trace could not be recorded or parsed,
                or no heap reading is available.
            TargetUnreachable: The tab did not answer.
        """
        s = self._settings
        idle_ms = min(s.idle_wait_cap_ms, s.navigation_timeout_ms) if wait_for_idle else 0
        timeout_ms = duration_ms + idle_ms + s.trace_overhead_timeout_ms

        try:
            raw = await deadline_mod.bounded(
                self._session.get_performance_trace(
                    duration_ms, url, wait_for_idle=wait_for_idle, idle_timeout_ms=idle_ms or s.idle_wait_cap_ms
                ),
                timeout_ms,
                error_type=errors.CollectionError,
                operation="performance_trace",
                deadline=deadline,
                page_url=url,
            )
        except errors.ImpactError:
            raise
        except Exception as exc:
            raise errors.CollectionError(
                f"Tracing failed: {errors.get_error_message(exc)}",
                operation="performance_trace",
                page_url=url,
            ) from exc

        try:
            events = trace.load_events(raw)
        except errors.CollectionError as exc:
            exc.page_url = url
            raise
        summary = trace.summarize(events, exclude_extension_id=exclude_extension_id)

        heap_bytes = summary.heap_bytes
        if heap_bytes is None:
            heap_bytes = await self._live_heap(url, deadline)

        cpu = (summary.execution_ms / summary.wall_ms * 100) if summary.wall_ms > 0 else 0.0
        p = metrics.MS_PRECISION
        snapshot = metrics.PerformanceSnapshot(
            cpu_usage=round(min(100.0, cpu), p),
            memory_usage=round(heap_bytes / BYTES_PER_MB, p),
            timestamp=datetime.now(UTC).isoformat(),
            execution_time=round(summary.execution_ms, p),
            lcp=round(summary.lcp_ms, p),
            cls=round(summary.cls, metrics.CLS_PRECISION),
            script_evaluation_time=round(summary.script_ms, p),
            layout_time=round(summary.layout_ms, p),
            paint_time=round(summary.paint_ms, p),
            fcp=round(summary.fcp_ms, p),
            ttfb=round(summary.ttfb_ms, p),
            event_count=summary.event_count,
        )
        log.debug("Snapshot captured", {
            "url": url,
            "baseline": exclude_extension_id is not None,
            "cpu": snapshot.cpu_usage,
            "memoryMb": snapshot.memory_usage,
            "lcp": snapshot.lcp,
            "events": snapshot.event_count,
        })
        return snapshot

    async def _live_heap(self, url: str, deadline: deadline_mod.Deadline | None) -> float:
        """Read ``performance.memory`` when the trace carried no heap counter."""
        used = await deadline_mod.bounded(
            self._session.evaluate(HEAP_SCRIPT),
            self._settings.detection_timeout_ms,
            error_type=errors.CollectionError,
            operation="heap_read",
            deadline=deadline,
            page_url=url,
        )
        if not isinstance(used, (int, float)):
            raise errors.CollectionError(
                "No heap counter in trace and performance.memory is unavailable",
                operation="heap_read",
                page_url=url,
            )
        return float(used)
