"""
MetricsCollector - baseline, with-extension, delta for one page.

The baseline is not a second browser profile.  It is the same load
with every script, layout and paint event attributed to the
extension's origin removed, so the delta is the work the extension
added to this particular page load.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

from extimpact import config
from extimpact.measurement import sampler as sampler_mod
from extimpact.models import metrics
from extimpact.utils import deadline as deadline_mod
from extimpact.utils import logger

if TYPE_CHECKING:
    from extimpact.browser import session as session_mod

log = logger.create_logger("MetricsCollector")

MIN_RELIABLE_DURATION_MS = 500


def validate_duration(duration: object, name: str = "duration") -> int:
    """Return *duration* if it is a positive integer, else raise ``ValueError``."""
    if isinstance(duration, bool) or not isinstance(duration, int) or duration <= 0:
        raise ValueError(f"{name} must be a positive integer (ms), got {duration!r}")
    return duration


class MetricsCollector:
    """Runs the two traced passes for a page and pairs them into a delta."""

    def __init__(
        self,
        session: session_mod.BrowserSession,
        settings: config.ProbeSettings | None = None,
        sampler: sampler_mod.Sampler | None = None,
    ) -> None:
        self._settings = settings or config.get_settings()
        self._sampler = sampler or sampler_mod.Sampler(session, self._settings)

    async def measure(
        self,
        extension_id: str,
        test_url: str,
        duration: int | None = None,
        wait_for_idle: bool = False,
    ) -> metrics.MetricsResult:
        """Measure the extension's performance overhead on *test_url*.

        Raises:
            ValueError: *duration* is not a positive integer.
            CollectionError: Either trace pass failed.
        """
        s = self._settings
        duration = validate_duration(s.default_performance_duration_ms if duration is None else duration)
        if duration < MIN_RELIABLE_DURATION_MS:
            log.warn("Short trace window, deltas will be noisy", {
                "duration": duration, "minimum": MIN_RELIABLE_DURATION_MS,
            })

        idle_ms = s.idle_wait_cap_ms if wait_for_idle else 0
        budget = 2 * (duration + idle_ms + s.trace_overhead_timeout_ms) + s.settle_pause_ms
        deadline = deadline_mod.Deadline.after(budget)

        log.start_timer("measure")
        before = await self._sampler.capture(
            test_url, duration,
            wait_for_idle=wait_for_idle,
            exclude_extension_id=extension_id,
            deadline=deadline,
        )
        await asyncio.sleep(s.settle_pause_ms / 1000)
        after = await self._sampler.capture(
            test_url, duration,
            wait_for_idle=wait_for_idle,
            deadline=deadline,
        )
        delta = metrics.MetricsDelta.between(before, after)
        log.end_timer("measure", "Performance measured")
        log.info("Performance delta", {
            "cpu": delta.cpu_usage,
            "memoryMb": delta.memory_usage,
            "executionMs": delta.execution_time,
            "lcp": delta.lcp,
            "cls": delta.cls,
        })

        return metrics.MetricsResult(
            extension_id=extension_id,
            test_url=test_url,
            duration_ms=duration,
            before=before,
            after=after,
            delta=delta,
        )
