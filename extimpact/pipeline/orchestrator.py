"""
ImpactOrchestrator - N pages x M iterations into one impact report.

Each iteration runs sequentially: clear any blocking page state,
measure performance, optionally wait, track network activity and
score.  A failing iteration is recorded and the run moves on; only the
aggregation at the end decides how a page with failures is reported.
"""

from __future__ import annotations

import asyncio
from collections.abc import Iterable
from datetime import UTC, datetime
from typing import TYPE_CHECKING

from extimpact import config
from extimpact.measurement import collector as collector_mod
from extimpact.measurement import network_tracker
from extimpact.models import impact
from extimpact.pipeline import aggregation, findings
from extimpact.scoring import scorer as scorer_mod
from extimpact.utils import errors, logger, serialization

if TYPE_CHECKING:
    from extimpact.browser import session as session_mod
    from extimpact.page_state import detection

log = logger.create_logger("ImpactOrchestrator")


class ImpactOrchestrator:
    """Runs the measurement pipeline repeatedly and aggregates the results."""

    def __init__(
        self,
        session: session_mod.BrowserSession,
        settings: config.ProbeSettings | None = None,
        *,
        collector: collector_mod.MetricsCollector | None = None,
        tracker: network_tracker.NetworkTracker | None = None,
        scorer: scorer_mod.ImpactScorer | None = None,
        detector: detection.PageStateDetector | None = None,
    ) -> None:
        self._settings = settings or config.get_settings()
        self._collector = collector or collector_mod.MetricsCollector(session, self._settings)
        self._tracker = tracker or network_tracker.NetworkTracker(session, self._settings)
        self._scorer = scorer or scorer_mod.ImpactScorer()
        self._detector = detector

    async def run(
        self,
        extension_id: str,
        test_pages: Iterable[str | dict | impact.TestPage],
        iterations: int | None = None,
        performance_duration: int | None = None,
        network_duration: int | None = None,
        include_network_details: bool = False,
    ) -> impact.ImpactReport:
        """Measure *extension_id* on every page and aggregate the report.

        Raises:
            ValueError: Invalid pages, iteration count or durations.
                Measurement failures never raise; they are reported in
                ``failures``.
        """
        s = self._settings
        pages = aggregation.normalize_test_pages(test_pages)
        iterations = collector_mod.validate_duration(
            s.default_iterations if iterations is None else iterations, "iterations"
        )
        performance_duration = collector_mod.validate_duration(
            s.default_performance_duration_ms if performance_duration is None else performance_duration,
            "performance_duration",
        )
        network_duration = collector_mod.validate_duration(
            s.default_network_duration_ms if network_duration is None else network_duration,
            "network_duration",
        )

        logger.clear_log_buffer()
        logger.start_log_file(extension_id)
        log.section(f"Impact run: {extension_id}")
        log.info("Configuration", {
            "pages": len(pages),
            "iterations": iterations,
            "performanceDuration": performance_duration,
            "networkDuration": network_duration,
        })
        log.start_timer("impact-run")

        entries: list[impact.ImpactReportEntry] = []
        failures: list[impact.IterationFailure] = []
        try:
            for page_index, page in enumerate(pages, start=1):
                log.subsection(f"Page {page_index}/{len(pages)}: {aggregation.display_name(page)}")
                outcomes: list[impact.IterationOutcome] = []
                for iteration in range(1, iterations + 1):
                    result = await self._run_iteration(
                        extension_id, page, iteration,
                        performance_duration, network_duration, include_network_details,
                    )
                    if isinstance(result, impact.IterationFailure):
                        failures.append(result)
                    else:
                        outcomes.append(result)
                    if iteration < iterations:
                        await asyncio.sleep(s.iteration_pause_ms / 1000)
                entry = aggregation.aggregate_page(page, iterations, outcomes)
                log.info("Page aggregated", {
                    "page": entry.page_name,
                    "status": entry.status,
                    "score": entry.impact_score,
                    "level": entry.impact_level,
                })
                entries.append(entry)

            report = self._build_report(extension_id, pages, iterations, entries, failures)
            log.end_timer("impact-run", "Impact run complete")
            log.success("Overall impact", {
                "score": report.overall.overall_impact_score,
                "level": report.overall.overall_impact_level,
                "failures": len(failures),
            })
            logger.save_report_file(extension_id, serialization.to_document(report))
            return report
        finally:
            logger.end_log_file()

    async def _run_iteration(
        self,
        extension_id: str,
        page: impact.TestPage,
        iteration: int,
        performance_duration: int,
        network_duration: int,
        include_network_details: bool,
    ) -> impact.IterationOutcome | impact.IterationFailure:
        operation: impact.Operation = "page_state"
        try:
            if self._detector is not None:
                await self._detector.clear_if_blocked()

            operation = "performance"
            performance = await self._collector.measure(extension_id, page.url, performance_duration)
            if page.wait_time:
                await asyncio.sleep(page.wait_time / 1000)

            operation = "network"
            net = await self._tracker.track(extension_id, network_duration, page.url, include_network_details)

            operation = "scoring"
            score = self._scorer.score(performance.delta, net)
        except Exception as exc:
            failure = impact.IterationFailure(
                page_url=page.url,
                iteration=iteration,
                operation=operation,
                error_type=type(exc).__name__,
                message=errors.get_error_message(exc),
            )
            log.error("Iteration failed", {
                "page": page.url,
                "iteration": iteration,
                "operation": operation,
                "error": failure.message,
            })
            return failure

        log.debug("Iteration complete", {"iteration": iteration, "score": score.impact_score})
        return impact.IterationOutcome(
            page_url=page.url,
            iteration=iteration,
            performance=performance,
            network=net,
            score=score,
        )

    def _build_report(
        self,
        extension_id: str,
        pages: list[impact.TestPage],
        iterations: int,
        entries: list[impact.ImpactReportEntry],
        failures: list[impact.IterationFailure],
    ) -> impact.ImpactReport:
        configuration = impact.ReportConfiguration(
            total_tests=len(pages) * iterations,
            total_pages=len(pages),
            iterations_per_page=iterations,
        )
        overall = aggregation.aggregate_overall(entries)
        report = impact.ImpactReport(
            extension_id=extension_id,
            test_date=datetime.now(UTC).isoformat(),
            configuration=configuration,
            overall=overall,
            page_results=entries,
            key_findings=findings.key_findings(overall, entries, failures, configuration.total_tests),
            recommendations=aggregation.overall_recommendations(entries),
            failures=failures,
        )
        return report.model_copy(update={"summary": findings.summary_text(report)})
