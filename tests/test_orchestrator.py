"""Tests for the multi-page, multi-iteration orchestrator."""

from __future__ import annotations

import asyncio

import pytest

from conftest import EXTENSION_ID, FakeTarget, make_trace, modal, request_events
from extimpact.page_state import detection
from extimpact.pipeline import orchestrator
from extimpact.utils import errors


class BrokenPageTarget(FakeTarget):
    """Fails every trace of URLs containing ``broken``."""

    async def get_performance_trace(self, duration_ms, url, wait_for_idle=False, idle_timeout_ms=10000):
        if "broken" in url:
            raise errors.TargetUnreachable("Navigation failed", operation="navigate", page_url=url)
        return await super().get_performance_trace(duration_ms, url, wait_for_idle, idle_timeout_ms)


def _prime(target: FakeTarget) -> None:
    target.traces = [make_trace(script=100, extension_script=30, lcp=400)]
    target.network_events = request_events("r1", duration_ms=120) + request_events("r2", duration_ms=80)


def _run(target, settings, pages, iterations=1, **kwargs):
    runner = orchestrator.ImpactOrchestrator(
        target, settings, detector=detection.PageStateDetector(target, settings=settings)
    )
    return asyncio.run(runner.run(
        EXTENSION_ID, pages, iterations=iterations, performance_duration=1000, network_duration=1000, **kwargs
    ))


class TestImpactOrchestrator:
    """Tests for ImpactOrchestrator.run."""

    def test_one_page_one_iteration(self, target, settings) -> None:
        _prime(target)
        report = _run(target, settings, ["https://example.com/"])
        assert report.configuration.total_tests == 1
        assert report.configuration.total_pages == 1
        assert len(report.page_results) == 1
        entry = report.page_results[0]
        assert entry.status == "ok"
        assert entry.avg_performance.execution_time == 30
        assert entry.avg_network.total_requests == 2
        assert 0 <= entry.impact_score <= 100
        assert report.failures == []
        assert report.summary.startswith(f"Extension {EXTENSION_ID}")

    def test_total_tests(self, target, settings) -> None:
        _prime(target)
        report = _run(target, settings, ["https://a.example/", "https://b.example/"], iterations=2)
        assert report.configuration.total_tests == 4
        assert all(e.successful_iterations == 2 for e in report.page_results)

    def test_failed_page_reported_not_raised(self, settings) -> None:
        target = BrokenPageTarget()
        _prime(target)
        report = _run(target, settings, ["https://ok.example/", "https://broken.example/"], iterations=2)
        assert len(report.page_results) == 2
        broken = report.page_results[1]
        assert broken.status == "failed"
        assert broken.impact_score == 0
        assert report.overall.pages_included == 1
        assert report.overall.pages_excluded == ["https://broken.example/"]
        assert report.overall.overall_impact_score == report.page_results[0].impact_score
        assert len(report.failures) == 2
        assert {f.operation for f in report.failures} == {"performance"}
        assert {f.error_type for f in report.failures} == {"TargetUnreachable"}
        assert any("could not be measured" in f for f in report.key_findings)

    def test_partial_page(self, target, settings) -> None:
        _prime(target)
        target.traces = [errors.CollectionError("trace buffer unavailable"), make_trace(script=10)]
        report = _run(target, settings, ["https://example.com/"], iterations=2)
        entry = report.page_results[0]
        assert entry.status == "partial"
        assert entry.successful_iterations == 1
        assert report.failures[0].iteration == 1

    def test_network_failure_recorded_with_operation(self, target, settings) -> None:
        _prime(target)
        target.network_events = RuntimeError("CDP session closed")
        report = _run(target, settings, ["https://example.com/"])
        assert report.failures[0].operation == "network"
        assert report.failures[0].error_type == "CollectionError"

    def test_blocking_modal_cleared_before_iteration(self, target, settings) -> None:
        _prime(target)
        target.show_modal(modal(1, buttons=("Close",)))
        report = _run(target, settings, ["https://example.com/"])
        assert target.clicked == ["Close"]
        assert report.page_results[0].status == "ok"

    def test_page_wait_time(self, target, settings) -> None:
        _prime(target)
        report = _run(target, settings, [{"url": "https://example.com/", "name": "Home", "waitTime": 10}])
        assert report.page_results[0].page_name == "Home"

    @pytest.mark.parametrize("iterations", [0, -1])
    def test_invalid_iterations(self, target, settings, iterations) -> None:
        with pytest.raises(ValueError):
            _run(target, settings, ["https://example.com/"], iterations=iterations)

    def test_empty_pages(self, target, settings) -> None:
        with pytest.raises(ValueError):
            _run(target, settings, [])
