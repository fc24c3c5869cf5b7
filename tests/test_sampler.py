"""Tests for the Sampler and MetricsCollector."""

from __future__ import annotations

import asyncio

import pytest

from conftest import EXTENSION_ID, make_trace
from extimpact.measurement import collector, sampler
from extimpact.utils import errors


class TestSampler:
    """Tests for Sampler.capture."""

    def test_snapshot_fields(self, target, settings) -> None:
        target.traces = [make_trace(script=100, layout=50, paint=50, lcp=1200, shifts=(0.1,), heap_mb=20, span_ms=2000)]
        snap = asyncio.run(sampler.Sampler(target, settings).capture("https://example.com", 1000))
        assert snap.execution_time == 200
        assert snap.cpu_usage == 10.0
        assert snap.memory_usage == 20.0
        assert snap.lcp == 1200
        assert snap.cls == 0.1
        assert snap.fcp == 0.0
        assert snap.timestamp.endswith("+00:00")

    def test_cpu_capped_at_100(self, target, settings) -> None:
        target.traces = [make_trace(script=900, layout=900, span_ms=1000)]
        snap = asyncio.run(sampler.Sampler(target, settings).capture("https://example.com", 1000))
        assert snap.cpu_usage == 100.0

    def test_live_heap_fallback(self, target, settings) -> None:
        target.traces = [make_trace(heap_mb=None)]
        target.heap_bytes = 5 * 1024 * 1024
        snap = asyncio.run(sampler.Sampler(target, settings).capture("https://example.com", 1000))
        assert snap.memory_usage == 5.0

    def test_no_heap_anywhere(self, target, settings) -> None:
        target.traces = [make_trace(heap_mb=None)]
        target.heap_bytes = None
        with pytest.raises(errors.CollectionError, match="performance.memory"):
            asyncio.run(sampler.Sampler(target, settings).capture("https://example.com", 1000))

    def test_trace_failure_is_collection_error(self, target, settings) -> None:
        target.traces = [RuntimeError("Tracing has already been started")]
        with pytest.raises(errors.CollectionError) as exc_info:
            asyncio.run(sampler.Sampler(target, settings).capture("https://example.com", 1000))
        assert exc_info.value.page_url == "https://example.com"

    def test_unparseable_trace(self, target, settings) -> None:
        target.traces = [b"garbage"]
        with pytest.raises(errors.CollectionError):
            asyncio.run(sampler.Sampler(target, settings).capture("https://example.com", 1000))

    def test_unreachable_target_propagates(self, target, settings) -> None:
        target.traces = [errors.TargetUnreachable("tab closed", operation="navigate")]
        with pytest.raises(errors.TargetUnreachable):
            asyncio.run(sampler.Sampler(target, settings).capture("https://example.com", 1000))


class TestMetricsCollector:
    """Tests for MetricsCollector.measure."""

    def test_delta_is_exact_difference(self, target, settings) -> None:
        target.traces = [make_trace(script=100, extension_script=50, layout=10, heap_mb=12)]
        result = asyncio.run(
            collector.MetricsCollector(target, settings).measure(EXTENSION_ID, "https://example.com", 1000)
        )
        assert result.delta.execution_time == pytest.approx(result.after.execution_time - result.before.execution_time)
        assert result.delta.execution_time == 50
        assert result.delta.script_evaluation_time == 50
        assert result.delta.cpu_usage == 5.0
        assert result.delta.memory_usage == 0.0
        assert result.before.script_evaluation_time == 100

    def test_paint_and_first_byte_deltas(self, target, settings) -> None:
        target.traces = [make_trace(fcp=300, ttfb=100), make_trace(fcp=420, ttfb=130)]
        result = asyncio.run(
            collector.MetricsCollector(target, settings).measure(EXTENSION_ID, "https://example.com", 1000)
        )
        assert (result.before.fcp, result.after.fcp) == (300, 420)
        assert result.delta.fcp == 120
        assert result.delta.ttfb == 30

    def test_two_passes(self, target, settings) -> None:
        target.traces = [make_trace(script=10)]
        asyncio.run(collector.MetricsCollector(target, settings).measure(EXTENSION_ID, "https://example.com", 800))
        assert [c["duration"] for c in target.trace_calls] == [800, 800]

    @pytest.mark.parametrize("duration", [0, -5, 1.5, "1000", True])
    def test_rejects_invalid_duration(self, target, settings, duration) -> None:
        with pytest.raises(ValueError):
            asyncio.run(
                collector.MetricsCollector(target, settings).measure(EXTENSION_ID, "https://example.com", duration)
            )

    def test_short_duration_accepted(self, target, settings) -> None:
        target.traces = [make_trace(script=10)]
        result = asyncio.run(
            collector.MetricsCollector(target, settings).measure(EXTENSION_ID, "https://example.com", 100)
        )
        assert result.duration_ms == 100

    def test_trace_failure_propagates(self, target, settings) -> None:
        target.traces = [make_trace(script=10), b"[]"]
        with pytest.raises(errors.CollectionError):
            asyncio.run(
                collector.MetricsCollector(target, settings).measure(EXTENSION_ID, "https://example.com", 1000)
            )
