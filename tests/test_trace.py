"""Tests for trace parsing and summarisation."""

from __future__ import annotations

import json

import pytest

from conftest import EXTENSION_ID, make_trace
from extimpact.measurement import trace
from extimpact.utils import errors


class TestLoadEvents:
    """Tests for load_events."""

    def test_object_form(self) -> None:
        events = trace.load_events(make_trace(script=5))
        assert any(e["name"] == "EvaluateScript" for e in events)

    def test_array_form(self) -> None:
        raw = json.dumps([{"name": "Layout", "ph": "X", "ts": 1, "dur": 1000}])
        assert len(trace.load_events(raw)) == 1

    def test_invalid_json(self) -> None:
        with pytest.raises(errors.CollectionError):
            trace.load_events(b"{not json")

    def test_empty_events(self) -> None:
        with pytest.raises(errors.CollectionError, match="no events"):
            trace.load_events(b'{"traceEvents": []}')

    def test_missing_event_list(self) -> None:
        with pytest.raises(errors.CollectionError):
            trace.load_events(b'{"metadata": {}}')


class TestSummarize:
    """Tests for summarize."""

    def test_sums_categories(self) -> None:
        summary = trace.summarize(trace.load_events(make_trace(script=100, layout=20, paint=5)))
        assert summary.script_ms == pytest.approx(100)
        assert summary.layout_ms == pytest.approx(20)
        assert summary.paint_ms == pytest.approx(5)
        assert summary.execution_ms == pytest.approx(125)

    def test_wall_span(self) -> None:
        summary = trace.summarize(trace.load_events(make_trace(script=10, span_ms=2000)))
        assert summary.wall_ms == pytest.approx(2000)

    def test_excludes_extension_work(self) -> None:
        events = trace.load_events(make_trace(script=100, extension_script=40))
        full = trace.summarize(events)
        baseline = trace.summarize(events, exclude_extension_id=EXTENSION_ID)
        assert full.script_ms == pytest.approx(140)
        assert baseline.script_ms == pytest.approx(100)

    def test_other_extension_not_excluded(self) -> None:
        events = trace.load_events(make_trace(script=100, extension_script=40))
        summary = trace.summarize(events, exclude_extension_id="p" * 32)
        assert summary.script_ms == pytest.approx(140)

    def test_lcp_relative_to_navigation_start(self) -> None:
        summary = trace.summarize(trace.load_events(make_trace(lcp=850)))
        assert summary.lcp_ms == pytest.approx(850)

    def test_no_lcp_candidate(self) -> None:
        assert trace.summarize(trace.load_events(make_trace())).lcp_ms == 0.0

    def test_fcp_and_ttfb(self) -> None:
        summary = trace.summarize(trace.load_events(make_trace(fcp=320, ttfb=120)))
        assert summary.fcp_ms == pytest.approx(320)
        assert summary.ttfb_ms == pytest.approx(120)

    def test_fcp_and_ttfb_absent(self) -> None:
        summary = trace.summarize(trace.load_events(make_trace()))
        assert summary.fcp_ms == 0.0
        assert summary.ttfb_ms == 0.0

    def test_ttfb_ignores_responses_before_last_navigation(self) -> None:
        events = [
            {"name": "ResourceReceiveResponse", "ph": "I", "ts": 1_000},
            {"name": "navigationStart", "ph": "R", "ts": 5_000},
            {"name": "ResourceReceiveResponse", "ph": "I", "ts": 95_000},
            {"name": "firstContentfulPaint", "ph": "R", "ts": 205_000},
        ]
        summary = trace.summarize(events)
        assert summary.ttfb_ms == pytest.approx(90)
        assert summary.fcp_ms == pytest.approx(200)

    def test_cls_sums_shifts(self) -> None:
        summary = trace.summarize(trace.load_events(make_trace(shifts=(0.05, 0.02))))
        assert summary.cls == pytest.approx(0.07)

    def test_cls_ignores_recent_input(self) -> None:
        events = [
            {"name": "LayoutShift", "ph": "I", "ts": 10, "args": {"data": {"score": 0.3, "had_recent_input": True}}},
            {"name": "LayoutShift", "ph": "I", "ts": 20, "args": {"data": {"score": 0.1}}},
        ]
        assert trace.summarize(events).cls == pytest.approx(0.1)

    def test_heap_uses_last_sample(self) -> None:
        events = [
            {"name": "UpdateCounters", "ph": "I", "ts": 20, "args": {"data": {"jsHeapSizeUsed": 200}}},
            {"name": "UpdateCounters", "ph": "I", "ts": 10, "args": {"data": {"jsHeapSizeUsed": 100}}},
        ]
        assert trace.summarize(events).heap_bytes == 200

    def test_no_heap_sample(self) -> None:
        assert trace.summarize(trace.load_events(make_trace(heap_mb=None))).heap_bytes is None

    def test_stack_trace_attribution(self) -> None:
        event = {
            "name": "FunctionCall", "ph": "X", "ts": 1, "dur": 1000,
            "args": {"data": {"stackTrace": [{"url": f"chrome-extension://{EXTENSION_ID}/a.js"}]}},
        }
        assert trace.is_extension_event(event, EXTENSION_ID)
