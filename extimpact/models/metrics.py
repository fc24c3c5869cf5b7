"""Pydantic models for performance snapshots and their deltas."""

from __future__ import annotations

import pydantic

from extimpact.utils import serialization

# Decimal places kept on each field.  Deltas are computed from the
# rounded snapshot values so after − before stays exact at this precision.
MS_PRECISION = 2
CLS_PRECISION = 4


class PerformanceSnapshot(pydantic.BaseModel):
    """One traced page load, reduced to coarse performance figures."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    cpu_usage: float
    memory_usage: float
    timestamp: str
    execution_time: float
    lcp: float
    cls: float
    script_evaluation_time: float = 0.0
    layout_time: float = 0.0
    paint_time: float = 0.0
    fcp: float = 0.0
    ttfb: float = 0.0
    event_count: int = 0


class MetricsDelta(pydantic.BaseModel):
    """Field-wise difference between a with-extension and a baseline snapshot."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    cpu_usage: float = 0.0
    memory_usage: float = 0.0
    execution_time: float = 0.0
    lcp: float = 0.0
    cls: float = 0.0
    script_evaluation_time: float = 0.0
    layout_time: float = 0.0
    paint_time: float = 0.0
    fcp: float = 0.0
    ttfb: float = 0.0

    @classmethod
    def between(cls, before: PerformanceSnapshot, after: PerformanceSnapshot) -> MetricsDelta:
        """Return ``after - before`` for every metric field."""
        return cls(
            cpu_usage=round(after.cpu_usage - before.cpu_usage, MS_PRECISION),
            memory_usage=round(after.memory_usage - before.memory_usage, MS_PRECISION),
            execution_time=round(after.execution_time - before.execution_time, MS_PRECISION),
            lcp=round(after.lcp - before.lcp, MS_PRECISION),
            cls=round(after.cls - before.cls, CLS_PRECISION),
            script_evaluation_time=round(
                after.script_evaluation_time - before.script_evaluation_time, MS_PRECISION
            ),
            layout_time=round(after.layout_time - before.layout_time, MS_PRECISION),
            paint_time=round(after.paint_time - before.paint_time, MS_PRECISION),
            fcp=round(after.fcp - before.fcp, MS_PRECISION),
            ttfb=round(after.ttfb - before.ttfb, MS_PRECISION),
        )

    @classmethod
    def mean(cls, deltas: list[MetricsDelta]) -> MetricsDelta:
        """Average a list of deltas field by field (zero delta when empty)."""
        if not deltas:
            return cls()
        n = len(deltas)
        return cls(
            cpu_usage=round(sum(d.cpu_usage for d in deltas) / n, MS_PRECISION),
            memory_usage=round(sum(d.memory_usage for d in deltas) / n, MS_PRECISION),
            execution_time=round(sum(d.execution_time for d in deltas) / n, MS_PRECISION),
            lcp=round(sum(d.lcp for d in deltas) / n, MS_PRECISION),
            cls=round(sum(d.cls for d in deltas) / n, CLS_PRECISION),
            script_evaluation_time=round(sum(d.script_evaluation_time for d in deltas) / n, MS_PRECISION),
            layout_time=round(sum(d.layout_time for d in deltas) / n, MS_PRECISION),
            paint_time=round(sum(d.paint_time for d in deltas) / n, MS_PRECISION),
            fcp=round(sum(d.fcp for d in deltas) / n, MS_PRECISION),
            ttfb=round(sum(d.ttfb for d in deltas) / n, MS_PRECISION),
        )


class MetricsResult(pydantic.BaseModel):
    """A delta together with the snapshot pair that produced it."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    extension_id: str
    test_url: str
    duration_ms: int
    before: PerformanceSnapshot
    after: PerformanceSnapshot
    delta: MetricsDelta
