"""Rule-based recommendations for a measured delta.

Every rule inspects the delta and network summary independently and
returns at most one :class:`~extimpact.models.impact.Recommendation`.
Severity follows the metric's level: moderate → 1, high → 2, severe → 3.
"""

from __future__ import annotations

from collections.abc import Callable

from extimpact.models import impact, metrics, network
from extimpact.scoring import thresholds as thresholds_mod

Rule = Callable[
    [metrics.MetricsDelta, network.NetworkSummary, dict[str, thresholds_mod.MetricThresholds]],
    impact.Recommendation | None,
]

_SEVERITY: dict[impact.ImpactLevel, int] = {"moderate": 1, "high": 2, "severe": 3}

# Script evaluation above this (ms) is flagged regardless of the total.
SCRIPT_EVALUATION_LIMIT_MS = 500


def _leveled(rule: str, metric: str, value: float, table, message: str) -> impact.Recommendation | None:
    severity = _SEVERITY.get(table[metric].level(value), 0)
    if not severity:
        return None
    return impact.Recommendation(rule=rule, message=message, severity=severity)


def cpu_overhead(delta, net, table):
    return _leveled(
        "cpu_overhead", "cpu", delta.cpu_usage, table,
        f"CPU usage rose by {delta.cpu_usage:.1f}%. Throttle content-script work, "
        "debounce DOM observers and move heavy processing to the background worker.",
    )


def memory_overhead(delta, net, table):
    return _leveled(
        "memory_overhead", "memory", delta.memory_usage, table,
        f"JS heap grew by {delta.memory_usage:.1f} MB. Release DOM references and "
        "cached data in content scripts when they are no longer needed.",
    )


def execution_time(delta, net, table):
    return _leveled(
        "execution_time", "execution_time", delta.execution_time, table,
        f"Main-thread work increased by {delta.execution_time:.0f}ms. "
        "Defer non-critical work until after the page has loaded.",
    )


def script_evaluation(delta, net, table):
    if delta.script_evaluation_time <= SCRIPT_EVALUATION_LIMIT_MS:
        return None
    return impact.Recommendation(
        rule="script_evaluation",
        message=f"Script evaluation added {delta.script_evaluation_time:.0f}ms. "
        "Reduce the size of injected scripts or split them and load lazily.",
        severity=2,
    )


def lcp_regression(delta, net, table):
    return _leveled(
        "lcp_regression", "lcp", delta.lcp, table,
        f"Largest Contentful Paint slowed by {delta.lcp:.0f}ms. "
        "Avoid blocking resources at document_start and inject content after first paint.",
    )


def layout_shift(delta, net, table):
    return _leveled(
        "layout_shift", "cls", delta.cls, table,
        f"Cumulative Layout Shift rose by {delta.cls:.3f}. "
        "Reserve space for injected elements instead of inserting them into the flow.",
    )


def request_volume(delta, net, table):
    return _leveled(
        "request_volume", "requests", net.total_requests, table,
        f"The extension made {net.total_requests} requests. Batch or cache them.",
    )


def data_volume(delta, net, table):
    kb = net.total_data_transferred / 1024
    return _leveled(
        "data_volume", "data_kb", kb, table,
        f"The extension transferred {kb:.0f} KB. Compress payloads and avoid refetching.",
    )


def failed_requests(delta, net, table):
    failed = net.statistics.failed_requests
    if not failed:
        return None
    return impact.Recommendation(
        rule="failed_requests",
        message=f"{failed} extension request(s) failed. Handle errors and retry with backoff.",
        severity=1,
    )


RULES: tuple[Rule, ...] = (
    cpu_overhead,
    memory_overhead,
    execution_time,
    script_evaluation,
    lcp_regression,
    layout_shift,
    request_volume,
    data_volume,
    failed_requests,
)


def evaluate(
    delta: metrics.MetricsDelta,
    net: network.NetworkSummary,
    table: dict[str, thresholds_mod.MetricThresholds] | None = None,
    rules: tuple[Rule, ...] = RULES,
) -> list[impact.Recommendation]:
    """Run every rule and return the hits, most severe first (stable)."""
    table = table or thresholds_mod.THRESHOLDS
    hits = [rec for rule in rules if (rec := rule(delta, net, table)) is not None]
    return sorted(hits, key=lambda r: -r.severity)
