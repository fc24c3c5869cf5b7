"""
Pure reducers from iteration outcomes to report entries.

Nothing here touches the browser; the orchestrator feeds in what it
measured and gets back immutable models.
"""

from __future__ import annotations

import collections
from collections.abc import Iterable

from extimpact.models import impact, metrics, network
from extimpact.scoring import thresholds
from extimpact.utils import url as url_mod


def normalize_test_pages(pages: Iterable[str | dict | impact.TestPage]) -> list[impact.TestPage]:
    """Accept URLs, ``{url, name?, waitTime?}`` dicts or :class:`TestPage` entries.

    Raises:
        ValueError: The list is empty or an entry has no URL.
    """
    result: list[impact.TestPage] = []
    for page in pages:
        if isinstance(page, impact.TestPage):
            result.append(page)
        elif isinstance(page, str):
            if not page.strip():
                raise ValueError("Test page URL must not be empty")
            result.append(impact.TestPage(url=page.strip()))
        elif isinstance(page, dict):
            if not page.get("url"):
                raise ValueError(f"Test page entry has no url: {page!r}")
            result.append(impact.TestPage.model_validate(page))
        else:
            raise ValueError(f"Unsupported test page entry: {page!r}")
    if not result:
        raise ValueError("At least one test page is required")
    return result


def display_name(page: impact.TestPage) -> str:
    return page.name or url_mod.page_name(page.url)


def merge_recommendations(groups: Iterable[list[impact.Recommendation]]) -> list[impact.Recommendation]:
    """Deduplicate by rule, keeping the most severe occurrence of each.

    Output is ordered by descending severity, then first appearance.
    """
    best: dict[str, impact.Recommendation] = {}
    for group in groups:
        for rec in group:
            current = best.get(rec.rule)
            if current is None or rec.severity > current.severity:
                best[rec.rule] = rec
    return sorted(best.values(), key=lambda r: -r.severity)


def aggregate_page(
    page: impact.TestPage,
    iterations: int,
    outcomes: list[impact.IterationOutcome],
) -> impact.ImpactReportEntry:
    """Average one page's successful iterations into a report entry.

    A page with no successful iteration gets a ``failed`` entry with a
    zero score; it is excluded from the overall means.
    """
    if not outcomes:
        return impact.ImpactReportEntry(
            page_url=page.url,
            page_name=display_name(page),
            iterations=iterations,
            successful_iterations=0,
            status="failed",
            avg_performance=metrics.MetricsDelta(),
            avg_network=network.NetworkAverage(),
            impact_score=0.0,
            impact_level="none",
        )

    score = round(sum(o.score.impact_score for o in outcomes) / len(outcomes), 2)
    return impact.ImpactReportEntry(
        page_url=page.url,
        page_name=display_name(page),
        iterations=iterations,
        successful_iterations=len(outcomes),
        status="ok" if len(outcomes) == iterations else "partial",
        avg_performance=metrics.MetricsDelta.mean([o.performance.delta for o in outcomes]),
        avg_network=network.NetworkAverage.mean([o.network for o in outcomes]),
        impact_score=score,
        impact_level=thresholds.score_level(score),
        recommendations=merge_recommendations(o.score.recommendations for o in outcomes),
    )


def _mean(values: list[float], digits: int = 2) -> float:
    return round(sum(values) / len(values), digits) if values else 0.0


def aggregate_overall(entries: list[impact.ImpactReportEntry]) -> impact.OverallImpact:
    """Average every non-failed entry into the overall figures."""
    included = [e for e in entries if e.status != "failed"]
    excluded = [e.page_url for e in entries if e.status == "failed"]
    if not included:
        return impact.OverallImpact(pages_excluded=excluded)

    score = _mean([e.impact_score for e in included])
    return impact.OverallImpact(
        avg_cpu_increase=_mean([e.avg_performance.cpu_usage for e in included]),
        avg_memory_increase=_mean([e.avg_performance.memory_usage for e in included]),
        avg_execution_time_increase=_mean([e.avg_performance.execution_time for e in included]),
        avg_lcp_increase=_mean([e.avg_performance.lcp for e in included]),
        avg_cls_increase=_mean([e.avg_performance.cls for e in included], metrics.CLS_PRECISION),
        avg_requests_per_page=_mean([e.avg_network.total_requests for e in included]),
        avg_data_per_page=_mean([e.avg_network.total_data_transferred for e in included]),
        avg_request_time_per_page=_mean([e.avg_network.average_request_time for e in included]),
        overall_impact_score=score,
        overall_impact_level=thresholds.score_level(score),
        pages_included=len(included),
        pages_excluded=excluded,
    )


def overall_recommendations(entries: list[impact.ImpactReportEntry]) -> list[str]:
    """Union of entry recommendations, most widespread first.

    Ordered by the number of entries carrying the rule, then by its
    highest severity.
    """
    frequency: collections.Counter[str] = collections.Counter()
    best: dict[str, impact.Recommendation] = {}
    order: dict[str, int] = {}
    for entry in entries:
        for rec in entry.recommendations:
            frequency[rec.rule] += 1
            order.setdefault(rec.rule, len(order))
            current = best.get(rec.rule)
            if current is None or rec.severity > current.severity:
                best[rec.rule] = rec

    ranked = sorted(best, key=lambda rule: (-frequency[rule], -best[rule].severity, order[rule]))
    messages = []
    for rule in ranked:
        message = best[rule].message
        if frequency[rule] > 1:
            message = f"{message} (seen on {frequency[rule]} pages)"
        messages.append(message)
    return messages
