"""Key findings and the plain-text summary of an impact report."""

from __future__ import annotations

from extimpact.models import impact
from extimpact.scoring import thresholds

# Score points between best and worst page before spread is reported.
PAGE_SPREAD_POINTS = 20
# A page whose request count exceeds this multiple of the others' mean.
NETWORK_OUTLIER_FACTOR = 2.0

_FLAGGED_LEVELS = ("moderate", "high", "severe")

_METRICS = (
    ("cpu", "avg_cpu_increase", "CPU usage increase", "{:.1f}%"),
    ("memory", "avg_memory_increase", "Memory increase", "{:.1f} MB"),
    ("execution_time", "avg_execution_time_increase", "Main-thread work increase", "{:.0f}ms"),
    ("lcp", "avg_lcp_increase", "LCP regression", "{:.0f}ms"),
    ("cls", "avg_cls_increase", "Layout shift increase", "{:.3f}"),
    ("requests", "avg_requests_per_page", "Requests per page", "{:.1f}"),
)


def key_findings(
    overall: impact.OverallImpact,
    entries: list[impact.ImpactReportEntry],
    failures: list[impact.IterationFailure],
    total_tests: int,
) -> list[str]:
    """Derive the headline observations of a run."""
    findings: list[str] = []
    measured = [e for e in entries if e.status != "failed"]

    if measured:
        findings.append(
            f"Overall impact is {overall.overall_impact_level.upper()} "
            f"(score {overall.overall_impact_score:.1f}/100) across {len(measured)} page(s)."
        )
    else:
        findings.append("No page could be measured; the impact score is unavailable.")

    for key, field, label, fmt in _METRICS:
        value = getattr(overall, field)
        level = thresholds.THRESHOLDS[key].level(value)
        if level in _FLAGGED_LEVELS:
            findings.append(f"{label} of {fmt.format(value)} is {level}.")
    data_kb = overall.avg_data_per_page / 1024
    level = thresholds.THRESHOLDS["data_kb"].level(data_kb)
    if level in _FLAGGED_LEVELS:
        findings.append(f"Data transferred per page of {data_kb:.0f} KB is {level}.")

    if len(measured) > 1:
        best = min(measured, key=lambda e: e.impact_score)
        worst = max(measured, key=lambda e: e.impact_score)
        if worst.impact_score - best.impact_score > PAGE_SPREAD_POINTS:
            findings.append(
                f"Impact varies significantly across pages: {worst.page_name} scores "
                f"{worst.impact_score:.1f} while {best.page_name} scores {best.impact_score:.1f}."
            )
        for entry in measured:
            others = [e.avg_network.total_requests for e in measured if e is not entry]
            mean_others = sum(others) / len(others)
            if mean_others > 0 and entry.avg_network.total_requests > NETWORK_OUTLIER_FACTOR * mean_others:
                findings.append(
                    f"{entry.page_name} triggers disproportionate network activity "
                    f"({entry.avg_network.total_requests:.1f} requests vs {mean_others:.1f} elsewhere)."
                )

    if failures:
        findings.append(f"{len(failures)} of {total_tests} test iteration(s) failed.")
    for entry in entries:
        if entry.status == "failed":
            findings.append(f"{entry.page_name} could not be measured and is excluded from the overall score.")
    return findings


def summary_text(report: impact.ImpactReport) -> str:
    """Render a short human-readable block for logs and saved reports."""
    overall = report.overall
    lines = [
        f"Extension {report.extension_id} - {report.test_date}",
        f"Impact: {overall.overall_impact_level.upper()} ({overall.overall_impact_score:.1f}/100)",
        f"Pages: {overall.pages_included} measured, {len(overall.pages_excluded)} excluded, "
        f"{report.configuration.iterations_per_page} iteration(s) each",
        f"CPU +{overall.avg_cpu_increase:.1f}%  Memory +{overall.avg_memory_increase:.1f} MB  "
        f"LCP +{overall.avg_lcp_increase:.0f}ms  CLS +{overall.avg_cls_increase:.3f}",
        f"Network: {overall.avg_requests_per_page:.1f} requests, "
        f"{overall.avg_data_per_page / 1024:.1f} KB per page",
    ]
    for entry in report.page_results:
        lines.append(
            f"  - {entry.page_name}: {entry.impact_level} ({entry.impact_score:.1f}) "
            f"[{entry.successful_iterations}/{entry.iterations}]"
        )
    if report.recommendations:
        lines.append("Top recommendation: " + report.recommendations[0])
    return "\n".join(lines)
