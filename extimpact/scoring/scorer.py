"""ImpactScorer - composite 0-100 score for one measured delta."""

from __future__ import annotations

from extimpact.models import impact, metrics, network
from extimpact.scoring import recommendations
from extimpact.scoring import thresholds as thresholds_mod
from extimpact.utils import logger

log = logger.create_logger("ImpactScorer")


def _ratio(value: float, saturation: float) -> float:
    """Normalise *value* to [0, 1]; improvements count as zero."""
    if value <= 0 or saturation <= 0:
        return 0.0
    return min(1.0, value / saturation)


class ImpactScorer:
    """Weighted linear combination of per-metric sub-scores.

    Each metric's delta is divided by its severe threshold, clipped to
    [0, 1] and multiplied by its weight.  The weights sum to 100 so the
    composite lands in [0, 100].
    """

    def __init__(
        self,
        weights: thresholds_mod.ScoringWeights | None = None,
        table: dict[str, thresholds_mod.MetricThresholds] | None = None,
    ) -> None:
        self._weights = weights or thresholds_mod.DEFAULT_WEIGHTS
        self._table = {**thresholds_mod.THRESHOLDS, **(table or {})}

    def score(self, delta: metrics.MetricsDelta, net: network.NetworkSummary) -> impact.ImpactScore:
        values = {
            "cpu": delta.cpu_usage,
            "memory": delta.memory_usage,
            "execution_time": delta.execution_time,
            "lcp": delta.lcp,
            "cls": delta.cls,
            "requests": float(net.total_requests),
            "data_kb": net.total_data_transferred / 1024,
        }
        weights = self._weights.as_dict()
        components = {
            name: round(_ratio(value, self._table[name].severe) * weights[name], 2)
            for name, value in values.items()
        }
        total = round(min(100.0, max(0.0, sum(components.values()))), 2)
        level = thresholds_mod.score_level(total)
        recs = recommendations.evaluate(delta, net, self._table)

        log.debug("Impact scored", {"score": total, "level": level, "recommendations": len(recs)})
        return impact.ImpactScore(
            impact_score=total,
            impact_level=level,
            recommendations=recs,
            components=components,
        )
