"""Scoring constants: per-metric level thresholds, weights and level cut-offs.

Each metric has four ascending thresholds (low, moderate, high,
severe).  The severe threshold doubles as the saturation point of the
metric's sub-score: a delta at or above it earns the metric's full
weight.
"""

from __future__ import annotations

import dataclasses

from extimpact.models import impact


@dataclasses.dataclass(frozen=True)
class MetricThresholds:
    """Ascending delta thresholds for one metric."""

    low: float
    moderate: float
    high: float
    severe: float

    def level(self, value: float) -> impact.ImpactLevel:
        """Bucket *value* against these thresholds."""
        if value >= self.severe:
            return "severe"
        if value >= self.high:
            return "high"
        if value >= self.moderate:
            return "moderate"
        if value >= self.low:
            return "low"
        return "none"


# Units: cpu %, memory MB, execution/lcp ms, cls unitless,
# requests count, data KB.
THRESHOLDS: dict[str, MetricThresholds] = {
    "cpu": MetricThresholds(2, 5, 10, 20),
    "memory": MetricThresholds(5, 10, 25, 50),
    "execution_time": MetricThresholds(100, 250, 500, 1000),
    "lcp": MetricThresholds(100, 250, 500, 1000),
    "cls": MetricThresholds(0.01, 0.05, 0.1, 0.25),
    "requests": MetricThresholds(5, 10, 25, 50),
    "data_kb": MetricThresholds(100, 500, 2000, 10000),
}


@dataclasses.dataclass(frozen=True)
class ScoringWeights:
    """Points each metric contributes at saturation (must sum to 100)."""

    cpu: float = 15
    memory: float = 15
    execution_time: float = 10
    lcp: float = 20
    cls: float = 20
    requests: float = 10
    data_kb: float = 10

    def __post_init__(self) -> None:
        values = dataclasses.astuple(self)
        if any(v < 0 for v in values):
            raise ValueError("Scoring weights must be non-negative")
        if abs(sum(values) - 100) > 1e-6:
            raise ValueError(f"Scoring weights must sum to 100, got {sum(values)}")

    def as_dict(self) -> dict[str, float]:
        return dataclasses.asdict(self)


DEFAULT_WEIGHTS = ScoringWeights()

# (lower bound, level), checked from the top.
LEVEL_CUTOFFS: tuple[tuple[float, impact.ImpactLevel], ...] = (
    (80, "severe"),
    (55, "high"),
    (30, "moderate"),
    (10, "low"),
)


def score_level(score: float) -> impact.ImpactLevel:
    """Map a 0-100 composite score to its impact level."""
    for bound, level in LEVEL_CUTOFFS:
        if score >= bound:
            return level
    return "none"
