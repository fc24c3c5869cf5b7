"""Pydantic models for impact scores and multi-page impact reports."""

from __future__ import annotations

from typing import Literal

import pydantic

from extimpact.models import metrics, network
from extimpact.utils import serialization

ImpactLevel = Literal["none", "low", "moderate", "high", "severe"]

PageStatus = Literal["ok", "partial", "failed"]

Operation = Literal["page_state", "performance", "network", "scoring"]


class Recommendation(pydantic.BaseModel):
    """A rule-generated suggestion with the severity that triggered it."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    rule: str
    message: str
    severity: int = pydantic.Field(ge=0, le=3)


class ImpactScore(pydantic.BaseModel):
    """Composite score for one (delta, network) pair."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    impact_score: float = pydantic.Field(ge=0, le=100)
    impact_level: ImpactLevel
    recommendations: list[Recommendation] = pydantic.Field(default_factory=list)
    components: dict[str, float] = pydantic.Field(default_factory=dict)


class TestPage(pydantic.BaseModel):
    """A page to measure, optionally named and with a post-load wait."""

    __test__ = False

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    url: str
    name: str | None = None
    wait_time: int | None = pydantic.Field(default=None, ge=0)


class IterationOutcome(pydantic.BaseModel):
    """One successful (page, iteration) measurement."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    page_url: str
    iteration: int
    performance: metrics.MetricsResult
    network: network.NetworkSummary
    score: ImpactScore


class IterationFailure(pydantic.BaseModel):
    """Why one (page, iteration) measurement produced no result."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    page_url: str
    iteration: int
    operation: Operation
    error_type: str
    message: str


class ImpactReportEntry(pydantic.BaseModel):
    """Iteration-averaged impact for one page."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    page_url: str
    page_name: str
    iterations: int
    successful_iterations: int
    status: PageStatus
    avg_performance: metrics.MetricsDelta
    avg_network: network.NetworkAverage
    impact_score: float = pydantic.Field(ge=0, le=100)
    impact_level: ImpactLevel
    recommendations: list[Recommendation] = pydantic.Field(default_factory=list)


class ReportConfiguration(pydantic.BaseModel):
    """Shape of the campaign that produced a report."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    total_tests: int
    total_pages: int
    iterations_per_page: int


class OverallImpact(pydantic.BaseModel):
    """Mean of all non-failed page entries."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    avg_cpu_increase: float = 0.0
    avg_memory_increase: float = 0.0
    avg_execution_time_increase: float = 0.0
    avg_lcp_increase: float = 0.0
    avg_cls_increase: float = 0.0
    avg_requests_per_page: float = 0.0
    avg_data_per_page: float = 0.0
    avg_request_time_per_page: float = 0.0
    overall_impact_score: float = pydantic.Field(default=0.0, ge=0, le=100)
    overall_impact_level: ImpactLevel = "none"
    pages_included: int = 0
    pages_excluded: list[str] = pydantic.Field(default_factory=list)


class ImpactReport(pydantic.BaseModel):
    """Aggregate report of a multi-page, multi-iteration run."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    extension_id: str
    test_date: str
    configuration: ReportConfiguration
    overall: OverallImpact
    page_results: list[ImpactReportEntry]
    key_findings: list[str] = pydantic.Field(default_factory=list)
    recommendations: list[str] = pydantic.Field(default_factory=list)
    failures: list[IterationFailure] = pydantic.Field(default_factory=list)
    summary: str = ""
