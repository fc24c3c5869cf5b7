"""Pydantic models for extension network monitoring."""

from __future__ import annotations

import pydantic

from extimpact.utils import serialization


class TrackedRequest(pydantic.BaseModel):
    """A single request correlated from its DevTools lifecycle events."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )

    request_id: str
    url: str
    method: str = "GET"
    resource_type: str = "other"
    mime_type: str = ""
    status_code: int | None = None
    from_cache: bool = False
    failed: bool = False
    timed_out: bool = False
    error_text: str | None = None
    encoded_bytes: int = 0
    duration_ms: float = 0.0

    @property
    def completed(self) -> bool:
        """Finished loading without a network-level failure."""
        return not self.failed


class NetworkStatistics(pydantic.BaseModel):
    """Request outcome counts."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    failed_requests: int = pydantic.Field(default=0, ge=0)
    cached_requests: int = pydantic.Field(default=0, ge=0)
    success_requests: int = pydantic.Field(default=0, ge=0)
    redirect_requests: int = pydantic.Field(default=0, ge=0)


class NetworkSummary(pydantic.BaseModel):
    """Aggregate view of one monitoring window.

    ``requests`` is only populated when the caller asked for the raw
    list; every other field is identical either way.
    """

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    extension_id: str = ""
    total_requests: int = pydantic.Field(default=0, ge=0)
    total_data_transferred: float = pydantic.Field(default=0, ge=0)
    average_request_time: float = pydantic.Field(default=0.0, ge=0)
    requests_by_type: dict[str, int] = pydantic.Field(default_factory=dict)
    requests_by_domain: dict[str, int] = pydantic.Field(default_factory=dict)
    requests_by_method: dict[str, int] = pydantic.Field(default_factory=dict)
    third_party_domains: list[str] = pydantic.Field(default_factory=list)
    statistics: NetworkStatistics = pydantic.Field(default_factory=NetworkStatistics)
    monitoring_duration: float = 0.0
    slowest_requests: list[TrackedRequest] = pydantic.Field(default_factory=list)
    recommendations: list[str] = pydantic.Field(default_factory=list)
    requests: list[TrackedRequest] | None = None

    @classmethod
    def empty(cls, extension_id: str = "") -> NetworkSummary:
        """Return a summary for a window in which nothing was requested."""
        return cls(extension_id=extension_id)


class NetworkAverage(pydantic.BaseModel):
    """Per-page mean of several :class:`NetworkSummary` windows."""

    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True, frozen=True
    )

    total_requests: float = 0.0
    total_data_transferred: float = 0.0
    average_request_time: float = 0.0
    failed_requests: float = 0.0
    cached_requests: float = 0.0

    @classmethod
    def mean(cls, summaries: list[NetworkSummary]) -> NetworkAverage:
        """Average the headline numbers of *summaries*."""
        if not summaries:
            return cls()
        n = len(summaries)
        return cls(
            total_requests=round(sum(s.total_requests for s in summaries) / n, 2),
            total_data_transferred=round(sum(s.total_data_transferred for s in summaries) / n, 2),
            average_request_time=round(sum(s.average_request_time for s in summaries) / n, 2),
            failed_requests=round(sum(s.statistics.failed_requests for s in summaries) / n, 2),
            cached_requests=round(sum(s.statistics.cached_requests for s in summaries) / n, 2),
        )
