"""
Runtime configuration for measurement runs and page-state monitoring.

Centralises environment variable names, default durations and every
timeout bound used by the measurement core.

Uses ``pydantic_settings.BaseSettings`` for automatic environment
variable binding, type coercion, and validation.
"""

from __future__ import annotations

import functools

import pydantic
import pydantic_settings


class ProbeSettings(pydantic_settings.BaseSettings):
    """Settings for attaching to Chrome and bounding every wait.

    Attributes:
        cdp_url: DevTools endpoint of the already-running Chrome.
        default_performance_duration_ms: Trace window per pass.
        default_network_duration_ms: Network monitoring window.
        default_iterations: Iterations per page for impact runs.
        navigation_timeout_ms: Bound on a single navigation.
        trace_overhead_timeout_ms: Extra allowance on top of a trace
            or network window before the call is declared stuck.
        idle_wait_cap_ms: Upper bound on waiting for network idle.
        detection_timeout_ms: Bound on one page-state / dialog check.
        dialog_handle_timeout_ms: Bound on resolving one dialog.
        monitor_interval_ms: Default page-state monitor tick.
        settle_pause_ms: Pause between baseline and extension passes.
        iteration_pause_ms: Pause between iterations of one page.
    """

    model_config = pydantic_settings.SettingsConfigDict(populate_by_name=True)

    cdp_url: str = pydantic.Field(
        default="http://127.0.0.1:9222", validation_alias="CHROME_CDP_URL"
    )
    default_performance_duration_ms: int = pydantic.Field(
        default=2000, gt=0, validation_alias="DEFAULT_PERFORMANCE_DURATION_MS"
    )
    default_network_duration_ms: int = pydantic.Field(
        default=5000, gt=0, validation_alias="DEFAULT_NETWORK_DURATION_MS"
    )
    default_iterations: int = pydantic.Field(
        default=3, gt=0, validation_alias="DEFAULT_ITERATIONS"
    )
    navigation_timeout_ms: int = pydantic.Field(
        default=15000, gt=0, validation_alias="NAVIGATION_TIMEOUT_MS"
    )
    trace_overhead_timeout_ms: int = pydantic.Field(
        default=20000, gt=0, validation_alias="TRACE_OVERHEAD_TIMEOUT_MS"
    )
    idle_wait_cap_ms: int = pydantic.Field(
        default=10000, gt=0, validation_alias="IDLE_WAIT_CAP_MS"
    )
    detection_timeout_ms: int = pydantic.Field(
        default=2000, gt=0, validation_alias="DETECTION_TIMEOUT_MS"
    )
    dialog_handle_timeout_ms: int = pydantic.Field(
        default=2000, gt=0, validation_alias="DIALOG_HANDLE_TIMEOUT_MS"
    )
    monitor_interval_ms: int = pydantic.Field(
        default=2000, gt=0, validation_alias="MONITOR_INTERVAL_MS"
    )
    settle_pause_ms: int = pydantic.Field(
        default=300, ge=0, validation_alias="SETTLE_PAUSE_MS"
    )
    iteration_pause_ms: int = pydantic.Field(
        default=300, ge=0, validation_alias="ITERATION_PAUSE_MS"
    )


@functools.lru_cache(maxsize=1)
def get_settings() -> ProbeSettings:
    """Return the process-wide settings, read once from the environment."""
    return ProbeSettings()
