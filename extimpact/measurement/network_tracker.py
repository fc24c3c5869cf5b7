"""
NetworkTracker - correlate raw DevTools network events into a summary.

Events arrive as ``{"method": "Network.<event>", "params": {...}}``
dicts, correlated by ``requestId``.  Only requests attributed to the
extension are kept.  A request with no terminal event by the end of
the window is marked as timed out and counted as failed.
"""

from __future__ import annotations

import collections
from typing import TYPE_CHECKING, Any

from extimpact import config
from extimpact.measurement import collector
from extimpact.models import network
from extimpact.utils import deadline as deadline_mod
from extimpact.utils import errors, logger
from extimpact.utils import url as url_mod

if TYPE_CHECKING:
    from extimpact.browser import session as session_mod

log = logger.create_logger("NetworkTracker")

SLOWEST_REQUEST_COUNT = 5

_MIME_CATEGORIES = (
    ("javascript", "script"),
    ("ecmascript", "script"),
    ("css", "stylesheet"),
    ("image/", "image"),
    ("font", "font"),
    ("html", "document"),
    ("json", "xhr"),
    ("xml", "xhr"),
    ("audio/", "media"),
    ("video/", "media"),
)

_LOCAL_HOSTS = ("localhost", "127.0.0.1", "[::1]")

# Recommendation thresholds
_MANY_REQUESTS = 100
_SOME_REQUESTS = 50
_LARGE_TRANSFER = 10 * 1024 * 1024
_MODERATE_TRANSFER = 5 * 1024 * 1024
_SLOW_AVERAGE_MS = 2000
_MODERATE_AVERAGE_MS = 1000
_LOW_CACHE_RATE = 0.2
_CACHE_RATE_MIN_REQUESTS = 10
_MANY_DOMAINS = 10


def mime_category(mime_type: str) -> str:
    """Map a MIME type to a resource-type bucket."""
    lowered = mime_type.lower()
    for needle, category in _MIME_CATEGORIES:
        if needle in lowered:
            return category
    return "other"


def _stack_urls(stack: dict[str, Any] | None):
    while stack:
        for frame in stack.get("callFrames") or []:
            if frame.get("url"):
                yield frame["url"]
        stack = stack.get("parent")


def is_extension_request(params: dict[str, Any], extension_id: str) -> bool:
    """Return ``True`` if a ``requestWillBeSent`` payload belongs to the extension.

    An empty *extension_id* attributes every request.
    """
    if not extension_id:
        return True
    initiator = params.get("initiator") or {}
    candidates = [
        initiator.get("url"),
        params.get("documentURL"),
        (params.get("request") or {}).get("url"),
        *_stack_urls(initiator.get("stack")),
    ]
    return any(url_mod.is_extension_url(u, extension_id) for u in candidates)


class _Pending:
    """Mutable per-request accumulator used during correlation."""

    __slots__ = (
        "request_id", "url", "method", "cdp_type", "mime_type", "status",
        "from_cache", "failed", "finished", "error_text", "encoded",
        "started", "ended", "redirects",
    )

    def __init__(self, request_id: str, params: dict[str, Any]) -> None:
        request = params.get("request") or {}
        self.request_id = request_id
        self.url: str = request.get("url", "")
        self.method: str = request.get("method", "GET")
        self.cdp_type: str | None = params.get("type")
        self.mime_type = ""
        self.status: int | None = None
        self.from_cache = False
        self.failed = False
        self.finished = False
        self.error_text: str | None = None
        self.encoded = 0
        self.started: float | None = params.get("timestamp")
        self.ended: float | None = None
        self.redirects = 0

    def to_model(self) -> network.TrackedRequest:
        timed_out = not (self.finished or self.failed)
        duration = 0.0
        if self.finished and self.started is not None and self.ended is not None:
            duration = max(0.0, (self.ended - self.started) * 1000)
        resource_type = (self.cdp_type or "").lower() or mime_category(self.mime_type)
        return network.TrackedRequest(
            request_id=self.request_id,
            url=self.url,
            method=self.method,
            resource_type=resource_type,
            mime_type=self.mime_type,
            status_code=self.status,
            from_cache=self.from_cache,
            failed=self.failed or timed_out,
            timed_out=timed_out,
            error_text="Timed out before the window closed" if timed_out else self.error_text,
            encoded_bytes=self.encoded,
            duration_ms=round(duration, 2),
        )


def correlate(events: list[dict[str, Any]], extension_id: str) -> tuple[list[network.TrackedRequest], int]:
    """Correlate raw events into tracked requests.

    Returns:
        The extension's requests in first-seen order, and the number of
        redirect hops observed among them.
    """
    pending: dict[str, _Pending] = {}
    ignored: set[str] = set()
    redirects = 0

    for event in events:
        method = event.get("method", "")
        params = event.get("params") or {}
        request_id = params.get("requestId")
        if not request_id or request_id in ignored:
            continue

        if method == "Network.requestWillBeSent":
            entry = pending.get(request_id)
            if entry is None:
                if not is_extension_request(params, extension_id):
                    ignored.add(request_id)
                    continue
                pending[request_id] = _Pending(request_id, params)
            elif params.get("redirectResponse"):
                entry.redirects += 1
                redirects += 1
                entry.url = (params.get("request") or {}).get("url", entry.url)
            continue

        entry = pending.get(request_id)
        if entry is None:
            continue
        if method == "Network.responseReceived":
            response = params.get("response") or {}
            entry.status = response.get("status")
            entry.mime_type = response.get("mimeType", "")
            entry.cdp_type = params.get("type") or entry.cdp_type
            if response.get("fromDiskCache") or response.get("fromServiceWorker") or response.get("fromPrefetchCache"):
                entry.from_cache = True
        elif method == "Network.requestServedFromCache":
            entry.from_cache = True
        elif method == "Network.loadingFinished":
            entry.finished = True
            entry.ended = params.get("timestamp")
            entry.encoded = int(params.get("encodedDataLength") or 0)
        elif method == "Network.loadingFailed":
            entry.failed = True
            entry.ended = params.get("timestamp")
            entry.error_text = params.get("errorText") or ("Canceled" if params.get("canceled") else None)

    return [p.to_model() for p in pending.values()], redirects


def _recommendations(
    requests: list[network.TrackedRequest],
    total_bytes: int,
    average_ms: float,
    stats: network.NetworkStatistics,
    domains: int,
) -> list[str]:
    total = len(requests)
    recs: list[str] = []
    if total > _MANY_REQUESTS:
        recs.append(f"High number of network requests ({total}). Consider batching requests or caching responses.")
    elif total > _SOME_REQUESTS:
        recs.append(f"Moderate number of network requests ({total}). Review whether every request is necessary.")

    mb = total_bytes / (1024 * 1024)
    if total_bytes > _LARGE_TRANSFER:
        recs.append(f"Large data transfer ({mb:.2f} MB). Compress payloads or defer non-critical downloads.")
    elif total_bytes > _MODERATE_TRANSFER:
        recs.append(f"Moderate data transfer ({mb:.2f} MB). Consider compressing responses.")

    if average_ms > _SLOW_AVERAGE_MS:
        recs.append(f"Slow average request time ({average_ms:.0f}ms). Check endpoint latency or use a CDN.")
    elif average_ms > _MODERATE_AVERAGE_MS:
        recs.append(f"Average request time is elevated ({average_ms:.0f}ms).")

    if stats.failed_requests > 0:
        recs.append(f"{stats.failed_requests} request(s) failed. Add error handling and retry with backoff.")

    if total > _CACHE_RATE_MIN_REQUESTS and stats.cached_requests / total < _LOW_CACHE_RATE:
        recs.append("Low cache hit rate. Set cache headers or cache responses in extension storage.")

    if domains > _MANY_DOMAINS:
        recs.append(f"Requests go to {domains} different domains. Consolidate endpoints where possible.")

    insecure = [
        r for r in requests
        if r.url.startswith("http://") and url_mod.extract_domain(r.url) not in _LOCAL_HOSTS
    ]
    if insecure:
        recs.append(f"{len(insecure)} request(s) use plain HTTP. Switch to HTTPS.")
    return recs


def summarize(
    events: list[dict[str, Any]],
    extension_id: str,
    monitoring_duration: float,
    include_requests: bool = False,
) -> network.NetworkSummary:
    """Reduce one window of raw events to a :class:`NetworkSummary`."""
    requests, redirect_hops = correlate(events, extension_id)
    if not requests:
        summary = network.NetworkSummary.empty(extension_id)
        return summary.model_copy(update={
            "monitoring_duration": monitoring_duration,
            "requests": [] if include_requests else None,
        })

    completed = [r for r in requests if r.completed]
    total_bytes = sum(r.encoded_bytes for r in requests)
    average = sum(r.duration_ms for r in completed) / len(completed) if completed else 0.0

    by_type = collections.Counter(r.resource_type for r in completed)
    by_domain = collections.Counter(url_mod.extract_domain(r.url) for r in requests)
    by_method = collections.Counter(r.method for r in requests)
    third_party = sorted({
        url_mod.get_base_domain(url_mod.extract_domain(r.url)) for r in requests if url_mod.is_web_url(r.url)
    })

    stats = network.NetworkStatistics(
        failed_requests=sum(1 for r in requests if r.failed),
        cached_requests=sum(1 for r in requests if r.from_cache),
        success_requests=sum(1 for r in completed if r.status_code is not None and 200 <= r.status_code < 300),
        redirect_requests=redirect_hops + sum(
            1 for r in completed if r.status_code is not None and 300 <= r.status_code < 400
        ),
    )
    slowest = sorted(completed, key=lambda r: r.duration_ms, reverse=True)[:SLOWEST_REQUEST_COUNT]

    return network.NetworkSummary(
        extension_id=extension_id,
        total_requests=len(requests),
        total_data_transferred=total_bytes,
        average_request_time=round(average, 2),
        requests_by_type=dict(by_type),
        requests_by_domain=dict(by_domain),
        requests_by_method=dict(by_method),
        third_party_domains=third_party,
        statistics=stats,
        monitoring_duration=monitoring_duration,
        slowest_requests=slowest,
        recommendations=_recommendations(requests, total_bytes, average, stats, len(by_domain)),
        requests=requests if include_requests else None,
    )


class NetworkTracker:
    """Watches the tab's network activity for a fixed window."""

    def __init__(
        self,
        session: session_mod.BrowserSession,
        settings: config.ProbeSettings | None = None,
    ) -> None:
        self._session = session
        self._settings = settings or config.get_settings()

    async def track(
        self,
        extension_id: str,
        duration: int | None = None,
        test_url: str | None = None,
        include_requests: bool = False,
    ) -> network.NetworkSummary:
        """Monitor the extension's requests for *duration* ms.

        Raises:
            ValueError: *duration* is not a positive integer.
            CollectionError: The event stream could not be collected.
        """
        s = self._settings
        duration = collector.validate_duration(s.default_network_duration_ms if duration is None else duration)
        timeout_ms = duration + s.navigation_timeout_ms + s.trace_overhead_timeout_ms

        log.start_timer("network-window")
        try:
            events = await deadline_mod.bounded(
                self._session.get_network_events(duration, test_url),
                timeout_ms,
                error_type=errors.CollectionError,
                operation="network_window",
                page_url=test_url,
            )
        except errors.ImpactError:
            raise
        except Exception as exc:
            raise errors.CollectionError(
                f"Network monitoring failed: {errors.get_error_message(exc)}",
                operation="network_window",
                page_url=test_url,
            ) from exc
        elapsed = log.end_timer("network-window", "Network window closed")

        summary = summarize(events, extension_id, float(duration), include_requests)
        log.info("Network summary", {
            "events": len(events),
            "requests": summary.total_requests,
            "bytes": summary.total_data_transferred,
            "failed": summary.statistics.failed_requests,
            "elapsedMs": round(elapsed),
        })
        return summary
