"""
Chrome trace parsing.

Reduces a raw ``traceEvents`` document to the handful of figures a
performance snapshot needs.  Only complete (``ph == "X"``) events carry
durations; instant and counter events are read for paint timings,
first byte, CLS and heap.
"""

from __future__ import annotations

import dataclasses
import json
from collections.abc import Iterable
from typing import Any

from extimpact.utils import errors
from extimpact.utils import url as url_mod

SCRIPT_EVENTS = frozenset({"EvaluateScript", "v8.compile", "v8.run", "FunctionCall"})
LAYOUT_EVENTS = frozenset({"Layout", "UpdateLayoutTree"})
PAINT_EVENTS = frozenset({"Paint", "CompositeLayers"})

LCP_CANDIDATE = "largestContentfulPaint::Candidate"
FCP = "firstContentfulPaint"
FIRST_RESPONSE = "ResourceReceiveResponse"
NAVIGATION_START = "navigationStart"
LAYOUT_SHIFT = "LayoutShift"
UPDATE_COUNTERS = "UpdateCounters"

_US_PER_MS = 1000


@dataclasses.dataclass(frozen=True)
class TraceSummary:
    """Figures derived from one trace, in milliseconds unless noted."""

    script_ms: float
    layout_ms: float
    paint_ms: float
    wall_ms: float
    lcp_ms: float
    cls: float
    heap_bytes: float | None
    event_count: int
    fcp_ms: float = 0.0
    ttfb_ms: float = 0.0

    @property
    def execution_ms(self) -> float:
        return self.script_ms + self.layout_ms + self.paint_ms


def load_events(raw: bytes | str) -> list[dict[str, Any]]:
    """Parse a trace document into its event list.

    Accepts both the object form (``{"traceEvents": [...]}``) and the
    bare array form.

    Raises:
        CollectionError: The document is not JSON or holds no events.
    """
    try:
        document = json.loads(raw)
    except (ValueError, TypeError) as exc:
        raise errors.CollectionError(f"Trace is not valid JSON: {exc}", operation="trace_parse") from exc

    events = document.get("traceEvents") if isinstance(document, dict) else document
    if not isinstance(events, list):
        raise errors.CollectionError("Trace has no event list", operation="trace_parse")
    events = [e for e in events if isinstance(e, dict)]
    if not events:
        raise errors.CollectionError("Trace contains no events", operation="trace_parse")
    return events


def _data(event: dict[str, Any]) -> dict[str, Any]:
    args = event.get("args") or {}
    return args.get("data") or args.get("beginData") or {}


def event_urls(event: dict[str, Any]) -> Iterable[str]:
    """Yield every URL an event can be attributed to."""
    data = _data(event)
    for key in ("url", "scriptName", "frame"):
        value = data.get(key)
        if isinstance(value, str):
            yield value
    for frame in data.get("stackTrace") or []:
        if isinstance(frame, dict) and isinstance(frame.get("url"), str):
            yield frame["url"]


def is_extension_event(event: dict[str, Any], extension_id: str) -> bool:
    """Return ``True`` if the event's work is attributed to the extension."""
    return any(url_mod.is_extension_url(u, extension_id) for u in event_urls(event))


def _duration_ms(event: dict[str, Any]) -> float:
    if event.get("ph") != "X":
        return 0.0
    return float(event.get("dur") or 0) / _US_PER_MS


def summarize(events: list[dict[str, Any]], exclude_extension_id: str | None = None) -> TraceSummary:
    """Derive a :class:`TraceSummary` from parsed trace events.

    Args:
        events: Output of :func:`load_events`.
        exclude_extension_id: When set, script, layout and paint events
            attributed to ``chrome-extension://<id>`` are left out of
            the sums.

    Returns:
        The summary.  ``heap_bytes`` is ``None`` when the trace held no
        ``UpdateCounters`` sample.
    """
    script = layout = paint = 0.0
    first_ts: float | None = None
    last_ts: float | None = None
    nav_starts: list[float] = []
    lcp_candidates: list[float] = []
    fcp_marks: list[float] = []
    responses: list[float] = []
    cls = 0.0
    heap: tuple[float, float] | None = None

    for event in events:
        name = event.get("name")
        ts = event.get("ts")
        if isinstance(ts, (int, float)) and ts > 0 and event.get("ph") != "M":
            end = ts + float(event.get("dur") or 0)
            first_ts = ts if first_ts is None else min(first_ts, ts)
            last_ts = end if last_ts is None else max(last_ts, end)

        if name in SCRIPT_EVENTS or name in LAYOUT_EVENTS or name in PAINT_EVENTS:
            if exclude_extension_id and is_extension_event(event, exclude_extension_id):
                continue
            if name in SCRIPT_EVENTS:
                script += _duration_ms(event)
            elif name in LAYOUT_EVENTS:
                layout += _duration_ms(event)
            else:
                paint += _duration_ms(event)
        elif name == NAVIGATION_START and isinstance(ts, (int, float)):
            nav_starts.append(ts)
        elif name == LCP_CANDIDATE and isinstance(ts, (int, float)):
            lcp_candidates.append(ts)
        elif name == FCP and isinstance(ts, (int, float)):
            fcp_marks.append(ts)
        elif name == FIRST_RESPONSE and isinstance(ts, (int, float)):
            responses.append(ts)
        elif name == LAYOUT_SHIFT:
            data = _data(event)
            if not data.get("had_recent_input"):
                cls += float(data.get("score") or 0)
        elif name == UPDATE_COUNTERS and isinstance(ts, (int, float)):
            used = _data(event).get("jsHeapSizeUsed")
            if isinstance(used, (int, float)) and (heap is None or ts >= heap[0]):
                heap = (ts, float(used))

    def since_navigation(mark: float | None) -> float:
        if mark is None:
            return 0.0
        starts = [s for s in nav_starts if s <= mark]
        origin = max(starts) if starts else (first_ts or mark)
        return max(0.0, (mark - origin) / _US_PER_MS)

    def first_after_navigation(marks: list[float]) -> float | None:
        last_nav = max(nav_starts, default=None)
        return min((m for m in marks if last_nav is None or m >= last_nav), default=None)

    lcp = since_navigation(max(lcp_candidates, default=None))
    fcp = since_navigation(first_after_navigation(fcp_marks))
    ttfb = since_navigation(first_after_navigation(responses))

    wall = (last_ts - first_ts) / _US_PER_MS if first_ts is not None and last_ts is not None else 0.0

    return TraceSummary(
        script_ms=script,
        layout_ms=layout,
        paint_ms=paint,
        wall_ms=wall,
        lcp_ms=lcp,
        cls=cls,
        heap_bytes=heap[1] if heap else None,
        event_count=len(events),
        fcp_ms=fcp,
        ttfb_ms=ttfb,
    )
