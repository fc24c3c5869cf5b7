"""Shared fixtures and a scripted fake browser for the test suite."""

from __future__ import annotations

import asyncio
import json
from typing import Any

import pytest

from extimpact import config
from extimpact.measurement import sampler
from extimpact.page_state import dialogs

EXTENSION_ID = "abcdefghijklmnopabcdefghijklmnop"
EXTENSION_ORIGIN = f"chrome-extension://{EXTENSION_ID}"

_TRACE_BASE_US = 1_000_000


# ── Builders ────────────────────────────────────────────────────


def make_trace(
    *,
    script: float = 0.0,
    extension_script: float = 0.0,
    layout: float = 0.0,
    paint: float = 0.0,
    lcp: float | None = None,
    fcp: float | None = None,
    ttfb: float | None = None,
    shifts: tuple[float, ...] = (),
    heap_mb: float | None = 10.0,
    span_ms: float = 1000.0,
    extension_id: str = EXTENSION_ID,
) -> bytes:
    """Build a minimal trace document with the given durations (ms)."""
    base = _TRACE_BASE_US
    events: list[dict[str, Any]] = [
        {"name": "thread_name", "ph": "M", "ts": 0, "args": {"name": "CrRendererMain"}},
        {"name": "TracingStartedInBrowser", "ph": "I", "ts": base},
        {"name": "navigationStart", "ph": "R", "ts": base},
    ]

    def complete(name: str, offset_ms: float, dur_ms: float, url: str) -> None:
        events.append({
            "name": name, "ph": "X", "ts": base + offset_ms * 1000, "dur": dur_ms * 1000,
            "args": {"data": {"url": url}},
        })

    if script:
        complete("EvaluateScript", 10, script, "https://example.com/app.js")
    if extension_script:
        complete("FunctionCall", 20, extension_script, f"chrome-extension://{extension_id}/content.js")
    if layout:
        complete("Layout", 30, layout, "https://example.com/")
    if paint:
        complete("Paint", 40, paint, "https://example.com/")
    if lcp is not None:
        events.append({"name": "largestContentfulPaint::Candidate", "ph": "R", "ts": base + lcp * 1000})
    if fcp is not None:
        events.append({"name": "firstContentfulPaint", "ph": "R", "ts": base + fcp * 1000})
    if ttfb is not None:
        events.append({
            "name": "ResourceReceiveResponse", "ph": "I", "ts": base + ttfb * 1000,
            "args": {"data": {"url": "https://example.com/"}},
        })
    for i, score in enumerate(shifts):
        events.append({
            "name": "LayoutShift", "ph": "I", "ts": base + 500 + i,
            "args": {"data": {"score": score, "had_recent_input": False}},
        })
    if heap_mb is not None:
        events.append({
            "name": "UpdateCounters", "ph": "I", "ts": base + 900,
            "args": {"data": {"jsHeapSizeUsed": heap_mb * 1024 * 1024}},
        })
    events.append({"name": "TracingEnded", "ph": "I", "ts": base + span_ms * 1000})
    return json.dumps({"traceEvents": events}).encode()


def request_events(
    request_id: str,
    url: str = "https://api.example.com/data",
    *,
    start: float = 10.0,
    duration_ms: float = 100.0,
    status: int = 200,
    size: int = 1000,
    failed: bool = False,
    finished: bool = True,
    resource_type: str = "Fetch",
    mime_type: str = "application/json",
    method: str = "GET",
    from_cache: bool = False,
    initiator_url: str | None = f"{EXTENSION_ORIGIN}/background.js",
) -> list[dict[str, Any]]:
    """Raw DevTools events for one request lifecycle."""
    end = start + duration_ms / 1000
    initiator: dict[str, Any] = {"type": "script"}
    if initiator_url:
        initiator["url"] = initiator_url
    events = [{
        "method": "Network.requestWillBeSent",
        "params": {
            "requestId": request_id,
            "request": {"url": url, "method": method},
            "initiator": initiator,
            "timestamp": start,
            "type": resource_type,
        },
    }]
    if failed:
        events.append({
            "method": "Network.loadingFailed",
            "params": {"requestId": request_id, "timestamp": end, "errorText": "net::ERR_CONNECTION_REFUSED"},
        })
        return events
    events.append({
        "method": "Network.responseReceived",
        "params": {
            "requestId": request_id,
            "type": resource_type,
            "response": {"status": status, "mimeType": mime_type, "fromDiskCache": from_cache},
        },
    })
    if finished:
        events.append({
            "method": "Network.loadingFinished",
            "params": {"requestId": request_id, "timestamp": end, "encodedDataLength": size},
        })
    return events


def modal(
    number: int,
    *,
    buttons: tuple[str, ...] = ("OK",),
    width: float = 600,
    height: float = 400,
    message: str = "Please confirm",
    nested_in: str | None = None,
) -> dict[str, Any]:
    """Raw detection entry for one custom modal."""
    return {
        "selector": f'[{dialogs.DIALOG_ATTRIBUTE}="{number}"]',
        "tagName": "div",
        "bounds": {"width": width, "height": height},
        "message": message,
        "matchedPattern": '[role="dialog"]',
        "nestedIn": nested_in,
        "buttons": [{"label": label, "isClose": False} for label in buttons],
    }


# ── Fake browser ────────────────────────────────────────────────


class FakeTarget:
    """Scripted stand-in for ``BrowserSession``.

    Dispatches ``evaluate`` on the module-level script constants, so
    page behaviour is described as data: visible modals, a pending
    native dialog, queued traces and network events.
    """

    def __init__(self) -> None:
        self.attached = False
        self.closed = False
        self.viewport = {"width": 1000, "height": 800}
        self.modals: dict[str, dict[str, Any]] = {}
        self.native: str | None = None
        self.native_results: list[str] = []
        self.clicked: list[str] = []
        self.heap_bytes: float | None = 8 * 1024 * 1024
        self.evaluate_delay = 0.0
        self.evaluate_errors: list[Exception] = []
        self.traces: list[bytes | Exception] = []
        self.trace_calls: list[dict[str, Any]] = []
        self.network_events: list[dict[str, Any]] | Exception = []
        self.network_calls: list[dict[str, Any]] = []
        self.tabs: list[dict[str, str]] = [{"url": "about:blank", "title": ""}]

    # lifecycle
    async def attach(self) -> None:
        self.attached = True

    async def close(self) -> None:
        self.closed = True

    async def open_tab(self, url: str | None = None) -> None:
        self.tabs.append({"url": url or "about:blank", "title": ""})

    async def list_tabs(self) -> list[dict[str, str]]:
        return list(self.tabs)

    # page content
    def show_modal(self, entry: dict[str, Any]) -> None:
        self.modals[entry["selector"]] = entry

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        if self.evaluate_errors:
            raise self.evaluate_errors.pop(0)
        # page scripts stall while a native dialog is open, as in Chrome
        while self.native is not None:
            await asyncio.sleep(0.01)
        if self.evaluate_delay:
            await asyncio.sleep(self.evaluate_delay)
        if expression == dialogs.DETECT_SCRIPT:
            return {"viewport": dict(self.viewport), "dialogs": list(self.modals.values())}
        if expression == dialogs.LIST_BUTTONS_SCRIPT:
            entry = self.modals.get(arg["selector"])
            return None if entry is None else list(entry["buttons"])
        if expression == dialogs.CLICK_BUTTON_SCRIPT:
            entry = self.modals.get(arg["selector"])
            if entry is None:
                return "missing-container"
            if arg["index"] >= len(entry["buttons"]):
                return "missing-button"
            self.clicked.append(entry["buttons"][arg["index"]]["label"])
            del self.modals[arg["selector"]]
            return "clicked"
        if expression == sampler.HEAP_SCRIPT:
            return self.heap_bytes
        raise AssertionError(f"Unexpected script: {expression[:40]}")

    # measurement
    async def get_performance_trace(
        self, duration_ms: int, url: str, wait_for_idle: bool = False, idle_timeout_ms: int = 10000
    ) -> bytes:
        self.trace_calls.append({"duration": duration_ms, "url": url, "waitForIdle": wait_for_idle})
        if not self.traces:
            raise AssertionError("No trace queued")
        item = self.traces.pop(0) if len(self.traces) > 1 else self.traces[0]
        if isinstance(item, Exception):
            raise item
        return item

    async def get_network_events(self, window_ms: int, url: str | None = None) -> list[dict[str, Any]]:
        self.network_calls.append({"window": window_ms, "url": url})
        if isinstance(self.network_events, Exception):
            raise self.network_events
        return list(self.network_events)

    # native dialogs
    def pending_native_dialog(self) -> str | None:
        return self.native

    async def wait_for_native_dialog(self, timeout_ms: int) -> bool:
        return self.native is not None

    async def accept_native_dialog(self) -> bool:
        if self.native is None:
            return False
        self.native = None
        self.native_results.append("accept")
        return True

    async def dismiss_native_dialog(self) -> bool:
        if self.native is None:
            return False
        self.native = None
        self.native_results.append("dismiss")
        return True


# ── Fixtures ────────────────────────────────────────────────────


@pytest.fixture()
def settings() -> config.ProbeSettings:
    """Settings with every pause removed and short bounds."""
    return config.ProbeSettings(
        settle_pause_ms=0,
        iteration_pause_ms=0,
        detection_timeout_ms=500,
        dialog_handle_timeout_ms=500,
        trace_overhead_timeout_ms=2000,
        navigation_timeout_ms=2000,
    )


@pytest.fixture()
def target() -> FakeTarget:
    return FakeTarget()
