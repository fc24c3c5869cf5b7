"""
Browser session attached to an already-running Chrome over CDP.

This is the only module that talks to Playwright.  The measurement
core depends on the method surface below (navigation, evaluation,
tracing, raw network events and native dialogs) and is tested
against a scripted fake with the same surface.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

from playwright import async_api

from extimpact.utils import errors, logger

log = logger.create_logger("BrowserSession")

# ============================================================================
# Constants
# ============================================================================

TRACE_CATEGORIES = [
    "devtools.timeline",
    "disabled-by-default-devtools.timeline",
    "disabled-by-default-devtools.timeline.frame",
    "v8",
    "v8.execute",
    "blink.user_timing",
    "loading",
    "latencyInfo",
]

NETWORK_EVENTS = (
    "Network.requestWillBeSent",
    "Network.responseReceived",
    "Network.loadingFinished",
    "Network.loadingFailed",
    "Network.requestServedFromCache",
)

MAX_NETWORK_EVENTS = 20000


class BrowserSession:
    """
    Manages one attached tab of an existing Chrome instance.
    """

    def __init__(self, cdp_url: str, navigation_timeout_ms: int = 15000) -> None:
        """Prepare a session for the DevTools endpoint at *cdp_url*."""
        self._cdp_url = cdp_url
        self._navigation_timeout_ms = navigation_timeout_ms
        self._playwright: async_api.Playwright | None = None
        self._browser: async_api.Browser | None = None
        self._context: async_api.BrowserContext | None = None
        self._page: async_api.Page | None = None
        self._pending_dialog: async_api.Dialog | None = None
        self._dialog_arrived = asyncio.Event()

    # ==========================================================================
    # Lifecycle
    # ==========================================================================

    @property
    def attached(self) -> bool:
        return self._page is not None

    async def attach(self) -> None:
        """Connect to Chrome and adopt its first tab (opening one if needed)."""
        if self.attached:
            return
        log.info("Attaching to Chrome", {"cdpUrl": self._cdp_url})
        pw = await async_api.async_playwright().start()
        self._playwright = pw
        try:
            self._browser = await pw.chromium.connect_over_cdp(self._cdp_url)
        except async_api.Error as exc:
            await pw.stop()
            self._playwright = None
            raise errors.TargetUnreachable(
                f"Cannot attach to Chrome at {self._cdp_url}: {exc}",
                operation="attach",
            ) from exc

        contexts = self._browser.contexts
        self._context = contexts[0] if contexts else await self._browser.new_context()
        pages = self._context.pages
        self._adopt(pages[0] if pages else await self._context.new_page())
        log.success("Attached", {"tabs": len(self._context.pages)})

    def _adopt(self, page: async_api.Page) -> None:
        if self._page is not None:
            self._page.remove_listener("dialog", self._on_dialog)
        self._page = page
        self._pending_dialog = None
        self._dialog_arrived.clear()
        page.on("dialog", self._on_dialog)

    def _require_page(self) -> async_api.Page:
        if self._page is None:
            raise errors.TargetUnreachable("No browser tab attached", operation="session")
        return self._page

    async def open_tab(self, url: str | None = None) -> None:
        """Open a new tab, make it the session's tab and optionally load *url*."""
        if self._context is None:
            raise errors.TargetUnreachable("No browser context attached", operation="open_tab")
        self._adopt(await self._context.new_page())
        if url:
            await self.navigate(url)

    async def list_tabs(self) -> list[dict[str, str]]:
        """Return the URL and title of every open tab."""
        if self._context is None:
            return []
        tabs = []
        for page in self._context.pages:
            tabs.append({"url": page.url, "title": await page.title()})
        return tabs

    async def close(self) -> None:
        """Detach from Chrome without closing the user's browser."""
        log.debug("Closing browser session")
        if self._page is not None:
            self._page.remove_listener("dialog", self._on_dialog)
            self._page = None
        self._pending_dialog = None
        self._context = None
        self._browser = None
        if self._playwright:
            try:
                await self._playwright.stop()
            except async_api.Error as exc:
                log.debug("Playwright stop error (non-fatal)", {"error": str(exc)})
            self._playwright = None
        log.debug("Browser session closed")

    # ==========================================================================
    # Page Operations
    # ==========================================================================

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Evaluate a JS function expression in the page.

        Raises:
            TargetUnreachable: The page or its execution context went
                away (e.g. a navigation replaced the document).
        """
        page = self._require_page()
        try:
            return await page.evaluate(expression, arg)
        except async_api.Error as exc:
            raise errors.TargetUnreachable(
                f"Page evaluation failed: {exc}", operation="evaluate", page_url=page.url
            ) from exc

    async def navigate(self, url: str, timeout_ms: int | None = None) -> None:
        """Navigate the tab, waiting for DOMContentLoaded."""
        page = self._require_page()
        timeout_ms = timeout_ms or self._navigation_timeout_ms
        log.debug("Navigating", {"url": url, "timeout": timeout_ms})
        try:
            await page.goto(url, wait_until="domcontentloaded", timeout=timeout_ms)
        except async_api.Error as exc:
            raise errors.TargetUnreachable(
                f"Navigation to {url} failed: {exc}", operation="navigate", page_url=url
            ) from exc

    async def get_performance_trace(
        self,
        duration_ms: int,
        url: str,
        wait_for_idle: bool = False,
        idle_timeout_ms: int = 10000,
    ) -> bytes:
        """Record a trace of a fresh navigation to *url*.

        The tab is settled on ``about:blank`` before tracing starts so
        that the trace only covers the load being measured.

        Returns:
            The raw trace JSON as written by Chrome.
        """
        page = self._require_page()
        if self._browser is None:
            raise errors.TargetUnreachable("No browser attached", operation="trace")

        await page.goto("about:blank")
        await asyncio.sleep(0.3)
        await self._browser.start_tracing(page=page, categories=TRACE_CATEGORIES)
        try:
            await self.navigate(url)
            await asyncio.sleep(duration_ms / 1000)
            if wait_for_idle:
                try:
                    await page.wait_for_load_state("networkidle", timeout=idle_timeout_ms)
                except async_api.TimeoutError:
                    log.warn("Network idle not reached, tracing anyway", {"timeout": idle_timeout_ms})
        finally:
            data = await self._browser.stop_tracing()
        return data

    async def get_network_events(self, window_ms: int, url: str | None = None) -> list[dict[str, Any]]:
        """Collect raw ``Network.*`` DevTools events for *window_ms*.

        Each event is returned as ``{"method": ..., "params": ...}`` in
        arrival order.  When *url* is given the tab navigates to it
        inside the window.
        """
        page = self._require_page()
        if self._context is None:
            raise errors.TargetUnreachable("No browser context attached", operation="network")

        events: list[dict[str, Any]] = []

        def recorder(method: str):
            def record(params: dict[str, Any]) -> None:
                if len(events) < MAX_NETWORK_EVENTS:
                    events.append({"method": method, "params": params})
            return record

        cdp = await self._context.new_cdp_session(page)
        try:
            for method in NETWORK_EVENTS:
                cdp.on(method, recorder(method))
            await cdp.send("Network.enable")
            started = time.monotonic()
            if url:
                await self.navigate(url)
            remaining = window_ms / 1000 - (time.monotonic() - started)
            if remaining > 0:
                await asyncio.sleep(remaining)
        finally:
            try:
                await cdp.detach()
            except async_api.Error as exc:
                log.debug("CDP detach error (non-fatal)", {"error": str(exc)})
        if len(events) >= MAX_NETWORK_EVENTS:
            log.warn("Network event cap reached", {"cap": MAX_NETWORK_EVENTS})
        return events

    # ==========================================================================
    # Native Dialogs
    # ==========================================================================

    def _on_dialog(self, dialog: async_api.Dialog) -> None:
        log.info("Native dialog opened", {"type": dialog.type, "message": dialog.message})
        self._pending_dialog = dialog
        self._dialog_arrived.set()

    def pending_native_dialog(self) -> str | None:
        """Return the message of the pending native dialog, if any."""
        if self._pending_dialog is None:
            return None
        return self._pending_dialog.message

    async def wait_for_native_dialog(self, timeout_ms: int) -> bool:
        """Wait up to *timeout_ms* for a native dialog to be pending."""
        if self._pending_dialog is not None:
            return True
        self._dialog_arrived.clear()
        try:
            await asyncio.wait_for(self._dialog_arrived.wait(), timeout=timeout_ms / 1000)
        except asyncio.TimeoutError:
            return False
        return self._pending_dialog is not None

    async def accept_native_dialog(self) -> bool:
        """Accept the pending native dialog; ``False`` if there is none."""
        dialog, self._pending_dialog = self._pending_dialog, None
        if dialog is None:
            return False
        await self._resolve_dialog(dialog.accept, "accept")
        return True

    async def dismiss_native_dialog(self) -> bool:
        """Dismiss the pending native dialog; ``False`` if there is none."""
        dialog, self._pending_dialog = self._pending_dialog, None
        if dialog is None:
            return False
        await self._resolve_dialog(dialog.dismiss, "dismiss")
        return True

    async def _resolve_dialog(self, action: Callable[[], Awaitable[None]], name: str) -> None:
        try:
            await action()
        except async_api.Error as exc:
            raise errors.TargetUnreachable(f"Could not {name} native dialog: {exc}", operation="native_dialog") from exc
