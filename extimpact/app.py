"""
Server entry point - FastAPI app exposing the measurement tools over HTTP.
"""

from __future__ import annotations

import contextlib
import os
from collections.abc import AsyncGenerator, Callable
from typing import Any

import dotenv
import fastapi
import pydantic
import uvicorn
from fastapi import responses
from fastapi.middleware import cors

from extimpact import config, tools
from extimpact.browser import session as session_mod
from extimpact.utils import errors, logger, serialization

dotenv.load_dotenv()

log = logger.create_logger("Server")

HOST = os.environ.get("UVICORN_HOST", "127.0.0.1")
PORT = int(os.environ.get("UVICORN_PORT", "3002"))

_STATUS_BY_ERROR: dict[type[errors.ImpactError], int] = {
    errors.ElementNotFound: 404,
    errors.DetectionTimeout: 504,
    errors.TargetUnreachable: 503,
    errors.CollectionError: 502,
}


# ============================================================================
# Request Bodies
# ============================================================================


class _Body(pydantic.BaseModel):
    model_config = pydantic.ConfigDict(
        alias_generator=serialization.snake_to_camel, populate_by_name=True
    )


class PerformanceRequest(_Body):
    extension_id: str
    test_url: str
    duration: int | None = None
    wait_for_idle: bool = False


class NetworkRequest(_Body):
    extension_id: str
    duration: int | None = None
    test_url: str | None = None
    include_requests: bool = False


class ImpactRequest(_Body):
    extension_id: str
    test_pages: list[str | dict[str, Any]]
    iterations: int | None = None
    performance_duration: int | None = None
    network_duration: int | None = None
    include_network_details: bool = False


class TabRequest(_Body):
    url: str | None = None


class MonitorRequest(_Body):
    interval_ms: int | None = None
    auto_handle: bool = True


# ============================================================================
# App Factory
# ============================================================================


def _default_tools() -> tools.ImpactTools:
    settings = config.get_settings()
    browser_session = session_mod.BrowserSession(settings.cdp_url, settings.navigation_timeout_ms)
    return tools.ImpactTools(browser_session, settings)


def create_app(tools_factory: Callable[[], tools.ImpactTools] | None = None) -> fastapi.FastAPI:
    """Build the app; *tools_factory* replaces the real browser-backed tools."""

    @contextlib.asynccontextmanager
    async def lifespan(app: fastapi.FastAPI) -> AsyncGenerator[None]:
        log.section("Extension Impact Server Started")
        app.state.tools = (tools_factory or _default_tools)()
        try:
            yield
        finally:
            await app.state.tools.close()
            log.info("Server stopped")

    app = fastapi.FastAPI(title="Extension Impact Server", lifespan=lifespan)
    app.add_middleware(
        cors.CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(errors.ImpactError)
    async def impact_error_handler(_request: fastapi.Request, exc: errors.ImpactError) -> responses.JSONResponse:
        status = next((code for cls, code in _STATUS_BY_ERROR.items() if isinstance(exc, cls)), 500)
        log.error("Request failed", {**exc.context(), "status": status, "error": str(exc)})
        return responses.JSONResponse(status_code=status, content={"error": str(exc), **exc.context()})

    @app.exception_handler(ValueError)
    async def value_error_handler(_request: fastapi.Request, exc: ValueError) -> responses.JSONResponse:
        return responses.JSONResponse(
            status_code=422, content={"error": errors.get_error_message(exc), "errorType": "ValueError"}
        )

    def get_tools(request: fastapi.Request) -> tools.ImpactTools:
        return request.app.state.tools

    # ========================================================================
    # API Routes
    # ========================================================================

    @app.post("/api/performance")
    async def analyze_performance(
        body: PerformanceRequest, t: tools.ImpactTools = fastapi.Depends(get_tools)
    ) -> dict[str, Any]:
        return await t.analyze_extension_performance(body.extension_id, body.test_url, body.duration, body.wait_for_idle)

    @app.post("/api/network")
    async def track_network(
        body: NetworkRequest, t: tools.ImpactTools = fastapi.Depends(get_tools)
    ) -> dict[str, Any]:
        return await t.track_extension_network(body.extension_id, body.duration, body.test_url, body.include_requests)

    @app.post("/api/impact")
    async def measure_impact(
        body: ImpactRequest, t: tools.ImpactTools = fastapi.Depends(get_tools)
    ) -> dict[str, Any]:
        return await t.measure_extension_impact(
            body.extension_id,
            body.test_pages,
            iterations=body.iterations,
            performance_duration=body.performance_duration,
            network_duration=body.network_duration,
            include_network_details=body.include_network_details,
        )

    @app.get("/api/tabs")
    async def list_tabs(t: tools.ImpactTools = fastapi.Depends(get_tools)) -> list[dict[str, str]]:
        return await t.list_tabs()

    @app.post("/api/tabs")
    async def open_tab(
        body: TabRequest, t: tools.ImpactTools = fastapi.Depends(get_tools)
    ) -> list[dict[str, str]]:
        return await t.open_tab(body.url)

    @app.get("/api/page-state")
    async def page_state(t: tools.ImpactTools = fastapi.Depends(get_tools)) -> dict[str, Any]:
        return await t.detect_page_state()

    @app.post("/api/page-state/monitor/start")
    async def start_monitor(
        body: MonitorRequest, t: tools.ImpactTools = fastapi.Depends(get_tools)
    ) -> dict[str, Any]:
        return await t.start_page_state_monitoring(body.interval_ms, body.auto_handle)

    @app.post("/api/page-state/monitor/stop")
    async def stop_monitor(t: tools.ImpactTools = fastapi.Depends(get_tools)) -> dict[str, Any]:
        return await t.stop_page_state_monitoring()

    @app.get("/api/page-state/monitor")
    async def monitor_status(t: tools.ImpactTools = fastapi.Depends(get_tools)) -> dict[str, Any]:
        return await t.get_page_state_monitoring_status()

    return app


app = create_app()


# ============================================================================
# Start Server
# ============================================================================


def main() -> None:
    """Entry point for running the server."""
    log.success(f"Server listening on {HOST}:{PORT}")
    log.info("Chrome endpoint", {"cdpUrl": config.get_settings().cdp_url})
    uvicorn.run("extimpact.app:app", host=HOST, port=PORT)


if __name__ == "__main__":
    main()
