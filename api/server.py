"""
Scrape API

FastAPI server exposing the scrape engine over HTTP:
- POST /api/scrape/start: run a scrape request
- GET  /api/scrape/test: run the built-in sample request
- GET  /api/scrape/metrics, POST /api/scrape/metrics/reset
- GET  /api/app/health
- GET  /api/tmp/<file>: screenshots
"""

from __future__ import annotations

import asyncio
import json
import logging
import os
import platform
import time
from contextlib import asynccontextmanager, suppress
from datetime import datetime, timezone
from typing import Annotated, Any

from dotenv import load_dotenv
from fastapi import Depends, FastAPI, Query, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from fastapi.staticfiles import StaticFiles

from core.concurrency_gate import ConcurrencyGate
from core.settings_manager import SettingsManager, settings
from scrapereq import __version__
from scrapereq.exceptions import RequestValidationError, ScrapeError
from scrapereq.executor.debug_capture import cleanup_old_screenshots
from scrapereq.executor.workflow_executor import WorkflowExecutor
from scrapereq.metrics import ScrapeMetrics
from scrapereq.result_collector import ResultAssembler
from scrapereq.utils.uptime import format_uptime
from utils.logger import setup_logging

logger = logging.getLogger(__name__)

CLEANUP_INTERVAL_S = 3600


def sample_request_body(settings: SettingsManager) -> dict[str, Any]:
    """Request run by GET /api/scrape/test."""
    return {
        "proxy": {"bypassCode": settings.proxy_bypass_code},
        "record": {
            "title": "Test Recording",
            "speedMode": "TURBO",
            "timeoutMode": "SHORT",
            "steps": [
                {"type": "setViewport", "width": 1366, "height": 768},
                {"type": "navigate", "url": "https://example.com/"},
                {"type": "waitForElement", "selectors": [["h1"]], "visible": True},
            ],
        },
        "capture": {"selectors": [{"key": "title", "type": "CSS", "value": "h1"}]},
        "output": {"responseType": "JSON"},
    }


# =============================================================================
# Dependencies
# =============================================================================


def get_executor(request: Request) -> WorkflowExecutor:
    executor: WorkflowExecutor = request.app.state.executor
    return executor


def get_metrics(request: Request) -> ScrapeMetrics:
    metrics: ScrapeMetrics = request.app.state.metrics
    return metrics


ExecutorDep = Annotated[WorkflowExecutor, Depends(get_executor)]
MetricsDep = Annotated[ScrapeMetrics, Depends(get_metrics)]


def _to_response(result: dict[str, Any] | str) -> JSONResponse | PlainTextResponse:
    if isinstance(result, str):
        return PlainTextResponse(result)
    return JSONResponse(result)


async def _screenshot_cleanup_loop(settings: SettingsManager) -> None:
    retention = float(settings.get("screenshot_retention_hours"))
    while True:
        try:
            await asyncio.to_thread(cleanup_old_screenshots, settings.tmp_dir, retention)
        except OSError as e:
            logger.warning(f"Screenshot cleanup failed: {e}")
        await asyncio.sleep(CLEANUP_INTERVAL_S)


# =============================================================================
# FastAPI App
# =============================================================================


def create_app(settings: SettingsManager | None = None, executor: WorkflowExecutor | None = None) -> FastAPI:
    """Build the application; components are created per app, never shared across apps."""
    settings = settings or SettingsManager()
    metrics = executor.metrics if executor and executor.metrics else ScrapeMetrics()
    if executor is None:
        gate = ConcurrencyGate(settings.max_concurrent_browsers)
        executor = WorkflowExecutor(settings, gate, metrics=metrics)
    assembler = ResultAssembler(include_stack=not settings.is_production)

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Lifespan context manager for startup/shutdown."""
        settings.tmp_dir.mkdir(parents=True, exist_ok=True)
        cleanup_task = asyncio.create_task(_screenshot_cleanup_loop(settings))
        logger.info(
            f"Scrape API starting (max concurrent browsers: {executor.gate.capacity}, web address: {settings.web_address})"
        )
        yield
        cleanup_task.cancel()
        with suppress(asyncio.CancelledError):
            await cleanup_task
        logger.info("Scrape API shutting down...")

    app = FastAPI(
        title="Scrape API",
        description="Browser automation scraping service",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.executor = executor
    app.state.metrics = metrics
    app.state.started_at = time.monotonic()

    @app.exception_handler(ScrapeError)
    async def scrape_error_handler(_request: Request, exc: ScrapeError) -> JSONResponse:
        return JSONResponse(status_code=exc.status, content=assembler.error(exc))

    @app.post("/api/scrape/start")
    async def scrape_start(request: Request, executor: ExecutorDep):
        """Run a scrape request."""
        try:
            body = await request.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise RequestValidationError([f"Request body is not valid JSON: {e}"]) from e
        result = await executor.run_scrape_body(body)
        return _to_response(result)

    @app.get("/api/scrape/test")
    async def scrape_test(executor: ExecutorDep):
        """Run the built-in sample request."""
        result = await executor.run_scrape_body(sample_request_body(settings))
        return _to_response(result)

    @app.get("/api/scrape/metrics")
    async def scrape_metrics(metrics: MetricsDep, detailed: bool = Query(False)):
        return {"success": True, "data": metrics.snapshot(detailed=detailed)}

    @app.post("/api/scrape/metrics/reset")
    async def scrape_metrics_reset(metrics: MetricsDep):
        metrics.reset()
        return {"success": True, "data": {"message": "Scraping metrics have been reset"}}

    @app.get("/api/app/health")
    async def health_check(executor: ExecutorDep):
        """Health check endpoint."""
        return {
            "success": True,
            "data": {
                "project": {"name": "scrapereq", "version": __version__},
                "app": {
                    "environment": settings.get("environment"),
                    "host": settings.get("host"),
                    "port": settings.get("port"),
                    "uptime": format_uptime(time.monotonic() - app.state.started_at),
                    "pid": os.getpid(),
                    "browsers": executor.gate.stats(),
                },
                "system": {
                    "timestamp": datetime.now(timezone.utc).isoformat(),
                    "platform": platform.system().lower(),
                    "arch": platform.machine(),
                    "release": platform.release(),
                    "cpus": os.cpu_count(),
                },
            },
        }

    app.mount("/api/tmp", StaticFiles(directory=str(settings.tmp_dir), check_dir=False), name="tmp")

    return app


def main() -> None:
    import uvicorn

    load_dotenv()
    # The shared settings were read at import time, before .env was loaded
    settings.reload()
    setup_logging(level=str(settings.get("log_level")), log_format=str(settings.get("log_format")))
    uvicorn.run(create_app(settings), host=str(settings.get("host")), port=int(settings.get("port")))


if __name__ == "__main__":
    main()
