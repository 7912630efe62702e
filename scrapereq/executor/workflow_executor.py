"""
Workflow executor for scrape requests using Playwright.

Orchestrates one scrape run through the extracted components:
- BrowserManager: proxy selection, browser launch and teardown
- ConcurrencyGate: bounds the number of live browser sessions
- StepExecutor: runs the recorded steps
- SelectorResolver: extracts captured values
- DebugArtifactCapture: success and error screenshots
- ResultAssembler: shapes the response
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any

from core.concurrency_gate import ConcurrencyGate
from core.settings_manager import SettingsManager
from scrapereq.exceptions import ScrapeError, ScreenshotError
from scrapereq.executor.browser_manager import BrowserManager, LaunchPlan, Session
from scrapereq.executor.debug_capture import DebugArtifactCapture
from scrapereq.executor.normalization import normalize_request
from scrapereq.executor.selector_resolver import SelectorResolver
from scrapereq.executor.step_executor import StepExecutor
from scrapereq.metrics import ScrapeMetrics
from scrapereq.models.request import ResponseType, ScrapeRequest
from scrapereq.result_collector import ResultAssembler

logger = logging.getLogger(__name__)


class WorkflowExecutor:
    """Executes scrape requests end to end."""

    def __init__(
        self,
        settings: SettingsManager,
        gate: ConcurrencyGate,
        browser_manager: BrowserManager | None = None,
        step_executor: StepExecutor | None = None,
        selector_resolver: SelectorResolver | None = None,
        debug_capture: DebugArtifactCapture | None = None,
        assembler: ResultAssembler | None = None,
        metrics: ScrapeMetrics | None = None,
    ) -> None:
        """
        Initialize the workflow executor.

        Args:
            settings: Service settings
            gate: Shared gate bounding concurrent browser sessions
            browser_manager: Session manager (built from settings if omitted)
            step_executor: Step runner (LoggingHooks if omitted)
            selector_resolver: Capture extractor
            debug_capture: Screenshot capture (TMP_DIR / WEB_ADDRESS if omitted)
            assembler: Result assembler (stack traces outside production)
            metrics: Optional metrics sink
        """
        self.settings = settings
        self.gate = gate
        self.browser_manager = browser_manager or BrowserManager(settings)
        self.step_executor = step_executor or StepExecutor()
        self.selector_resolver = selector_resolver or SelectorResolver()
        self.debug_capture = debug_capture or DebugArtifactCapture(
            output_dir=settings.tmp_dir,
            public_base_url=settings.web_address,
            stabilize_ms=int(settings.get("screenshot_stabilize_ms")),
        )
        self.assembler = assembler or ResultAssembler(include_stack=not settings.is_production)
        self.metrics = metrics

    async def run_scrape_body(self, body: Any, request_id: str | None = None) -> dict[str, Any] | str:
        """Normalize a raw JSON body and run it."""
        request = normalize_request(body, settings=self.settings)
        return await self.run_scrape(request, request_id=request_id)

    async def run_scrape(self, request: ScrapeRequest, request_id: str | None = None) -> dict[str, Any] | str:
        """
        Run one scrape request.

        The proxy requirement is checked before a gate slot is requested; the
        slot is then held until the browser session is fully torn down.

        Returns:
            The assembled result (a dict, or a string for RAW responses)

        Raises:
            ScrapeError: Carrying the selected proxy and, when captured, the error screenshot URL
        """
        request_id = request_id or uuid.uuid4().hex[:8]
        started = time.monotonic()
        plan: LaunchPlan | None = None

        try:
            plan = self.browser_manager.plan_launch(request)

            async with self.gate.slot():
                logger.debug(f"Gate slot acquired ({self.gate.active}/{self.gate.capacity})", extra={"request_id": request_id})
                async with self.browser_manager.open_session(plan, request) as session:
                    try:
                        result = await self._run_in_session(session, request, request_id)
                    except Exception as e:
                        error = ScrapeError.wrap(e)
                        await self._capture_error_screenshot(session, request, error, request_id)
                        if error is e:
                            raise
                        raise error from e
        except ScrapeError as e:
            e.enrich(proxy=plan.proxy_echo if plan else None)
            self._record(request, plan, started, error=e)
            logger.error(
                f"Scrape failed [{e.code.value}]: {e.message}",
                extra={"request_id": request_id, "duration_ms": self._elapsed_ms(started)},
            )
            raise
        except Exception as e:
            error = ScrapeError.wrap(e, proxy=plan.proxy_echo if plan else None)
            self._record(request, plan, started, error=error)
            logger.exception(f"Unexpected scrape failure: {e}", extra={"request_id": request_id})
            raise error from e

        self._record(request, plan, started)
        logger.info(
            f"Scrape '{request.record.title}' completed",
            extra={"request_id": request_id, "duration_ms": self._elapsed_ms(started)},
        )
        return result

    async def _run_in_session(self, session: Session, request: ScrapeRequest, request_id: str) -> dict[str, Any] | str:
        ctx = self.step_executor.create_context(
            page=session.page,
            steps=request.record.steps,
            speed_mode=request.record.speed_mode,
            timeout_mode=request.record.timeout_mode,
            request_id=request_id,
        )
        await self.step_executor.execute(ctx)

        captured: dict[str, str] = {}
        if request.capture.selectors:
            captured = await self.selector_resolver.extract_all(session.page, request.capture.selectors)

        response_type = request.output.response_type
        screenshot_url = None
        # RAW results have no envelope to carry a screenshot URL
        if request.output.screenshots.on_success and response_type != ResponseType.RAW:
            screenshot_url = await self.debug_capture.capture(session.page, "success")

        return self.assembler.success(
            response_type,
            captured,
            proxy=session.proxy_echo,
            screenshot_url=screenshot_url,
        )

    async def _capture_error_screenshot(
        self, session: Session, request: ScrapeRequest, error: ScrapeError, request_id: str
    ) -> None:
        if not request.output.screenshots.on_error or isinstance(error, ScreenshotError):
            return
        try:
            url = await self.debug_capture.capture(session.page, "error")
        except ScrapeError as screenshot_error:
            logger.warning(f"Error screenshot failed: {screenshot_error.message}", extra={"request_id": request_id})
            return
        error.enrich(screenshot_url=url)

    def _record(
        self,
        request: ScrapeRequest,
        plan: LaunchPlan | None,
        started: float,
        error: ScrapeError | None = None,
    ) -> None:
        if self.metrics is None:
            return
        self.metrics.record(
            success=error is None,
            duration_ms=self._elapsed_ms(started),
            url=request.first_url,
            response_type=request.output.response_type.value,
            proxy=plan.proxy.address if plan and plan.proxy else None,
            error=error.message if error else None,
            error_code=error.code.value if error else None,
        )

    @staticmethod
    def _elapsed_ms(started: float) -> float:
        return round((time.monotonic() - started) * 1000, 2)
