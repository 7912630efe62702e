from __future__ import annotations

import logging
from typing import Any

from scrapereq.actions.base import BaseAction
from scrapereq.actions.registry import ActionRegistry
from scrapereq.exceptions import ActionError, ErrorCode
from scrapereq.models.request import Step
from scrapereq.utils.locators import resolve_first_locator

logger = logging.getLogger(__name__)

# Recorder button names mapped to Playwright's
_BUTTONS = {"primary": "left", "auxiliary": "middle", "secondary": "right"}


@ActionRegistry.register("click")
class ClickAction(BaseAction):
    """Action to click on an element with proper wait and a forced-click fallback."""

    async def execute(self, step: Step) -> None:
        if not step.selectors:
            raise ActionError("Click action requires at least one selector")

        timeout = self.timeout_for(step)
        found = await resolve_first_locator(self.ctx.page, step.selectors, timeout, self.ctx.sleep)
        if found is None:
            raise ActionError(
                f"No element found for selectors {[s.value for s in step.selectors]} within {timeout}ms",
                code=ErrorCode.STEP_TIMEOUT,
            )
        element, selector = found

        options: dict[str, Any] = {"timeout": timeout}
        if step.button:
            options["button"] = _BUTTONS.get(step.button, step.button)
        if step.offset_x is not None and step.offset_y is not None:
            options["position"] = {"x": step.offset_x, "y": step.offset_y}

        if step.expects_navigation:
            async with self.ctx.page.expect_navigation(timeout=timeout):
                await self._click(element, selector.value, options)
        else:
            await self._click(element, selector.value, options)

    async def _click(self, element: Any, selector: str, options: dict[str, Any]) -> None:
        try:
            await element.scroll_into_view_if_needed(timeout=options["timeout"])
            await element.click(**options)
            logger.info(f"Clicked element: {selector}")
        except Exception as click_err:
            logger.warning(f"Click failed: {click_err}. Attempting force click.")
            try:
                await element.click(force=True, **options)
                logger.info(f"Force clicked element: {selector}")
            except Exception as force_err:
                raise ActionError(f"Failed to click element '{selector}' (standard and force): {force_err}") from force_err
