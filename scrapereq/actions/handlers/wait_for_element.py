from __future__ import annotations

import logging
import time

from scrapereq.actions.base import BaseAction
from scrapereq.actions.registry import ActionRegistry
from scrapereq.exceptions import ActionError, ErrorCode
from scrapereq.models.request import Step
from scrapereq.utils.locators import POLL_INTERVAL_S, convert_to_playwright_locator

logger = logging.getLogger(__name__)

_COMPARATORS = {
    ">=": lambda actual, expected: actual >= expected,
    "==": lambda actual, expected: actual == expected,
    "<=": lambda actual, expected: actual <= expected,
}


@ActionRegistry.register("waitForElement")
class WaitForElementAction(BaseAction):
    """Action to wait until an element is present (or visible) in a given number."""

    async def execute(self, step: Step) -> None:
        if not step.selectors:
            raise ActionError("waitForElement action requires at least one selector")

        timeout = self.timeout_for(step)
        operator = step.operator or ">="
        expected = step.count if step.count is not None else 1
        compare = _COMPARATORS[operator]
        selector_values = [s.value for s in step.selectors]

        logger.debug(f"Waiting for {selector_values} (count {operator} {expected}, visible={step.visible}, timeout {timeout}ms)")
        start_time = time.monotonic()
        deadline = start_time + timeout / 1000

        while True:
            for selector in step.selectors:
                try:
                    locator = convert_to_playwright_locator(self.ctx.page, selector)
                    actual = await locator.count()
                    if step.visible and actual > 0 and not await locator.first.is_visible():
                        continue
                    if compare(actual, expected):
                        logger.info(f"Element condition met after {time.monotonic() - start_time:.2f}s: {selector.value}")
                        return
                except Exception as e:
                    logger.debug(f"Selector {selector.value!r} could not be evaluated: {e}")

            if time.monotonic() >= deadline:
                break
            await self.ctx.sleep(POLL_INTERVAL_S)

        raise ActionError(
            f"Element wait timed out after {timeout}ms: {selector_values} (expected count {operator} {expected})",
            code=ErrorCode.STEP_TIMEOUT,
        )
