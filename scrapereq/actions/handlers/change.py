from __future__ import annotations

import logging

from scrapereq.actions.base import BaseAction
from scrapereq.actions.registry import ActionRegistry
from scrapereq.exceptions import ActionError, ErrorCode
from scrapereq.models.request import Step
from scrapereq.utils.locators import resolve_first_locator

logger = logging.getLogger(__name__)


@ActionRegistry.register("change")
class ChangeAction(BaseAction):
    """Action to set the value of a form field."""

    async def execute(self, step: Step) -> None:
        if not step.selectors:
            raise ActionError("Change action requires at least one selector")

        value = step.value or ""
        timeout = self.timeout_for(step)
        found = await resolve_first_locator(self.ctx.page, step.selectors, timeout, self.ctx.sleep)
        if found is None:
            raise ActionError(
                f"No input element found for selectors {[s.value for s in step.selectors]} within {timeout}ms",
                code=ErrorCode.STEP_TIMEOUT,
            )
        element, selector = found

        tag_name = await element.evaluate("el => el.tagName.toLowerCase()")
        if tag_name == "select":
            await element.select_option(value, timeout=timeout)
        else:
            await element.fill(value, timeout=timeout)

        logger.debug(f"Changed value of {selector.value} to: {value}")
