from __future__ import annotations

import logging

from scrapereq.actions.base import BaseAction
from scrapereq.actions.registry import ActionRegistry
from scrapereq.exceptions import ActionError
from scrapereq.models.request import Step

logger = logging.getLogger(__name__)


@ActionRegistry.register("navigate")
class NavigateAction(BaseAction):
    """Action to navigate to a URL."""

    async def execute(self, step: Step) -> None:
        if not step.url:
            raise ActionError("Navigate action requires 'url'")

        logger.info(f"Navigating to: {step.url}")
        response = await self.ctx.page.goto(step.url, timeout=self.timeout_for(step))
        if response is not None:
            logger.debug(f"Navigation to {step.url} finished with status {response.status}")
