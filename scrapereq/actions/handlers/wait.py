from __future__ import annotations

import logging

from scrapereq.actions.base import BaseAction
from scrapereq.actions.registry import ActionRegistry
from scrapereq.models.request import Step

logger = logging.getLogger(__name__)


@ActionRegistry.register("wait")
class WaitAction(BaseAction):
    """Action to pause for a fixed duration given in milliseconds."""

    async def execute(self, step: Step) -> None:
        duration_ms = step.duration or 0
        logger.debug(f"Waiting for {duration_ms}ms")
        await self.ctx.sleep(duration_ms / 1000)
