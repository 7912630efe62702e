from __future__ import annotations

import logging

from scrapereq.actions.base import BaseAction
from scrapereq.actions.registry import ActionRegistry
from scrapereq.exceptions import ActionError
from scrapereq.models.request import Step

logger = logging.getLogger(__name__)


@ActionRegistry.register("setViewport")
class SetViewportAction(BaseAction):
    """Action to resize the page viewport."""

    async def execute(self, step: Step) -> None:
        if not step.width or not step.height:
            raise ActionError("setViewport action requires 'width' and 'height'")

        # Playwright fixes device scale factor and touch support per context
        if step.device_scale_factor not in (None, 1) or step.is_mobile or step.has_touch:
            logger.debug(
                f"Ignoring deviceScaleFactor={step.device_scale_factor}, isMobile={step.is_mobile}, "
                f"hasTouch={step.has_touch}: not adjustable on an open page"
            )

        await self.ctx.page.set_viewport_size({"width": step.width, "height": step.height})
        logger.debug(f"Viewport set to {step.width}x{step.height}")
