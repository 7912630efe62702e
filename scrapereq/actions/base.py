from __future__ import annotations

from abc import ABC, abstractmethod
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from scrapereq.context import ActionContext
    from scrapereq.models.request import Step


class BaseAction(ABC):
    """Base class for step actions. One instance handles one step."""

    def __init__(self, ctx: ActionContext) -> None:
        self.ctx = ctx

    @abstractmethod
    async def execute(self, step: Step) -> None:
        """Perform the step against ``self.ctx.page``."""

    def timeout_for(self, step: Step) -> int:
        """Per-step timeout in milliseconds, falling back to the session default."""
        if step.timeout:
            return int(step.timeout)
        return self.ctx.timeout_ms
