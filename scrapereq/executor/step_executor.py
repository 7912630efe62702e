"""
Step executor: runs recorded steps in order with hooks and the speed delay.
"""

from __future__ import annotations

import asyncio
import logging
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Sequence

from playwright.async_api import TimeoutError as PlaywrightTimeoutError

from scrapereq.actions import ActionRegistry
from scrapereq.exceptions import ActionError, ErrorCode, ScrapeError, StepExecutionError
from scrapereq.models.request import SpeedMode, Step, TimeoutMode

logger = logging.getLogger(__name__)

Sleep = Callable[[float], Awaitable[None]]


class StepState(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    COMPLETED = "completed"
    FAILED = "failed"


_TRANSITIONS = {
    StepState.PENDING: {StepState.RUNNING, StepState.COMPLETED},
    StepState.RUNNING: {StepState.PENDING, StepState.FAILED, StepState.COMPLETED},
    StepState.COMPLETED: set(),
    StepState.FAILED: set(),
}


@dataclass
class ExecutionContext:
    """Per-run state handed to actions and hooks."""

    page: Any
    steps: Sequence[Step]
    speed_mode: SpeedMode = SpeedMode.NORMAL
    timeout_mode: TimeoutMode = TimeoutMode.NORMAL
    sleep: Sleep = asyncio.sleep
    request_id: str | None = None
    state: StepState = StepState.PENDING
    current_index: int = 0
    steps_completed: int = 0
    started_at: float = field(default_factory=time.monotonic)
    failure: ScrapeError | None = None

    @property
    def timeout_ms(self) -> int:
        return self.timeout_mode.timeout_ms

    @property
    def delay_ms(self) -> int:
        return self.speed_mode.delay_ms

    @property
    def elapsed_ms(self) -> float:
        return (time.monotonic() - self.started_at) * 1000

    @property
    def current_step(self) -> Step | None:
        if 0 <= self.current_index < len(self.steps):
            return self.steps[self.current_index]
        return None

    def transition(self, new_state: StepState) -> None:
        if new_state not in _TRANSITIONS[self.state]:
            raise RuntimeError(f"Invalid step state transition: {self.state.value} -> {new_state.value}")
        self.state = new_state


class StepHooks:
    """
    Lifecycle hooks around step execution. Subclass and override what you need.

    Hook failures propagate like step failures.
    """

    async def before_all(self, ctx: ExecutionContext) -> None:
        pass

    async def before_each(self, ctx: ExecutionContext, step: Step) -> None:
        pass

    async def after_each(self, ctx: ExecutionContext, step: Step) -> None:
        pass

    async def after_all(self, ctx: ExecutionContext) -> None:
        pass


class CompositeHooks(StepHooks):
    """Calls several hook objects in the order they were given."""

    def __init__(self, *hooks: StepHooks) -> None:
        self.hooks = list(hooks)

    async def before_all(self, ctx: ExecutionContext) -> None:
        for hook in self.hooks:
            await hook.before_all(ctx)

    async def before_each(self, ctx: ExecutionContext, step: Step) -> None:
        for hook in self.hooks:
            await hook.before_each(ctx, step)

    async def after_each(self, ctx: ExecutionContext, step: Step) -> None:
        for hook in self.hooks:
            await hook.after_each(ctx, step)

    async def after_all(self, ctx: ExecutionContext) -> None:
        for hook in self.hooks:
            await hook.after_all(ctx)


class LoggingHooks(StepHooks):
    """Logs progress of the run."""

    async def before_all(self, ctx: ExecutionContext) -> None:
        logger.info(
            f"Starting execution of {len(ctx.steps)} steps "
            f"(speed {ctx.speed_mode.value}, timeout {ctx.timeout_mode.value})",
            extra={"request_id": ctx.request_id},
        )

    async def before_each(self, ctx: ExecutionContext, step: Step) -> None:
        logger.debug(
            f"Step {ctx.current_index + 1}/{len(ctx.steps)}: {step.type.value}",
            extra={"request_id": ctx.request_id, "step": ctx.current_index + 1, "step_type": step.type.value},
        )

    async def after_all(self, ctx: ExecutionContext) -> None:
        logger.info(
            f"Completed {ctx.steps_completed} steps in {ctx.elapsed_ms:.0f}ms",
            extra={"request_id": ctx.request_id, "duration_ms": round(ctx.elapsed_ms)},
        )


class StepExecutor:
    """Executes recorded steps sequentially and dispatches them to registered actions."""

    def __init__(self, hooks: StepHooks | None = None, sleep: Sleep = asyncio.sleep) -> None:
        """
        Args:
            hooks: Lifecycle hooks; defaults to LoggingHooks.
            sleep: Coroutine used for the inter-step delay and wait steps.
        """
        self.hooks = hooks or LoggingHooks()
        self.sleep = sleep

    def create_context(
        self,
        page: Any,
        steps: Sequence[Step],
        speed_mode: SpeedMode = SpeedMode.NORMAL,
        timeout_mode: TimeoutMode = TimeoutMode.NORMAL,
        request_id: str | None = None,
    ) -> ExecutionContext:
        return ExecutionContext(
            page=page,
            steps=tuple(steps),
            speed_mode=speed_mode,
            timeout_mode=timeout_mode,
            sleep=self.sleep,
            request_id=request_id,
        )

    async def run_step(self, ctx: ExecutionContext, step: Step) -> None:
        """Dispatch one step to its action handler."""
        action_class = ActionRegistry.get_action_class(step.type.value)
        if not action_class:
            raise ActionError(f"Unknown step type: {step.type.value}")
        await action_class(ctx).execute(step)

    async def execute(self, ctx: ExecutionContext) -> ExecutionContext:
        """
        Run every step of ``ctx``.

        The speed mode delay is applied after each completed step, the last
        one included. The first failure aborts the remaining steps.

        Raises:
            StepExecutionError: Naming the 1-based index and type of the failed step.
        """
        await self.hooks.before_all(ctx)

        for index, step in enumerate(ctx.steps):
            ctx.current_index = index
            ctx.transition(StepState.RUNNING)
            position = index + 1
            try:
                await self.hooks.before_each(ctx, step)
                await self.run_step(ctx, step)
                await self.hooks.after_each(ctx, step)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                timed_out = isinstance(e, PlaywrightTimeoutError) or (
                    isinstance(e, ScrapeError) and e.code == ErrorCode.STEP_TIMEOUT
                )
                error = StepExecutionError.from_step_failure(
                    e, step_index=position, step_type=step.type.value, timed_out=timed_out
                )
                ctx.failure = error
                ctx.transition(StepState.FAILED)
                logger.error(
                    error.message,
                    extra={"request_id": ctx.request_id, "step": position, "step_type": step.type.value},
                )
                raise error from e

            ctx.steps_completed += 1
            ctx.transition(StepState.PENDING)

            if ctx.delay_ms > 0:
                await self.sleep(ctx.delay_ms / 1000)

        ctx.transition(StepState.COMPLETED)
        await self.hooks.after_all(ctx)
        return ctx
