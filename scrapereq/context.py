"""ActionContext Protocol for decoupling step actions from the executor."""

from __future__ import annotations

from typing import Any, Awaitable, Callable, Protocol


class ActionContext(Protocol):
    """Protocol defining what step actions may use from the running session."""

    # Browser interface
    page: Any

    # Default per-action timeout in milliseconds (from the request's timeout mode)
    timeout_ms: int

    # Injectable sleep, in seconds
    sleep: Callable[[float], Awaitable[None]]
