from __future__ import annotations

from scrapereq.models.request import (
    DEFAULT_TITLE,
    SPEED_MODE_DELAYS_MS,
    TIMEOUT_MODE_MS,
    Capture,
    Headers,
    Output,
    ProxyAuth,
    ProxyConfig,
    ProxyProtocol,
    ProxyServer,
    Record,
    ResponseType,
    ScrapeRequest,
    Screenshots,
    Selector,
    SelectorType,
    SpeedMode,
    Step,
    StepSelector,
    StepType,
    TimeoutMode,
)

__all__ = [
    "DEFAULT_TITLE",
    "SPEED_MODE_DELAYS_MS",
    "TIMEOUT_MODE_MS",
    "Capture",
    "Headers",
    "Output",
    "ProxyAuth",
    "ProxyConfig",
    "ProxyProtocol",
    "ProxyServer",
    "Record",
    "ResponseType",
    "ScrapeRequest",
    "Screenshots",
    "Selector",
    "SelectorType",
    "SpeedMode",
    "Step",
    "StepSelector",
    "StepType",
    "TimeoutMode",
]
