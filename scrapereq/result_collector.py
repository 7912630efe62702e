"""
Result assembly for scrape runs.

Builds the success payload for each response type and the error envelope
returned for a ScrapeError.
"""

from __future__ import annotations

import logging
from typing import Any

from scrapereq.exceptions import ScrapeError
from scrapereq.models.request import ResponseType

logger = logging.getLogger(__name__)


class ResultAssembler:
    """Shapes scrape outcomes into response payloads."""

    def __init__(self, include_stack: bool = False) -> None:
        """
        Args:
            include_stack: Add the stack trace to error envelopes (non-production only)
        """
        self.include_stack = include_stack

    def success(
        self,
        response_type: ResponseType,
        captured: dict[str, str] | None = None,
        proxy: dict[str, Any] | None = None,
        screenshot_url: str | None = None,
    ) -> dict[str, Any] | str:
        """
        Build the success result.

        NONE -> {"success": True, "proxy"?, "screenshotUrl"?}
        RAW  -> the single captured value as a string
        JSON -> {"success": True, "data": {"catch": {...}, "proxy"?, "screenshotUrl"?}}
        """
        captured = captured or {}

        if response_type == ResponseType.RAW:
            return next(iter(captured.values()), "")

        envelope: dict[str, Any] = {}
        if response_type == ResponseType.JSON:
            envelope["catch"] = dict(captured)
        if proxy:
            envelope["proxy"] = proxy
        if screenshot_url:
            envelope["screenshotUrl"] = screenshot_url

        if response_type == ResponseType.JSON:
            return {"success": True, "data": envelope}
        return {"success": True, **envelope}

    def error(self, exc: ScrapeError) -> dict[str, Any]:
        """Build the error envelope for a failed run."""
        data: dict[str, Any] = {"message": exc.message, "code": exc.code.value}
        if self.include_stack:
            data["stack"] = exc.stack_lines()
        if exc.screenshot_url:
            data["screenshotUrl"] = exc.screenshot_url
        if exc.proxy:
            data["proxy"] = exc.proxy
        return {"success": False, "data": data}
