"""
Locator Utilities - Playwright locator conversion for recorded step selectors.
Broken out to prevent circular imports between actions and executor.
"""

from __future__ import annotations

import logging
import re
import time
from typing import Any, Awaitable, Callable, Sequence

from scrapereq.models.request import SelectorType, StepSelector

logger = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.1

_ARIA_ROLE = re.compile(r"^(?P<name>.*?)\s*\[role=['\"]?(?P<role>[\w-]+)['\"]?\]\s*$")


def convert_to_playwright_locator(page: Any, selector: StepSelector | str) -> Any:
    """
    Convert a recorded selector to a Playwright locator.

    Supports:
    - XPath selectors (typed XPATH, or values starting with //)
    - text/Some text → get_by_text()
    - text='...' → get_by_text()
    - aria/Name and aria/Name[role="button"] → get_by_label() / get_by_role()
    - pierce/css → CSS (Playwright CSS already pierces open shadow roots)
    - h3:has-text('text') → locator('h3').filter(has_text='text')
    - Standard CSS selectors (passed through)
    """
    if isinstance(selector, StepSelector):
        if selector.type == SelectorType.XPATH:
            return page.locator(f"xpath={selector.value}")
        value = selector.value.strip()
    else:
        value = selector.strip()

    if value.startswith("text/"):
        return page.get_by_text(value[len("text/") :], exact=False)

    text_match = re.match(r"^text=['\"](.+?)['\"]\s*$", value)
    if text_match:
        return page.get_by_text(text_match.group(1), exact=False)

    if value.startswith("aria/"):
        aria = value[len("aria/") :]
        role_match = _ARIA_ROLE.match(aria)
        if role_match:
            return page.get_by_role(role_match.group("role"), name=role_match.group("name"))
        return page.get_by_label(aria)

    if value.startswith("pierce/"):
        value = value[len("pierce/") :]

    has_text_match = re.match(r"^(.+?):has-text\(['\"](.+?)['\"]\s*\)$", value)
    if has_text_match:
        base_selector = has_text_match.group(1).strip()
        text_content = has_text_match.group(2)
        logger.debug(f"Converting :has-text() to locator().filter(): base={base_selector}, text={text_content}")
        return page.locator(base_selector).filter(has_text=text_content)

    if value.startswith("//") or value.startswith(".//") or value.startswith("(//"):
        return page.locator(f"xpath={value}")

    return page.locator(value)


async def resolve_first_locator(
    page: Any,
    selectors: Sequence[StepSelector],
    timeout_ms: int,
    sleep: Callable[[float], Awaitable[None]],
) -> tuple[Any, StepSelector] | None:
    """
    Poll the alternatives in order until one matches at least one element.

    Returns:
        The first matching element's locator and the selector that matched,
        or None when nothing matched before the timeout.
    """
    deadline = time.monotonic() + timeout_ms / 1000
    while True:
        for selector in selectors:
            try:
                locator = convert_to_playwright_locator(page, selector)
                if await locator.count() > 0:
                    return locator.first, selector
            except Exception as e:
                # Invalid syntax for one alternative must not hide the others
                logger.debug(f"Selector {selector.value!r} could not be evaluated: {e}")
        if time.monotonic() >= deadline:
            return None
        await sleep(POLL_INTERVAL_S)
