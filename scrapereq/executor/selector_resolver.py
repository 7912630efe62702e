"""
SelectorResolver - Value extraction for capture selectors.

Resolves typed selectors (CSS, XPATH, FULL) against a Playwright page and
returns their string values.
"""

from __future__ import annotations

import logging
from typing import Any, Sequence

from scrapereq.exceptions import ScrapeError, SelectorProcessingError
from scrapereq.models.request import Selector, SelectorType

logger = logging.getLogger(__name__)

# Form fields yield their value; other elements their markup, or their text
# when the markup is blank.
ELEMENT_VALUE_JS = """
el => {
    const tag = el.tagName.toLowerCase();
    if (tag === 'input' || tag === 'select' || tag === 'textarea') {
        return el.value || el.textContent || '';
    }
    const html = el.innerHTML || '';
    const text = el.textContent || '';
    if (html.trim() === '' && text.trim() !== '') {
        return text;
    }
    return html;
}
"""


class SelectorResolver:
    """Resolves capture selectors and extracts values from Playwright pages."""

    async def extract(self, page: Any, selector: Selector) -> str:
        """
        Extract the value a single selector points at.

        Args:
            page: Playwright page
            selector: Capture selector

        Returns:
            str: Page HTML for FULL, otherwise the element value

        Raises:
            SelectorProcessingError: When nothing matches or evaluation fails
        """
        try:
            if selector.type == SelectorType.FULL:
                return await page.content()

            query = selector.value if selector.type == SelectorType.CSS else f"xpath={selector.value}"
            handle = await page.query_selector(query)
            if handle is None:
                raise ScrapeError(f"No element matches {selector.type.value} selector")
            try:
                value = await handle.evaluate(ELEMENT_VALUE_JS)
            finally:
                await handle.dispose()
            return "" if value is None else str(value)
        except Exception as e:
            error = SelectorProcessingError.for_selector(
                e, key=selector.key, selector_type=selector.type.value, value=selector.value
            )
            logger.error(error.message, extra={"selector_key": selector.key})
            raise error from e

    async def extract_all(self, page: Any, selectors: Sequence[Selector]) -> dict[str, str]:
        """Extract every selector, keyed by selector key, in declaration order."""
        captured: dict[str, str] = {}
        for selector in selectors:
            captured[selector.key] = await self.extract(page, selector)
            logger.debug(f"Captured '{selector.key}' ({len(captured[selector.key])} chars)")
        return captured
