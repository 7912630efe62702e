"""scrapereq: scripted browser scraping behind a bounded session pool."""

from __future__ import annotations

__version__ = "1.0.0"
