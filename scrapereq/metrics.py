"""
Scrape metrics.

In-memory counters for scrape operations: outcome totals, average
duration, per-domain / per-response-type / per-proxy breakdowns, error
codes and a short history of recent operations.
"""

from __future__ import annotations

import logging
from collections import defaultdict, deque
from dataclasses import asdict, dataclass
from datetime import datetime, timezone
from typing import Any
from urllib.parse import urlparse

logger = logging.getLogger(__name__)

RECENT_HISTORY_SIZE = 100
DETAILED_RECENT_SIZE = 10


def _outcome_counter() -> dict[str, int]:
    return {"count": 0, "successful": 0, "failed": 0}


@dataclass
class OperationRecord:
    """One finished scrape operation."""

    timestamp: str
    success: bool
    duration_ms: float
    url: str | None
    response_type: str
    proxy: str | None = None
    error: str | None = None
    error_code: str | None = None

    def to_dict(self) -> dict[str, Any]:
        data = asdict(self)
        if self.success:
            data.pop("error")
            data.pop("error_code")
        return data


class ScrapeMetrics:
    """Collects metrics for scrape operations."""

    def __init__(self) -> None:
        self.reset()

    def reset(self) -> dict[str, Any]:
        """Clear every counter and return the detailed snapshot taken before clearing."""
        previous = self.snapshot(detailed=True) if hasattr(self, "_operations") else {}

        self._operations = 0
        self._successful = 0
        self._failed = 0
        self._total_duration_ms = 0.0
        self._by_url: dict[str, dict[str, int]] = defaultdict(_outcome_counter)
        self._by_response_type: dict[str, dict[str, int]] = defaultdict(_outcome_counter)
        self._by_proxy: dict[str, dict[str, int]] = defaultdict(_outcome_counter)
        self._errors: dict[str, int] = defaultdict(int)
        self._recent: deque[OperationRecord] = deque(maxlen=RECENT_HISTORY_SIZE)

        if previous:
            logger.info(f"Scrape metrics reset after {previous['operations']} operations")
        return previous

    def record(
        self,
        success: bool,
        duration_ms: float,
        url: str | None,
        response_type: str,
        proxy: str | None = None,
        error: str | None = None,
        error_code: str | None = None,
    ) -> None:
        """Record the outcome of one scrape operation."""
        self._operations += 1
        self._total_duration_ms += duration_ms

        if success:
            self._successful += 1
        else:
            self._failed += 1
            self._errors[error_code or "unknown"] += 1

        domain = urlparse(url).hostname if url else None
        if domain:
            self._bump(self._by_url[domain], success)
        elif url:
            logger.warning(f"Invalid URL in metrics: {url}")

        self._bump(self._by_response_type[response_type], success)
        if proxy:
            self._bump(self._by_proxy[proxy], success)

        self._recent.appendleft(
            OperationRecord(
                timestamp=datetime.now(timezone.utc).isoformat(),
                success=success,
                duration_ms=round(duration_ms, 2),
                url=url,
                response_type=response_type,
                proxy=proxy,
                error=error,
                error_code=error_code,
            )
        )

    @staticmethod
    def _bump(counter: dict[str, int], success: bool) -> None:
        counter["count"] += 1
        counter["successful" if success else "failed"] += 1

    @property
    def operations(self) -> int:
        return self._operations

    @property
    def average_duration_ms(self) -> float:
        return self._total_duration_ms / self._operations if self._operations else 0.0

    def snapshot(self, detailed: bool = False) -> dict[str, Any]:
        """Current metrics; the detailed form adds breakdowns and the 10 most recent operations."""
        rate = f"{self._successful / self._operations * 100:.2f}%" if self._operations else "0%"
        data: dict[str, Any] = {
            "operations": self._operations,
            "successful": self._successful,
            "failed": self._failed,
            "successRate": rate,
            "averageDuration": f"{round(self.average_duration_ms)}ms",
            "timestamp": datetime.now(timezone.utc).isoformat(),
        }
        if not detailed:
            return data

        data.update(
            {
                "byUrl": {k: dict(v) for k, v in self._by_url.items()},
                "byResponseType": {k: dict(v) for k, v in self._by_response_type.items()},
                "byProxy": {k: dict(v) for k, v in self._by_proxy.items()},
                "errors": dict(self._errors),
                "recent": [record.to_dict() for record in list(self._recent)[:DETAILED_RECENT_SIZE]],
            }
        )
        return data
