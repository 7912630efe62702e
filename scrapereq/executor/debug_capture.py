"""
Diagnostic screenshot capture for scrape runs.

Screenshots are written to the temporary directory served by the HTTP layer
and referenced by public URL in results and error envelopes.
"""

from __future__ import annotations

import asyncio
import logging
import re
import uuid
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any, Awaitable, Callable, Protocol

from scrapereq.exceptions import ScreenshotError

logger = logging.getLogger(__name__)

SCREENSHOT_KINDS = ("success", "error")

# error-2025-03-20T00-12-26-829Z-a1b2c3.png
FILENAME_TIMESTAMP = re.compile(r"-(\d{4})-(\d{2})-(\d{2})T(\d{2})-(\d{2})-(\d{2})-")


class ScreenshotPage(Protocol):
    """Protocol for the page interface used by the capture."""

    async def screenshot(self, *, path: str, full_page: bool = False) -> bytes: ...


class DebugArtifactCapture:
    """Captures full-page screenshots and publishes them under a public URL."""

    def __init__(
        self,
        output_dir: str | Path,
        public_base_url: str,
        static_path: str = "/api/tmp",
        stabilize_ms: int = 500,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        """
        Args:
            output_dir: Directory screenshots are written to (created on demand)
            public_base_url: Externally reachable address of this service
            static_path: URL path the output directory is served under
            stabilize_ms: Delay before taking the screenshot, letting the page settle
            sleep: Coroutine used for the stabilization delay
        """
        self.output_dir = Path(output_dir)
        self.public_base_url = public_base_url.rstrip("/")
        self.static_path = "/" + static_path.strip("/")
        self.stabilize_ms = stabilize_ms
        self.sleep = sleep

    @staticmethod
    def build_filename(kind: str, now: datetime | None = None) -> str:
        """<kind>-<UTC ISO timestamp with ':' and '.' replaced by '-'>-<6 random chars>.png"""
        now = (now or datetime.now(timezone.utc)).astimezone(timezone.utc)
        stamp = now.strftime("%Y-%m-%dT%H:%M:%S.") + f"{now.microsecond // 1000:03d}Z"
        stamp = stamp.replace(":", "-").replace(".", "-")
        return f"{kind}-{stamp}-{uuid.uuid4().hex[:6]}.png"

    def public_url(self, filename: str) -> str:
        return f"{self.public_base_url}{self.static_path}/{filename}"

    async def capture(self, page: Any, kind: str) -> str:
        """
        Take a full-page screenshot.

        Args:
            page: Playwright page
            kind: "success" or "error"

        Returns:
            str: Public URL of the saved PNG

        Raises:
            ScreenshotError: If the screenshot cannot be taken or saved
        """
        if kind not in SCREENSHOT_KINDS:
            raise ValueError(f"Unknown screenshot kind: {kind}")

        try:
            self.output_dir.mkdir(parents=True, exist_ok=True)
            filename = self.build_filename(kind)
            path = self.output_dir / filename

            if self.stabilize_ms > 0:
                await self.sleep(self.stabilize_ms / 1000)

            await page.screenshot(path=str(path), full_page=True)
        except Exception as e:
            raise ScreenshotError(f"Failed to generate {kind} screenshot: {e}", cause=e) from e

        url = self.public_url(filename)
        logger.info(f"Saved {kind} screenshot: {path}")
        return url


def _screenshot_time(path: Path) -> datetime:
    match = FILENAME_TIMESTAMP.search(path.name)
    if match:
        year, month, day, hour, minute, second = (int(part) for part in match.groups())
        return datetime(year, month, day, hour, minute, second, tzinfo=timezone.utc)
    return datetime.fromtimestamp(path.stat().st_mtime, tz=timezone.utc)


def cleanup_old_screenshots(
    directory: str | Path,
    retention_hours: float = 24,
    now: datetime | None = None,
) -> dict[str, int]:
    """
    Delete screenshots older than the retention period.

    Files are dated by the timestamp embedded in their name, falling back to
    the modification time. Files removed concurrently are ignored.

    Returns:
        dict: {"deleted": n, "errors": n}
    """
    directory = Path(directory)
    stats = {"deleted": 0, "errors": 0}
    if not directory.is_dir():
        return stats

    cutoff = (now or datetime.now(timezone.utc)) - timedelta(hours=retention_hours)

    for kind in SCREENSHOT_KINDS:
        for path in directory.glob(f"{kind}-*.png"):
            try:
                if _screenshot_time(path) < cutoff:
                    path.unlink()
                    stats["deleted"] += 1
            except FileNotFoundError:
                continue
            except OSError as e:
                stats["errors"] += 1
                logger.warning(f"Failed to delete old screenshot {path}: {e}")

    if stats["deleted"] or stats["errors"]:
        logger.info(f"Screenshot cleanup: {stats['deleted']} deleted, {stats['errors']} errors")
    return stats
