"""Browser session lifecycle for scrape runs: proxy selection, launch and teardown."""

from __future__ import annotations

import logging
import random
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable

from playwright.async_api import async_playwright

from core.settings_manager import SettingsManager
from scrapereq.exceptions import (
    BrowserLaunchError,
    ErrorContext,
    PageSetupError,
    ProxyRequiredError,
    ProxySetupError,
)
from scrapereq.models.request import ProxyServer, ScrapeRequest

logger = logging.getLogger(__name__)

DEFAULT_VIEWPORT = {"width": 1366, "height": 768}

LAUNCH_ARGS = [
    "--no-sandbox",
    "--disable-setuid-sandbox",
    "--disable-dev-shm-usage",
    "--disable-gpu",
    "--no-first-run",
    "--no-zygote",
    "--disable-extensions",
    "--disable-background-networking",
    "--disable-default-apps",
    "--disable-sync",
    "--disable-translate",
    "--hide-scrollbars",
    "--mute-audio",
]


@dataclass(frozen=True)
class LaunchPlan:
    """Everything needed to launch a browser for one request."""

    launch_kwargs: dict[str, Any]
    proxy: ProxyServer | None = None
    bypassed: bool = False

    @property
    def proxy_echo(self) -> dict[str, Any] | None:
        """Public description of the selected proxy, never including credentials."""
        return self.proxy.echo() if self.proxy else None


@dataclass
class Session:
    """A browser session owned by exactly one request."""

    playwright: Any
    browser: Any
    context: Any
    page: Any
    plan: LaunchPlan

    @property
    def proxy_echo(self) -> dict[str, Any] | None:
        return self.plan.proxy_echo


class BrowserManager:
    """Plans, opens and tears down Playwright browser sessions."""

    def __init__(
        self,
        settings: SettingsManager,
        playwright_factory: Callable[[], Any] = async_playwright,
        choose: Callable[[Any], Any] = random.choice,
    ) -> None:
        """
        Args:
            settings: Service settings (headless, executable path, bypass code)
            playwright_factory: Returns an object whose ``start()`` coroutine yields the driver
            choose: Picks one proxy server from the candidates
        """
        self.settings = settings
        self.playwright_factory = playwright_factory
        self.choose = choose

    def is_bypassed(self, request: ScrapeRequest) -> bool:
        configured = self.settings.proxy_bypass_code
        return bool(configured) and request.proxy.bypass_code == configured

    def plan_launch(self, request: ScrapeRequest) -> LaunchPlan:
        """
        Decide how to launch the browser for ``request``.

        Raises:
            ProxyRequiredError: No proxy servers and no valid bypass code
            ProxySetupError: The selected proxy cannot be used
        """
        browser_settings = self.settings.browser_settings
        launch_kwargs: dict[str, Any] = {
            "headless": browser_settings["headless"],
            "args": list(LAUNCH_ARGS),
        }
        if browser_settings["executable_path"]:
            launch_kwargs["executable_path"] = browser_settings["executable_path"]

        if self.is_bypassed(request):
            logger.info("Proxy bypass code accepted, launching without proxy")
            return LaunchPlan(launch_kwargs=launch_kwargs, bypassed=True)

        servers = request.proxy.servers
        if not servers:
            raise ProxyRequiredError("Proxy server is required to perform scraping")

        proxy = self.choose(servers)
        context = ErrorContext(proxy=proxy.echo())
        if not proxy.server or "://" in proxy.server or any(ch.isspace() for ch in proxy.server):
            raise ProxySetupError(f"Invalid proxy server address: {proxy.server!r}", context=context)

        proxy_settings: dict[str, Any] = {"server": proxy.address}
        auth = request.proxy.auth
        if auth.enabled:
            if not auth.username or not auth.password:
                raise ProxySetupError("Proxy authentication enabled without credentials", context=context)
            proxy_settings["username"] = auth.username
            proxy_settings["password"] = auth.password
        launch_kwargs["proxy"] = proxy_settings

        logger.info(f"Using proxy {proxy.address}", extra={"proxy": proxy.address})
        return LaunchPlan(launch_kwargs=launch_kwargs, proxy=proxy)

    @asynccontextmanager
    async def open_session(self, plan: LaunchPlan, request: ScrapeRequest) -> AsyncIterator[Session]:
        """
        Launch a browser, yield the session and always tear it down.

        Raises:
            BrowserLaunchError: The driver or browser could not be started
            PageSetupError: Context or page creation/configuration failed
        """
        playwright = None
        browser = None
        context = None
        page = None
        error_context = ErrorContext(proxy=plan.proxy_echo)

        try:
            try:
                playwright = await self.playwright_factory().start()
                browser = await playwright.chromium.launch(**plan.launch_kwargs)
            except Exception as e:
                raise BrowserLaunchError(f"Failed to launch browser: {e}", context=error_context, cause=e) from e

            try:
                context = await browser.new_context(
                    ignore_https_errors=True,
                    viewport=dict(DEFAULT_VIEWPORT),
                    user_agent=request.headers.user_agent,
                    extra_http_headers=request.headers.as_http_headers(),
                )
                page = await context.new_page()
                timeout_ms = request.record.timeout_mode.timeout_ms
                page.set_default_timeout(timeout_ms)
                page.set_default_navigation_timeout(timeout_ms)
            except Exception as e:
                raise PageSetupError(f"Failed to set up page: {e}", context=error_context, cause=e) from e

            logger.debug("Browser session opened")
            session = Session(playwright=playwright, browser=browser, context=context, page=page, plan=plan)
            yield session
        finally:
            await self._teardown(page, context, browser, playwright)

    async def _teardown(self, page: Any, context: Any, browser: Any, playwright: Any) -> None:
        """Close page, context, browser and driver; failures are logged, never raised."""
        for name, resource, method in (
            ("page", page, "close"),
            ("context", context, "close"),
            ("browser", browser, "close"),
            ("playwright", playwright, "stop"),
        ):
            if resource is None:
                continue
            try:
                await getattr(resource, method)()
            except Exception as e:
                logger.warning(f"Failed to close {name}: {e}")
        logger.debug("Browser session closed")
