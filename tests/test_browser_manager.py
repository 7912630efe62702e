from __future__ import annotations

import pytest

from core.settings_manager import SettingsManager
from fakes import BYPASS_CODE, FakePlaywright, make_body
from scrapereq.exceptions import BrowserLaunchError, PageSetupError, ProxyRequiredError, ProxySetupError
from scrapereq.executor.browser_manager import DEFAULT_VIEWPORT, BrowserManager
from scrapereq.executor.normalization import normalize_request

SERVERS = [
    {"server": "10.0.0.1", "port": 8080},
    {"server": "10.0.0.2", "port": 1080, "protocol": "SOCKS5"},
]
TEARDOWN_ORDER = ["page.close", "context.close", "browser.close", "playwright.stop"]


def _manager(settings: SettingsManager, fake: FakePlaywright | None = None, pick: int = 0) -> BrowserManager:
    factory = fake.factory if fake else FakePlaywright().factory
    return BrowserManager(settings, playwright_factory=factory, choose=lambda servers: servers[pick])


class TestPlanLaunch:
    def test_bypass_code_launches_without_proxy(self, settings: SettingsManager) -> None:
        request = normalize_request(make_body(proxy={"bypassCode": BYPASS_CODE}))

        plan = _manager(settings).plan_launch(request)

        assert plan.bypassed is True
        assert plan.proxy is None
        assert plan.proxy_echo is None
        assert "proxy" not in plan.launch_kwargs

    def test_wrong_bypass_code_still_requires_a_proxy(self, settings: SettingsManager) -> None:
        request = normalize_request(make_body(proxy={"bypassCode": "nope"}))

        with pytest.raises(ProxyRequiredError) as excinfo:
            _manager(settings).plan_launch(request)

        assert excinfo.value.status == 401
        assert excinfo.value.message == "Proxy server is required to perform scraping"

    def test_empty_configured_code_never_bypasses(self, tmp_path) -> None:
        settings = SettingsManager(overrides={"proxy_bypass_code": "", "tmp_dir": str(tmp_path)})
        request = normalize_request(make_body(proxy={"bypassCode": ""}))

        with pytest.raises(ProxyRequiredError):
            _manager(settings).plan_launch(request)

    def test_selected_server_becomes_launch_proxy(self, settings: SettingsManager) -> None:
        request = normalize_request(make_body(proxy={"servers": SERVERS}))

        plan = _manager(settings, pick=1).plan_launch(request)

        assert plan.launch_kwargs["proxy"] == {"server": "socks5://10.0.0.2:1080"}
        assert plan.proxy_echo == {"server": "10.0.0.2", "port": 1080, "protocol": "socks5"}
        assert plan.launch_kwargs["headless"] is True
        assert "--no-sandbox" in plan.launch_kwargs["args"]
        assert "executable_path" not in plan.launch_kwargs

    def test_auth_credentials_are_passed_but_never_echoed(self, settings: SettingsManager) -> None:
        request = normalize_request(
            make_body(proxy={"servers": SERVERS, "auth": {"enabled": True, "username": "u", "password": "s3cret"}})
        )

        plan = _manager(settings).plan_launch(request)

        assert plan.launch_kwargs["proxy"] == {"server": "http://10.0.0.1:8080", "username": "u", "password": "s3cret"}
        assert "s3cret" not in str(plan.proxy_echo)

    def test_malformed_server_is_a_setup_error(self, settings: SettingsManager) -> None:
        request = normalize_request(make_body(proxy={"servers": [{"server": "http://10.0.0.1", "port": 8080}]}))

        with pytest.raises(ProxySetupError) as excinfo:
            _manager(settings).plan_launch(request)

        assert excinfo.value.proxy == {"server": "http://10.0.0.1", "port": 8080, "protocol": "http"}

    def test_configured_chrome_path(self, tmp_path) -> None:
        settings = SettingsManager(overrides={"chrome_path": "/opt/chrome/chrome", "tmp_dir": str(tmp_path)})
        request = normalize_request(make_body())

        plan = _manager(settings).plan_launch(request)

        assert plan.launch_kwargs["executable_path"] == "/opt/chrome/chrome"


class TestOpenSession:
    @pytest.mark.anyio
    async def test_session_is_configured_and_torn_down_in_order(
        self, settings: SettingsManager, fake_playwright: FakePlaywright
    ) -> None:
        request = normalize_request(
            make_body(record={"timeoutMode": "SHORT", "steps": [{"type": "navigate", "url": "https://example.com/"}]})
        )
        manager = _manager(settings, fake_playwright)
        plan = manager.plan_launch(request)

        async with manager.open_session(plan, request) as session:
            assert session.page is fake_playwright.page
            assert session.proxy_echo == {"server": "10.0.0.1", "port": 8080, "protocol": "http"}
            assert fake_playwright.events == []

        kwargs = fake_playwright.browser.context_kwargs
        assert kwargs["viewport"] == DEFAULT_VIEWPORT
        assert kwargs["ignore_https_errors"] is True
        assert kwargs["extra_http_headers"]["User-Agent"] == kwargs["user_agent"]
        assert "Accept-Language" in kwargs["extra_http_headers"]
        assert fake_playwright.chromium.launch_kwargs["proxy"] == {"server": "http://10.0.0.1:8080"}
        assert fake_playwright.page.default_timeout == 10_000
        assert fake_playwright.page.default_navigation_timeout == 10_000
        assert fake_playwright.events == TEARDOWN_ORDER

    @pytest.mark.anyio
    async def test_teardown_runs_when_the_body_raises(self, settings: SettingsManager, fake_playwright: FakePlaywright) -> None:
        request = normalize_request(make_body())
        manager = _manager(settings, fake_playwright)

        with pytest.raises(RuntimeError, match="step blew up"):
            async with manager.open_session(manager.plan_launch(request), request):
                raise RuntimeError("step blew up")

        assert fake_playwright.events == TEARDOWN_ORDER

    @pytest.mark.anyio
    async def test_failed_close_does_not_stop_remaining_teardown(
        self, settings: SettingsManager, fake_playwright: FakePlaywright
    ) -> None:
        request = normalize_request(make_body())
        manager = _manager(settings, fake_playwright)
        fake_playwright.context.fail_close = True

        async with manager.open_session(manager.plan_launch(request), request):
            pass

        assert fake_playwright.events == TEARDOWN_ORDER

    @pytest.mark.anyio
    async def test_launch_failure_stops_the_driver(self, settings: SettingsManager, fake_playwright: FakePlaywright) -> None:
        request = normalize_request(make_body())
        manager = _manager(settings, fake_playwright)
        fake_playwright.chromium.fail_launch = RuntimeError("Executable doesn't exist")

        with pytest.raises(BrowserLaunchError) as excinfo:
            async with manager.open_session(manager.plan_launch(request), request):
                pytest.fail("session should not open")

        assert "Executable doesn't exist" in excinfo.value.message
        assert excinfo.value.proxy == {"server": "10.0.0.1", "port": 8080, "protocol": "http"}
        assert fake_playwright.events == ["playwright.stop"]

    @pytest.mark.anyio
    async def test_context_failure_is_a_page_setup_error(
        self, settings: SettingsManager, fake_playwright: FakePlaywright
    ) -> None:
        request = normalize_request(make_body())
        manager = _manager(settings, fake_playwright)
        fake_playwright.browser.fail_new_context = RuntimeError("context refused")

        with pytest.raises(PageSetupError):
            async with manager.open_session(manager.plan_launch(request), request):
                pytest.fail("session should not open")

        assert fake_playwright.events == ["browser.close", "playwright.stop"]
