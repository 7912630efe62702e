"""Pytest configuration and fixtures."""

from __future__ import annotations

from pathlib import Path

import pytest

from core.settings_manager import SettingsManager
from fakes import BYPASS_CODE, FakePlaywright


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture
def settings(tmp_path: Path) -> SettingsManager:
    return SettingsManager(
        overrides={
            "environment": "development",
            "tmp_dir": str(tmp_path / "screens"),
            "web_address": "http://scraper.test",
            "proxy_bypass_code": BYPASS_CODE,
            "screenshot_stabilize_ms": 0,
            "browser_headless": True,
            "chrome_path": "",
        }
    )


@pytest.fixture
def fake_playwright() -> FakePlaywright:
    return FakePlaywright()
