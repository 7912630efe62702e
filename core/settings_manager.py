"""
Settings Manager for scrapereq.

Runtime configuration is read from environment variables (a `.env` file is
loaded by the server entry point). Values are cached and coerced on access.
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

# Project root directory - used by various modules for file paths
PROJECT_ROOT = Path(__file__).parent.parent.resolve()

DEFAULT_USER_AGENT = (
    "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0.0.0 Safari/537.36"
)
DEFAULT_ACCEPT_LANGUAGE = "en-US,en;q=0.9"


class SettingsManager:
    """Manages service configuration via environment variables."""

    DEFAULTS = {
        "environment": "production",
        "host": "0.0.0.0",
        "port": 3000,
        "web_address": "",
        "tmp_dir": str(PROJECT_ROOT / "tmp"),
        "max_concurrent_browsers": 1,
        "proxy_bypass_code": "",
        "browser_headless": True,
        "chrome_path": "",
        "accept_language": DEFAULT_ACCEPT_LANGUAGE,
        "user_agent": DEFAULT_USER_AGENT,
        "screenshot_stabilize_ms": 500,
        "screenshot_retention_hours": 24,
        "log_level": "INFO",
        "log_format": "json",
    }

    ENV_MAPPINGS = {
        "environment": "APP_ENV",
        "host": "HOST",
        "port": "PORT",
        "web_address": "WEB_ADDRESS",
        "tmp_dir": "TMP_DIR",
        "max_concurrent_browsers": "MAX_CONCURRENT_BROWSERS",
        "proxy_bypass_code": "SCRAPE_PROXY_BYPASS_CODE",
        "browser_headless": "BROWSER_HEADLESS",
        "chrome_path": "CHROME_PATH",
        "accept_language": "BROWSER_ACCEPT_LANGUAGE",
        "user_agent": "BROWSER_USER_AGENT",
        "screenshot_stabilize_ms": "SCREENSHOT_STABILIZE_MS",
        "screenshot_retention_hours": "SCREENSHOT_RETENTION_HOURS",
        "log_level": "LOG_LEVEL",
        "log_format": "LOG_FORMAT",
    }

    # Kept as strings even when they look numeric or boolean
    RAW_KEYS = {"proxy_bypass_code", "accept_language", "user_agent", "chrome_path", "web_address", "tmp_dir"}

    def __init__(self, overrides: dict | None = None) -> None:
        self._cache: dict = {}
        self._load_from_env()
        for key, value in (overrides or {}).items():
            self.set(key, value)

    def _load_from_env(self) -> None:
        for setting_key, env_key in self.ENV_MAPPINGS.items():
            env_value = os.getenv(env_key)
            if env_value:
                self.set(setting_key, env_value)

    def get(self, key: str, default=None):
        if default is None:
            default = self.DEFAULTS.get(key, "")

        value = self._cache.get(key, default)

        if key in self.RAW_KEYS:
            return value

        if isinstance(value, str) and value.lower() in ("true", "false", "1", "0"):
            return value.lower() in ("true", "1")

        if isinstance(value, str) and value.isdigit():
            return int(value)

        return value

    def set(self, key: str, value):
        self._cache[key] = value

    def get_all(self) -> dict:
        all_settings = {}
        for key in self.DEFAULTS.keys():
            all_settings[key] = self.get(key)
        # Never expose the bypass secret
        all_settings["proxy_bypass_code"] = "***" if all_settings["proxy_bypass_code"] else ""
        return all_settings

    def reload(self) -> None:
        self._load_from_env()

    @property
    def is_production(self) -> bool:
        return str(self.get("environment")).lower() == "production"

    @property
    def web_address(self) -> str:
        configured = self.get("web_address")
        if configured:
            return str(configured).rstrip("/")
        return f"http://{self.get('host')}:{self.get('port')}"

    @property
    def tmp_dir(self) -> Path:
        return Path(self.get("tmp_dir"))

    @property
    def max_concurrent_browsers(self) -> int:
        value = int(self.get("max_concurrent_browsers"))
        if value < 1:
            logger.warning(f"MAX_CONCURRENT_BROWSERS={value} is invalid, using 1")
            return 1
        return value

    @property
    def proxy_bypass_code(self) -> str:
        return str(self.get("proxy_bypass_code") or "")

    @property
    def chrome_path(self) -> str | None:
        return self.get("chrome_path") or None

    @property
    def browser_settings(self) -> dict:
        return {
            "headless": bool(self.get("browser_headless")),
            "executable_path": self.chrome_path,
            "accept_language": self.get("accept_language"),
            "user_agent": self.get("user_agent"),
        }


settings = SettingsManager()
