from __future__ import annotations

import json
import logging
import os
import re
import sys
from datetime import datetime, timezone
from logging import LogRecord
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Any

# Define project root
PROJECT_ROOT = Path(__file__).resolve().parent.parent

# Track if logging has been configured to avoid duplicate setup
_logging_configured = False

OPTIONAL_FIELDS = ["request_id", "step", "step_type", "selector_key", "proxy"]


class JSONFormatter(logging.Formatter):
    """JSON formatter that outputs log records as JSON lines."""

    def format(self, record: LogRecord) -> str:
        """Format the log record as a JSON string."""
        log_data: dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
        }

        # Add optional fields from record if present
        for field in OPTIONAL_FIELDS:
            value = getattr(record, field, None)
            if value is not None and value != "":
                log_data[field] = value

        # Add error fields if present
        if record.exc_info:
            log_data["error_type"] = record.exc_info[0].__name__ if record.exc_info[0] else None
            log_data["error_message"] = str(record.exc_info[1]) if record.exc_info[1] else None
            error_code = getattr(record.exc_info[1], "code", None)
            if error_code is not None:
                log_data["error_code"] = getattr(error_code, "value", error_code)

        duration_ms = getattr(record, "duration_ms", None)
        if duration_ms is not None:
            log_data["duration_ms"] = duration_ms

        return json.dumps(log_data, default=str)


class SensitiveDataFilter(logging.Filter):
    """
    Log filter that redacts sensitive data from log records.

    Sensitive patterns include:
    - Passwords (proxy credentials)
    - Proxy bypass codes
    - Bearer tokens and Authorization headers
    - Credentials embedded in proxy URLs
    """

    SENSITIVE_PATTERNS = [
        (r"Bearer\s+[a-zA-Z0-9_\-\.]+", "[TOKEN_REDACTED]"),
        (r'["\']?password["\']?\s*[:=]\s*["\']?[^\s"\',}]+', "[PASSWORD_REDACTED]"),
        (r'["\']?bypass_?code["\']?\s*[:=]\s*["\']?[^\s"\',}]+', "[BYPASS_CODE_REDACTED]"),
        (r'Authorization["\']?\s*[:=]\s*["\']?[^\s"\']+', "[AUTH_REDACTED]"),
        (r"(?<=://)[^/\s:@]+:[^/\s@]+@", "[CREDENTIALS_REDACTED]@"),
    ]

    def filter(self, record: LogRecord) -> bool:
        """Redact sensitive data from log message and extra fields."""
        record.msg = self._redact(str(record.msg))

        if record.args:
            record.args = tuple(self._redact(str(arg)) if isinstance(arg, (str, bytes)) else arg for arg in record.args)

        proxy = getattr(record, "proxy", None)
        if isinstance(proxy, str):
            record.proxy = self._redact(proxy)

        return True

    def _redact(self, text: str) -> str:
        """Apply all redaction patterns to text."""
        result = text
        for pattern, replacement in self.SENSITIVE_PATTERNS:
            result = re.sub(pattern, replacement, result, flags=re.IGNORECASE)
        return result


def _get_log_level(configured: str | None = None) -> int:
    """Determine log level from the configured value, the environment or default."""
    level = (configured or os.environ.get("LOG_LEVEL", "")).upper()
    if level in ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"):
        return getattr(logging, level)
    return logging.INFO


def _get_log_format(configured: str | None = None) -> str:
    """Determine log format from the configured value or environment (default: json)."""
    log_format = (configured or os.environ.get("LOG_FORMAT", "json")).lower()
    if log_format == "pretty":
        return "pretty"
    return "json"


class NoisyLibraryFilter(logging.Filter):
    """Filter to suppress access-log and HTTP client noise."""

    def filter(self, record: LogRecord) -> bool:
        return not (record.name.startswith("httpx") or record.name.startswith("httpcore") or record.name == "uvicorn.access")


def setup_logging(
    debug_mode: bool = False,
    *,
    json_output: bool = True,
    use_file_handler: bool = False,
    level: str | None = None,
    log_format: str | None = None,
) -> None:
    """Configure centralized logging for the scrape service.

    Args:
        debug_mode: If True, set log level to DEBUG.
        json_output: If True, emit JSON to stdout (default, Docker-friendly).
        use_file_handler: If True, also write rotating logs to file.
        level: Log level name (LOG_LEVEL from the environment if omitted).
        log_format: "json" or "pretty" (LOG_FORMAT from the environment if omitted).
    """
    global _logging_configured

    # Idempotent: skip if already configured
    if _logging_configured and not debug_mode:
        return

    log_level = logging.DEBUG if debug_mode else _get_log_level(level)
    use_pretty = _get_log_format(log_format) == "pretty"

    logger = logging.getLogger()
    logger.setLevel(log_level)

    if logger.hasHandlers():
        logger.handlers.clear()

    console_handler = logging.StreamHandler(sys.stdout)
    if json_output and not use_pretty:
        console_handler.setFormatter(JSONFormatter())
    else:
        # Pretty output for local development
        console_handler.setFormatter(
            logging.Formatter(
                "%(asctime)s [%(levelname)s] %(name)s: %(message)s",
                datefmt="%Y-%m-%d %H:%M:%S",
            )
        )
    console_handler.addFilter(NoisyLibraryFilter())
    console_handler.addFilter(SensitiveDataFilter())
    logger.addHandler(console_handler)

    if use_file_handler:
        log_dir = PROJECT_ROOT / "logs"
        log_dir.mkdir(exist_ok=True)

        # File handler always uses JSON for consistency
        file_handler = RotatingFileHandler(log_dir / "app.log", maxBytes=10 * 1024 * 1024, backupCount=5, encoding="utf-8")
        file_handler.setFormatter(JSONFormatter())
        file_handler.addFilter(SensitiveDataFilter())
        logger.addHandler(file_handler)

    _logging_configured = True

    level_name = logging.getLevelName(log_level)
    mode = "pretty" if use_pretty else "JSON"
    logging.getLogger().info(f"Logging initialized ({mode} mode). Level: {level_name}")


def reset_logging() -> None:
    """Reset logging configuration (useful for testing)."""
    global _logging_configured
    _logging_configured = False

    logger = logging.getLogger()
    if logger.hasHandlers():
        logger.handlers.clear()
