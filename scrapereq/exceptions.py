"""
Exception hierarchy for scrape runs.

Every error raised out of the core is a ScrapeError carrying a stable
`code`, an HTTP-equivalent `status` and an ErrorContext. Layers enrich the
context of an error as it propagates and wrap foreign exceptions with
`raise ... from exc` instead of rewriting messages.
"""

from __future__ import annotations

import traceback
from dataclasses import asdict, dataclass, field
from enum import Enum
from typing import Any


class ErrorCode(str, Enum):
    REQUEST_BODY_VALIDATION = "ERROR_REQUEST_BODY_VALIDATION"
    PROXY_REQUIRED = "ERROR_PROXY_REQUIRED"
    PROXY_SETUP = "ERROR_PROXY_SETUP"
    BROWSER_LAUNCH = "ERROR_BROWSER_LAUNCH"
    PAGE_GENERAL_SETUP = "ERROR_PAGE_GENERAL_SETUP"
    STEP_EXECUTION = "ERROR_STEP_EXECUTION"
    STEP_TIMEOUT = "ERROR_STEP_TIMEOUT"
    SELECTOR_PROCESSING = "ERROR_SELECTOR_PROCESSING"
    SCREENSHOT_URL_GENERATION = "ERROR_SCREENSHOT_URL_GENERATION"
    UNKNOWN = "ERROR_UNKNOWN"


@dataclass
class ErrorContext:
    """Diagnostic context accumulated while an error propagates."""

    step_index: int | None = None
    step_type: str | None = None
    selector_key: str | None = None
    selector_type: str | None = None
    selector_value: str | None = None
    proxy: dict[str, Any] | None = None
    screenshot_url: str | None = None
    extra: dict[str, Any] = field(default_factory=dict)

    def merge(self, **fields: Any) -> ErrorContext:
        """Fill in fields; values already present are kept."""
        for key, value in fields.items():
            if value is None:
                continue
            if hasattr(self, key) and key != "extra":
                if getattr(self, key) is None:
                    setattr(self, key, value)
            else:
                self.extra.setdefault(key, value)
        return self

    def to_dict(self) -> dict[str, Any]:
        data = {k: v for k, v in asdict(self).items() if v is not None and k != "extra"}
        if self.extra:
            data.update(self.extra)
        return data


class ScrapeError(Exception):
    """Base error for everything raised by the scrape core."""

    code: ErrorCode = ErrorCode.UNKNOWN
    status: int = 500

    def __init__(
        self,
        message: str,
        *,
        code: ErrorCode | None = None,
        status: int | None = None,
        context: ErrorContext | None = None,
        cause: BaseException | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if code is not None:
            self.code = code
        if status is not None:
            self.status = status
        self.context = context or ErrorContext()
        self.cause = cause
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return self.message

    def enrich(self, **fields: Any) -> ScrapeError:
        """Add context without replacing what an inner layer already set."""
        self.context.merge(**fields)
        return self

    @property
    def proxy(self) -> dict[str, Any] | None:
        return self.context.proxy

    @property
    def screenshot_url(self) -> str | None:
        return self.context.screenshot_url

    def stack_lines(self, limit: int = 10) -> list[str]:
        lines: list[str] = []
        for chunk in traceback.format_exception(type(self), self, self.__traceback__):
            lines.extend(line.strip() for line in chunk.splitlines() if line.strip())
        return lines[:limit]

    @classmethod
    def wrap(cls, exc: BaseException, message: str | None = None, **context: Any) -> ScrapeError:
        """Return `exc` enriched if it is already a ScrapeError, else a new instance of `cls`."""
        if isinstance(exc, ScrapeError):
            return exc.enrich(**context)
        return cls(message or str(exc) or type(exc).__name__, context=ErrorContext().merge(**context), cause=exc)


class RequestValidationError(ScrapeError):
    """The request body is malformed or contradictory."""

    code = ErrorCode.REQUEST_BODY_VALIDATION
    status = 400

    def __init__(self, errors: list[str], **kwargs: Any) -> None:
        self.errors = list(errors)
        super().__init__(", ".join(self.errors) or "Validation failed", **kwargs)


class ProxyRequiredError(ScrapeError):
    """No proxy server supplied and no valid bypass code."""

    code = ErrorCode.PROXY_REQUIRED
    status = 401


class ProxySetupError(ScrapeError):
    code = ErrorCode.PROXY_SETUP


class BrowserLaunchError(ScrapeError):
    code = ErrorCode.BROWSER_LAUNCH


class PageSetupError(ScrapeError):
    code = ErrorCode.PAGE_GENERAL_SETUP


class ActionError(ScrapeError):
    """Raised by step action handlers; wrapped into StepExecutionError by the executor."""

    code = ErrorCode.STEP_EXECUTION


class StepExecutionError(ScrapeError):
    """A recorded step failed. The message names the 1-based step index and type."""

    code = ErrorCode.STEP_EXECUTION

    @classmethod
    def from_step_failure(cls, exc: BaseException, *, step_index: int, step_type: str, timed_out: bool = False) -> StepExecutionError:
        reason = exc.message if isinstance(exc, ScrapeError) else (str(exc) or type(exc).__name__)
        context = ErrorContext(step_index=step_index, step_type=step_type)
        if isinstance(exc, ScrapeError):
            context.merge(**{k: v for k, v in exc.context.to_dict().items()})
        return cls(
            f"Error executing step {step_index} ({step_type}): {reason}",
            code=ErrorCode.STEP_TIMEOUT if timed_out else ErrorCode.STEP_EXECUTION,
            context=context,
            cause=exc,
        )


class SelectorProcessingError(ScrapeError):
    code = ErrorCode.SELECTOR_PROCESSING

    @classmethod
    def for_selector(cls, exc: BaseException, *, key: str, selector_type: str, value: str) -> SelectorProcessingError:
        reason = exc.message if isinstance(exc, ScrapeError) else (str(exc) or type(exc).__name__)
        return cls(
            f"{reason} - Error processing selector - Type: {selector_type} - Key: {key} - Value: {value}",
            context=ErrorContext(selector_key=key, selector_type=selector_type, selector_value=value),
            cause=exc,
        )


class ScreenshotError(ScrapeError):
    code = ErrorCode.SCREENSHOT_URL_GENERATION
