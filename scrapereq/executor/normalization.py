"""
Request normalization: turns a raw JSON body into a validated ScrapeRequest.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from core.settings_manager import SettingsManager
from scrapereq.exceptions import RequestValidationError
from scrapereq.models.request import (
    EMPTY_STEPS_MESSAGE,
    ResponseType,
    ScrapeRequest,
    selector_rule_errors,
    step_rule_errors,
)

logger = logging.getLogger(__name__)

_PYDANTIC_PREFIXES = ("Value error, ", "Assertion failed, ")


def _format_location(loc: tuple[Any, ...]) -> str:
    parts: list[str] = []
    for item in loc:
        if isinstance(item, int):
            parts.append(f"[{item}]")
        elif parts:
            parts.append(f".{item}")
        else:
            parts.append(str(item))
    return "".join(parts)


def _split_messages(message: str) -> list[str]:
    return [part.strip() for part in message.split("; ") if part.strip()]


def format_validation_errors(exc: ValidationError) -> list[str]:
    """Flatten a pydantic ValidationError into human readable messages."""
    messages: list[str] = []
    for error in exc.errors():
        msg = str(error.get("msg", ""))
        for prefix in _PYDANTIC_PREFIXES:
            if msg.startswith(prefix):
                msg = msg[len(prefix) :]
                break

        location = _format_location(tuple(error.get("loc", ())))
        # Model level checks join several messages with "; "
        for part in _split_messages(msg) or [msg]:
            messages.append(f"{location}: {part}" if location else part)
    return messages


def _raw_rule_errors(body: dict[str, Any]) -> list[str]:
    """Cross-field rules checked on the raw body, for when a field error stops the model level checks."""
    errors: list[str] = []

    record = body.get("record")
    steps = record.get("steps") if isinstance(record, dict) else None
    if isinstance(steps, list):
        messages = step_rule_errors(steps) if steps else [EMPTY_STEPS_MESSAGE]
        errors.extend(f"record: {message}" for message in messages)

    output = body.get("output", {})
    capture = body.get("capture", {})
    response_type = output.get("responseType", ResponseType.NONE.value) if isinstance(output, dict) else None
    selectors = capture.get("selectors", []) if isinstance(capture, dict) else None
    if response_type in {member.value for member in ResponseType} and isinstance(selectors, list):
        errors.extend(selector_rule_errors(response_type, selectors))

    return errors


def normalize_request(body: Any, settings: SettingsManager | None = None) -> ScrapeRequest:
    """
    Validate a raw request body and apply defaults.

    Args:
        body: Decoded JSON body of the scrape request.
        settings: Source of the default headers (the global settings if omitted).

    Returns:
        ScrapeRequest: The frozen, normalized request.

    Raises:
        RequestValidationError: With every violation found, not just the first.
    """
    if not isinstance(body, dict):
        raise RequestValidationError(["Request body must be a JSON object"])

    context = {"settings": settings} if settings is not None else None
    try:
        request = ScrapeRequest.model_validate(body, context=context)
    except ValidationError as e:
        errors = format_validation_errors(e)
        errors.extend(message for message in _raw_rule_errors(body) if message not in errors)
        logger.warning(f"Request body validation failed: {', '.join(errors)}")
        raise RequestValidationError(errors, cause=e) from e

    logger.debug(
        f"Normalized request '{request.record.title}': {len(request.record.steps)} steps, "
        f"responseType={request.output.response_type.value}, speedMode={request.record.speed_mode.value}"
    )
    return request
