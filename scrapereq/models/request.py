"""
Scrape request models.

The models are frozen once validated. Sequences are stored as tuples so a
normalized request cannot be mutated by the code that executes it.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Sequence

from pydantic import (
    AnyUrl,
    BaseModel,
    ConfigDict,
    Field,
    TypeAdapter,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from core.settings_manager import settings


class SpeedMode(str, Enum):
    TURBO = "TURBO"
    FAST = "FAST"
    NORMAL = "NORMAL"
    SLOW = "SLOW"
    SLOWEST = "SLOWEST"
    CRAWL = "CRAWL"
    STEALTH = "STEALTH"

    @property
    def delay_ms(self) -> int:
        return SPEED_MODE_DELAYS_MS[self]


class TimeoutMode(str, Enum):
    SHORT = "SHORT"
    NORMAL = "NORMAL"
    LONG = "LONG"

    @property
    def timeout_ms(self) -> int:
        return TIMEOUT_MODE_MS[self]


# Delay applied after each completed step
SPEED_MODE_DELAYS_MS: dict[SpeedMode, int] = {
    SpeedMode.TURBO: 0,
    SpeedMode.FAST: 500,
    SpeedMode.NORMAL: 1000,
    SpeedMode.SLOW: 1500,
    SpeedMode.SLOWEST: 2000,
    SpeedMode.CRAWL: 2500,
    SpeedMode.STEALTH: 3000,
}

# Default action and navigation timeout for the whole session
TIMEOUT_MODE_MS: dict[TimeoutMode, int] = {
    TimeoutMode.SHORT: 10_000,
    TimeoutMode.NORMAL: 30_000,
    TimeoutMode.LONG: 60_000,
}


class ResponseType(str, Enum):
    NONE = "NONE"
    JSON = "JSON"
    RAW = "RAW"


class SelectorType(str, Enum):
    CSS = "CSS"
    XPATH = "XPATH"
    FULL = "FULL"


class StepType(str, Enum):
    NAVIGATE = "navigate"
    CLICK = "click"
    WAIT = "wait"
    SET_VIEWPORT = "setViewport"
    CHANGE = "change"
    WAIT_FOR_ELEMENT = "waitForElement"


class ProxyProtocol(str, Enum):
    HTTP = "http"
    HTTPS = "https"
    SOCKS4 = "socks4"
    SOCKS5 = "socks5"


DEFAULT_TITLE = "Untitled Recording"
EMPTY_STEPS_MESSAGE = "record.steps must contain at least one step"

_url_adapter = TypeAdapter(AnyUrl)

_TARGETED_STEPS = (StepType.CLICK.value, StepType.CHANGE.value, StepType.WAIT_FOR_ELEMENT.value)


def _field(item: Any, name: str) -> Any:
    if isinstance(item, dict):
        value = item.get(name)
    else:
        value = getattr(item, name, None)
    return getattr(value, "value", value)


def step_rule_errors(steps: Sequence[Any]) -> list[str]:
    """Navigate requirement and per-type required fields; accepts Step models or raw step dicts."""
    errors: list[str] = []
    if not any(_field(step, "type") == StepType.NAVIGATE.value and _field(step, "url") for step in steps):
        errors.append("At least one navigate step with a valid URL is required")

    for position, step in enumerate(steps, 1):
        step_type = _field(step, "type")
        if step_type == StepType.NAVIGATE.value and not _field(step, "url"):
            errors.append(f"navigate step {position} requires a valid URL")
        elif step_type == StepType.SET_VIEWPORT.value and (not _field(step, "width") or not _field(step, "height")):
            errors.append(f"setViewport step {position} requires width and height properties")
        elif step_type in _TARGETED_STEPS and not _field(step, "selectors"):
            errors.append(f"{step_type} step {position} requires at least one selector")
        elif step_type == StepType.WAIT.value and _field(step, "duration") is None:
            errors.append(f"wait step {position} requires a duration value")
    return errors


def selector_rule_errors(response_type: Any, selectors: Sequence[Any]) -> list[str]:
    """Selector count per response type, a single FULL selector and unique keys."""
    response_type = getattr(response_type, "value", response_type)
    errors: list[str] = []

    if response_type == ResponseType.NONE.value and selectors:
        errors.append("NONE does not allow selectors, remove capture.selectors or change output.responseType")
    elif response_type == ResponseType.RAW.value and len(selectors) != 1:
        errors.append(f"RAW requires exactly one selector, got {len(selectors)}")
    elif response_type == ResponseType.JSON.value and not selectors:
        errors.append("JSON requires at least one selector")

    if sum(1 for selector in selectors if _field(selector, "type") == SelectorType.FULL.value) > 1:
        errors.append("Only one selector with type FULL is allowed")

    keys = [key for key in (_field(selector, "key") for selector in selectors) if isinstance(key, str)]
    duplicates = sorted({key for key in keys if keys.count(key) > 1})
    if duplicates:
        errors.append(f"Selector keys must be unique: {', '.join(duplicates)}")
    return errors


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class Selector(_Frozen):
    """Typed extraction rule; `key` names the value in JSON results."""

    key: str = Field(min_length=1)
    type: SelectorType
    value: str


class StepSelector(_Frozen):
    """Target selector of a click/change/waitForElement step."""

    type: SelectorType = SelectorType.CSS
    value: str = Field(min_length=1)
    key: str | None = None

    @model_validator(mode="before")
    @classmethod
    def _coerce_recorder_format(cls, data: Any) -> Any:
        # Chrome recorder exports selectors as lists of strings (piercing chain)
        if isinstance(data, (list, tuple)):
            if not data:
                raise ValueError("selector list cannot be empty")
            data = data[0]
        if isinstance(data, str):
            raw = data.strip()
            for prefix in ("xpath/", "xpath="):
                if raw.startswith(prefix):
                    return {"type": SelectorType.XPATH, "value": raw[len(prefix) :]}
            if raw.startswith("//") or raw.startswith(".//") or raw.startswith("(//"):
                return {"type": SelectorType.XPATH, "value": raw}
            return {"type": SelectorType.CSS, "value": raw}
        return data

    @field_validator("type")
    @classmethod
    def _no_full_targets(cls, v: SelectorType) -> SelectorType:
        if v == SelectorType.FULL:
            raise ValueError("FULL selectors cannot be used as step targets")
        return v


class Step(_Frozen):
    """One recorded browser action."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    type: StepType
    url: str | None = None
    value: str | None = None
    selectors: tuple[StepSelector, ...] = ()
    duration: float | None = Field(default=None, ge=0)
    timeout: float | None = Field(default=None, gt=0)

    # setViewport
    width: int | None = Field(default=None, gt=0)
    height: int | None = Field(default=None, gt=0)
    device_scale_factor: float | None = Field(default=None, alias="deviceScaleFactor", gt=0)
    is_mobile: bool | None = Field(default=None, alias="isMobile")
    has_touch: bool | None = Field(default=None, alias="hasTouch")
    is_landscape: bool | None = Field(default=None, alias="isLandscape")

    # click
    offset_x: float | None = Field(default=None, alias="offsetX")
    offset_y: float | None = Field(default=None, alias="offsetY")
    button: str | None = None

    # waitForElement assertions
    visible: bool | None = None
    count: int | None = Field(default=None, ge=0)
    operator: str | None = None

    asserted_events: tuple[dict[str, Any], ...] = Field(default=(), alias="assertedEvents")

    @field_validator("selectors", mode="before")
    @classmethod
    def _wrap_single_selector(cls, v: Any) -> Any:
        if isinstance(v, (str, dict)):
            return (v,)
        return v

    @field_validator("url")
    @classmethod
    def _absolute_url(cls, v: str | None) -> str | None:
        if v is None:
            return v
        try:
            parsed = _url_adapter.validate_python(v)
        except ValidationError as e:
            raise ValueError(f"Invalid URL: {v}") from e
        if not parsed.host:
            raise ValueError(f"URL must be absolute: {v}")
        return v

    @field_validator("button")
    @classmethod
    def _known_button(cls, v: str | None) -> str | None:
        if v is not None and v not in ("left", "right", "middle", "primary", "auxiliary", "secondary"):
            raise ValueError(f"Unsupported mouse button: {v}")
        return v

    @field_validator("operator")
    @classmethod
    def _known_operator(cls, v: str | None) -> str | None:
        if v is not None and v not in (">=", "==", "<="):
            raise ValueError(f"Unsupported count operator: {v}")
        return v

    @property
    def expects_navigation(self) -> bool:
        return any(event.get("type") == "navigation" for event in self.asserted_events)


class Record(_Frozen):
    title: str = DEFAULT_TITLE
    speed_mode: SpeedMode = Field(default=SpeedMode.NORMAL, alias="speedMode")
    timeout_mode: TimeoutMode = Field(default=TimeoutMode.NORMAL, alias="timeoutMode")
    steps: tuple[Step, ...]

    @model_validator(mode="after")
    def _check_steps(self) -> Record:
        if not self.steps:
            raise ValueError(EMPTY_STEPS_MESSAGE)

        errors = step_rule_errors(self.steps)
        if errors:
            raise ValueError("; ".join(errors))
        return self


class ProxyServer(_Frozen):
    server: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)
    protocol: ProxyProtocol = ProxyProtocol.HTTP

    @field_validator("protocol", mode="before")
    @classmethod
    def _lowercase_protocol(cls, v: Any) -> Any:
        return v.lower() if isinstance(v, str) else v

    @property
    def address(self) -> str:
        return f"{self.protocol.value}://{self.server}:{self.port}"

    def echo(self) -> dict[str, Any]:
        """Public description of the proxy, without credentials."""
        return {"server": self.server, "port": self.port, "protocol": self.protocol.value}


class ProxyAuth(_Frozen):
    enabled: bool = False
    username: str | None = None
    password: str | None = None

    @model_validator(mode="after")
    def _credentials_when_enabled(self) -> ProxyAuth:
        if self.enabled and (not self.username or not self.password):
            raise ValueError("proxy.auth requires username and password when enabled")
        return self


class ProxyConfig(_Frozen):
    bypass_code: str = Field(default="", alias="bypassCode")
    auth: ProxyAuth = Field(default_factory=ProxyAuth)
    servers: tuple[ProxyServer, ...] = ()


class Capture(_Frozen):
    selectors: tuple[Selector, ...] = ()


class Headers(_Frozen):
    """Request headers; missing defaults come from the `settings` validation context, else the global settings."""

    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="allow")

    accept_language: str = Field(alias="Accept-Language")
    user_agent: str = Field(alias="User-Agent")

    @model_validator(mode="before")
    @classmethod
    def _configured_defaults(cls, data: Any, info: ValidationInfo) -> Any:
        if not isinstance(data, dict):
            return data
        source = (info.context or {}).get("settings") or settings
        data = dict(data)
        for alias, name, key in (
            ("Accept-Language", "accept_language", "accept_language"),
            ("User-Agent", "user_agent", "user_agent"),
        ):
            if alias not in data and name not in data:
                data[alias] = source.get(key)
        return data

    def as_http_headers(self) -> dict[str, str]:
        return {key: str(value) for key, value in self.model_dump(by_alias=True).items() if value is not None}


class Screenshots(_Frozen):
    on_error: bool = Field(default=True, alias="onError")
    on_success: bool = Field(default=False, alias="onSuccess")


class Output(_Frozen):
    screenshots: Screenshots = Field(default_factory=Screenshots)
    response_type: ResponseType = Field(default=ResponseType.NONE, alias="responseType")


class ScrapeRequest(_Frozen):
    """A normalized scrape request."""

    proxy: ProxyConfig
    record: Record
    capture: Capture = Field(default_factory=Capture)
    headers: Headers = Field(default_factory=Headers)
    output: Output = Field(default_factory=Output)

    @model_validator(mode="before")
    @classmethod
    def _validate_default_headers(cls, data: Any) -> Any:
        # Headers validation needs to run so the settings context supplies its defaults
        if isinstance(data, dict) and "headers" not in data:
            return {**data, "headers": {}}
        return data

    @model_validator(mode="after")
    def _check_selectors_against_output(self) -> ScrapeRequest:
        errors = selector_rule_errors(self.output.response_type, self.capture.selectors)
        if errors:
            raise ValueError("; ".join(errors))
        return self

    @property
    def first_url(self) -> str | None:
        for step in self.record.steps:
            if step.type == StepType.NAVIGATE and step.url:
                return step.url
        return None
