from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any

import pytest

from fakes import FakePage
from scrapereq.actions.handlers.change import ChangeAction
from scrapereq.actions.handlers.click import ClickAction
from scrapereq.actions.handlers.navigate import NavigateAction
from scrapereq.actions.handlers.set_viewport import SetViewportAction
from scrapereq.actions.handlers.wait import WaitAction
from scrapereq.actions.handlers.wait_for_element import WaitForElementAction
from scrapereq.exceptions import ActionError, ErrorCode
from scrapereq.models.request import Step
from scrapereq.utils.locators import convert_to_playwright_locator


@dataclass
class _Ctx:
    page: FakePage
    timeout_ms: int = 1000
    sleeps: list[float] = field(default_factory=list)

    async def sleep(self, seconds: float) -> None:
        self.sleeps.append(seconds)


def _step(**raw: Any) -> Step:
    return Step.model_validate(raw)


@pytest.mark.anyio
async def test_navigate_goes_to_url() -> None:
    page = FakePage()

    await NavigateAction(_Ctx(page)).execute(_step(type="navigate", url="https://example.com/x"))

    assert page.calls == [("goto", "https://example.com/x")]


@pytest.mark.anyio
async def test_wait_sleeps_duration_in_seconds() -> None:
    ctx = _Ctx(FakePage())

    await WaitAction(ctx).execute(_step(type="wait", duration=250))

    assert ctx.sleeps == [0.25]


@pytest.mark.anyio
async def test_set_viewport_resizes_page() -> None:
    page = FakePage()

    await SetViewportAction(_Ctx(page)).execute(_step(type="setViewport", width=1024, height=640))

    assert page.viewport == {"width": 1024, "height": 640}


@pytest.mark.anyio
async def test_click_uses_first_matching_alternative_with_button_and_offset() -> None:
    page = FakePage(elements={"#submit": 1})
    step = _step(type="click", selectors=[["#missing"], ["#submit"]], button="secondary", offsetX=5, offsetY=7)

    await ClickAction(_Ctx(page)).execute(step)

    assert ("scroll", "#submit") in page.calls
    click = [c for c in page.calls if c[0] == "click"][0]
    assert click[1] == "#submit"
    assert click[2]["button"] == "right"
    assert click[2]["position"] == {"x": 5, "y": 7}


@pytest.mark.anyio
async def test_click_falls_back_to_force_click() -> None:
    page = FakePage(elements={"button.buy": 1})
    page.unclickable.add("button.buy")

    await ClickAction(_Ctx(page)).execute(_step(type="click", selectors=["button.buy"]))

    click = [c for c in page.calls if c[0] == "click"][0]
    assert click[2]["force"] is True


@pytest.mark.anyio
async def test_click_waits_for_navigation_when_asserted() -> None:
    page = FakePage(elements={"a.next": 1})
    step = _step(type="click", selectors=["a.next"], assertedEvents=[{"type": "navigation"}])

    await ClickAction(_Ctx(page)).execute(step)

    assert page.calls[0] == ("expect_navigation",)


@pytest.mark.anyio
async def test_click_times_out_when_nothing_matches() -> None:
    ctx = _Ctx(FakePage(), timeout_ms=10)

    with pytest.raises(ActionError) as exc_info:
        await ClickAction(ctx).execute(_step(type="click", selectors=["#nope"]))

    assert exc_info.value.code == ErrorCode.STEP_TIMEOUT
    assert "#nope" in exc_info.value.message


@pytest.mark.anyio
async def test_change_fills_inputs_and_selects_options() -> None:
    page = FakePage(elements={"#q": 1, "#country": 1})
    page.tags["#country"] = "select"
    ctx = _Ctx(page)

    await ChangeAction(ctx).execute(_step(type="change", selectors=["#q"], value="shoes"))
    await ChangeAction(ctx).execute(_step(type="change", selectors=["#country"], value="DE"))

    assert ("fill", "#q", "shoes") in page.calls
    assert ("select_option", "#country", "DE") in page.calls


@pytest.mark.anyio
async def test_wait_for_element_succeeds_on_count_condition() -> None:
    page = FakePage(elements={"li.item": 3})

    await WaitForElementAction(_Ctx(page)).execute(
        _step(type="waitForElement", selectors=["li.item"], count=3, operator="==")
    )


@pytest.mark.anyio
async def test_wait_for_element_respects_visibility() -> None:
    page = FakePage(elements={"#modal": 1})
    page.hidden.add("#modal")

    with pytest.raises(ActionError) as exc_info:
        await WaitForElementAction(_Ctx(page)).execute(
            _step(type="waitForElement", selectors=["#modal"], visible=True, timeout=10)
        )

    assert exc_info.value.code == ErrorCode.STEP_TIMEOUT


@pytest.mark.anyio
async def test_wait_for_element_can_wait_for_absence() -> None:
    page = FakePage()

    await WaitForElementAction(_Ctx(page)).execute(
        _step(type="waitForElement", selectors=[".spinner"], count=0, operator="==")
    )


def test_locator_conversion_prefixes() -> None:
    page = FakePage()

    assert convert_to_playwright_locator(page, "//div[@id='a']").selector == "xpath=//div[@id='a']"
    assert convert_to_playwright_locator(page, "text/Sign in").selector == "text=Sign in"
    assert convert_to_playwright_locator(page, "aria/Search").selector == "label=Search"
    assert convert_to_playwright_locator(page, 'aria/Go[role="button"]').selector == "role=button[Go]"
    assert convert_to_playwright_locator(page, "pierce/#shadow-btn").selector == "#shadow-btn"
    assert convert_to_playwright_locator(page, "h3:has-text('Sorry')").selector == "h3:has-text(Sorry)"
