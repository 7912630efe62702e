from __future__ import annotations

from collections.abc import Iterator

import pytest
from fastapi.testclient import TestClient

from api.server import create_app, sample_request_body
from core.concurrency_gate import ConcurrencyGate
from core.settings_manager import SettingsManager
from fakes import BYPASS_CODE, FakeHandle, FakePage, FakePlaywright, make_body
from scrapereq.executor.browser_manager import BrowserManager
from scrapereq.executor.debug_capture import DebugArtifactCapture
from scrapereq.executor.normalization import normalize_request
from scrapereq.executor.step_executor import StepExecutor
from scrapereq.executor.workflow_executor import WorkflowExecutor
from scrapereq.metrics import ScrapeMetrics


async def _no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def fake() -> FakePlaywright:
    return FakePlaywright(FakePage(elements={"h1": 1}, handles={"h1": FakeHandle("Hello")}))


@pytest.fixture
def client(settings: SettingsManager, fake: FakePlaywright) -> Iterator[TestClient]:
    executor = WorkflowExecutor(
        settings,
        ConcurrencyGate(2),
        browser_manager=BrowserManager(settings, playwright_factory=fake.factory, choose=lambda servers: servers[0]),
        step_executor=StepExecutor(sleep=_no_sleep),
        debug_capture=DebugArtifactCapture(settings.tmp_dir, settings.web_address, stabilize_ms=0),
        metrics=ScrapeMetrics(),
    )
    with TestClient(create_app(settings, executor)) as test_client:
        yield test_client


def test_scrape_start_returns_json_result(client: TestClient) -> None:
    response = client.post("/api/scrape/start", json=make_body())

    assert response.status_code == 200
    assert response.json() == {
        "success": True,
        "data": {"catch": {"h": "Hello"}, "proxy": {"server": "10.0.0.1", "port": 8080, "protocol": "http"}},
    }


def test_raw_result_is_plain_text(client: TestClient) -> None:
    body = make_body(output={"responseType": "RAW"})

    response = client.post("/api/scrape/start", json=body)

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/plain")
    assert response.text == "Hello"


def test_invalid_body_returns_400_envelope(client: TestClient) -> None:
    body = make_body(record={"steps": [{"type": "click"}]})

    response = client.post("/api/scrape/start", json=body)

    assert response.status_code == 400
    data = response.json()["data"]
    assert response.json()["success"] is False
    assert data["code"] == "ERROR_REQUEST_BODY_VALIDATION"
    assert "At least one navigate step with a valid URL is required" in data["message"]
    assert "click step 1 requires at least one selector" in data["message"]
    assert "stack" in data


def test_malformed_json_returns_400(client: TestClient) -> None:
    response = client.post("/api/scrape/start", content=b"{not json", headers={"content-type": "application/json"})

    assert response.status_code == 400
    assert response.json()["data"]["code"] == "ERROR_REQUEST_BODY_VALIDATION"


def test_missing_proxy_returns_401(client: TestClient, fake: FakePlaywright) -> None:
    response = client.post("/api/scrape/start", json=make_body(proxy={}))

    assert response.status_code == 401
    assert response.json()["data"]["code"] == "ERROR_PROXY_REQUIRED"
    assert response.json()["data"]["message"] == "Proxy server is required to perform scraping"
    assert fake.starts == 0


def test_step_failure_returns_500_with_screenshot(client: TestClient, fake: FakePlaywright) -> None:
    fake.page.fail_goto = RuntimeError("net::ERR_NAME_NOT_RESOLVED")

    response = client.post("/api/scrape/start", json=make_body())

    assert response.status_code == 500
    data = response.json()["data"]
    assert data["code"] == "ERROR_STEP_EXECUTION"
    assert data["proxy"]["server"] == "10.0.0.1"

    screenshot = client.get(data["screenshotUrl"].replace("http://scraper.test", ""))
    assert screenshot.status_code == 200
    assert screenshot.content == b"\x89PNG"


def test_sample_request_uses_the_bypass_code(settings: SettingsManager) -> None:
    request = normalize_request(sample_request_body(settings))

    assert request.proxy.bypass_code == BYPASS_CODE
    assert request.output.response_type.value == "JSON"


def test_scrape_test_endpoint_runs_sample(client: TestClient, fake: FakePlaywright) -> None:
    response = client.get("/api/scrape/test")

    assert response.status_code == 200
    assert response.json()["data"]["catch"] == {"title": "Hello"}
    assert ("viewport", 1366, 768) in fake.page.calls
    assert "proxy" not in fake.chromium.launch_kwargs


def test_metrics_and_reset(client: TestClient) -> None:
    client.post("/api/scrape/start", json=make_body())
    client.post("/api/scrape/start", json=make_body(proxy={}))

    summary = client.get("/api/scrape/metrics").json()["data"]
    assert summary["operations"] == 2
    assert summary["successRate"] == "50.00%"
    assert "byUrl" not in summary

    detailed = client.get("/api/scrape/metrics", params={"detailed": "true"}).json()["data"]
    assert detailed["errors"] == {"ERROR_PROXY_REQUIRED": 1}

    reset = client.post("/api/scrape/metrics/reset").json()
    assert reset == {"success": True, "data": {"message": "Scraping metrics have been reset"}}
    assert client.get("/api/scrape/metrics").json()["data"]["operations"] == 0


def test_health(client: TestClient, settings: SettingsManager) -> None:
    response = client.get("/api/app/health")

    assert response.status_code == 200
    data = response.json()["data"]
    assert data["project"]["name"] == "scrapereq"
    assert data["app"]["uptime"].endswith("s")
    assert data["app"]["browsers"]["capacity"] == 2
    assert data["app"]["browsers"]["active"] == 0
    assert data["app"]["environment"] == "development"
    assert settings.tmp_dir.is_dir()
