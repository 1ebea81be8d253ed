from __future__ import annotations

import json

import httpx
import pytest
from httpx import ASGITransport, AsyncClient

from humanlike.main import (
    app,
    get_mock_responder,
    get_orchestrator,
    get_rate_limiter,
    get_result_store,
    get_settings,
)
from humanlike.orchestrator import TextOrchestrator
from humanlike.providers.base import MockResponder, chunk_text
from humanlike.providers.router_provider import RouterProvider

pytestmark = pytest.mark.anyio("asyncio")

CACHED = (get_settings, get_mock_responder, get_rate_limiter, get_result_store)


@pytest.fixture
def anyio_backend() -> str:
    return "asyncio"


@pytest.fixture(autouse=True)
def reset_state(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.delenv("ROUTER_API_KEY", raising=False)
    for cached in CACHED:
        cached.cache_clear()
    app.dependency_overrides.clear()
    yield
    app.dependency_overrides.clear()
    for cached in CACHED:
        cached.cache_clear()


@pytest.fixture()
async def client() -> AsyncClient:
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as client:
        yield client


def _router_orchestrator(handler) -> TextOrchestrator:
    provider = RouterProvider(api_key="key", transport=httpx.MockTransport(handler))
    return TextOrchestrator(provider, MockResponder())


async def test_51st_request_in_window_is_rate_limited(client: AsyncClient) -> None:
    for _ in range(50):
        response = await client.post("/api/humanize", json={"text": "Hello world"})
        assert response.status_code == 200

    response = await client.post("/api/humanize", json={"text": "Hello world"})
    assert response.status_code == 429
    assert response.json() == {"error": "Too many requests, please try again later."}
    assert int(response.headers["retry-after"]) >= 1


async def test_rate_limit_honours_configured_quota(client: AsyncClient, monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("RATE_LIMIT_MAX_REQUESTS", "2")
    get_settings.cache_clear()
    get_rate_limiter.cache_clear()

    assert (await client.get("/api/health")).status_code == 200
    assert (await client.post("/api/check", json={"text": "hi"})).status_code == 200
    assert (await client.get("/api/health")).status_code == 429


async def test_check_reads_structured_upstream_output(client: AsyncClient) -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        body = {"ai_probability": 91, "confidence": "Very confident", "reasoning": "Too polished."}
        return httpx.Response(200, json={"output": f"Result:\n{json.dumps(body)}"})

    app.dependency_overrides[get_orchestrator] = lambda: _router_orchestrator(handler)
    response = await client.post("/api/check", json={"text": "Some suspiciously tidy prose."})

    assert response.status_code == 200
    assert response.json() == {
        "ai_probability": 91,
        "confidence": "Very confident",
        "reasoning": "Too polished.",
    }


async def test_check_upstream_error_is_server_error(client: AsyncClient) -> None:
    app.dependency_overrides[get_orchestrator] = lambda: _router_orchestrator(
        lambda request: httpx.Response(502, json={"error": "bad gateway"})
    )
    response = await client.post("/api/check", json={"text": "anything"})

    assert response.status_code == 500
    assert response.json()["error"] == {"code": "SERVER_ERROR", "message": "Router API error: 502 Bad Gateway"}


async def test_long_humanize_reports_chunks_and_survives_chunk_failures(client: AsyncClient) -> None:
    calls = {"count": 0}

    def handler(request: httpx.Request) -> httpx.Response:
        calls["count"] += 1
        if calls["count"] == 2:
            return httpx.Response(500)
        prompt = json.loads(request.content)["input"]
        return httpx.Response(200, json={"text": prompt.rsplit("Input: ", 1)[1]})

    text = " ".join(f"token{i}" for i in range(2600))
    app.dependency_overrides[get_orchestrator] = lambda: _router_orchestrator(handler)
    response = await client.post("/api/humanize", json={"text": text})

    assert response.status_code == 200
    body = response.json()
    assert body["meta"]["chunksProcessed"] == len(chunk_text(text, max_chars=2000))
    assert body["meta"]["originalWordCount"] == 2600
    assert body["meta"]["rewrittenWordCount"] == 2600
    assert body["rewrittenText"].split() == text.split()


async def test_short_humanize_omits_chunk_count(client: AsyncClient) -> None:
    app.dependency_overrides[get_orchestrator] = lambda: _router_orchestrator(
        lambda request: httpx.Response(200, json={"output": "Hey there, pal"})
    )
    response = await client.post("/api/humanize", json={"text": "Greetings, friend"})

    assert response.status_code == 200
    assert "chunksProcessed" not in response.json()["meta"]
    assert response.json()["rewrittenText"] == "Hey there, pal"


async def test_malformed_json_body_is_validation_error(client: AsyncClient) -> None:
    response = await client.post(
        "/api/check",
        content=b"{not json",
        headers={"content-type": "application/json"},
    )
    assert response.status_code == 400
    assert response.json()["error"]["code"] == "VALIDATION_ERROR"
