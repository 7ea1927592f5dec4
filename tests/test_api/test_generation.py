from __future__ import annotations

import pytest

from artbot.agents.orchestrator import ArtGenerationOrchestrator
from artbot.api.deps import get_orchestrator
from artbot.exceptions import ExhaustedFailureError, LLMUnavailableError
from tests.agent_fixtures import FakeImageService, FakeLLM


def _use_orchestrator(app, test_settings, image: FakeImageService) -> None:
    async def override_get_orchestrator() -> ArtGenerationOrchestrator:
        return ArtGenerationOrchestrator(settings=test_settings, llm=FakeLLM(), image=image)

    app.dependency_overrides[get_orchestrator] = override_get_orchestrator


@pytest.mark.asyncio
async def test_health(async_client):
    res = await async_client.get("/health")
    assert res.status_code == 200
    assert res.json() == {"status": "ok"}


@pytest.mark.asyncio
async def test_generate_success(app, async_client, test_settings):
    _use_orchestrator(app, test_settings, FakeImageService("https://x/y.png"))

    res = await async_client.post("/api/v1/generate", json={"concept": "a bear portrait", "style": "bear_pfp"})

    assert res.status_code == 200
    body = res.json()
    assert body["success"] is True
    assert body["imageUrl"] == "https://x/y.png"
    assert body["style"] == "bear_pfp"
    assert body["files"] is None


@pytest.mark.asyncio
async def test_generate_writes_files_on_request(app, async_client, test_settings):
    _use_orchestrator(app, test_settings, FakeImageService())

    res = await async_client.post(
        "/api/v1/generate",
        json={"concept": "a bear portrait", "name": "api-bear", "write_files": True, "force": {"accessory": "pipe"}},
    )

    body = res.json()
    assert body["files"]["metadata"].endswith("api-bear-metadata.json")
    assert body["character"]["accessory"] == "pipe"


@pytest.mark.asyncio
async def test_generate_failure_returns_502(app, async_client, test_settings):
    image = FakeImageService(error=ExhaustedFailureError("All 4 image backends failed", attempts=[]))
    _use_orchestrator(app, test_settings, image)

    res = await async_client.post("/api/v1/generate", json={"concept": "a bear portrait"})

    assert res.status_code == 502
    body = res.json()
    assert body["success"] is False
    assert body["failedStep"] == "generate_image"
    assert body["error"] == "All 4 image backends failed"


@pytest.mark.asyncio
async def test_generate_validates_payload(async_client):
    res = await async_client.post("/api/v1/generate", json={"concept": ""})
    assert res.status_code == 422


@pytest.mark.asyncio
async def test_artbot_error_envelope(app, async_client):
    async def unavailable() -> ArtGenerationOrchestrator:
        raise LLMUnavailableError("No text-completion provider available")

    app.dependency_overrides[get_orchestrator] = unavailable

    res = await async_client.post("/api/v1/generate", json={"concept": "a bear portrait"})

    assert res.status_code == 503
    assert res.json() == {
        "error": {"code": "LLM_UNAVAILABLE", "message": "No text-completion provider available", "details": {}}
    }
