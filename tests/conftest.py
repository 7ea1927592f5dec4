from __future__ import annotations

import asyncio

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient

from artbot.api.deps import get_app_settings
from artbot.config import Settings
from artbot.main import create_app


@pytest.fixture()
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        anthropic_api_key="test-key",
        openai_api_key="test-key",
        replicate_api_token="test-token",
        poll_interval_s=0.0,
        poll_max_attempts=3,
        max_retries=2,
        output_dir=str(tmp_path / "output"),
    )


@pytest.fixture()
def no_sleep():
    """记录等待时长但不真的 sleep"""
    waits: list[float] = []

    async def _sleep(seconds: float) -> None:
        waits.append(seconds)

    _sleep.waits = waits  # type: ignore[attr-defined]
    return _sleep


@pytest.fixture()
def app(test_settings: Settings):
    app = create_app()

    async def override_get_settings() -> Settings:
        return test_settings

    app.dependency_overrides[get_app_settings] = override_get_settings
    return app


@pytest_asyncio.fixture(scope="function")
async def async_client(app):
    transport = ASGITransport(app=app)

    class _AsyncClientWithYield(AsyncClient):
        async def request(self, *args, **kwargs):
            loop = asyncio.get_running_loop()
            task = loop.create_task(super().request(*args, **kwargs))
            # ASGITransport + body-carrying requests can deadlock on this runtime
            # unless the request coroutine gets at least one scheduling slice.
            await asyncio.sleep(0.01)
            return await task

    async with _AsyncClientWithYield(transport=transport, base_url="http://test") as client:
        yield client
