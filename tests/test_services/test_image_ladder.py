from __future__ import annotations

import httpx
import pytest

from artbot.exceptions import (
    BackendFailureError,
    BackendRejectedError,
    ExhaustedFailureError,
    NetworkFailureError,
    PollCancelledError,
    PollTimeoutError,
)
from artbot.services.image import ImageService
from artbot.services.replicate import ReplicateService
from tests.agent_fixtures import FakeLastResort, FakeReplicate, builtin_catalog

PRIMARY = "black-forest-labs/flux-1.1-pro"
CINESTILL = "adirik/flux-cinestill"
MINIMAX = "minimax/image-01"


def _service(settings, replicate, last_resort=None) -> ImageService:
    return ImageService(
        settings,
        catalog=builtin_catalog([PRIMARY, CINESTILL, MINIMAX]),
        replicate=replicate,  # type: ignore[arg-type]
        last_resort=last_resort or FakeLastResort(),  # type: ignore[arg-type]
    )


@pytest.mark.asyncio
async def test_primary_success_stops_ladder(test_settings):
    replicate = FakeReplicate({PRIMARY: ["https://r/primary.png"]})
    last_resort = FakeLastResort()
    service = _service(test_settings, replicate, last_resort)

    outcome = await service.generate_url(service.build_request(prompt="a bear portrait"))

    assert outcome.image_url == "https://r/primary.png"
    assert outcome.backend_id == PRIMARY
    assert replicate.calls == [PRIMARY]
    assert last_resort.calls == []
    assert [a.succeeded for a in outcome.attempts] == [True]


@pytest.mark.asyncio
async def test_rejected_primary_tries_alternates_in_order_then_last_resort(test_settings):
    replicate = FakeReplicate(
        {
            PRIMARY: BackendRejectedError("HTTP 422", http_status=422),
            CINESTILL: NetworkFailureError("connection reset"),
            MINIMAX: BackendFailureError("prediction failed", reason="NSFW"),
        }
    )
    last_resort = FakeLastResort("https://x/y.png")
    service = _service(test_settings, replicate, last_resort)

    outcome = await service.generate_url(service.build_request(prompt="a bear portrait"))

    assert replicate.calls == [PRIMARY, CINESTILL, MINIMAX]
    assert len(last_resort.calls) == 1
    assert outcome.image_url == "https://x/y.png"
    assert outcome.backend_id == "openai-images"
    assert [(a.backend_id, a.succeeded) for a in outcome.attempts] == [
        (PRIMARY, False),
        (CINESTILL, False),
        (MINIMAX, False),
        ("openai-images", True),
    ]
    assert [a.error_kind for a in outcome.attempts[:3]] == [
        "BACKEND_REJECTED",
        "NETWORK_FAILURE",
        "BACKEND_FAILURE",
    ]


@pytest.mark.asyncio
async def test_every_rung_receives_the_original_request(test_settings):
    replicate = FakeReplicate({PRIMARY: PollTimeoutError("slow", prediction_id="p1", attempts=3)})
    service = _service(test_settings, replicate)
    request = service.build_request(prompt="a bear portrait", negative_prompt="blurry")

    await service.generate_url(request)

    assert replicate.requests == [request, request]


@pytest.mark.asyncio
async def test_all_rungs_failing_raises_exhausted(test_settings):
    replicate = FakeReplicate({backend: BackendRejectedError("no") for backend in (PRIMARY, CINESTILL, MINIMAX)})
    last_resort = FakeLastResort(NetworkFailureError("down"))
    service = _service(test_settings, replicate, last_resort)

    with pytest.raises(ExhaustedFailureError) as exc_info:
        await service.generate_url(service.build_request(prompt="a bear portrait"))

    attempts = exc_info.value.attempts
    assert [a.backend_id for a in attempts] == [PRIMARY, CINESTILL, MINIMAX, "openai-images"]
    assert not any(a.succeeded for a in attempts)
    assert len(exc_info.value.details["attempts"]) == 4


@pytest.mark.asyncio
async def test_disabled_last_resort_is_recorded_as_rejected(test_settings):
    settings = test_settings.model_copy(update={"enable_last_resort": False})
    replicate = FakeReplicate({backend: BackendRejectedError("no") for backend in (PRIMARY, CINESTILL, MINIMAX)})
    last_resort = FakeLastResort()
    service = _service(settings, replicate, last_resort)

    with pytest.raises(ExhaustedFailureError) as exc_info:
        await service.generate_url(service.build_request(prompt="a bear portrait"))

    assert last_resort.calls == []
    assert exc_info.value.attempts[-1].error_kind == "BACKEND_REJECTED"


@pytest.mark.asyncio
async def test_cancellation_aborts_the_ladder(test_settings):
    replicate = FakeReplicate({PRIMARY: PollCancelledError("cancelled")})
    last_resort = FakeLastResort()
    service = _service(test_settings, replicate, last_resort)

    with pytest.raises(PollCancelledError):
        await service.generate_url(service.build_request(prompt="a bear portrait"))

    assert replicate.calls == [PRIMARY]
    assert last_resort.calls == []


def test_build_request_uses_configured_dimensions(test_settings):
    settings = test_settings.model_copy(update={"image_width": 768, "image_height": 1344})
    service = _service(settings, FakeReplicate())
    request = service.build_request(prompt="bear")
    assert (request.width, request.height) == (768, 1344)


@pytest.mark.asyncio
@pytest.mark.parametrize("failure", ["disconnect", "html"])
async def test_transport_and_body_failures_advance_to_last_resort(test_settings, no_sleep, failure):
    def handler(request: httpx.Request) -> httpx.Response:
        if failure == "disconnect":
            raise httpx.RemoteProtocolError("Server disconnected without sending a response.", request=request)
        return httpx.Response(200, text="<html>gateway</html>")

    replicate = ReplicateService(
        test_settings, transport=httpx.MockTransport(handler), sleep=no_sleep, max_retries=1
    )
    last_resort = FakeLastResort("https://x/y.png")
    service = _service(test_settings, replicate, last_resort)

    outcome = await service.generate_url(service.build_request(prompt="a bear portrait"))

    assert outcome.image_url == "https://x/y.png"
    assert [a.backend_id for a in outcome.attempts] == [PRIMARY, CINESTILL, MINIMAX, "openai-images"]
    expected_kind = "NETWORK_FAILURE" if failure == "disconnect" else "BACKEND_FAILURE"
    assert [a.error_kind for a in outcome.attempts[:-1]] == [expected_kind] * 3
