from __future__ import annotations

import json

import httpx
import pytest

from artbot.exceptions import BackendFailureError, BackendRejectedError, NetworkFailureError
from artbot.schemas.generation import GenerationRequest
from artbot.services.backends import FLUX_CINESTILL, FLUX_PRO
from artbot.services.replicate import ReplicateService


class ReplicateStub:
    """模拟 Replicate 的创建 / 查询接口"""

    def __init__(self, *, create_statuses=(201,), poll_statuses=("processing", "succeeded"), output=None):
        self.create_statuses = list(create_statuses)
        self.poll_statuses = list(poll_statuses)
        self.output = output if output is not None else ["https://replicate.delivery/out.png"]
        self.requests: list[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if request.method == "POST":
            status = self.create_statuses.pop(0) if len(self.create_statuses) > 1 else self.create_statuses[0]
            if status >= 400:
                return httpx.Response(status, json={"detail": "nope"})
            return httpx.Response(status, json={"id": "pred-1", "status": "starting"})

        status = self.poll_statuses.pop(0) if len(self.poll_statuses) > 1 else self.poll_statuses[0]
        body = {"id": "pred-1", "status": status}
        if status == "succeeded":
            body["output"] = self.output
        if status == "failed":
            body["error"] = "NSFW content detected"
        return httpx.Response(200, json=body)

    @property
    def posts(self) -> list[httpx.Request]:
        return [r for r in self.requests if r.method == "POST"]


def _service(settings, stub, no_sleep, **kwargs) -> ReplicateService:
    return ReplicateService(settings, transport=httpx.MockTransport(stub), sleep=no_sleep, **kwargs)


def _request() -> GenerationRequest:
    return GenerationRequest.build(prompt="a bear portrait", width=2048, height=1024)


@pytest.mark.asyncio
async def test_generate_submits_normalized_input_and_decodes(test_settings, no_sleep):
    stub = ReplicateStub()
    service = _service(test_settings, stub, no_sleep)

    urls = await service.generate(FLUX_CINESTILL, _request())

    assert urls == ["https://replicate.delivery/out.png"]
    post = stub.posts[0]
    assert post.url.path == "/v1/models/adirik/flux-cinestill/predictions"
    assert post.headers["Authorization"] == "Bearer test-token"
    body = json.loads(post.content)
    assert body["input"]["width"] == 1440
    assert body["input"]["prompt"].startswith("IKIGAI a bear portrait")
    assert [r.url.path for r in stub.requests[1:]] == ["/v1/predictions/pred-1"] * 2


@pytest.mark.asyncio
async def test_versioned_backend_uses_predictions_endpoint(test_settings, no_sleep):
    stub = ReplicateStub()
    service = _service(test_settings, stub, no_sleep)

    await service.create_prediction("owner/model:abc123", {"prompt": "bear"})

    post = stub.posts[0]
    assert post.url.path == "/v1/predictions"
    assert json.loads(post.content) == {"version": "abc123", "input": {"prompt": "bear"}}


@pytest.mark.asyncio
async def test_non_retryable_status_is_rejected_immediately(test_settings, no_sleep):
    stub = ReplicateStub(create_statuses=(422,))
    service = _service(test_settings, stub, no_sleep)

    with pytest.raises(BackendRejectedError) as exc_info:
        await service.generate(FLUX_PRO, _request())

    assert exc_info.value.http_status == 422
    assert exc_info.value.backend_id == FLUX_PRO.id
    assert len(stub.posts) == 1
    assert no_sleep.waits == []


@pytest.mark.asyncio
async def test_retryable_status_is_retried_on_same_backend(test_settings, no_sleep):
    stub = ReplicateStub(create_statuses=(503, 503, 201))
    service = _service(test_settings, stub, no_sleep, max_retries=3)

    await service.create_prediction(FLUX_PRO.id, {"prompt": "bear"})

    assert len(stub.posts) == 3
    assert no_sleep.waits == [0.5, 1.0]


@pytest.mark.asyncio
async def test_retries_exhausted_raise_network_failure(test_settings, no_sleep):
    stub = ReplicateStub(create_statuses=(500,))
    service = _service(test_settings, stub, no_sleep, max_retries=2)

    with pytest.raises(NetworkFailureError):
        await service.create_prediction(FLUX_PRO.id, {"prompt": "bear"})

    assert len(stub.posts) == 3


@pytest.mark.asyncio
async def test_transport_errors_are_retried(test_settings, no_sleep):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.ConnectError("connection refused", request=request)

    service = ReplicateService(
        test_settings, transport=httpx.MockTransport(handler), sleep=no_sleep, max_retries=2
    )

    with pytest.raises(NetworkFailureError):
        await service.get_prediction("pred-1")

    assert calls == 3
    assert no_sleep.waits == [0.5, 1.0]


@pytest.mark.asyncio
async def test_failed_prediction_raises_backend_failure(test_settings, no_sleep):
    stub = ReplicateStub(poll_statuses=("failed",))
    service = _service(test_settings, stub, no_sleep)

    with pytest.raises(BackendFailureError) as exc_info:
        await service.generate(FLUX_PRO, _request())

    assert exc_info.value.reason == "NSFW content detected"


@pytest.mark.asyncio
async def test_output_shape_mismatch_raises_backend_failure(test_settings, no_sleep):
    # FLUX Pro 声明输出单个 URL，返回数组视为无法解码
    stub = ReplicateStub(poll_statuses=("succeeded",), output=["https://x/1.png"])
    service = _service(test_settings, stub, no_sleep)

    with pytest.raises(BackendFailureError):
        await service.generate(FLUX_PRO, _request())


@pytest.mark.asyncio
async def test_missing_token_is_rejected(test_settings, no_sleep):
    settings = test_settings.model_copy(update={"replicate_api_token": None})
    stub = ReplicateStub()
    service = _service(settings, stub, no_sleep)

    with pytest.raises(BackendRejectedError):
        await service.generate(FLUX_PRO, _request())
    assert stub.requests == []


@pytest.mark.asyncio
async def test_server_disconnect_is_retried_then_network_failure(test_settings, no_sleep):
    calls = 0

    def handler(request: httpx.Request) -> httpx.Response:
        nonlocal calls
        calls += 1
        raise httpx.RemoteProtocolError("Server disconnected without sending a response.", request=request)

    service = ReplicateService(
        test_settings, transport=httpx.MockTransport(handler), sleep=no_sleep, max_retries=2
    )

    with pytest.raises(NetworkFailureError):
        await service.create_prediction(FLUX_PRO.id, {"prompt": "bear"})

    assert calls == 3
    assert no_sleep.waits == [0.5, 1.0]


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "body",
    [
        {"text": "<html>gateway</html>"},
        {"json": ["not", "an", "object"]},
    ],
)
async def test_unparseable_success_body_is_backend_failure(test_settings, no_sleep, body):
    def handler(request: httpx.Request) -> httpx.Response:
        return httpx.Response(200, **body)

    service = ReplicateService(test_settings, transport=httpx.MockTransport(handler), sleep=no_sleep)

    with pytest.raises(BackendFailureError) as exc_info:
        await service.get_prediction("pred-1")

    assert exc_info.value.reason == "invalid json"
    assert no_sleep.waits == []
