"""Replicate 预测服务

使用异步任务模式：创建预测 → 轮询状态 → 按后端声明的形状解析输出
"""
from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from artbot.config import Settings
from artbot.exceptions import BackendFailureError, BackendRejectedError, NetworkFailureError
from artbot.schemas.generation import GenerationRequest, Prediction
from artbot.services.backends import BackendDescriptor, decode_output
from artbot.services.normalizer import normalize
from artbot.services.poller import PredictionPoller, Sleeper

logger = logging.getLogger(__name__)

RETRYABLE_STATUS = {408, 429, 500, 502, 503, 504}


def decode_json_body(res: httpx.Response, *, source: str) -> dict[str, Any]:
    """解析成功响应的 JSON 对象；网关 HTML 页面等非 JSON 内容视为后端故障"""
    try:
        data = res.json()
    except ValueError as exc:
        raise BackendFailureError(
            f"{source} returned a non-JSON body (HTTP {res.status_code}): {res.text[:200]}",
            reason="invalid json",
            details={"url": str(res.request.url)},
        ) from exc
    if not isinstance(data, dict):
        raise BackendFailureError(
            f"{source} returned unexpected JSON: {str(data)[:200]}",
            reason="invalid json",
            details={"url": str(res.request.url)},
        )
    return data


class ReplicateService:
    def __init__(
        self,
        settings: Settings,
        *,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        """
        Args:
            settings: 应用配置
            max_retries: 同一后端上的网络重试次数（默认取配置）
            transport: 自定义 httpx transport（测试时注入 MockTransport）
            sleep: 重试退避与轮询等待使用的 sleep 函数
        """
        self.settings = settings
        self.max_retries = settings.max_retries if max_retries is None else max_retries
        self._transport = transport
        self._sleep = sleep

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.request_timeout_s, connect=30.0),
            transport=self._transport,
        )

    def _is_retryable_status(self, status_code: int) -> bool:
        return status_code in RETRYABLE_STATUS

    def _create_url(self, backend_id: str) -> tuple[str, dict[str, Any]]:
        """带版本号的 id 走 /predictions，否则走模型的官方预测端点"""
        base = self.settings.replicate_base_url.rstrip("/")
        if ":" in backend_id:
            _, version = backend_id.split(":", 1)
            return f"{base}/predictions", {"version": version}
        return f"{base}/models/{backend_id}/predictions", {}

    async def _request_with_retry(self, method: str, url: str, **kwargs: Any) -> dict[str, Any]:
        """带重试的 HTTP 请求

        可重试状态码与传输层异常在同一后端上指数退避重试，耗尽后抛出 NetworkFailureError；
        其余 4xx 视为后端拒绝，立即抛出 BackendRejectedError。
        """
        if not self.settings.replicate_api_token:
            raise BackendRejectedError("Replicate API token not configured")

        delay_s = 0.5
        last_exc: Exception | None = None

        async with self._client() as client:
            for attempt in range(self.max_retries + 1):
                try:
                    res = await client.request(method, url, headers=self.settings.replicate_headers(), **kwargs)
                except httpx.TransportError as exc:
                    last_exc = exc
                    logger.warning(
                        "Replicate request failed: %s, retrying (%d/%d)", exc, attempt + 1, self.max_retries
                    )
                else:
                    if res.is_success:
                        return decode_json_body(res, source="Replicate")
                    if not self._is_retryable_status(res.status_code):
                        raise BackendRejectedError(
                            f"Replicate rejected request with HTTP {res.status_code}: {res.text[:300]}",
                            http_status=res.status_code,
                            details={"url": url},
                        )
                    last_exc = httpx.HTTPStatusError(
                        f"HTTP {res.status_code}", request=res.request, response=res
                    )
                    logger.warning(
                        "Replicate returned %d, retrying (%d/%d)", res.status_code, attempt + 1, self.max_retries
                    )

                if attempt >= self.max_retries:
                    break
                await self._sleep(delay_s)
                delay_s = min(delay_s * 2, 8.0)

        raise NetworkFailureError(
            f"Replicate request failed after {self.max_retries} retries: {last_exc}",
            details={"url": url},
        ) from last_exc

    async def create_prediction(self, backend_id: str, params: dict[str, Any]) -> str:
        url, body = self._create_url(backend_id)
        data = await self._request_with_retry("POST", url, json={**body, "input": params})
        prediction_id = data.get("id")
        if not prediction_id:
            raise BackendRejectedError(f"Replicate did not return a prediction id: {data}", backend_id=backend_id)
        return str(prediction_id)

    async def get_prediction(self, prediction_id: str) -> dict[str, Any]:
        base = self.settings.replicate_base_url.rstrip("/")
        return await self._request_with_retry("GET", f"{base}/predictions/{prediction_id}")

    async def generate(
        self,
        backend: BackendDescriptor,
        request: GenerationRequest,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> list[str]:
        """在单个后端上完成一次生成：归一化 → 提交 → 轮询 → 解码"""
        params = normalize(request, backend)
        logger.info(
            "Submitting prediction to %s (%sx%s): %s...",
            backend.id,
            params.get("width"),
            params.get("height"),
            str(params.get("prompt", ""))[:80],
        )

        try:
            prediction_id = await self.create_prediction(backend.id, params)
        except BackendRejectedError as exc:
            exc.backend_id = backend.id
            raise

        prediction = Prediction(id=prediction_id, backend_id=backend.id, request=request)
        poller = PredictionPoller(
            self.get_prediction,
            interval=self.settings.poll_interval_s,
            max_attempts=self.settings.poll_max_attempts,
            sleep=self._sleep,
        )
        data = await poller.poll(prediction_id, cancel_event=cancel_event, prediction=prediction)

        urls = decode_output(backend, data.get("output"), prediction_id=prediction_id)
        logger.info("Prediction %s on %s succeeded: %s", prediction_id, backend.id, urls[0])
        return urls
