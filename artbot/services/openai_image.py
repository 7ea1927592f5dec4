from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from artbot.config import Settings
from artbot.exceptions import BackendFailureError, BackendRejectedError, NetworkFailureError
from artbot.services.poller import Sleeper
from artbot.services.replicate import decode_json_body

logger = logging.getLogger(__name__)

# 各模型支持的尺寸；未列出的模型直接透传 宽x高
SUPPORTED_SIZES: dict[str, tuple[tuple[int, int], ...]] = {
    "dall-e-3": ((1024, 1024), (1792, 1024), (1024, 1792)),
    "dall-e-2": ((256, 256), (512, 512), (1024, 1024)),
    "gpt-image-1": ((1024, 1024), (1536, 1024), (1024, 1536)),
}


class OpenAIImageService:
    """OpenAI 兼容的同步图片生成接口（降级链的最后兜底）

    与 Replicate 的异步任务不同，这里一次 POST 直接返回 {data: [{url}]}。
    """

    backend_id = "openai-images"

    def __init__(
        self,
        settings: Settings,
        *,
        max_retries: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Sleeper = asyncio.sleep,
    ):
        self.settings = settings
        self.max_retries = settings.max_retries if max_retries is None else max_retries
        self._transport = transport
        self._sleep = sleep

    @property
    def is_configured(self) -> bool:
        return bool(self.settings.openai_api_key)

    def _build_url(self) -> str:
        base = self.settings.openai_base_url.rstrip("/")
        endpoint = self.settings.openai_image_endpoint
        if not endpoint.startswith("/"):
            endpoint = "/" + endpoint
        return f"{base}{endpoint}"

    def _is_retryable_status(self, status_code: int) -> bool:
        return status_code in {408, 429, 500, 502, 503, 504}

    def select_size(self, width: int, height: int) -> str:
        """选择与请求宽高比最接近的受支持尺寸"""
        sizes = SUPPORTED_SIZES.get(self.settings.openai_image_model)
        if not sizes:
            return f"{width}x{height}"
        ratio = width / height
        best = min(sizes, key=lambda s: (abs(s[0] / s[1] - ratio), abs(s[0] * s[1] - width * height)))
        return f"{best[0]}x{best[1]}"

    async def _post_json_with_retry(self, url: str, payload: dict[str, Any]) -> dict[str, Any]:
        delay_s = 0.5
        last_exc: Exception | None = None

        async with httpx.AsyncClient(timeout=self.settings.request_timeout_s, transport=self._transport) as client:
            for attempt in range(self.max_retries + 1):
                try:
                    res = await client.post(url, headers=self.settings.openai_headers(), json=payload)
                    if self._is_retryable_status(res.status_code) and attempt < self.max_retries:
                        await self._sleep(delay_s)
                        delay_s = min(delay_s * 2, 8.0)
                        continue
                    res.raise_for_status()
                    return decode_json_body(res, source="Image API")
                except (httpx.TransportError, httpx.HTTPStatusError) as exc:
                    last_exc = exc
                    status = getattr(getattr(exc, "response", None), "status_code", None)
                    if isinstance(status, int) and not self._is_retryable_status(status):
                        raise BackendRejectedError(
                            f"Image API rejected request with HTTP {status}: {exc.response.text[:300]}",
                            backend_id=self.backend_id,
                            http_status=status,
                        ) from exc
                    if attempt >= self.max_retries:
                        break
                    await self._sleep(delay_s)
                    delay_s = min(delay_s * 2, 8.0)

        raise NetworkFailureError(f"Image generation request failed after retries: {last_exc}") from last_exc

    async def generate_url(self, *, prompt: str, width: int, height: int) -> str:
        if not self.is_configured:
            raise BackendRejectedError("OpenAI API key not provided for last-resort image generation",
                                       backend_id=self.backend_id)

        payload: dict[str, Any] = {
            "model": self.settings.openai_image_model,
            "prompt": prompt,
            "n": 1,
            "size": self.select_size(width, height),
            "response_format": "url",
        }
        logger.info("Calling last-resort image API %s (size=%s)", payload["model"], payload["size"])
        data = await self._post_json_with_retry(self._build_url(), payload)

        items = data.get("data") or []
        if isinstance(items, list) and items:
            first = items[0] if isinstance(items[0], dict) else {}
            result_url = first.get("url")
            if isinstance(result_url, str) and result_url:
                return result_url

        raise BackendFailureError(f"Image API response missing URL: {str(data)[:200]}", reason="missing url")
