from __future__ import annotations

import asyncio
import logging
from typing import Any

from artbot.config import Settings
from artbot.exceptions import (
    ArtBotError,
    BackendFailureError,
    BackendRejectedError,
    ExhaustedFailureError,
    NetworkFailureError,
    PollTimeoutError,
)
from artbot.schemas.generation import GenerationOutcome, GenerationRequest, LadderAttempt
from artbot.services.backends import BackendCatalog, BackendDescriptor, load_backend_catalog
from artbot.services.openai_image import OpenAIImageService
from artbot.services.replicate import ReplicateService

logger = logging.getLogger(__name__)

# 这些错误会让降级链前进到下一个后端；取消类错误不在其中，会直接中止整条链
LADDER_ERRORS = (BackendRejectedError, NetworkFailureError, BackendFailureError, PollTimeoutError)


class ImageService:
    """图像生成降级链

    首选后端 → 备选后端（按配置顺序）→ 结构完全不同的同步图片接口，
    每一级都用原始请求重新归一化；任一级成功即返回，全部失败抛出 ExhaustedFailureError。
    """

    def __init__(
        self,
        settings: Settings,
        *,
        catalog: BackendCatalog | None = None,
        replicate: ReplicateService | None = None,
        last_resort: OpenAIImageService | None = None,
    ):
        self.settings = settings
        self.catalog = catalog or load_backend_catalog(settings)
        self.replicate = replicate or ReplicateService(settings)
        self.last_resort = last_resort or OpenAIImageService(settings)

    def build_request(self, *, prompt: str, **kwargs: Any) -> GenerationRequest:
        """用首选后端的默认尺寸补齐请求"""
        primary = self.catalog.primary
        kwargs.setdefault("width", self.settings.image_width or primary.default_width)
        kwargs.setdefault("height", self.settings.image_height or primary.default_height)
        return GenerationRequest.build(prompt=prompt, **kwargs)

    async def _try_backend(
        self,
        backend: BackendDescriptor,
        request: GenerationRequest,
        cancel_event: asyncio.Event | None,
    ) -> str:
        urls = await self.replicate.generate(backend, request, cancel_event=cancel_event)
        return urls[0]

    async def _try_last_resort(self, request: GenerationRequest) -> str:
        if not self.settings.enable_last_resort:
            raise BackendRejectedError("Last-resort image provider disabled", backend_id=self.last_resort.backend_id)
        return await self.last_resort.generate_url(
            prompt=request.prompt,
            width=request.width,
            height=request.height,
        )

    async def generate_url(
        self,
        request: GenerationRequest,
        *,
        cancel_event: asyncio.Event | None = None,
    ) -> GenerationOutcome:
        attempts: list[LadderAttempt] = []

        for index, backend in enumerate(self.catalog.ladder()):
            rung = "primary" if index == 0 else f"alternate[{index - 1}]"
            try:
                url = await self._try_backend(backend, request, cancel_event)
            except LADDER_ERRORS as exc:
                logger.warning("Image backend %s (%s) failed: %s", backend.id, rung, exc)
                attempts.append(_failed_attempt(backend.id, exc))
                continue
            attempts.append(LadderAttempt(backend_id=backend.id, succeeded=True))
            return GenerationOutcome(image_url=url, backend_id=backend.id, attempts=attempts)

        last_resort_id = self.last_resort.backend_id
        logger.warning("All Replicate backends failed, falling back to %s", last_resort_id)
        try:
            url = await self._try_last_resort(request)
        except LADDER_ERRORS as exc:
            logger.error("Last-resort image provider failed: %s", exc)
            attempts.append(_failed_attempt(last_resort_id, exc))
            raise ExhaustedFailureError(
                f"All {len(attempts)} image backends failed", attempts=attempts
            ) from exc

        attempts.append(LadderAttempt(backend_id=last_resort_id, succeeded=True))
        return GenerationOutcome(image_url=url, backend_id=last_resort_id, attempts=attempts)


def _failed_attempt(backend_id: str, exc: ArtBotError) -> LadderAttempt:
    return LadderAttempt(backend_id=backend_id, succeeded=False, error=exc.message, error_kind=exc.code)
