from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping

from artbot.agents.base import CharacterOptions, StepPolicy
from artbot.agents.director import Director
from artbot.config import Settings
from artbot.exceptions import ArtBotError
from artbot.schemas.generation import ChainResult
from artbot.services.artifacts import ArtifactWriter, safe_filename
from artbot.services.image import ImageService
from artbot.services.llm import TextCompletionService, create_llm_service

logger = logging.getLogger(__name__)


class ArtGenerationOrchestrator:
    """把配置、服务、Director 和文件输出串成一次调用

    run_project 永远返回 ChainResult，不向调用方抛出异常。
    """

    def __init__(
        self,
        *,
        settings: Settings,
        llm: TextCompletionService | None = None,
        image: ImageService | None = None,
        writer: ArtifactWriter | None = None,
        policies: Mapping[str, StepPolicy] | None = None,
    ):
        self.settings = settings
        self._llm = llm
        self._image = image
        self.writer = writer or ArtifactWriter(settings.output_dir)
        self.policies = policies

    def _build_director(self) -> Director:
        llm = self._llm or create_llm_service(self.settings)
        image = self._image or ImageService(self.settings)
        self._llm, self._image = llm, image
        return Director(self.settings, llm=llm, image=image, policies=self.policies)

    def _write_files(self, result: ChainResult, name: str) -> ChainResult:
        metadata = {
            **(result.metadata or {}),
            "negativePrompt": result.negative_prompt,
            "backendId": result.backend_id,
            "evaluation": result.evaluation,
            "attempts": [attempt.model_dump(by_alias=True) for attempt in result.attempts],
        }
        try:
            paths = self.writer.write(
                name,
                prompt=result.prompt or "",
                image_url=result.image_url or "",
                metadata=metadata,
            )
        except OSError as exc:
            logger.error("Failed to write output files for %s: %s", name, exc)
            return result.model_copy(update={"messages": [*result.messages, f"write_files: failed ({exc})"]})
        return result.model_copy(
            update={"files": paths.as_dict(), "messages": [*result.messages, "write_files: ok"]}
        )

    async def run_project(
        self,
        concept: str,
        *,
        style: str | None = None,
        series: str | None = None,
        category: str | None = None,
        force: Mapping[str, str] | None = None,
        name: str | None = None,
        write_files: bool = True,
        cancel_event: asyncio.Event | None = None,
    ) -> ChainResult:
        try:
            director = self._build_director()
        except (ArtBotError, ValueError) as exc:
            message = exc.message if isinstance(exc, ArtBotError) else str(exc)
            logger.error("Cannot start generation: %s", message)
            return ChainResult(success=False, error=message, failed_step="configure", style=style)

        options = CharacterOptions(series=series, category=category, forced=dict(force or {}))
        try:
            result = await director.run(concept, style=style, character_options=options, cancel_event=cancel_event)
        except Exception as exc:
            logger.exception("Generation crashed")
            return ChainResult(success=False, error=f"Unexpected error: {exc}", style=style)

        if result.success and write_files:
            result = self._write_files(result, name or safe_filename(concept))
        return result
