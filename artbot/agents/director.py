from __future__ import annotations

import asyncio
import logging
from collections.abc import Mapping, Sequence

from artbot.agents.base import AgentContext, BaseAgent, CharacterOptions, StepPolicy
from artbot.agents.character import CharacterGeneratorAgent
from artbot.agents.critic import CriticAgent
from artbot.agents.ideator import IdeatorAgent
from artbot.agents.metadata import MetadataGeneratorAgent
from artbot.agents.refiner import RefinerAgent
from artbot.agents.stylist import StylistAgent
from artbot.agents.utils import as_float, truncate
from artbot.config import Settings
from artbot.exceptions import (
    ExhaustedFailureError,
    GenerationValidationError,
    PollCancelledError,
    TextStepError,
)
from artbot.schemas.generation import ChainResult
from artbot.services.image import ImageService
from artbot.services.llm import TextCompletionService

logger = logging.getLogger(__name__)

IMAGE_STEP = "generate_image"


def default_steps() -> list[BaseAgent]:
    return [
        IdeatorAgent(),
        StylistAgent(),
        RefinerAgent(),
        CharacterGeneratorAgent(),
        CriticAgent(),
        MetadataGeneratorAgent(),
    ]


class Director:
    """按固定顺序运行各个角色步骤，最后把提示词交给图像降级链

    ideate → stylize → refine → generate_character → critique → generate_metadata → generate_image
    """

    def __init__(
        self,
        settings: Settings,
        *,
        llm: TextCompletionService,
        image: ImageService,
        steps: Sequence[BaseAgent] | None = None,
        policies: Mapping[str, StepPolicy] | None = None,
    ):
        self.settings = settings
        self.llm = llm
        self.image = image
        self.steps = list(steps) if steps is not None else default_steps()
        self.policies = {step.name: step.on_failure for step in self.steps}
        for name, policy in (policies or {}).items():
            if name not in self.policies:
                raise ValueError(f"Unknown step: {name}")
            self.policies[name] = StepPolicy(policy)

    def _find_step(self, name: str) -> BaseAgent | None:
        return next((step for step in self.steps if step.name == name), None)

    async def _run_step(self, step: BaseAgent, ctx: AgentContext) -> AgentContext:
        try:
            updates = await step.run(ctx)
        except Exception as exc:
            if self.policies[step.name] is StepPolicy.PROPAGATE:
                logger.error("Step %s failed: %s", step.name, exc)
                raise TextStepError(f"{step.name} failed: {exc}", step=step.name) from exc
            logger.warning("Step %s failed, substituting untransformed input: %s", step.name, exc)
            ctx = ctx.apply(step.fallback(ctx))
            return ctx.apply({"substitutions": (*ctx.substitutions, step.name)}).log(
                f"{step.name}: substituted ({exc})"
            )
        return ctx.apply(updates).log(f"{step.name}: ok")

    async def _refine_with_feedback(self, ctx: AgentContext) -> AgentContext:
        """评论家打分低于阈值时，带着反馈再跑一次 Refiner"""
        refiner = self._find_step(RefinerAgent.name)
        evaluation = ctx.evaluation or {}
        score = as_float(evaluation.get("score"), 1.0)
        if refiner is None or score >= self.settings.critic_refine_threshold:
            return ctx

        feedback = str(evaluation.get("feedback") or "").strip() or "Improve style alignment and detail."
        logger.info("Critic score %.2f below %.2f, refining again", score, self.settings.critic_refine_threshold)
        ctx = ctx.apply({"feedback": feedback})
        ctx = await self._run_step(refiner, ctx)
        return ctx.apply({"feedback": None})

    def _result(self, ctx: AgentContext, **fields) -> ChainResult:
        return ChainResult(
            prompt=ctx.prompt or None,
            negative_prompt=ctx.negative_prompt,
            style=ctx.style,
            character=ctx.character,
            evaluation=ctx.evaluation,
            metadata=ctx.metadata,
            messages=list(ctx.messages),
            **fields,
        )

    async def run(
        self,
        concept: str,
        *,
        style: str | None = None,
        character_options: CharacterOptions | None = None,
        cancel_event: asyncio.Event | None = None,
    ) -> ChainResult:
        """运行整条链。失败时返回 success=False 的结果，不抛异常。"""
        options = character_options or CharacterOptions()
        ctx = AgentContext(
            settings=self.settings,
            llm=self.llm,
            image=self.image,
            backend=self.image.catalog.primary,
            concept=concept.strip(),
            style=(style or self.settings.default_style).strip(),
            series=options.series,
            category=options.category,
            forced_attributes=dict(options.forced),
        )
        logger.info("Director starting chain for %r (style=%s)", truncate(ctx.concept), ctx.style)

        if not ctx.concept:
            first = self.steps[0].name if self.steps else IMAGE_STEP
            return self._result(ctx, success=False, error="concept must not be empty", failed_step=first)

        try:
            for step in self.steps:
                ctx = await self._run_step(step, ctx)
                if step.name == CriticAgent.name:
                    ctx = await self._refine_with_feedback(ctx)
        except TextStepError as exc:
            return self._result(ctx.log(f"{exc.step}: failed"), success=False, error=exc.message, failed_step=exc.step)

        try:
            request = self.image.build_request(prompt=ctx.prompt, negative_prompt=ctx.negative_prompt)
            outcome = await self.image.generate_url(request, cancel_event=cancel_event)
        except ExhaustedFailureError as exc:
            logger.error("Image generation failed: %s", exc.message)
            return self._result(
                ctx.log(f"{IMAGE_STEP}: failed"),
                success=False,
                error=exc.message,
                failed_step=IMAGE_STEP,
                attempts=exc.attempts,
            )
        except (GenerationValidationError, PollCancelledError) as exc:
            logger.error("Image generation aborted: %s", exc.message)
            return self._result(ctx.log(f"{IMAGE_STEP}: failed"), success=False, error=exc.message, failed_step=IMAGE_STEP)
        except Exception as exc:
            logger.exception("Image generation crashed")
            return self._result(
                ctx.log(f"{IMAGE_STEP}: failed"),
                success=False,
                error=f"Unexpected error: {exc}",
                failed_step=IMAGE_STEP,
            )

        ctx = ctx.log(f"{IMAGE_STEP}: ok ({outcome.backend_id})")
        logger.info("Chain finished with %s: %s", outcome.backend_id, outcome.image_url)
        return self._result(
            ctx,
            success=True,
            image_url=outcome.image_url,
            backend_id=outcome.backend_id,
            attempts=outcome.attempts,
        )
