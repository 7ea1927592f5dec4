from __future__ import annotations

import logging
from typing import Any

from artbot.agents.base import AgentContext, BaseAgent, StepPolicy
from artbot.agents.prompts.ideator import SYSTEM_PROMPT, USER_TEMPLATE
from artbot.agents.prompts.styles import detect_series
from artbot.agents.utils import clean_completion, truncate

logger = logging.getLogger(__name__)


class IdeatorAgent(BaseAgent):
    name = "ideate"
    on_failure = StepPolicy.PROPAGATE

    def _seed(self, ctx: AgentContext) -> str:
        """概念 + 系列元素（显式指定的系列优先）"""
        concept = ctx.concept.strip()
        series = ctx.series or detect_series(concept)
        if series and series.lower() not in concept.lower():
            concept = f"{concept} with {series} series elements"
        return concept

    async def run(self, ctx: AgentContext) -> dict[str, Any]:
        seed = self._seed(ctx)
        user_prompt = USER_TEMPLATE.format(concept=seed, style=ctx.style)
        text = await self.call_llm(ctx, SYSTEM_PROMPT, user_prompt, temperature=0.7, max_tokens=400)
        prompt = clean_completion(text)
        logger.info("Ideator expanded %r -> %s", ctx.concept, truncate(prompt))
        return {"prompt": prompt}

    def fallback(self, ctx: AgentContext) -> dict[str, Any]:
        return {"prompt": self._seed(ctx)}
