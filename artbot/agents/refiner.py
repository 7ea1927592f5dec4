from __future__ import annotations

import logging
import re
from typing import Any

from artbot.agents.base import AgentContext, BaseAgent
from artbot.agents.prompts.refiner import FEEDBACK_TEMPLATE, SYSTEM_PROMPT, USER_TEMPLATE
from artbot.agents.utils import clean_completion, truncate

logger = logging.getLogger(__name__)


def strip_avoided_words(prompt: str, avoid_words: tuple[str, ...]) -> str:
    """LLM 没有遵守 avoid 列表时兜底删除"""
    text = prompt
    for word in avoid_words:
        if word:
            text = re.sub(rf"\b{re.escape(word)}\b", "", text, flags=re.IGNORECASE)
    # 删除后可能留下多余的逗号和空格
    parts = [part.strip() for part in text.split(",")]
    return ", ".join(" ".join(part.split()) for part in parts if part.strip())


class RefinerAgent(BaseAgent):
    """按首选后端的提示词偏好优化提示词；有评论家反馈时针对反馈再精炼"""

    name = "refine"

    async def run(self, ctx: AgentContext) -> dict[str, Any]:
        backend = ctx.backend
        user_prompt = USER_TEMPLATE.format(
            model_name=backend.name,
            keywords=", ".join(backend.prompt_keywords) or "none",
            avoid_words=", ".join(backend.avoid_words) or "none",
            max_length=backend.max_prompt_length or "none",
            prompt=ctx.prompt,
        )
        if ctx.feedback:
            improvements = (ctx.evaluation or {}).get("improvements") or []
            user_prompt += FEEDBACK_TEMPLATE.format(
                feedback=ctx.feedback,
                improvements="\n".join(f"- {item}" for item in improvements) or "- (none)",
            )

        text = await self.call_llm(ctx, SYSTEM_PROMPT, user_prompt, temperature=0.4, max_tokens=500)
        prompt = strip_avoided_words(clean_completion(text), backend.avoid_words)
        if backend.max_prompt_length and len(prompt) > backend.max_prompt_length:
            prompt = prompt[: backend.max_prompt_length].rsplit(" ", 1)[0].rstrip(", ")
        if not prompt:
            raise ValueError("refined prompt is empty")

        logger.info("Refiner optimized for %s%s: %s", backend.id, " (feedback)" if ctx.feedback else "", truncate(prompt))
        return {"prompt": prompt, "refined_prompt": prompt}
