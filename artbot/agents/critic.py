from __future__ import annotations

import logging
from typing import Any

from artbot.agents.base import AgentContext, BaseAgent
from artbot.agents.prompts.critic import SYSTEM_PROMPT, USER_TEMPLATE
from artbot.agents.utils import as_float, extract_json

logger = logging.getLogger(__name__)

_STYLE_MARKERS = ("bowler hat", "surreal", "magritte", "paradox")


def heuristic_evaluation(prompt: str, style: str) -> dict[str, Any]:
    """不依赖 LLM 的粗略评分：提示词长度 + 风格元素"""
    lowered = prompt.lower()
    has_style_elements = any(marker in lowered for marker in _STYLE_MARKERS)
    length_score = min(1.0, len(prompt) / 200)
    style_score = 0.8 if has_style_elements else 0.6
    score = round(length_score * 0.3 + style_score * 0.7, 3)
    return {
        "score": score,
        "feedback": (
            f"Prompt has {'good' if has_style_elements else 'partial'} {style} style alignment "
            f"and {'detailed' if len(prompt) > 150 else 'basic'} specificity."
        ),
        "improvements": [
            "Add more specific surrealist elements",
            "Describe lighting and atmosphere in more detail",
            "Introduce a clearer visual paradox",
        ],
        "heuristic": True,
    }


class CriticAgent(BaseAgent):
    name = "critique"

    async def run(self, ctx: AgentContext) -> dict[str, Any]:
        user_prompt = USER_TEMPLATE.format(concept=ctx.concept, style=ctx.style, prompt=ctx.prompt)
        text = await self.call_llm(ctx, SYSTEM_PROMPT, user_prompt, temperature=0.3, max_tokens=600)

        try:
            data = extract_json(text)
        except ValueError as exc:
            logger.warning("Critic reply is not JSON, using heuristic evaluation: %s", exc)
            return {"evaluation": heuristic_evaluation(ctx.prompt, ctx.style)}

        improvements = data.get("improvements")
        evaluation = {
            "score": min(1.0, max(0.0, as_float(data.get("score"), 0.5))),
            "feedback": str(data.get("feedback") or "").strip(),
            "improvements": [str(item) for item in improvements] if isinstance(improvements, list) else [],
        }
        logger.info("Critic score %.2f", evaluation["score"])
        return {"evaluation": evaluation}

    def fallback(self, ctx: AgentContext) -> dict[str, Any]:
        return {"evaluation": heuristic_evaluation(ctx.prompt, ctx.style)}
