from __future__ import annotations

import logging
from typing import Any

from artbot.agents.base import AgentContext, BaseAgent
from artbot.agents.prompts.styles import STYLES, get_style
from artbot.agents.prompts.stylist import SYSTEM_PROMPT, USER_TEMPLATE
from artbot.agents.utils import clean_completion, truncate

logger = logging.getLogger(__name__)


class StylistAgent(BaseAgent):
    """把风格注册表里的前后缀、强调元素和负面词应用到提示词上"""

    name = "stylize"

    async def run(self, ctx: AgentContext) -> dict[str, Any]:
        style = get_style(ctx.style)
        user_prompt = USER_TEMPLATE.format(
            style_name=style.name,
            style_description=style.description,
            emphasis=", ".join(style.emphasis),
            prompt=ctx.prompt,
        )
        text = await self.call_llm(ctx, SYSTEM_PROMPT, user_prompt, temperature=0.6, max_tokens=400)
        prompt = style.wrap(clean_completion(text))
        logger.info("Stylist applied %s: %s", style.name, truncate(prompt))
        return {"prompt": prompt, "style": style.name, "negative_prompt": style.negative_prompt}

    def fallback(self, ctx: AgentContext) -> dict[str, Any]:
        style = STYLES.get(ctx.style.strip().lower())
        return {"negative_prompt": style.negative_prompt if style else ctx.negative_prompt}
