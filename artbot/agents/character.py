from __future__ import annotations

import json
import logging
from typing import Any

from artbot.agents.base import AgentContext, BaseAgent
from artbot.agents.prompts.character import SYSTEM_PROMPT, USER_TEMPLATE
from artbot.agents.utils import extract_json

logger = logging.getLogger(__name__)

DEFAULT_CHARACTER: dict[str, Any] = {
    "name": "Distinguished Bear",
    "title": "The Untitled",
    "personality": ["Mysterious", "Distinguished"],
    "backstory": "A bear of unknown origin, wrapped in mystery.",
}


def _as_str_list(value: Any) -> list[str]:
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    if isinstance(value, list):
        return [str(item).strip() for item in value if str(item).strip()]
    return []


class CharacterGeneratorAgent(BaseAgent):
    name = "generate_character"

    async def run(self, ctx: AgentContext) -> dict[str, Any]:
        user_prompt = USER_TEMPLATE.format(
            concept=ctx.concept,
            prompt=ctx.prompt,
            series=ctx.series or "none",
            category=ctx.category or "none",
            forced=json.dumps(ctx.forced_attributes, ensure_ascii=False) if ctx.forced_attributes else "none",
        )
        text = await self.call_llm(ctx, SYSTEM_PROMPT, user_prompt, temperature=0.8, max_tokens=600)
        data = extract_json(text)

        name = str(data.get("name") or "").strip()
        if not name:
            raise ValueError("character JSON has no name")
        character = {
            "name": name,
            "title": str(data.get("title") or DEFAULT_CHARACTER["title"]).strip(),
            "personality": _as_str_list(data.get("personality")) or list(DEFAULT_CHARACTER["personality"]),
            "backstory": str(data.get("backstory") or "").strip(),
        }
        # 强制属性覆盖 LLM 给出的同名字段
        character.update(ctx.forced_attributes)
        logger.info("Character generated: %s, %s", character["name"], character["title"])
        return {"character": character}

    def fallback(self, ctx: AgentContext) -> dict[str, Any]:
        character = {**DEFAULT_CHARACTER, "personality": list(DEFAULT_CHARACTER["personality"])}
        character.update(ctx.forced_attributes)
        return {"character": character}
