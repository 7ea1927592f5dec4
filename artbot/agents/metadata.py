from __future__ import annotations

import json
import logging
from typing import Any

from artbot.agents.base import AgentContext, BaseAgent
from artbot.agents.prompts.metadata import SYSTEM_PROMPT, USER_TEMPLATE
from artbot.agents.utils import extract_json

logger = logging.getLogger(__name__)

# 这些字段由链本身决定，LLM 返回的同名字段不覆盖
_PROTECTED_KEYS = ("name", "style", "concept", "prompt", "character", "attributes")


def nft_attributes(character: dict[str, Any] | None, extra: dict[str, Any] | None = None) -> list[dict[str, str]]:
    """生成 NFT 平台通用的 trait 列表"""
    attributes: list[dict[str, str]] = []
    if character:
        if character.get("title"):
            attributes.append({"trait_type": "Title", "value": str(character["title"])})
        for trait in character.get("personality") or []:
            attributes.append({"trait_type": "Personality", "value": str(trait)})
        for key, value in character.items():
            if key in {"name", "title", "personality", "backstory"} or not isinstance(value, str):
                continue
            attributes.append({"trait_type": key.replace("_", " ").title(), "value": value})
    if extra:
        elements = extra.get("visualElements")
        if isinstance(elements, list):
            for element in elements[:3]:
                attributes.append({"trait_type": "Visual Element", "value": str(element)})
    return attributes


def base_metadata(ctx: AgentContext) -> dict[str, Any]:
    character = ctx.character or {}
    metadata: dict[str, Any] = {
        "name": character.get("name") or "Untitled Artwork",
        "description": character.get("backstory") or f"A {ctx.style} style artwork",
        "concept": ctx.concept,
        "style": ctx.style,
        "prompt": ctx.prompt,
        "character": ctx.character,
        "attributes": nft_attributes(ctx.character),
    }
    if ctx.series:
        metadata["series"] = ctx.series
    if ctx.category:
        metadata["category"] = ctx.category
    if ctx.evaluation:
        metadata["evaluationScore"] = ctx.evaluation.get("score")
    return metadata


class MetadataGeneratorAgent(BaseAgent):
    name = "generate_metadata"

    async def run(self, ctx: AgentContext) -> dict[str, Any]:
        base = base_metadata(ctx)
        character = ctx.character or {}
        user_prompt = USER_TEMPLATE.format(
            prompt=ctx.prompt,
            style=ctx.style,
            character=json.dumps(
                {k: character.get(k) for k in ("name", "title", "backstory")}, ensure_ascii=False
            ),
        )
        text = await self.call_llm(ctx, SYSTEM_PROMPT, user_prompt, temperature=0.5, max_tokens=800)
        generated = extract_json(text)

        metadata = {**base, **{k: v for k, v in generated.items() if k not in _PROTECTED_KEYS}}
        metadata["attributes"] = nft_attributes(ctx.character, generated)
        logger.info("Metadata generated for %s (%d attributes)", metadata["name"], len(metadata["attributes"]))
        return {"metadata": metadata}

    def fallback(self, ctx: AgentContext) -> dict[str, Any]:
        return {"metadata": base_metadata(ctx)}
