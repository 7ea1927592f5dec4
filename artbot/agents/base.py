from __future__ import annotations

import dataclasses
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from artbot.config import Settings
from artbot.services.backends import BackendDescriptor
from artbot.services.image import ImageService
from artbot.services.llm import TextCompletionService

logger = logging.getLogger(__name__)


class StepPolicy(str, Enum):
    """步骤失败时的处理方式"""

    PROPAGATE = "propagate"  # 整条链失败，结果标记失败的步骤
    SUBSTITUTE = "substitute"  # 用未变换的输入代替，记录日志后继续


@dataclass(slots=True)
class CharacterOptions:
    """角色生成选项：系列 / 分类 id 与强制属性（如 accessory）"""

    series: str | None = None
    category: str | None = None
    forced: dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class AgentContext:
    """在 Agent 链中逐步累积的上下文

    每个步骤返回一个更新字典，由 Director 生成新的上下文，步骤之间不共享可变状态。
    """

    settings: Settings
    llm: TextCompletionService
    image: ImageService
    backend: BackendDescriptor  # 首选图像后端，Refiner 按它优化提示词
    concept: str
    style: str
    series: str | None = None
    category: str | None = None
    forced_attributes: dict[str, str] = field(default_factory=dict)
    prompt: str = ""
    refined_prompt: str | None = None
    negative_prompt: str | None = None
    feedback: str | None = None  # 评论家反馈，用于再精炼
    character: dict[str, Any] | None = None
    evaluation: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    messages: tuple[str, ...] = ()
    substitutions: tuple[str, ...] = ()

    def apply(self, updates: dict[str, Any]) -> "AgentContext":
        return dataclasses.replace(self, **updates)

    def log(self, message: str) -> "AgentContext":
        return dataclasses.replace(self, messages=(*self.messages, message))


class BaseAgent:
    name: str = "base"
    on_failure: StepPolicy = StepPolicy.SUBSTITUTE

    async def call_llm(
        self,
        ctx: AgentContext,
        system_prompt: str,
        user_prompt: str,
        *,
        temperature: float | None = None,
        max_tokens: int = 1024,
    ) -> str:
        """调用文本补全服务并返回回复文本。"""
        messages = [
            {"role": "system", "content": system_prompt},
            {"role": "user", "content": user_prompt},
        ]
        result = await ctx.llm.complete(messages=messages, temperature=temperature, max_tokens=max_tokens)
        text = result.content.strip()
        if not text:
            raise ValueError(f"{self.name}: empty completion from {result.provider}")
        return text

    def fallback(self, ctx: AgentContext) -> dict[str, Any]:
        """SUBSTITUTE 策略下的替代结果（默认：不做任何变换）"""
        return {}

    async def run(self, ctx: AgentContext) -> dict[str, Any]:  # pragma: no cover
        raise NotImplementedError
