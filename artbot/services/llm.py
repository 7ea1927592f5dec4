from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Any, Protocol

import httpx

from artbot.config import Settings
from artbot.exceptions import LLMUnavailableError

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class CompletionResult:
    content: str
    provider: str
    model: str
    raw: Any = None


class TextCompletionService(Protocol):
    async def complete(
        self,
        *,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        model: str | None = None,
        max_tokens: int = 1024,
    ) -> CompletionResult: ...


def _split_system(messages: list[dict[str, str]]) -> tuple[str | None, list[dict[str, str]]]:
    """Anthropic 的 system 不放在 messages 里"""
    system_parts = [m["content"] for m in messages if m.get("role") == "system"]
    rest = [m for m in messages if m.get("role") != "system"]
    return ("\n\n".join(system_parts) if system_parts else None), rest


class LLMService:
    """Claude (Anthropic Messages API) 服务包装器。

    - 直接使用 `anthropic` SDK
    - 外层自己做重试（SDK 的 max_retries 置 0）
    """

    provider = "anthropic"

    def __init__(self, settings: Settings, *, max_retries: int = 3):
        self.settings = settings
        self.max_retries = max_retries
        self._client: Any | None = None
        self._anthropic: Any | None = None

    def _import_anthropic(self) -> Any:
        if self._anthropic is not None:
            return self._anthropic
        try:
            import anthropic  # type: ignore
        except ModuleNotFoundError as exc:  # pragma: no cover
            raise RuntimeError(
                "Missing dependency `anthropic`. Install optional deps: `pip install 'artbot[agents]'`."
            ) from exc
        self._anthropic = anthropic
        return anthropic

    def _get_client(self) -> Any:
        if self._client is not None:
            return self._client

        anthropic = self._import_anthropic()

        if not self.settings.anthropic_api_key:
            raise LLMUnavailableError("Anthropic credentials missing: set `anthropic_api_key`.")

        kwargs: dict[str, Any] = {
            "api_key": self.settings.anthropic_api_key,
            "timeout": self.settings.request_timeout_s,
            # 我们在外层自己做重试，避免双重重试导致等待过长
            "max_retries": 0,
        }
        if self.settings.anthropic_base_url:
            kwargs["base_url"] = self.settings.anthropic_base_url

        self._client = anthropic.AsyncAnthropic(**kwargs)
        return self._client

    def _parse_message(self, message: Any, model: str) -> CompletionResult:
        text_parts: list[str] = []
        for block in getattr(message, "content", []) or []:
            if getattr(block, "type", None) == "text":
                text_parts.append(getattr(block, "text", ""))
        return CompletionResult(content="".join(text_parts), provider=self.provider, model=model, raw=message)

    def _is_retryable_error(self, exc: Exception) -> bool:
        anthropic = self._import_anthropic()
        retryable_types: tuple[type[BaseException], ...] = (
            getattr(anthropic, "RateLimitError", Exception),
            getattr(anthropic, "APIConnectionError", Exception),
            getattr(anthropic, "APITimeoutError", Exception),
        )
        if isinstance(exc, retryable_types):
            return True

        status_code = getattr(exc, "status_code", None)
        if isinstance(status_code, int) and status_code in {408, 429, 500, 502, 503, 504}:
            return True

        return False

    async def complete(
        self,
        *,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        model: str | None = None,
        max_tokens: int = 1024,
    ) -> CompletionResult:
        client = self._get_client()
        system, chat_messages = _split_system(messages)
        model = model or self.settings.anthropic_model

        payload: dict[str, Any] = {
            "model": model,
            "max_tokens": max_tokens,
            "messages": chat_messages,
        }
        if system is not None:
            payload["system"] = system
        if temperature is not None:
            payload["temperature"] = temperature

        delay_s = 0.5
        for attempt in range(self.max_retries + 1):
            try:
                message = await client.messages.create(**payload)
                return self._parse_message(message, model)
            except Exception as exc:
                if attempt >= self.max_retries or not self._is_retryable_error(exc):
                    raise
                await asyncio.sleep(delay_s)
                delay_s = min(delay_s * 2, 8.0)

        raise RuntimeError("unreachable")  # pragma: no cover


class OpenAILLMService:
    """OpenAI 兼容的 Chat Completions 接口（httpx 直连）"""

    provider = "openai"

    def __init__(
        self,
        settings: Settings,
        *,
        max_retries: int = 3,
        transport: httpx.AsyncBaseTransport | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        self.settings = settings
        self.max_retries = max_retries
        self._transport = transport
        self._sleep = sleep

    def _is_retryable_status(self, status_code: int) -> bool:
        return status_code in {408, 429, 500, 502, 503, 504}

    def _parse_response(self, data: Any, model: str) -> CompletionResult:
        if not isinstance(data, dict):
            raise ValueError(f"Unexpected chat completion response: {str(data)[:200]}")
        choices = data.get("choices") or []
        content = ""
        if choices and isinstance(choices[0], dict):
            message = choices[0].get("message") or {}
            content = message.get("content") or ""
        return CompletionResult(content=content, provider=self.provider, model=model, raw=data)

    async def complete(
        self,
        *,
        messages: list[dict[str, str]],
        temperature: float | None = None,
        model: str | None = None,
        max_tokens: int = 1024,
    ) -> CompletionResult:
        if not self.settings.openai_api_key:
            raise LLMUnavailableError("OpenAI credentials missing: set `openai_api_key`.")

        model = model or self.settings.openai_text_model
        payload: dict[str, Any] = {"model": model, "messages": messages, "max_tokens": max_tokens}
        if temperature is not None:
            payload["temperature"] = temperature
        url = f"{self.settings.openai_base_url.rstrip('/')}/chat/completions"

        delay_s = 0.5
        async with httpx.AsyncClient(timeout=self.settings.request_timeout_s, transport=self._transport) as client:
            for attempt in range(self.max_retries + 1):
                try:
                    res = await client.post(url, headers=self.settings.openai_headers(), json=payload)
                    res.raise_for_status()
                    return self._parse_response(res.json(), model)
                except (httpx.TransportError, httpx.HTTPStatusError) as exc:
                    status = getattr(getattr(exc, "response", None), "status_code", None)
                    retryable = not isinstance(status, int) or self._is_retryable_status(status)
                    if attempt >= self.max_retries or not retryable:
                        raise
                    await self._sleep(delay_s)
                    delay_s = min(delay_s * 2, 8.0)

        raise RuntimeError("unreachable")  # pragma: no cover


class FallbackLLMService:
    """主服务失败时切换到备用服务"""

    def __init__(self, primary: TextCompletionService, secondary: TextCompletionService):
        self.primary = primary
        self.secondary = secondary

    async def complete(self, **kwargs: Any) -> CompletionResult:
        try:
            return await self.primary.complete(**kwargs)
        except Exception as exc:
            logger.warning("Primary text-completion provider failed, falling back: %s", exc)
            # 不同服务商的模型名不通用
            kwargs.pop("model", None)
            return await self.secondary.complete(**kwargs)


def create_llm_service(settings: Settings) -> TextCompletionService:
    provider = settings.llm_provider.lower()
    if provider == "anthropic":
        return LLMService(settings)
    if provider == "openai":
        return OpenAILLMService(settings)
    if provider != "auto":
        raise ValueError(f"Unknown llm_provider: {settings.llm_provider}")

    services: list[TextCompletionService] = []
    if settings.anthropic_api_key:
        services.append(LLMService(settings))
    if settings.openai_api_key:
        services.append(OpenAILLMService(settings))
    if not services:
        raise LLMUnavailableError(
            "No text-completion provider available: set `anthropic_api_key` or `openai_api_key`."
        )
    if len(services) == 1:
        return services[0]
    return FallbackLLMService(services[0], services[1])
