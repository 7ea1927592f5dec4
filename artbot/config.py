from __future__ import annotations

import logging
from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    # Note: do not hardcode env_file here; tests instantiate Settings() directly and
    # should not implicitly read the repo's .env. Runtime uses get_settings().
    model_config = SettingsConfigDict(extra="ignore")

    app_name: str = "artbot"
    environment: str = Field(default="dev", description="dev|staging|prod")
    log_level: str = Field(default="INFO", description="日志级别")

    api_v1_prefix: str = "/api/v1"
    cors_origins: list[str] = Field(default_factory=lambda: ["*"])

    # ============================================
    # 文本补全服务（Agent 链使用）
    # ============================================
    llm_provider: str = Field(
        default="auto",
        description="anthropic | openai | auto（auto：Anthropic 优先，OpenAI 兜底）",
    )
    anthropic_api_key: str | None = None
    anthropic_base_url: str | None = Field(
        default=None,
        description="Anthropic 代理地址，例如 https://your-proxy.example.com",
    )
    anthropic_model: str = Field(default="claude-sonnet-4-5-20250929")

    openai_api_key: str | None = None
    openai_base_url: str = Field(default="https://api.openai.com/v1")
    openai_text_model: str = Field(default="gpt-4o")

    # ============================================
    # 图像生成服务（Replicate 异步预测接口）
    # ============================================
    replicate_api_token: str | None = None
    replicate_base_url: str = Field(default="https://api.replicate.com/v1")
    image_primary_backend: str = Field(
        default="black-forest-labs/flux-1.1-pro",
        description="降级链的首选后端",
    )
    image_fallback_backends: list[str] = Field(
        default_factory=lambda: ["adirik/flux-cinestill", "minimax/image-01"],
        description="首选后端失败后按顺序尝试的备选后端",
    )
    image_backends_file: str | None = Field(
        default=None,
        description="可选的后端描述 JSON 文件，覆盖或追加内置后端",
    )
    image_width: int = 1024
    image_height: int = 1024
    poll_interval_s: float = Field(default=2.0, description="预测状态轮询间隔（秒）")
    poll_max_attempts: int = Field(default=30, description="最多轮询次数")

    # ============================================
    # 最终兜底：OpenAI 兼容的同步图片接口
    # ============================================
    enable_last_resort: bool = True
    openai_image_model: str = Field(default="dall-e-3")
    openai_image_endpoint: str = Field(default="/images/generations")

    # ============================================
    # Agent 链
    # ============================================
    default_style: str = "magritte"
    critic_refine_threshold: float = Field(
        default=0.6,
        description="评论家评分低于该值时带反馈再精炼一次",
    )
    output_dir: str = "output"

    request_timeout_s: float = 120.0
    max_retries: int = Field(default=3, description="同一后端上的网络重试次数")

    def replicate_headers(self) -> dict[str, str]:
        """Replicate 请求头"""
        headers: dict[str, str] = {"User-Agent": self.app_name, "Content-Type": "application/json"}
        if self.replicate_api_token:
            headers["Authorization"] = f"Bearer {self.replicate_api_token}"
        return headers

    def openai_headers(self) -> dict[str, str]:
        """OpenAI 兼容服务请求头"""
        headers: dict[str, str] = {"User-Agent": self.app_name, "Content-Type": "application/json"}
        if self.openai_api_key:
            headers["Authorization"] = f"Bearer {self.openai_api_key}"
        return headers

    def ladder_order(self) -> list[str]:
        """降级链顺序：首选后端 + 备选后端（去重，保持配置顺序）"""
        order: list[str] = []
        for backend_id in [self.image_primary_backend, *self.image_fallback_backends]:
            if backend_id and backend_id not in order:
                order.append(backend_id)
        return order


@lru_cache
def get_settings() -> Settings:
    return Settings(_env_file=".env", _env_file_encoding="utf-8")


def configure_logging(level: str | int = "INFO") -> None:
    logging.basicConfig(
        level=level if isinstance(level, int) else level.upper(),
        format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
    )
    # httpx 默认会逐条打印请求行
    logging.getLogger("httpx").setLevel(logging.WARNING)
