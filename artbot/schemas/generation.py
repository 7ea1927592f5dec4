from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from artbot.exceptions import GenerationValidationError


class GenerationRequest(BaseModel):
    """通用图像生成请求（与具体后端无关）"""

    model_config = ConfigDict(frozen=True, extra="forbid")

    prompt: str = Field(min_length=1)
    negative_prompt: str | None = None
    width: int = Field(gt=0)
    height: int = Field(gt=0)
    steps: int | None = Field(default=None, gt=0)
    guidance_scale: float | None = Field(default=None, ge=0)
    extra_params: dict[str, Any] = Field(default_factory=dict)

    @classmethod
    def build(cls, **kwargs: Any) -> "GenerationRequest":
        """从不可信输入构造请求，校验失败统一抛出 GenerationValidationError"""
        try:
            return cls(**kwargs)
        except ValidationError as exc:
            fields = [".".join(str(p) for p in err["loc"]) for err in exc.errors()]
            raise GenerationValidationError(
                f"Invalid generation request: {', '.join(fields) or 'unknown field'}",
                details={"errors": exc.errors(include_url=False, include_context=False)},
            ) from exc


class PredictionStatus(str, Enum):
    PENDING = "pending"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(slots=True)
class Prediction:
    id: str
    backend_id: str
    request: GenerationRequest
    status: PredictionStatus = PredictionStatus.PENDING
    output: list[str] | None = None
    error: str | None = None

    @property
    def is_terminal(self) -> bool:
        return self.status is not PredictionStatus.PENDING

    def resolve(
        self,
        status: PredictionStatus,
        *,
        output: list[str] | None = None,
        error: str | None = None,
    ) -> None:
        """进入终态；终态之后不可再修改"""
        if self.is_terminal:
            raise RuntimeError(f"Prediction {self.id} already {self.status.value}")
        if status is PredictionStatus.PENDING:
            raise ValueError("resolve() requires a terminal status")
        self.status = status
        self.output = output
        self.error = error


class LadderAttempt(BaseModel):
    backend_id: str
    succeeded: bool
    error: str | None = None
    error_kind: str | None = None


class GenerationOutcome(BaseModel):
    image_url: str
    backend_id: str
    attempts: list[LadderAttempt] = Field(default_factory=list)


class ChainResult(BaseModel):
    """Agent 链的最终产物（成功或失败二选一，不存在部分成功）"""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    success: bool
    image_url: str | None = None
    prompt: str | None = None
    negative_prompt: str | None = None
    style: str | None = None
    character: dict[str, Any] | None = None
    evaluation: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None
    error: str | None = None
    failed_step: str | None = None
    backend_id: str | None = None
    messages: list[str] = Field(default_factory=list)
    attempts: list[LadderAttempt] = Field(default_factory=list)
    files: dict[str, str] | None = None


class GenerateArtRequest(BaseModel):
    concept: str = Field(min_length=1)
    style: str | None = None
    series: str | None = None
    category: str | None = None
    force: dict[str, str] = Field(default_factory=dict, description="强制指定的角色属性，如 accessory")
    name: str | None = Field(default=None, description="输出文件名前缀")
    write_files: bool = False


class BackendRead(BaseModel):
    id: str
    name: str
    min_dim: int
    max_dim: int
    default_width: int
    default_height: int
    supported_params: list[str]
    trigger_keywords: list[str]
    leading_trigger: str | None
    output_shape: str
