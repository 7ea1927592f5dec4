"""应用异常体系。

所有异常都继承 `ArtBotError`，携带 code / message / details / status_code，
由 `artbot.main` 的全局异常处理器统一转换为 JSON 错误结构。
"""
from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from artbot.schemas.generation import LadderAttempt


class ArtBotError(Exception):
    code: str = "ARTBOT_ERROR"
    status_code: int = 500

    def __init__(self, message: str, *, details: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.details = details or {}


class GenerationValidationError(ArtBotError):
    """请求参数不合法（例如尺寸不是数字），在任何网络调用之前失败，不重试"""

    code = "VALIDATION_ERROR"
    status_code = 422


class BackendRejectedError(ArtBotError):
    """图像后端明确拒绝了任务（不支持的输入、4xx）"""

    code = "BACKEND_REJECTED"
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        backend_id: str | None = None,
        http_status: int | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details=details)
        self.backend_id = backend_id
        self.http_status = http_status


class NetworkFailureError(ArtBotError):
    """传输层失败（超时、DNS、连接重置、可重试状态码），已在同一后端重试过"""

    code = "NETWORK_FAILURE"
    status_code = 502


class BackendFailureError(ArtBotError):
    """后端报告任务 failed / canceled，或输出无法解析"""

    code = "BACKEND_FAILURE"
    status_code = 502

    def __init__(
        self,
        message: str,
        *,
        prediction_id: str | None = None,
        reason: str | None = None,
        details: dict[str, Any] | None = None,
    ):
        super().__init__(message, details=details)
        self.prediction_id = prediction_id
        self.reason = reason


class PollTimeoutError(ArtBotError):
    """轮询次数（或截止时间）耗尽，任务仍未进入终态"""

    code = "POLL_TIMEOUT"
    status_code = 504

    def __init__(self, message: str, *, prediction_id: str, attempts: int):
        super().__init__(message, details={"prediction_id": prediction_id, "attempts": attempts})
        self.prediction_id = prediction_id
        self.attempts = attempts


class PollCancelledError(ArtBotError):
    code = "POLL_CANCELLED"
    status_code = 499


class ExhaustedFailureError(ArtBotError):
    """降级链上的所有后端都失败了"""

    code = "GENERATION_EXHAUSTED"
    status_code = 502

    def __init__(self, message: str, *, attempts: list[LadderAttempt]):
        super().__init__(
            message,
            details={"attempts": [attempt.model_dump() for attempt in attempts]},
        )
        self.attempts = attempts


class TextStepError(ArtBotError):
    """Agent 链中某个声明为 PROPAGATE 的步骤失败"""

    code = "TEXT_STEP_FAILED"
    status_code = 502

    def __init__(self, message: str, *, step: str):
        super().__init__(message, details={"step": step})
        self.step = step


class LLMUnavailableError(ArtBotError):
    code = "LLM_UNAVAILABLE"
    status_code = 503
