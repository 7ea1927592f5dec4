from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from artbot.exceptions import BackendFailureError, PollCancelledError, PollTimeoutError
from artbot.schemas.generation import Prediction, PredictionStatus

logger = logging.getLogger(__name__)

StatusFetcher = Callable[[str], Awaitable[dict[str, Any]]]
Sleeper = Callable[[float], Awaitable[Any]]

# Replicate 任务状态
STATUS_SUCCEEDED = "succeeded"
STATUS_FAILED = "failed"
STATUS_CANCELED = "canceled"
FAILED_STATUSES = {STATUS_FAILED, STATUS_CANCELED, "cancelled"}


class PredictionPoller:
    """轮询异步预测任务直到终态

    - succeeded：返回状态接口的完整响应
    - failed / canceled：抛出 BackendFailureError（携带后端给出的原因）
    - 其他状态：等待 interval 后继续
    - 达到 max_attempts 仍未终态：抛出 PollTimeoutError
    """

    def __init__(
        self,
        fetch_status: StatusFetcher,
        *,
        interval: float = 2.0,
        max_attempts: int = 30,
        sleep: Sleeper = asyncio.sleep,
    ):
        if max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        self.fetch_status = fetch_status
        self.interval = interval
        self.max_attempts = max_attempts
        self._sleep = sleep

    async def _wait(self, delay: float, cancel_event: asyncio.Event | None, prediction_id: str) -> None:
        """等待 delay 秒；期间 cancel_event 置位则立即抛出 PollCancelledError"""
        if cancel_event is None:
            await self._sleep(delay)
            return
        sleeper = asyncio.ensure_future(self._sleep(delay))
        waiter = asyncio.ensure_future(cancel_event.wait())
        try:
            await asyncio.wait({sleeper, waiter}, return_when=asyncio.FIRST_COMPLETED)
        finally:
            for task in (sleeper, waiter):
                if not task.done():
                    task.cancel()
        if cancel_event.is_set():
            raise PollCancelledError(f"Polling of prediction {prediction_id} cancelled")
        sleeper.result()

    async def poll(
        self,
        prediction_id: str,
        *,
        cancel_event: asyncio.Event | None = None,
        deadline: float | None = None,
        prediction: Prediction | None = None,
    ) -> dict[str, Any]:
        """阻塞等待任务结束

        Args:
            prediction_id: 后端返回的任务 ID
            cancel_event: 置位后立即停止轮询并抛出 PollCancelledError
            deadline: 事件循环时间（loop.time()）上的截止时间，超过后抛出 PollTimeoutError
            prediction: 可选的 Prediction 对象，终态时由轮询器写入结果
        """
        loop = asyncio.get_running_loop()

        for attempt in range(1, self.max_attempts + 1):
            if cancel_event is not None and cancel_event.is_set():
                raise PollCancelledError(f"Polling of prediction {prediction_id} cancelled")
            if deadline is not None and loop.time() >= deadline:
                raise PollTimeoutError(
                    f"Prediction {prediction_id} passed its deadline after {attempt - 1} attempts",
                    prediction_id=prediction_id,
                    attempts=attempt - 1,
                )

            data = await self.fetch_status(prediction_id)
            status = str(data.get("status") or "").lower()
            logger.debug("Prediction %s status=%s (%d/%d)", prediction_id, status, attempt, self.max_attempts)

            if status == STATUS_SUCCEEDED:
                if prediction is not None:
                    output = data.get("output")
                    prediction.resolve(
                        PredictionStatus.SUCCEEDED,
                        output=output if isinstance(output, list) else [output] if output else None,
                    )
                return data

            if status in FAILED_STATUSES:
                reason = str(data.get("error") or "Unknown error")
                if prediction is not None:
                    prediction.resolve(PredictionStatus.FAILED, error=reason)
                raise BackendFailureError(
                    f"Prediction {prediction_id} {status}: {reason}",
                    prediction_id=prediction_id,
                    reason=reason,
                )

            if attempt < self.max_attempts:
                delay = self.interval
                if deadline is not None:
                    # 不让最后一次等待越过截止时间
                    delay = max(0.0, min(delay, deadline - loop.time()))
                await self._wait(delay, cancel_event, prediction_id)

        raise PollTimeoutError(
            f"Prediction {prediction_id} timed out after {self.max_attempts} attempts",
            prediction_id=prediction_id,
            attempts=self.max_attempts,
        )
