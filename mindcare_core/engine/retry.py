"""Provider 调用的重试与退避控制。

每次尝试的结果先被归类为一个带标签的结果对象：

- Success(value)：成功，直接返回；
- Retry(error, delay)：可重试错误，等待 delay 秒后继续；
- Repin(error)：首次 NotFound，重新选择模型后立即重试一次；
- Fatal(error)：不可重试，原样抛出。

控制器只根据标签决定下一步，而不是在 except 分支里按异常类型跳转。
"""

import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Generic, Optional, TypeVar, Union

from mindcare_core.domain.exceptions import (
    BusinessError,
    RequestCancelled,
    RetryExhaustedError,
    UpstreamError,
)
from mindcare_core.domain.models import ErrorClassification
from mindcare_core.engine.model_selector import ModelSelector
from mindcare_core.infrastructure.logging.logger import logger

T = TypeVar("T")

DEFAULT_MAX_ATTEMPTS = 3
DEFAULT_BASE_DELAY = 1.0

_FATAL = {ErrorClassification.UNAUTHORIZED, ErrorClassification.BAD_REQUEST}


@dataclass(frozen=True)
class Success(Generic[T]):
    value: T


@dataclass(frozen=True)
class Retry:
    error: BaseException
    delay: float


@dataclass(frozen=True)
class Repin:
    error: UpstreamError


@dataclass(frozen=True)
class Fatal:
    error: BaseException


AttemptOutcome = Union[Success, Retry, Repin, Fatal]


def evaluate_attempt(
    error: BaseException,
    attempt: int,
    base_delay: float,
    *,
    repinned: bool,
    can_repin: bool,
) -> AttemptOutcome:
    """把一次失败的尝试映射为下一步动作。

    Args:
        error: 本次尝试抛出的异常。
        attempt: 从 1 开始的尝试序号，用于计算线性退避间隔。
        base_delay: 退避基础间隔（秒）。
        repinned: 本次调用是否已经做过一次模型重选。
        can_repin: 是否配置了 ModelSelector。
    """

    if not isinstance(error, UpstreamError):
        # 配置缺失、无可用模型等业务错误以及程序错误都不重试
        return Fatal(error)
    if error.classification in _FATAL:
        return Fatal(error)
    if error.classification == ErrorClassification.NOT_FOUND and can_repin and not repinned:
        return Repin(error)
    return Retry(error, base_delay * attempt)


class RetryController:
    """按错误分类执行有界重试。

    operation 接收当前模型 ID 并返回结果；NotFound 时控制器会通过
    ModelSelector 重新选择模型，再把新模型传给下一次尝试。
    """

    def __init__(
        self,
        selector: Optional[ModelSelector] = None,
        sleep: Callable[[float], None] = time.sleep,
        max_attempts: int = DEFAULT_MAX_ATTEMPTS,
        base_delay: float = DEFAULT_BASE_DELAY,
    ):
        self._selector = selector
        self._sleep = sleep
        self.max_attempts = max_attempts
        self.base_delay = base_delay

    def with_retry(
        self,
        operation: Callable[[Optional[str]], T],
        *,
        max_attempts: Optional[int] = None,
        base_delay: Optional[float] = None,
        cancel_event: Optional[threading.Event] = None,
    ) -> T:
        limit = max(1, max_attempts or self.max_attempts)
        delay_base = self.base_delay if base_delay is None else base_delay
        model = self._selector.current_model() if self._selector else None
        repinned = False
        last_error: Optional[BaseException] = None
        attempt = 0

        while attempt < limit:
            if cancel_event is not None and cancel_event.is_set():
                raise RequestCancelled(code="REQUEST_CANCELLED", message="Request cancelled by caller", attempts=attempt)
            attempt += 1
            try:
                outcome: AttemptOutcome = Success(operation(model))
            except Exception as exc:
                outcome = evaluate_attempt(
                    exc,
                    attempt,
                    delay_base,
                    repinned=repinned,
                    can_repin=self._selector is not None,
                )

            if isinstance(outcome, Success):
                if attempt > 1:
                    self._log(logging.INFO, "Provider call recovered", attempt=attempt, model=model)
                return outcome.value

            last_error = outcome.error

            if isinstance(outcome, Fatal):
                level = logging.ERROR if _is_bad_request(outcome.error) else logging.WARNING
                self._log(level, "Provider call failed permanently", attempt=attempt, model=model, **_describe(outcome.error))
                raise outcome.error

            if isinstance(outcome, Repin):
                repinned = True
                self._log(logging.WARNING, "Model not found, re-selecting", attempt=attempt, model=model)
                self._selector.demote(model)
                # 重选失败（NoModelAvailable / Unauthorized）直接向上抛出
                model = self._selector.probe_and_pin()
                # 保证至少用新模型再试一次
                limit = max(limit, attempt + 1)
                continue

            if attempt < limit:
                self._log(
                    logging.WARNING,
                    "Retrying provider call",
                    attempt=attempt,
                    max_attempts=limit,
                    delay_seconds=outcome.delay,
                    model=model,
                    **_describe(outcome.error),
                )
                self._wait(outcome.delay, cancel_event, attempt)

        self._log(logging.ERROR, "Provider retries exhausted", attempts=attempt, model=model, **_describe(last_error))
        raise RetryExhaustedError(attempts=attempt, last_error=last_error)

    def _wait(self, delay: float, cancel_event: Optional[threading.Event], attempt: int) -> None:
        # 退避只挂起当前请求；提供 cancel_event 时可在等待中被唤醒并中止
        if cancel_event is None:
            self._sleep(delay)
            return
        if cancel_event.wait(delay):
            raise RequestCancelled(code="REQUEST_CANCELLED", message="Request cancelled by caller", attempts=attempt)

    @staticmethod
    def _log(level: int, message: str, **fields) -> None:
        logger.log(level, message, extra={"extra": {"component": "retry", **fields}})


def _is_bad_request(error: BaseException) -> bool:
    return isinstance(error, UpstreamError) and error.classification == ErrorClassification.BAD_REQUEST


def _describe(error: Optional[BaseException]) -> dict:
    if isinstance(error, UpstreamError):
        return {"classification": error.classification.value, "error": error.message}
    if isinstance(error, BusinessError):
        return {"code": error.code, "error": error.message}
    return {"error": repr(error)}
