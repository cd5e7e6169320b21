"""统一业务异常模型。

所有跨模块抛出的业务级错误都继承自 BusinessError，
便于在 API 层统一捕获，并映射为对用户安全的提示文本。
上游原始错误信息只放在 extra 中用于日志，不会透传给终端用户。
"""

from typing import Optional, Type

from mindcare_core.domain.models import ErrorClassification


class BusinessError(Exception):
    """业务异常基类。

    Attributes:
        code: 机器可读错误码（如 "MISSING_API_KEY"）。
        message: 可读错误信息。
        http_status: 映射到 HTTP 时可用的状态码，默认 400。
        extra: 其他补充字段（例如 model、upstream_status 等）。
    """

    def __init__(self, code: str, message: str, http_status: int = 400, **extra):
        self.code = code
        self.message = message
        self.http_status = http_status
        self.extra = extra
        super().__init__(message)


class ConfigurationError(BusinessError):
    """配置缺失（如 API Key 未设置），致命错误，不重试。"""


class InvalidInputError(BusinessError):
    """调用方传入的参数无效。"""


class UpstreamError(BusinessError):
    """上游 Provider 调用失败，classification 决定重试策略。"""

    classification: ErrorClassification = ErrorClassification.UNKNOWN


class UpstreamUnauthorized(UpstreamError):
    classification = ErrorClassification.UNAUTHORIZED


class UpstreamBadRequest(UpstreamError):
    """请求构造错误，通常意味着代码缺陷，需要重点记录。"""

    classification = ErrorClassification.BAD_REQUEST


class UpstreamNotFound(UpstreamError):
    """模型不存在或已下线。"""

    classification = ErrorClassification.NOT_FOUND


class UpstreamRateLimited(UpstreamError):
    classification = ErrorClassification.RATE_LIMITED


class UpstreamServerError(UpstreamError):
    """上游 5xx 或调用超时。"""

    classification = ErrorClassification.SERVER_ERROR


class UpstreamUnknown(UpstreamError):
    classification = ErrorClassification.UNKNOWN


class NoModelAvailable(BusinessError):
    """候选模型全部探测失败。"""


class RetryExhaustedError(BusinessError):
    """重试次数耗尽，携带尝试次数与最后一次底层错误。"""

    def __init__(self, attempts: int, last_error: Optional[BaseException]):
        self.attempts = attempts
        self.last_error = last_error
        super().__init__(
            code="RETRY_EXHAUSTED",
            message=f"Provider call failed after {attempts} attempts: {last_error}",
            http_status=503,
            attempts=attempts,
        )


class RequestCancelled(BusinessError):
    """调用方放弃请求，在两次尝试之间中止。"""


class ValidationAdvisory(UserWarning):
    """回复校验未通过的提示，仅用于观测，永远不作为失败抛出。"""


_UPSTREAM_ERRORS: dict[ErrorClassification, Type[UpstreamError]] = {
    ErrorClassification.UNAUTHORIZED: UpstreamUnauthorized,
    ErrorClassification.BAD_REQUEST: UpstreamBadRequest,
    ErrorClassification.NOT_FOUND: UpstreamNotFound,
    ErrorClassification.RATE_LIMITED: UpstreamRateLimited,
    ErrorClassification.SERVER_ERROR: UpstreamServerError,
    ErrorClassification.UNKNOWN: UpstreamUnknown,
}


def upstream_error_for(
    classification: ErrorClassification,
    message: str,
    http_status: int = 502,
    **extra,
) -> UpstreamError:
    """根据分类构造对应的上游异常实例。"""

    cls = _UPSTREAM_ERRORS[classification]
    return cls(code=f"UPSTREAM_{classification.name}", message=message, http_status=http_status, **extra)
