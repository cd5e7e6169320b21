"""统一的对话与结果数据模型。

本模块定义了编排引擎内部共享的标准数据结构：

- ConversationTurn: 调用方传入的一轮历史对话（不可变）。
- ChatMessage / ChatRequest / ChatResult: 与上游 chat-completions 交互的统一模型。
- ErrorClassification: 上游错误分类，驱动重试与模型回退策略。
- ValidationResult / CrisisAssessment: 每次请求产生的安全检查结果。

所有 Provider 适配器都只依赖这些模型，并负责在各自的 API JSON
和这些模型之间做转换。
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, FrozenSet, List, Literal, Mapping, Optional, Tuple


# 对话角色（与 OpenAI 兼容接口的 role 字段对应）
Role = Literal["system", "user", "assistant"]

_ROLES = ("system", "user", "assistant")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class ConversationTurn:
    """一轮对话。创建后不可修改，由调用方负责持久化。"""

    role: Role
    content: str
    timestamp: datetime = field(default_factory=_utcnow)

    def __post_init__(self) -> None:
        if self.role not in _ROLES:
            raise ValueError(f"Unknown role: {self.role!r}")

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "ConversationTurn":
        """从 {"role", "content"[, "timestamp"]} 结构构造。"""

        ts = data.get("timestamp")
        if isinstance(ts, str):
            ts = datetime.fromisoformat(ts)
        return cls(
            role=data.get("role", "user"),
            content=str(data.get("content") or ""),
            timestamp=ts or _utcnow(),
        )


@dataclass
class ChatMessage:
    """一条发往/来自上游的消息。

    - role: 消息角色，如 system/user/assistant。
    - content: 纯文本内容。
    - meta: 附加元数据，不直接发给 Provider，主要用于日志。
    """

    role: Role
    content: str
    meta: Dict[str, Any] = field(default_factory=dict)


@dataclass
class ChatRequest:
    """一次完整的 chat-completion 请求。

    model 为上游真实的模型 ID（由 ModelSelector 决定），
    采样参数来自 registry 中的生成配置。
    """

    model: str
    messages: List[ChatMessage]
    temperature: float = 0.7
    top_p: float = 0.9
    max_tokens: Optional[int] = None


@dataclass
class ChatUsage:
    """Provider 返回的 token 统计信息（统一格式）。"""

    prompt_tokens: int
    completion_tokens: int
    total_tokens: int


@dataclass
class ChatChoice:
    """单个候选回答（目前只使用 index=0 的一条）。"""

    index: int
    message: ChatMessage
    finish_reason: Optional[str] = None


@dataclass
class ChatResult:
    """一次对话调用的最终结果。

    - provider: Provider 名（如 "groq"）。
    - model: 实际应答的模型 ID。
    - choices: 一个或多个候选回答。
    - usage: 可选的 token 使用统计。
    - raw: 原始响应 JSON，用于调试或日志记录。
    """

    provider: str
    model: str
    choices: List[ChatChoice]
    usage: Optional[ChatUsage] = None
    raw: Optional[dict] = None

    @property
    def text(self) -> str:
        if not self.choices:
            return ""
        return (self.choices[0].message.content or "").strip()


class ErrorClassification(str, Enum):
    """上游错误分类，永远不直接展示给终端用户。"""

    UNAUTHORIZED = "unauthorized"
    NOT_FOUND = "not_found"
    RATE_LIMITED = "rate_limited"
    BAD_REQUEST = "bad_request"
    SERVER_ERROR = "server_error"
    UNKNOWN = "unknown"


class IssueKind(str, Enum):
    HARMFUL_LANGUAGE = "harmful_language"
    MEDICAL_ADVICE = "medical_advice"
    LACKS_SUPPORTIVE_LANGUAGE = "lacks_supportive_language"
    TOO_LONG = "too_long"
    EMPTY_RESPONSE = "empty_response"


@dataclass(frozen=True)
class ValidationResult:
    """单条助手回复的校验结果（建议性，不阻断投递）。"""

    is_valid: bool
    issues: FrozenSet[IssueKind]
    has_supportive_language: bool
    length: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "is_valid": self.is_valid,
            "issues": sorted(issue.value for issue in self.issues),
            "has_supportive_language": self.has_supportive_language,
            "length": self.length,
        }


class CrisisSeverity(str, Enum):
    NONE = "none"
    MODERATE = "moderate"
    HIGH = "high"

    @property
    def rank(self) -> int:
        return {"none": 0, "moderate": 1, "high": 2}[self.value]


@dataclass(frozen=True)
class CrisisAssessment:
    """对单条用户输入的危机评估，按请求计算，不做存储。"""

    triggered: bool
    matched_severity: CrisisSeverity = CrisisSeverity.NONE
    matched_patterns: Tuple[str, ...] = ()


@dataclass(frozen=True)
class CrisisResource:
    """静态配置的危机求助资源，不在运行时从网络获取。"""

    name: str
    contact_method: str
    availability: str
