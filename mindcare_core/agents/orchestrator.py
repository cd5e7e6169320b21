"""对话编排引擎。

把一条用户输入变成经过安全检查的助手回复：
先做危机识别，命中则走危机路径（失败时回落到硬编码求助文本），
否则走带重试与模型回退的普通生成路径，最后对回复做建议性校验。

引擎本身不保存任何跨请求状态，历史对话由调用方提供；
唯一的共享可变状态是 ModelSelector 中固定的当前模型。
"""

import logging
import re
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Sequence, Tuple, Union
from uuid import uuid4

from mindcare_core.config.settings import settings
from mindcare_core.domain.exceptions import BusinessError, InvalidInputError, upstream_error_for
from mindcare_core.domain.models import (
    ChatMessage,
    ChatRequest,
    ConversationTurn,
    CrisisAssessment,
    CrisisResource,
    ErrorClassification,
    ValidationResult,
)
from mindcare_core.engine.model_selector import ModelSelector
from mindcare_core.engine.retry import RetryController
from mindcare_core.flows.graph import build_graph
from mindcare_core.flows.state import OrchestrationState
from mindcare_core.infrastructure.logging.logger import logger, preview
from mindcare_core.prompts import load_system_prompt
from mindcare_core.providers.base import ProviderClient
from mindcare_core.providers.registry import CRISIS, SUPPORT_CHAT, get_profile
from mindcare_core.safety.crisis import CrisisDetector
from mindcare_core.safety.patterns import load_safety_patterns
from mindcare_core.safety.resources import (
    CRISIS_RESOURCES,
    CRISIS_RESOURCES_VERSION,
    build_crisis_prompt,
    crisis_fallback_message,
    format_resources,
)
from mindcare_core.safety.validator import ResponseValidator


HistoryItem = Union[ConversationTurn, Mapping[str, Any]]

FEATURES = (
    "mental-health-support",
    "crisis-detection",
    "conversation-context",
    "safety-prioritized",
)


@dataclass
class OrchestratorReply:
    """一次 respond 调用的结果。

    - text: 返回给用户的文本（失败时是通用提示，绝不包含上游原始错误）。
    - crisis_triggered: 本轮是否走了危机路径。
    - validation: 校验结果；失败路径下为 None。
    - state: "done" 或 "failed"。
    - replaced: 开启强制校验且回复被替换时为 True。
    """

    text: str
    crisis_triggered: bool
    validation: Optional[ValidationResult]
    state: str
    model: Optional[str] = None
    crisis_assessment: Optional[CrisisAssessment] = None
    replaced: bool = False

    def to_dict(self) -> Dict[str, Any]:
        return {
            "text": self.text,
            "crisis_triggered": self.crisis_triggered,
            "validation": self.validation.to_dict() if self.validation else None,
            "state": self.state,
            "model": self.model,
            "replaced": self.replaced,
        }


class ConversationOrchestrator:
    def __init__(
        self,
        provider_client: ProviderClient,
        selector: Optional[ModelSelector] = None,
        detector: Optional[CrisisDetector] = None,
        validator: Optional[ResponseValidator] = None,
        resources: Sequence[CrisisResource] = CRISIS_RESOURCES,
        sleep: Callable[[float], None] = time.sleep,
        cfg=settings,
    ):
        self._client = provider_client
        self._settings = cfg
        self.selector = selector or ModelSelector(provider_client)
        if detector is None or validator is None:
            patterns = load_safety_patterns(getattr(cfg, "safety_patterns_file", None))
            detector = detector or CrisisDetector(patterns)
            validator = validator or ResponseValidator(patterns)
        self.detector = detector
        self.validator = validator
        self._resources = tuple(resources)
        self._retry = RetryController(
            selector=self.selector,
            sleep=sleep,
            max_attempts=cfg.max_retries,
            base_delay=cfg.retry_base_delay,
        )
        self._graph = build_graph(self)

    # ---- 配置快捷访问 ----

    @property
    def max_message_chars(self) -> int:
        return self._settings.max_message_chars

    @property
    def enforce_validation(self) -> bool:
        return bool(self._settings.enforce_validation)

    # ---- 对外入口 ----

    def respond(
        self,
        user_text: str,
        history: Iterable[HistoryItem] = (),
        cancel_event: Optional[threading.Event] = None,
    ) -> OrchestratorReply:
        """处理一轮用户输入。

        Args:
            user_text: 本轮用户输入。
            history: 之前的对话（旧 -> 新），由调用方保存。
            cancel_event: 调用方断开时置位，重试会在两次尝试之间中止。

        Raises:
            InvalidInputError: user_text 为空或不是字符串。
        """

        if not isinstance(user_text, str) or not user_text.strip():
            raise InvalidInputError(code="INVALID_MESSAGE", message="Invalid message provided")

        start_time = time.time()
        state: OrchestrationState = {
            "trace_id": f"tr-{uuid4().hex}",
            "user_text": user_text.strip(),
            "history": _coerce_history(history),
            "cancel_event": cancel_event,
            "phase": "idle",
            "assessment": None,
            "response": None,
            "model": None,
            "used_fallback": False,
            "failure_message": None,
            "error_code": None,
            "validation": None,
            "replaced": False,
        }
        self._log(
            logging.INFO,
            "Orchestration started",
            state,
            history_turns=len(state["history"]),
            user_preview=preview(state["user_text"]),
        )
        result = self._graph.invoke(state)

        assessment = result.get("assessment")
        reply = OrchestratorReply(
            text=result.get("response") or "",
            crisis_triggered=bool(assessment and assessment.triggered),
            validation=result.get("validation"),
            state="failed" if result.get("phase") == "failed" else "done",
            model=result.get("model"),
            crisis_assessment=assessment,
            replaced=bool(result.get("replaced")),
        )
        self._log(
            logging.INFO,
            "Orchestration finished",
            result,
            state=reply.state,
            crisis=reply.crisis_triggered,
            model=reply.model,
            elapsed_seconds=round(time.time() - start_time, 2),
        )
        return reply

    def build_messages(self, user_text: str, history: Iterable[HistoryItem]) -> List[ChatMessage]:
        """system 提示 + 最近 N 轮历史 + 本轮用户输入。

        调用方历史中的 system 消息会被丢弃，保证请求里有且只有一条 system 消息。
        """

        turns = [t for t in _coerce_history(history) if t.role != "system"]
        limit = self._settings.max_history_turns
        if len(turns) > limit:
            turns = turns[-limit:]
        messages = [ChatMessage(role="system", content=load_system_prompt("support"))]
        messages.extend(ChatMessage(role=t.role, content=t.content) for t in turns)
        messages.append(ChatMessage(role="user", content=user_text))
        return messages

    def generate(
        self,
        user_text: str,
        history: Iterable[HistoryItem],
        cancel_event: Optional[threading.Event] = None,
        trace_id: Optional[str] = None,
    ) -> Tuple[str, str]:
        """普通生成路径：带重试与模型回退，返回 (回复文本, 模型 ID)。"""

        profile = get_profile(SUPPORT_CHAT)
        messages = self.build_messages(user_text, history)
        log_ctx = {"trace_id": trace_id}

        def call(model: Optional[str]) -> Tuple[str, str]:
            req = ChatRequest(
                model=model or self.selector.current_model(),
                messages=messages,
                temperature=profile.default_temperature,
                top_p=profile.top_p,
                max_tokens=profile.max_tokens,
            )
            self._log(
                logging.INFO,
                "Calling provider",
                log_ctx,
                provider=getattr(self._client, "name", "unknown"),
                model=req.model,
                message_count=len(messages),
            )
            result = self._client.chat(req)
            text = result.text
            if not text:
                raise upstream_error_for(ErrorClassification.UNKNOWN, "Empty response from provider", model=req.model)
            if result.usage:
                self._log(
                    logging.INFO,
                    "Token usage",
                    log_ctx,
                    model=req.model,
                    prompt_tokens=result.usage.prompt_tokens,
                    completion_tokens=result.usage.completion_tokens,
                    total_tokens=result.usage.total_tokens,
                )
            return text, req.model

        return self._retry.with_retry(call, cancel_event=cancel_event)

    def crisis_response(
        self,
        user_text: str,
        cancel_event: Optional[threading.Event] = None,
    ) -> Tuple[str, Optional[str], bool]:
        """危机路径：短提示、低温度、更小的重试预算。

        任何失败都回落到硬编码文本，返回 (文本, 模型 ID 或 None, 是否使用兜底)。
        """

        profile = get_profile(CRISIS)
        messages = [
            ChatMessage(role="system", content=build_crisis_prompt(user_text, self._resources)),
            ChatMessage(role="user", content=user_text),
        ]

        def call(model: Optional[str]) -> Tuple[str, str]:
            req = ChatRequest(
                model=model or self.selector.current_model(),
                messages=messages,
                temperature=profile.default_temperature,
                top_p=profile.top_p,
                max_tokens=profile.max_tokens,
            )
            text = self._client.chat(req).text
            if not text:
                raise upstream_error_for(ErrorClassification.UNKNOWN, "Failed to generate crisis response", model=req.model)
            return text, req.model

        try:
            text, model = self._retry.with_retry(
                call,
                max_attempts=self._settings.crisis_max_retries,
                cancel_event=cancel_event,
            )
        except Exception:
            # 危机轮次绝不向用户返回错误
            logger.exception("Crisis path fallback", extra={"extra": {"component": "orchestrator"}})
            return self.crisis_fallback(), None, True
        return self._ensure_resources(text), model, False

    def crisis_fallback(self) -> str:
        return crisis_fallback_message(self._resources)

    # ---- 状态与连通性 ----

    def is_available(self) -> bool:
        is_configured = getattr(self._client, "is_configured", None)
        return bool(is_configured()) if callable(is_configured) else True

    def service_status(self) -> Dict[str, Any]:
        profile = get_profile(SUPPORT_CHAT)
        return {
            "available": self.is_available(),
            "provider": getattr(self._client, "name", "unknown"),
            "model": self.selector.current_model(),
            "candidates": [c.identifier for c in self.selector.candidates],
            "max_tokens": profile.max_tokens,
            "temperature": profile.default_temperature,
            "enforce_validation": self.enforce_validation,
            "safety_patterns_version": self.detector.version,
            "crisis_resources_version": CRISIS_RESOURCES_VERSION,
            "features": list(FEATURES),
        }

    def test_connection(self) -> Dict[str, Any]:
        """探测可用模型并发送一条测试消息，不抛出异常。"""

        candidates = [c.identifier for c in self.selector.candidates]
        if not self.is_available():
            return {"success": False, "error": "Provider not configured - API key missing"}
        try:
            self.selector.probe_and_pin()
        except BusinessError as exc:
            logger.warning(
                "Could not find optimal model, using default",
                extra={"extra": {"code": exc.code, "error": exc.message}},
            )
        try:
            text, model = self.generate("Hello, this is a test message.", ())
        except BusinessError as exc:
            return {
                "success": False,
                "error": exc.message,
                "model": self.selector.current_model(),
                "tried_models": candidates,
            }
        return {
            "success": True,
            "message": "Provider connection successful",
            "test_response": text[:100] + ("..." if len(text) > 100 else ""),
            "model": model,
            "available_models": candidates,
        }

    # ---- 内部方法 ----

    def _ensure_resources(self, text: str) -> str:
        """模型生成的危机回复缺少任一求助号码时，补上完整资源列表。"""

        for resource in self._resources:
            numbers = re.findall(r"\d+", resource.contact_method)
            if any(n not in text for n in numbers):
                return f"{text}\n\n{format_resources(self._resources)}"
        return text

    @staticmethod
    def _log(level: int, message: str, ctx: Mapping[str, Any], **fields: Any) -> None:
        payload: Dict[str, Any] = {"trace_id": ctx.get("trace_id"), "component": "orchestrator"}
        payload.update(fields)
        logger.log(level, message, extra={"extra": payload})


def _coerce_history(history: Optional[Iterable[HistoryItem]]) -> List[ConversationTurn]:
    turns: List[ConversationTurn] = []
    for item in history or ():
        if isinstance(item, ConversationTurn):
            turns.append(item)
        elif isinstance(item, Mapping):
            try:
                turns.append(ConversationTurn.from_dict(item))
            except (ValueError, TypeError) as e:
                # 未知角色、无法解析的时间戳等
                raise InvalidInputError(code="INVALID_HISTORY", message=f"Invalid history item: {e}")
        else:
            raise InvalidInputError(code="INVALID_HISTORY", message=f"Unsupported history item: {type(item).__name__}")
    return turns
