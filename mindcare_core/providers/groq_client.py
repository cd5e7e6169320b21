"""Groq Provider 适配器。

Groq 提供 OpenAI 兼容的 chat/completions 端点：
- URL: {base_url}/chat/completions
- 认证: Authorization: Bearer <api_key>

本模块负责：
1. 接收统一的 ChatRequest，转换为请求 JSON。
2. 调用 HTTP 接口，并把传输层状态码/错误体归类为 ErrorClassification。
3. 将响应 JSON 解析为统一的 ChatResult。
"""

from typing import Any, Dict, Optional, Sequence

import httpx

from mindcare_core.config.settings import settings
from mindcare_core.domain.exceptions import ConfigurationError, upstream_error_for
from mindcare_core.domain.models import (
    ChatChoice,
    ChatMessage,
    ChatRequest,
    ChatResult,
    ChatUsage,
    ConversationTurn,
    ErrorClassification,
)
from mindcare_core.providers.registry import GROQ_CONFIG

# 上游在模型下线时可能返回 400 + 这些错误码，同样视为 NotFound
_MODEL_GONE_CODES = {"model_not_found", "model_decommissioned"}


def classify_response(status_code: int, payload: Optional[Dict[str, Any]] = None) -> ErrorClassification:
    """根据 HTTP 状态码与错误体结构推断错误分类。"""

    error = (payload or {}).get("error") if isinstance(payload, dict) else None
    code = error.get("code") if isinstance(error, dict) else None
    if status_code in (401, 403):
        return ErrorClassification.UNAUTHORIZED
    if status_code == 404 or code in _MODEL_GONE_CODES:
        return ErrorClassification.NOT_FOUND
    if status_code == 429:
        return ErrorClassification.RATE_LIMITED
    if status_code in (400, 422):
        return ErrorClassification.BAD_REQUEST
    if status_code >= 500:
        return ErrorClassification.SERVER_ERROR
    return ErrorClassification.UNKNOWN


class GroqClient:
    """Groq Provider 客户端实现。"""

    name = "groq"

    def __init__(self, cfg=settings):
        # Settings 里包含 base_url、api_key、超时等配置
        self._settings = cfg

    def is_configured(self) -> bool:
        return bool(getattr(self._settings, "groq_api_key", None))

    def chat(self, req: ChatRequest) -> ChatResult:
        """执行一次非流式对话调用。

        步骤：
        1. 校验 API Key。
        2. 构造 HTTP 请求 payload。
        3. 发送请求，超时归为 ServerError，其余网络错误归为 Unknown。
        4. 非 2xx 响应按状态码/错误体分类后抛出。
        5. 使用统一的解析函数构造 ChatResult。
        """

        if not self.is_configured():
            # 配置缺失走 ConfigurationError，致命且不重试
            raise ConfigurationError(code="MISSING_API_KEY", message="GROQ_API_KEY not set", http_status=500)
        payload = self._build_payload(req)
        try:
            with httpx.Client(timeout=self._settings.http_timeout, trust_env=False) as client:
                base = getattr(self._settings, "groq_base_url", None) or GROQ_CONFIG.base_url
                resp = client.post(
                    f"{base}/chat/completions",
                    json=payload,
                    headers={
                        "Authorization": f"Bearer {self._settings.groq_api_key}",
                        "Content-Type": "application/json",
                    },
                )
        except httpx.TimeoutException as e:
            raise upstream_error_for(ErrorClassification.SERVER_ERROR, "Groq request timed out", model=req.model, detail=str(e))
        except httpx.RequestError as e:
            raise upstream_error_for(ErrorClassification.UNKNOWN, "Groq network error", model=req.model, detail=str(e))
        if resp.status_code >= 400:
            body = self._safe_json(resp)
            classification = classify_response(resp.status_code, body)
            raise upstream_error_for(
                classification,
                f"Groq API error ({resp.status_code})",
                model=req.model,
                upstream_status=resp.status_code,
                detail=resp.text,
            )
        data = self._safe_json(resp)
        if data is None:
            raise upstream_error_for(ErrorClassification.UNKNOWN, "Groq returned a non-JSON body", model=req.model)
        return self._parse_response(data, req)

    def complete(
        self,
        system_prompt: str,
        history_turns: Sequence[ConversationTurn],
        user_turn: str,
        *,
        model: str,
        max_tokens: int,
        temperature: float,
        top_p: float,
    ) -> str:
        """按 system + 历史 + 用户输入 的顺序组装请求并返回助手文本。"""

        messages = [ChatMessage(role="system", content=system_prompt)]
        messages.extend(ChatMessage(role=t.role, content=t.content) for t in history_turns)
        messages.append(ChatMessage(role="user", content=user_turn))
        req = ChatRequest(
            model=model,
            messages=messages,
            temperature=temperature,
            top_p=top_p,
            max_tokens=max_tokens,
        )
        return self.chat(req).text

    # ---- 辅助方法 ----

    def _build_payload(self, req: ChatRequest) -> dict:
        payload: Dict[str, Any] = {
            "model": req.model,
            "messages": [{"role": m.role, "content": m.content} for m in req.messages],
            "temperature": req.temperature,
            "top_p": req.top_p,
            "stream": False,
        }
        if req.max_tokens:
            payload["max_tokens"] = req.max_tokens
        return payload

    def _parse_response(self, data: dict, req: ChatRequest) -> ChatResult:
        raw_choices = data.get("choices") or []
        if not raw_choices or not isinstance(raw_choices[0], dict) or not raw_choices[0].get("message"):
            raise upstream_error_for(
                ErrorClassification.UNKNOWN,
                "Unexpected response format from Groq API",
                model=req.model,
            )
        choices: list[ChatChoice] = []
        for i, ch in enumerate(raw_choices):
            msg = ch.get("message") if isinstance(ch, dict) else None
            content = msg.get("content") if isinstance(msg, dict) else None
            if content is not None and not isinstance(content, str):
                raise upstream_error_for(
                    ErrorClassification.UNKNOWN,
                    "Unexpected message content from Groq API",
                    model=req.model,
                    choice=i,
                )
            cm = ChatMessage(role=(msg or {}).get("role") or "assistant", content=content or "")
            choices.append(ChatChoice(index=i, message=cm, finish_reason=ch.get("finish_reason") if isinstance(ch, dict) else None))
        usage_raw = data.get("usage") or {}
        if not isinstance(usage_raw, dict):
            raise upstream_error_for(ErrorClassification.UNKNOWN, "Unexpected usage format from Groq API", model=req.model)
        usage = ChatUsage(
            prompt_tokens=usage_raw.get("prompt_tokens", 0),
            completion_tokens=usage_raw.get("completion_tokens", 0),
            total_tokens=usage_raw.get("total_tokens", 0),
        )
        return ChatResult(
            provider=self.name,
            model=data.get("model") or req.model,
            choices=choices,
            usage=usage,
            raw=data,
        )

    @staticmethod
    def _safe_json(resp) -> Optional[dict]:
        try:
            data = resp.json()
        except ValueError:
            return None
        return data if isinstance(data, dict) else None
