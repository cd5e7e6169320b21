"""候选模型选择与固定（pinning）。

ModelSelector 持有进程内唯一的“当前模型”状态，其他组件只能通过
current_model() / probe_and_pin() / demote() 访问。写操作在锁内完成；
读取只取一个不可变字符串引用，不需要加锁。

并发请求可能同时触发重新探测，这里不对探测过程本身加互斥：
探测请求是幂等且无副作用的，重复探测只是多花一点额度。
"""

import logging
import threading
from typing import Iterable, List, Optional, Sequence

from mindcare_core.domain.exceptions import NoModelAvailable, UpstreamError
from mindcare_core.domain.models import ChatMessage, ChatRequest, ErrorClassification
from mindcare_core.infrastructure.logging.logger import logger
from mindcare_core.providers.base import ProviderClient
from mindcare_core.providers.registry import PROBE, ModelCandidate, candidates_from_settings, get_profile, ranked


class ModelSelector:
    def __init__(self, client: ProviderClient, candidates: Optional[Sequence[ModelCandidate]] = None):
        self._client = client
        self._candidates: List[ModelCandidate] = ranked(candidates if candidates is not None else candidates_from_settings())
        if not self._candidates:
            raise ValueError("ModelSelector requires at least one candidate")
        self._lock = threading.Lock()
        self._pinned: Optional[str] = None
        self._retired: frozenset[str] = frozenset()

    @property
    def candidates(self) -> List[ModelCandidate]:
        return list(self._candidates)

    def current_model(self) -> str:
        """返回已固定的模型；尚未固定时返回优先级最高的可用候选。"""

        pinned = self._pinned
        if pinned:
            return pinned
        retired = self._retired
        for cand in self._candidates:
            if cand.identifier not in retired:
                return cand.identifier
        return self._candidates[0].identifier

    def probe_and_pin(self, candidates: Optional[Iterable[ModelCandidate]] = None) -> str:
        """按 rank 顺序探测候选模型，固定第一个正常应答的模型。

        - NotFound：模型已下线，标记退役后跳过；
        - Unauthorized：凭证问题而非模型问题，立即中止并抛出；
        - 其他错误：记录告警后继续尝试下一个；
        - 全部失败：抛出 NoModelAvailable。
        """

        pool = ranked(list(candidates) if candidates is not None else self._candidates)
        retired = self._retired
        if all(cand.identifier in retired for cand in pool):
            # 全部已退役时重新给每个候选一次机会
            retired = frozenset()
        tried: List[str] = []
        for cand in pool:
            if cand.identifier in retired or cand.identifier in tried:
                continue
            tried.append(cand.identifier)
            self._log(logging.INFO, "Probing model", model=cand.identifier, rank=cand.rank)
            try:
                result = self._client.chat(self._probe_request(cand.identifier))
            except UpstreamError as exc:
                if exc.classification == ErrorClassification.UNAUTHORIZED:
                    self._log(logging.ERROR, "Probe rejected credentials", model=cand.identifier)
                    raise
                if exc.classification == ErrorClassification.NOT_FOUND:
                    self._log(logging.INFO, "Model not available", model=cand.identifier)
                    self._retire(cand.identifier)
                    continue
                self._log(
                    logging.WARNING,
                    "Model probe failed",
                    model=cand.identifier,
                    classification=exc.classification.value,
                    error=exc.message,
                )
                continue
            if result.choices:
                self._pin(cand.identifier)
                return cand.identifier
            self._log(logging.WARNING, "Model probe returned no choices", model=cand.identifier)

        raise NoModelAvailable(
            code="NO_MODEL_AVAILABLE",
            message="No available models found on provider",
            http_status=503,
            tried=tried,
        )

    def demote(self, identifier: str) -> None:
        """生成调用报告 NotFound 时调用：退役该模型，若已固定则取消固定。"""

        with self._lock:
            self._retired = self._retired | {identifier}
            if self._pinned == identifier:
                self._pinned = None
        self._log(logging.WARNING, "Model demoted", model=identifier)

    def reset(self) -> None:
        with self._lock:
            self._retired = frozenset()
            self._pinned = None

    # ---- 内部方法 ----

    def _pin(self, identifier: str) -> None:
        with self._lock:
            self._pinned = identifier
        self._log(logging.INFO, "Model pinned", model=identifier)

    def _retire(self, identifier: str) -> None:
        with self._lock:
            self._retired = self._retired | {identifier}

    @staticmethod
    def _probe_request(identifier: str) -> ChatRequest:
        profile = get_profile(PROBE)
        return ChatRequest(
            model=identifier,
            messages=[ChatMessage(role="user", content="Test")],
            temperature=profile.default_temperature,
            top_p=profile.top_p,
            max_tokens=profile.max_tokens,
        )

    @staticmethod
    def _log(level: int, message: str, **fields) -> None:
        logger.log(level, message, extra={"extra": {"component": "model_selector", **fields}})
