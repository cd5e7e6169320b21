"""助手回复的内容校验。

三类互相独立的扫描：
1. 有害表述（鼓励放弃、自伤等）-> HARMFUL_LANGUAGE；
2. 诊断/处方类医疗表述 -> MEDICAL_ADVICE；
3. 长度超过阈值却没有任何支持性表述 -> LACKS_SUPPORTIVE_LANGUAGE。
另外超过长度上限时标记 TOO_LONG。返回全部命中的问题，而不是第一个。
"""

from typing import Optional, Set

from mindcare_core.domain.models import IssueKind, ValidationResult
from mindcare_core.safety.patterns import SafetyPatterns, load_safety_patterns

MAX_RESPONSE_CHARS = 1500
SUPPORTIVE_CHECK_MIN_CHARS = 100


class ResponseValidator:
    def __init__(
        self,
        patterns: Optional[SafetyPatterns] = None,
        max_length: int = MAX_RESPONSE_CHARS,
        supportive_threshold: int = SUPPORTIVE_CHECK_MIN_CHARS,
    ):
        self._patterns = patterns or load_safety_patterns()
        self.max_length = max_length
        self.supportive_threshold = supportive_threshold

    def validate(self, response_text: str) -> ValidationResult:
        if not isinstance(response_text, str) or not response_text.strip():
            return ValidationResult(
                is_valid=False,
                issues=frozenset({IssueKind.EMPTY_RESPONSE}),
                has_supportive_language=False,
                length=len(response_text) if isinstance(response_text, str) else 0,
            )

        issues: Set[IssueKind] = set()
        if any(p.search(response_text) for p in self._patterns.harmful):
            issues.add(IssueKind.HARMFUL_LANGUAGE)
        if any(p.search(response_text) for p in self._patterns.medical):
            issues.add(IssueKind.MEDICAL_ADVICE)

        has_supportive = any(p.search(response_text) for p in self._patterns.supportive)
        length = len(response_text)
        if not has_supportive and length > self.supportive_threshold:
            issues.add(IssueKind.LACKS_SUPPORTIVE_LANGUAGE)
        if length > self.max_length:
            issues.add(IssueKind.TOO_LONG)

        return ValidationResult(
            is_valid=not issues,
            issues=frozenset(issues),
            has_supportive_language=has_supportive,
            length=length,
        )
