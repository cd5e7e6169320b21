"""用户输入的危机信号识别。

这是基于规则表的启发式检查，不是临床模型，也不承诺零漏报；
它的作用是在普通生成之前把明显的高风险输入切到危机路径。
"""

from typing import List, Optional

from mindcare_core.domain.models import CrisisAssessment, CrisisSeverity
from mindcare_core.safety.patterns import SafetyPatterns, load_safety_patterns


def _canonical(text: str) -> str:
    # 统一弯引号，避免 “don’t” 之类的输入绕过规则
    return " ".join(text.replace("’", "'").replace("‘", "'").split())


class CrisisDetector:
    def __init__(self, patterns: Optional[SafetyPatterns] = None):
        self._patterns = patterns or load_safety_patterns()

    @property
    def version(self) -> str:
        return self._patterns.version

    def assess(self, user_text: str) -> CrisisAssessment:
        if not isinstance(user_text, str) or not user_text.strip():
            return CrisisAssessment(triggered=False)
        text = _canonical(user_text)
        matched: List[str] = []
        severity = CrisisSeverity.NONE
        for entry in self._patterns.crisis:
            if entry.regex.search(text):
                matched.append(entry.regex.pattern)
                if entry.severity.rank > severity.rank:
                    severity = entry.severity
        if not matched:
            return CrisisAssessment(triggered=False)
        return CrisisAssessment(triggered=True, matched_severity=severity, matched_patterns=tuple(matched))
