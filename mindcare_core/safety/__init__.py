"""安全检查：危机识别、回复校验与求助资源。"""

from mindcare_core.safety.crisis import CrisisDetector
from mindcare_core.safety.patterns import SafetyPatterns, load_safety_patterns
from mindcare_core.safety.validator import ResponseValidator

__all__ = ["CrisisDetector", "ResponseValidator", "SafetyPatterns", "load_safety_patterns"]
