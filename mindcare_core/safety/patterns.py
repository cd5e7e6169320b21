"""安全规则表加载。

危机识别与回复校验使用的关键词/正则不写死在控制流里，而是作为
带版本号的数据文件维护（默认 safety/data/safety_patterns.yaml），
测试或运营可以通过 settings.safety_patterns_file 替换整张表。
"""

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional, Pattern, Tuple

import yaml

from mindcare_core.config.settings import settings
from mindcare_core.domain.exceptions import ConfigurationError
from mindcare_core.domain.models import CrisisSeverity


DEFAULT_PATTERNS_FILE = Path(__file__).resolve().parent / "data" / "safety_patterns.yaml"


@dataclass(frozen=True)
class CrisisPattern:
    regex: Pattern[str]
    severity: CrisisSeverity


@dataclass(frozen=True)
class SafetyPatterns:
    """编译后的规则表。"""

    version: str
    crisis: Tuple[CrisisPattern, ...]
    harmful: Tuple[Pattern[str], ...]
    medical: Tuple[Pattern[str], ...]
    supportive: Tuple[Pattern[str], ...]

    @classmethod
    def from_mapping(cls, data: Dict[str, Any]) -> "SafetyPatterns":
        if not isinstance(data, dict):
            raise ConfigurationError(code="INVALID_SAFETY_PATTERNS", message="Safety pattern table must be a mapping")
        try:
            crisis = tuple(
                CrisisPattern(
                    regex=_compile(entry["pattern"]),
                    severity=CrisisSeverity(str(entry.get("severity", "high")).lower()),
                )
                for entry in data.get("crisis") or []
            )
            return cls(
                version=str(data.get("version", "unversioned")),
                crisis=crisis,
                harmful=_compile_all(data.get("harmful")),
                medical=_compile_all(data.get("medical")),
                supportive=_compile_all(data.get("supportive")),
            )
        except (KeyError, TypeError, ValueError, re.error) as exc:
            raise ConfigurationError(code="INVALID_SAFETY_PATTERNS", message=f"Invalid safety pattern table: {exc}")


def _compile(pattern: str) -> Pattern[str]:
    return re.compile(pattern, re.IGNORECASE)


def _compile_all(patterns: Optional[List[str]]) -> Tuple[Pattern[str], ...]:
    return tuple(_compile(p) for p in patterns or [])


def load_safety_patterns(path: Optional[str | Path] = None) -> SafetyPatterns:
    """加载规则表：显式路径 > settings.safety_patterns_file > 包内默认文件。"""

    source = Path(path or getattr(settings, "safety_patterns_file", None) or DEFAULT_PATTERNS_FILE)
    try:
        data = yaml.safe_load(source.read_text(encoding="utf-8")) or {}
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigurationError(
            code="INVALID_SAFETY_PATTERNS",
            message=f"Failed to read safety patterns from {source}: {exc}",
        )
    return SafetyPatterns.from_mapping(data)
