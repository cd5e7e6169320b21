"""Provider、候选模型与生成参数配置。

- ModelCandidate：上游真实模型 ID 及其优先级（rank 越小越优先）。
- ModelConfig：按“逻辑用途”划分的生成参数，例如普通支持对话、危机回复、探测请求。

候选列表是进程级静态配置，只有 ModelSelector 会在运行时“固定”其中一个，
这里的数据本身不会被请求修改。"""

from dataclasses import dataclass
from typing import Dict, List, Mapping, Optional, Sequence

from mindcare_core.config.settings import settings


@dataclass(frozen=True)
class ModelCandidate:
    identifier: str
    rank: int


@dataclass(frozen=True)
class ModelConfig:
    """单个逻辑用途的生成参数。"""

    logical_name: str
    max_tokens: int
    default_temperature: float
    top_p: float


@dataclass
class ProviderConfig:
    """某个 Provider 的整体配置。"""

    name: str
    base_url: str
    candidates: List[ModelCandidate]
    profiles: Dict[str, ModelConfig]


SUPPORT_CHAT = "support-chat"
CRISIS = "crisis"
PROBE = "probe"


GROQ_CONFIG = ProviderConfig(
    name="groq",
    base_url="https://api.groq.com/openai/v1",
    candidates=[
        ModelCandidate(identifier="llama-3.1-8b-instant", rank=0),
        ModelCandidate(identifier="gemma2-9b-it", rank=1),
    ],
    profiles={
        # 回复需要简短，控制在 300 tokens 内
        SUPPORT_CHAT: ModelConfig(
            logical_name=SUPPORT_CHAT,
            max_tokens=300,
            default_temperature=0.7,
            top_p=0.9,
        ),
        CRISIS: ModelConfig(
            logical_name=CRISIS,
            max_tokens=150,
            default_temperature=0.3,
            top_p=0.8,
        ),
        PROBE: ModelConfig(
            logical_name=PROBE,
            max_tokens=10,
            default_temperature=0.1,
            top_p=1.0,
        ),
    },
)


PROVIDER_REGISTRY: Mapping[str, ProviderConfig] = {
    "groq": GROQ_CONFIG,
}


def get_provider_config(name: str) -> ProviderConfig:
    """根据名称获取 ProviderConfig，名称不区分大小写。"""

    key = name.lower()
    for k, cfg in PROVIDER_REGISTRY.items():
        if k.lower() == key:
            return cfg
    raise KeyError(f"Unknown provider: {name!r}")


def get_profile(name: str, provider: str = "groq") -> ModelConfig:
    return get_provider_config(provider).profiles[name]


def ranked(candidates: Sequence[ModelCandidate]) -> List[ModelCandidate]:
    """按 rank 升序返回候选，rank 相同时保持原有顺序。"""

    return sorted(candidates, key=lambda c: c.rank)


def candidates_from_settings(cfg=settings, provider: str = "groq") -> List[ModelCandidate]:
    """返回当前生效的候选列表：配置中显式给出时覆盖默认值。"""

    override: Optional[List[str]] = getattr(cfg, "model_candidates", None)
    if override:
        return [ModelCandidate(identifier=m, rank=i) for i, m in enumerate(override)]
    return ranked(get_provider_config(provider).candidates)
