"""LLM Provider 集成层。

该包下的模块负责：
- 定义 Provider 抽象接口 (base)。
- 维护候选模型与生成参数配置 (registry)。
- 提供具体实现 (groq_client)。
"""

from typing import Optional

from mindcare_core.config.settings import settings
from mindcare_core.providers.base import ProviderClient
from mindcare_core.providers.groq_client import GroqClient


def create_provider(name: Optional[str] = None) -> ProviderClient:
    """根据名称创建 Provider 实例，默认使用 groq。"""

    provider_name = (name or "groq").lower()
    if provider_name != "groq":
        raise KeyError(f"Unknown provider: {name!r}")
    return GroqClient(settings)
