"""系统提示词加载工具。

按语言(locale) 从 prompts/<locale> 目录读取对应的 system prompt 文本，
用于构造 ChatMessage(role="system")。危机路径的提示词需要拼入
用户原话和求助资源，由 safety.resources 动态生成，不在此处。
"""

from functools import lru_cache
from pathlib import Path


PROMPTS_DIR = Path(__file__).resolve().parent

_PROMPT_FILES = {
    "support": "support_system.md",
}


@lru_cache(maxsize=None)
def load_system_prompt(kind: str = "support", locale: str = "en") -> str:
    """根据提示词类型和语言加载系统提示词文本。"""

    fname = PROMPTS_DIR / locale / _PROMPT_FILES[kind]
    return fname.read_text(encoding="utf-8").strip()
