"""配置管理模块。

支持从环境变量、.env 以及 config.yaml 加载配置。
"""

import os
import warnings
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _load_config_from_yaml() -> Dict[str, Any]:
    """从 config.yaml 加载配置（若存在）。"""
    candidates = []
    explicit = os.getenv("MINDCARE_CONFIG_FILE")
    if explicit:
        candidates.append(Path(explicit).expanduser())
    candidates.extend([
        Path.cwd() / "config.yaml",
        Path(__file__).resolve().parents[2] / "config.yaml",
        Path(__file__).resolve().parents[1] / "config.yaml",
    ])

    seen: set[Path] = set()
    for path in candidates:
        if not path or path in seen:
            continue
        seen.add(path)
        try:
            if path.exists():
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
                if isinstance(data, dict):
                    return data
                warnings.warn(f"Config file {path} is not a mapping, ignored")
        except (OSError, yaml.YAMLError) as exc:
            warnings.warn(f"Failed to read config file {path}: {exc}")
    return {}


class Settings(BaseSettings):
    """配置设置（使用 Pydantic）。"""

    # ---- Provider 相关配置 ----
    groq_api_key: Optional[str] = Field(default=None, description="Groq API 密钥")
    groq_base_url: str = Field(
        default="https://api.groq.com/openai/v1",
        description="Groq chat-completions 基础URL",
    )
    model_candidates: Optional[List[str]] = Field(
        default=None,
        description="按优先级排列的候选模型 ID，为空时使用 registry 中的默认列表",
    )
    http_timeout: float = Field(default=30.0, ge=1.0, description="对话调用的 HTTP 超时时间（秒）")
    speech_timeout: float = Field(default=60.0, ge=1.0, description="语音合成相关调用的超时时间（秒）")

    # ---- 编排相关配置 ----
    max_history_turns: int = Field(default=10, ge=1, le=50, description="发送给模型的最大历史轮数")
    max_retries: int = Field(default=3, ge=1, le=10, description="普通生成路径的最大尝试次数")
    retry_base_delay: float = Field(default=1.0, ge=0.0, description="线性退避的基础间隔（秒）")
    crisis_max_retries: int = Field(
        default=2,
        ge=1,
        le=5,
        description="危机路径的最大尝试次数（需要快速返回，低于普通路径）",
    )
    max_message_chars: int = Field(default=2000, ge=1, description="单条用户消息的最大字符数")
    enforce_validation: bool = Field(
        default=False,
        description="为 True 时校验不通过的回复会被替换为安全兜底文本；默认仅记录",
    )
    safety_patterns_file: Optional[str] = Field(
        default=None,
        description="外部安全规则 YAML 路径，为空时使用包内自带规则",
    )

    # ---- 日志 ----
    log_dir: str = Field(default="logs", description="日志目录")
    log_redact_content: bool = Field(default=False, description="是否脱敏日志内容")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
        # model_candidates 与 pydantic 保留的 model_ 前缀冲突
        protected_namespaces=(),
    )

    @staticmethod
    def _config_source() -> Dict[str, Any]:
        return _load_config_from_yaml()

    @field_validator("groq_api_key")
    @classmethod
    def validate_api_key(cls, v: Optional[str]) -> Optional[str]:
        if v and len(v) < 10:
            raise ValueError("API key seems too short")
        return v

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls,
        init_settings,
        env_settings,
        dotenv_settings,
        file_secret_settings,
    ):
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            cls._config_source,
            file_secret_settings,
        )


settings = Settings()
