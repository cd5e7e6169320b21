import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from mindcare_core.config.settings import settings

LOGGER_NAME = "mindcare_core"
LOG_FILE = "mindcare.log"
PREVIEW_CHARS = 64

# 这些字段提升到 JSON 顶层，便于按请求/组件检索
_TOP_LEVEL_KEYS = ("trace_id", "component")


class JsonLineFormatter(logging.Formatter):
    """每条记录输出为一行 JSON，结构化字段来自 extra={"extra": {...}}。"""

    def format(self, record: logging.LogRecord) -> str:
        msg = record.getMessage() or ""
        if settings.log_redact_content:
            msg = msg[:PREVIEW_CHARS]
        payload: Dict[str, Any] = {
            "ts": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "msg": msg,
        }
        fields = getattr(record, "extra", None)
        if isinstance(fields, dict):
            for key in _TOP_LEVEL_KEYS:
                if fields.get(key) is not None:
                    payload[key] = fields[key]
            rest = {k: v for k, v in fields.items() if k not in _TOP_LEVEL_KEYS}
            if rest:
                payload["fields"] = rest
        if record.exc_info:
            payload["exc"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def setup_logger() -> logging.Logger:
    """初始化包级 logger；重复调用不会叠加 handler。"""

    log = logging.getLogger(LOGGER_NAME)
    log.setLevel(logging.INFO)
    if log.handlers:
        return log
    log_dir = Path(settings.log_dir)
    log_dir.mkdir(parents=True, exist_ok=True)
    handler = logging.FileHandler(log_dir / LOG_FILE, encoding="utf-8")
    handler.setLevel(logging.INFO)
    handler.setFormatter(JsonLineFormatter())
    log.addHandler(handler)
    return log


def preview(text: str, limit: int = PREVIEW_CHARS) -> str:
    """日志中展示用户内容时的截断预览；开启脱敏时不输出内容。"""

    text = text or ""
    if settings.log_redact_content:
        return f"<redacted:{len(text)} chars>"
    return text if len(text) <= limit else text[:limit] + "..."


logger = setup_logger()
