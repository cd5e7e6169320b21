"""语音相关的文本处理与外部服务契约。"""

from mindcare_core.speech.normalizer import normalize

__all__ = ["normalize"]
