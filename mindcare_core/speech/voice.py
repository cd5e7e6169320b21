"""语音能力的边界约定与文本侧辅助函数。

语音转文字、文字转语音由外部服务提供，这里只定义调用契约，
以及在调用之前对文本/音频做的本地检查。
"""

import re
from dataclasses import dataclass, field
from typing import List, Protocol

from mindcare_core.domain.exceptions import InvalidInputError

MAX_SPEECH_TEXT_CHARS = 1000
MAX_AUDIO_BYTES = 25 * 1024 * 1024
SUPPORTED_AUDIO_TYPES = ("audio/wav", "audio/mpeg", "audio/mp3", "audio/webm", "audio/ogg")
WORDS_PER_MINUTE = 150

_PROBLEM_CHARS = re.compile(r"[^\w\s.,!?;:'\"()-]")
_SENTENCE_SPLIT = re.compile(r"[.!?]+")


@dataclass(frozen=True)
class VoiceParameters:
    """合成参数：speed/pitch 取值 0.5~2.0，volume 取值 0.1~1.0。"""

    speed: float = 1.0
    pitch: float = 1.0
    volume: float = 1.0

    def __post_init__(self) -> None:
        _check_range("speed", self.speed, 0.5, 2.0)
        _check_range("pitch", self.pitch, 0.5, 2.0)
        _check_range("volume", self.volume, 0.1, 1.0)


def _check_range(name: str, value: float, low: float, high: float) -> None:
    if isinstance(value, bool) or not isinstance(value, (int, float)) or not low <= value <= high:
        raise InvalidInputError(
            code="INVALID_VOICE_PARAMETER",
            message=f"{name.capitalize()} must be a number between {low} and {high}",
        )


class Transcriber(Protocol):
    """语音转文字服务，timeout 为调用方要求的硬超时（秒）。"""

    def transcribe(self, audio: bytes, content_type: str, *, timeout: float) -> str:
        ...


class Synthesizer(Protocol):
    """文字转语音服务。"""

    def synthesize(self, text: str, voice: VoiceParameters, *, timeout: float) -> bytes:
        ...


@dataclass
class SpeechTextCheck:
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def validate_speech_text(text: str, max_length: int = MAX_SPEECH_TEXT_CHARS) -> SpeechTextCheck:
    """检查文本是否适合合成：非空、长度上限，以及可能读不准的字符/长句告警。"""

    result = SpeechTextCheck()
    if not isinstance(text, str) or not text.strip():
        result.is_valid = False
        result.errors.append("Text must be a non-empty string")
        return result

    clean = text.strip()
    if len(clean) > max_length:
        result.is_valid = False
        result.errors.append(f"Text too long. Maximum length is {max_length} characters")

    odd = sorted(set(_PROBLEM_CHARS.findall(clean)))
    if odd:
        result.warnings.append(
            "Text contains special characters that may not be pronounced correctly: " + ", ".join(odd)
        )
    if any(len(s.strip()) > 200 for s in _SENTENCE_SPLIT.split(clean)):
        result.warnings.append("Text contains very long sentences that may affect speech quality")
    return result


def estimate_audio_duration(text: str, speed: float = 1.0) -> int:
    """按每分钟 150 词估算朗读时长（秒），最少 1 秒；空文本返回 0。"""

    if not isinstance(text, str) or not text.strip():
        return 0
    words = len(text.split())
    seconds = (words / WORDS_PER_MINUTE) * 60 / speed
    return max(1, round(seconds))


@dataclass
class AudioCheck:
    is_valid: bool = True
    errors: List[str] = field(default_factory=list)


def validate_audio_upload(audio: bytes, content_type: str) -> AudioCheck:
    result = AudioCheck()
    if not audio:
        result.is_valid = False
        result.errors.append("Audio file is empty or invalid")
    elif len(audio) > MAX_AUDIO_BYTES:
        result.is_valid = False
        result.errors.append(f"Audio file too large. Maximum size is {MAX_AUDIO_BYTES // (1024 * 1024)}MB")
    if content_type not in SUPPORTED_AUDIO_TYPES:
        result.is_valid = False
        result.errors.append(
            f"Unsupported audio format: {content_type}. Supported formats: {', '.join(SUPPORTED_AUDIO_TYPES)}"
        )
    return result
