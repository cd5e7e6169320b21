"""对外 API 服务模块。

提供简化的函数接口供 Web 层调用；传输协议、会话存储与鉴权由上层负责。
"""

from typing import Any, Dict, Iterable, Optional

from mindcare_core.agents.orchestrator import ConversationOrchestrator, HistoryItem
from mindcare_core.config.settings import settings
from mindcare_core.domain.exceptions import BusinessError, InvalidInputError
from mindcare_core.infrastructure.logging.logger import logger
from mindcare_core.providers import create_provider
from mindcare_core.speech.normalizer import normalize
from mindcare_core.speech.voice import (
    Synthesizer,
    Transcriber,
    VoiceParameters,
    estimate_audio_duration,
    validate_audio_upload,
    validate_speech_text,
)


_orchestrator: Optional[ConversationOrchestrator] = None


def get_default_orchestrator() -> ConversationOrchestrator:
    """获取默认的编排引擎实例（单例）。"""
    global _orchestrator
    if _orchestrator is None:
        _orchestrator = ConversationOrchestrator(provider_client=create_provider())
    return _orchestrator


def set_orchestrator(orchestrator: Optional[ConversationOrchestrator]) -> None:
    """替换默认实例，主要用于测试。"""
    global _orchestrator
    _orchestrator = orchestrator


def respond(user_text: str, history: Iterable[HistoryItem] = ()) -> Dict[str, Any]:
    """处理一轮文字对话。

    Args:
        user_text: 用户输入内容
        history: 调用方保存的历史对话（旧 -> 新）

    Returns:
        包含 text、crisis_triggered、validation、state、model 的字典

    Raises:
        InvalidInputError: 输入为空
    """
    try:
        reply = get_default_orchestrator().respond(user_text, history)
    except BusinessError as e:
        logger.error(f"Respond failed: {e.code}", extra={"extra": {"code": e.code, "error": e.message}})
        raise
    return reply.to_dict()


def service_status() -> Dict[str, Any]:
    return get_default_orchestrator().service_status()


def test_connection() -> Dict[str, Any]:
    return get_default_orchestrator().test_connection()


def transcribe_and_respond(
    audio: bytes,
    content_type: str,
    transcriber: Transcriber,
    history: Iterable[HistoryItem] = (),
) -> Dict[str, Any]:
    """语音输入：校验音频 -> 外部转写 -> 正常对话流程。"""

    check = validate_audio_upload(audio, content_type)
    if not check.is_valid:
        raise InvalidInputError(code="INVALID_AUDIO", message="; ".join(check.errors))
    transcription = transcriber.transcribe(audio, content_type, timeout=settings.speech_timeout)
    result = respond(transcription, history)
    result["transcription"] = transcription
    return result


def speak_reply(
    text: str,
    synthesizer: Synthesizer,
    voice: Optional[VoiceParameters] = None,
) -> Dict[str, Any]:
    """语音输出：规范化文本 -> 本地检查 -> 外部合成。"""

    voice = voice or VoiceParameters()
    spoken = normalize(text)
    check = validate_speech_text(spoken)
    if not check.is_valid:
        raise InvalidInputError(code="INVALID_SPEECH_TEXT", message="; ".join(check.errors))
    for warning in check.warnings:
        logger.info("Speech text warning", extra={"extra": {"warning": warning}})
    audio = synthesizer.synthesize(spoken, voice, timeout=settings.speech_timeout)
    return {
        "audio": audio,
        "text": spoken,
        "estimated_duration": estimate_audio_duration(spoken, voice.speed),
        "warnings": check.warnings,
    }
