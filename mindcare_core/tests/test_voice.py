import pytest

from mindcare_core.domain.exceptions import InvalidInputError
from mindcare_core.speech.voice import (
    MAX_AUDIO_BYTES,
    VoiceParameters,
    estimate_audio_duration,
    validate_audio_upload,
    validate_speech_text,
)


def test_voice_parameters_defaults():
    voice = VoiceParameters()
    assert (voice.speed, voice.pitch, voice.volume) == (1.0, 1.0, 1.0)


@pytest.mark.parametrize(
    "kwargs",
    [{"speed": 2.5}, {"speed": 0.4}, {"pitch": 3}, {"volume": 0.0}, {"volume": True}, {"speed": "fast"}],
)
def test_voice_parameters_out_of_range(kwargs):
    with pytest.raises(InvalidInputError) as exc:
        VoiceParameters(**kwargs)
    assert exc.value.code == "INVALID_VOICE_PARAMETER"


def test_speech_text_checks():
    assert not validate_speech_text("   ").is_valid
    too_long = validate_speech_text("a" * 1001)
    assert not too_long.is_valid
    assert "1000" in too_long.errors[0]

    odd = validate_speech_text("Email me @ home #1")
    assert odd.is_valid
    assert "@" in odd.warnings[0] and "#" in odd.warnings[0]

    long_sentence = validate_speech_text(("word " * 50).strip() + ".")
    assert any("long sentences" in w for w in long_sentence.warnings)


def test_estimate_audio_duration():
    assert estimate_audio_duration("") == 0
    assert estimate_audio_duration("hi") == 1
    text = " ".join(["word"] * 150)
    assert estimate_audio_duration(text) == 60
    assert estimate_audio_duration(text, speed=2.0) == 30


def test_audio_upload_checks():
    assert validate_audio_upload(b"RIFF", "audio/wav").is_valid
    empty = validate_audio_upload(b"", "audio/wav")
    assert not empty.is_valid
    wrong_type = validate_audio_upload(b"data", "video/mp4")
    assert not wrong_type.is_valid
    assert "Unsupported audio format" in wrong_type.errors[0]
    big = validate_audio_upload(b"0" * (MAX_AUDIO_BYTES + 1), "audio/mpeg")
    assert "25MB" in big.errors[0]
