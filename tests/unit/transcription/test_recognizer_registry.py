from types import SimpleNamespace

import pytest

from dundra_live.core.errors import BackendNotAvailableError
from dundra_live.transcription.recognizers import registry
from dundra_live.transcription.recognizers.internal.dummy import DummyRecognizer
from dundra_live.transcription.types import RecognitionConfig


def test_dummy_is_always_available():
    assert "dummy" in registry.get_available_recognizers()
    assert registry.get_recognizer_class("dummy") is DummyRecognizer
    assert registry.get_recognizer_info()["dummy"]["available"] is True


def test_unknown_recognizer_lists_alternatives():
    with pytest.raises(ValueError, match="Unknown recognizer: 'whisper'"):
        registry.get_recognizer_class("whisper")


def test_google_missing_dependency(monkeypatch):
    monkeypatch.setattr(registry, "GOOGLE_AVAILABLE", False)

    with pytest.raises(BackendNotAvailableError, match="google-cloud-speech"):
        registry.get_recognizer_class("google")
    assert registry.get_available_recognizers() == ["dummy"]


def test_create_recognizer_from_config():
    config = SimpleNamespace(speech_backend="dummy")

    recognizer = registry.create_recognizer(config)

    assert isinstance(recognizer, DummyRecognizer)
    assert recognizer.is_ready


@pytest.mark.asyncio
async def test_dummy_echo_stream():
    recognizer = DummyRecognizer(echo_text="Roll for initiative")
    stream = await recognizer.open(RecognitionConfig())

    stream.write(b"\x00\x01")
    await stream.close()
    results = [r async for r in stream.results()]

    assert [r.text for r in results] == ["Roll for initiative"]
    assert results[0].speaker_tag == "1"
    assert results[0].is_final
    assert recognizer.open_streams == []


def test_google_streaming_config():
    pytest.importorskip("google.cloud.speech")
    from dundra_live.transcription.recognizers.internal.google import build_streaming_config

    streaming = build_streaming_config(RecognitionConfig())

    assert streaming.interim_results is True
    assert streaming.config.sample_rate_hertz == 16000
    assert streaming.config.language_code == "en-US"
    assert streaming.config.diarization_config.enable_speaker_diarization is True
    assert streaming.config.diarization_config.max_speaker_count == 6
    assert "initiative" in list(streaming.config.speech_contexts[0].phrases)
