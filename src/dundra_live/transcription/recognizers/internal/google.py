"""Google Cloud Speech-to-Text streaming backend."""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncIterator
from datetime import timedelta
from typing import Any

from google.cloud import speech

from ....core.errors import RecognizerError
from ..base import RecognizerStream, SpeechRecognizer
from ...types import RecognitionConfig, RecognitionResult, WordInfo

logger = logging.getLogger(__name__)

_CLOSE = object()


def _offset_ms(value: Any) -> int:
    if value is None:
        return 0
    if isinstance(value, timedelta):
        return int(value.total_seconds() * 1000)
    # Raw protobuf Duration
    return int(getattr(value, "seconds", 0)) * 1000 + int(getattr(value, "nanos", 0)) // 1_000_000


def _to_recognition_result(result: Any) -> RecognitionResult | None:
    if not result.alternatives:
        return None
    alternative = result.alternatives[0]
    words = [
        WordInfo(
            word=word.word or "",
            start_time=_offset_ms(word.start_time),
            end_time=_offset_ms(word.end_time),
            # speaker_tag is 0 when diarization did not assign one
            speaker_tag=str(word.speaker_tag) if word.speaker_tag else None,
        )
        for word in alternative.words
    ]
    return RecognitionResult(
        text=alternative.transcript or "",
        confidence=float(alternative.confidence or 0.0),
        is_final=bool(result.is_final),
        words=words,
    )


def build_streaming_config(config: RecognitionConfig) -> speech.StreamingRecognitionConfig:
    diarization = None
    if config.enable_diarization:
        diarization = speech.SpeakerDiarizationConfig(
            enable_speaker_diarization=True,
            min_speaker_count=config.min_speaker_count,
            max_speaker_count=config.max_speaker_count,
        )
    recognition = speech.RecognitionConfig(
        encoding=speech.RecognitionConfig.AudioEncoding[config.encoding],
        sample_rate_hertz=config.sample_rate_hertz,
        language_code=config.language_code,
        diarization_config=diarization,
        enable_automatic_punctuation=config.enable_automatic_punctuation,
        enable_word_time_offsets=config.enable_word_time_offsets,
        model=config.model or "",
        use_enhanced=config.use_enhanced,
        audio_channel_count=1,
        speech_contexts=[speech.SpeechContext(phrases=list(config.phrases))] if config.phrases else [],
    )
    return speech.StreamingRecognitionConfig(config=recognition, interim_results=config.interim_results)


class GoogleRecognizerStream(RecognizerStream):
    """Bridges an asyncio queue of audio frames onto streaming_recognize."""

    def __init__(self, client: speech.SpeechAsyncClient, config: RecognitionConfig) -> None:
        self._client = client
        self._streaming_config = build_streaming_config(config)
        self._audio: asyncio.Queue = asyncio.Queue()
        self._closed = False

    def write(self, chunk: bytes) -> None:
        if self._closed:
            raise RecognizerError("Recognizer stream is closed")
        self._audio.put_nowait(chunk)

    async def _requests(self) -> AsyncIterator[speech.StreamingRecognizeRequest]:
        yield speech.StreamingRecognizeRequest(streaming_config=self._streaming_config)
        while True:
            chunk = await self._audio.get()
            if chunk is _CLOSE:
                return
            yield speech.StreamingRecognizeRequest(audio_content=chunk)

    async def results(self) -> AsyncIterator[RecognitionResult]:
        try:
            responses = await self._client.streaming_recognize(requests=self._requests())
            async for response in responses:
                if not response.results:
                    continue
                converted = _to_recognition_result(response.results[0])
                if converted is not None:
                    yield converted
        except asyncio.CancelledError:
            raise
        except Exception as e:
            raise RecognizerError(f"Speech recognition error: {e}", cause=e) from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._audio.put_nowait(_CLOSE)


class GoogleSpeechRecognizer(SpeechRecognizer):
    """Streaming recognizer backed by google-cloud-speech.

    Authentication prefers an API key, then a service-account key file, then
    application default credentials.
    """

    name = "google"

    def __init__(self, *, api_key: str = "", key_file: str = "", project_id: str = "") -> None:
        self.api_key = api_key
        self.key_file = key_file
        self.project_id = project_id
        self._client: speech.SpeechAsyncClient | None = None

    @classmethod
    def from_config(cls, config) -> "GoogleSpeechRecognizer":
        return cls(
            api_key=config.google_api_key,
            key_file=config.google_key_file,
            project_id=config.google_project_id,
        )

    @property
    def client(self) -> speech.SpeechAsyncClient:
        if self._client is None:
            client_options: dict[str, Any] = {}
            if self.project_id:
                client_options["quota_project_id"] = self.project_id
            if self.api_key:
                logger.info("Using Google Cloud API key for authentication")
                client_options["api_key"] = self.api_key
                self._client = speech.SpeechAsyncClient(client_options=client_options)
            elif self.key_file:
                logger.info("Using Google Cloud service account key file for authentication")
                self._client = speech.SpeechAsyncClient.from_service_account_file(
                    self.key_file, client_options=client_options or None
                )
            else:
                logger.warning("No Google Cloud credentials configured, falling back to default credentials")
                self._client = speech.SpeechAsyncClient(client_options=client_options or None)
        return self._client

    async def open(self, config: RecognitionConfig) -> GoogleRecognizerStream:
        try:
            client = self.client
        except Exception as e:
            raise RecognizerError(f"Failed to create speech client: {e}", cause=e) from e
        return GoogleRecognizerStream(client, config)

    @property
    def is_ready(self) -> bool:
        return bool(self.api_key or self.key_file or self.project_id)
