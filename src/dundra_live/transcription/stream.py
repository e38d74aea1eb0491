"""Transcription stream adapter.

TranscriptionStream owns exactly one recognizer stream for one live session:
- Opens the duplex stream with the session's recognition settings
- Forwards audio frames to the recognizer
- Turns recognizer results into `transcription` / `speaker_detected` events
- Reopens the stream after upstream errors or unexpected ends

Every open bumps a generation counter. Results and failures carrying an older
generation are dropped, so a recognizer that is still winding down after
stop() or a restart can never leak events into the session.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
import time
from collections.abc import Awaitable, Callable
from typing import Any

from ..core.errors import RecognizerError, StreamAlreadyActiveError
from .recognizers.base import RecognizerStream, SpeechRecognizer
from .restart_policy import RestartPolicy
from .speakers import SpeakerRegistry
from .types import (
    RecognitionConfig,
    RecognitionResult,
    StreamEvent,
    StreamEventType,
    StreamState,
)

logger = logging.getLogger(__name__)

StreamListener = Callable[[StreamEvent], Awaitable[None]]


class TranscriptionStream:
    """Adapter between raw audio frames and transcription events.

    Example:
        stream = TranscriptionStream("abc123", recognizer)
        stream.add_listener(on_event)

        await stream.start()
        await stream.process_audio_chunk(frame)
        await stream.stop()

    """

    def __init__(
        self,
        session_id: str,
        recognizer: SpeechRecognizer,
        config: RecognitionConfig | None = None,
        restart_policy: RestartPolicy | None = None,
        speakers: SpeakerRegistry | None = None,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ):
        """Initialize the stream adapter.

        Args:
            session_id: Identifier of the owning connection/session
            recognizer: Backend used to open recognizer streams
            config: Recognition settings (defaults match a tabletop group)
            restart_policy: Backoff policy for auto-restart
            speakers: Speaker registry scoped to this stream
            sleep: Awaitable used for backoff waits (patched in tests)

        """
        self.session_id = session_id
        self.recognizer = recognizer
        self.config = config or RecognitionConfig()
        self.restart_policy = restart_policy or RestartPolicy()
        self.speakers = speakers or SpeakerRegistry()
        self._sleep = sleep

        self._state = StreamState.IDLE
        self._generation = 0
        self._stream: RecognizerStream | None = None
        self._reader: asyncio.Task | None = None
        self._listeners: list[StreamListener] = []

    @property
    def state(self) -> StreamState:
        return self._state

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_active(self) -> bool:
        """True while the session intends to transcribe, including restart waits."""
        return self._state in (StreamState.ACTIVE, StreamState.RESTARTING)

    def add_listener(self, listener: StreamListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: StreamListener) -> None:
        with contextlib.suppress(ValueError):
            self._listeners.remove(listener)

    async def _emit(self, event_type: StreamEventType, data: dict[str, Any] | None = None) -> None:
        event = StreamEvent(type=event_type, session_id=self.session_id, data=data or {})
        for listener in list(self._listeners):
            try:
                await listener(event)
            except asyncio.CancelledError:
                raise
            except Exception as e:
                logger.exception(f"Listener failed for {event_type.value} in session {self.session_id}: {e}")

    async def start(self) -> None:
        """Open the recognizer stream.

        Raises:
            StreamAlreadyActiveError: If the stream is already running
            RecognizerError: If the recognizer stream could not be opened

        """
        if self.is_active:
            raise StreamAlreadyActiveError(self.session_id)

        self.restart_policy.reset()
        self._state = StreamState.ACTIVE
        try:
            await self._open_stream()
        except Exception as e:
            self._state = StreamState.IDLE
            logger.error(f"Failed to start transcription for session {self.session_id}: {e}")
            if isinstance(e, RecognizerError):
                raise
            raise RecognizerError(f"Failed to start transcription: {e}", cause=e) from e

        if self._state != StreamState.ACTIVE:
            logger.info(f"Transcription for session {self.session_id} stopped before it started")
            return
        logger.info(f"Transcription started for session {self.session_id}")
        await self._emit(StreamEventType.STARTED, {"status": "started"})

    async def _open_stream(self) -> None:
        self._generation += 1
        generation = self._generation
        stream = await self.recognizer.open(self.config)
        if generation != self._generation or not self.is_active:
            # stop() ran while the recognizer was opening
            await stream.close()
            return
        self._stream = stream
        self._reader = asyncio.create_task(self._read(stream, generation))

    async def _read(self, stream: RecognizerStream, generation: int) -> None:
        error: Exception | None = None
        try:
            async for result in stream.results():
                if generation != self._generation:
                    return
                await self._handle_result(result, generation)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            error = e

        if generation != self._generation or not self.is_active:
            return
        if error is None:
            logger.info(f"Speech recognition stream ended for session {self.session_id}")
        await self._recover(error)

    async def _handle_result(self, result: RecognitionResult, generation: int) -> None:
        if self.restart_policy.attempts:
            self.restart_policy.record_success()

        speaker_id = result.speaker_tag
        if speaker_id is not None and self.speakers.observe(speaker_id):
            await self._emit(StreamEventType.SPEAKER_DETECTED, {"speaker_id": speaker_id})
            if generation != self._generation:
                return

        payload: dict[str, Any] = {
            "text": result.text,
            "confidence": result.confidence,
            "speaker_id": speaker_id,
            "speaker_name": self.speakers.name_for(speaker_id),
            "timestamp": int(time.time() * 1000),
            "is_final": result.is_final,
        }
        if result.words:
            payload["words"] = [word.to_dict() for word in result.words]
        await self._emit(StreamEventType.TRANSCRIPTION, payload)

    async def _recover(self, error: Exception | None) -> None:
        """Restart loop run from the failing reader task."""
        while True:
            if error is not None:
                logger.error(f"Speech recognition error in session {self.session_id}: {error}")
                await self._emit(StreamEventType.ERROR, {"error": str(error)})
                if not self.is_active:
                    return

            delay = self.restart_policy.record_failure()
            if delay is None:
                await self._give_up()
                return

            self._state = StreamState.RESTARTING
            self._generation += 1
            await self._close_stream()

            logger.info(
                f"Restarting transcription stream for session {self.session_id} in {delay:.1f}s "
                f"(attempt {self.restart_policy.attempts})"
            )
            await self._sleep(delay)
            if self._state != StreamState.RESTARTING:
                return

            try:
                self._state = StreamState.ACTIVE
                await self._open_stream()
                return
            except asyncio.CancelledError:
                raise
            except Exception as e:
                self._state = StreamState.RESTARTING
                error = e

    async def _give_up(self) -> None:
        attempts = self.restart_policy.config.max_attempts
        logger.error(f"Giving up on transcription for session {self.session_id} after {attempts} restart attempts")
        self._state = StreamState.FAILED
        self._generation += 1
        self._reader = None
        await self._close_stream()
        await self._emit(
            StreamEventType.ERROR,
            {"error": f"Transcription stopped after {attempts} failed restart attempts", "fatal": True},
        )
        await self._emit(StreamEventType.STOPPED, {"status": "failed"})

    async def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            await stream.close()
        except Exception as e:
            logger.warning(f"Error closing recognizer stream for session {self.session_id}: {e}")

    async def process_audio_chunk(self, data: bytes) -> None:
        """Forward one audio frame. Never raises."""
        if not self.is_active or self._stream is None:
            logger.warning(f"Transcription not active for session {self.session_id}, ignoring audio chunk")
            return

        try:
            self._stream.write(data)
        except Exception as e:
            logger.error(f"Error writing audio chunk for session {self.session_id}: {e}")
            await self._emit(StreamEventType.ERROR, {"error": str(e)})

    async def stop(self) -> None:
        """Stop transcribing and drop anything still in flight. Idempotent."""
        if not self.is_active:
            return

        self._state = StreamState.STOPPED
        self._generation += 1

        reader, self._reader = self._reader, None
        if reader is not None and reader is not asyncio.current_task() and not reader.done():
            reader.cancel()
            await asyncio.gather(reader, return_exceptions=True)

        await self._close_stream()
        logger.info(f"Transcription stopped for session {self.session_id}")
        await self._emit(StreamEventType.STOPPED, {"status": "stopped"})

    async def update_speaker_mapping(self, speaker_id: str, player_name: str) -> None:
        mapping = self.speakers.map(speaker_id, player_name)
        logger.info(f"Speaker {speaker_id} mapped to {player_name}")
        await self._emit(StreamEventType.SPEAKER_MAPPED, mapping.to_dict())

    def get_speaker_name(self, speaker_id: str) -> str | None:
        return self.speakers.name_for(speaker_id)

    def get_status(self) -> dict[str, Any]:
        return {
            "is_active": self.is_active,
            "session_id": self.session_id,
            "speaker_count": len(self.speakers),
            "state": self._state.value,
            "restart_attempts": self.restart_policy.attempts,
            "restart": self.restart_policy.get_status(),
        }

    async def cleanup(self) -> None:
        """Stop the stream and forget speakers and listeners."""
        await self.stop()
        self.speakers.clear()
        self._listeners.clear()
