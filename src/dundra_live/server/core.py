"""Core server classes for dundra-live.

CompanionServer owns the process-wide services (recognizer, context store,
analysis engine, batch scheduler, room hub, session registry) and accepts
connections from both transports. Every connection gets a SessionGateway,
which owns exactly one TranscriptionStream and dispatches client commands to
the handlers module.
"""

import asyncio
import uuid
from typing import Any

from pydantic import ValidationError

from ..analysis.context_store import GameContextStore
from ..analysis.engine import TranscriptionAnalysisEngine
from ..analysis.llm import TextAnalyzer, create_analyzer
from ..analysis.scheduler import BatchScheduler
from ..analysis.schemas import RealtimeResult
from ..core.config import ConfigLoader, get_config, setup_logging
from ..core.errors import ContextNotFoundError, DundraLiveError, TransportClosedError
from ..schemas.responses import (
    ConnectedMessage,
    ErrorMessage,
    EventPayload,
    SpeakerDetected,
    SpeakerMapped,
    StatusMessage,
    TranscriptionMessage,
)
from ..transcription.recognizers.base import SpeechRecognizer
from ..transcription.recognizers.registry import create_recognizer
from ..transcription.restart_policy import RestartPolicy, RestartPolicyConfig
from ..transcription.stream import TranscriptionStream
from ..transcription.types import (
    RecognitionConfig,
    StreamEvent,
    StreamEventType,
    TranscriptionSegment,
    coerce_timestamp,
)
from . import handlers
from .rooms import RoomHub
from .sessions import SessionRegistry
from .transport import InboundMessage, RoomSocketTransport, Transport, WebSocketTransport

logger = setup_logging(__name__)


class SessionGateway:
    """One physical client connection and the transcription stream it owns."""

    def __init__(self, server: "CompanionServer", transport: Transport):
        self.server = server
        self.transport = transport
        self.session_id = str(uuid.uuid4())
        self.game_session_id: str | None = None

        self.stream = TranscriptionStream(
            self.session_id,
            server.recognizer,
            config=server.recognition_config,
            restart_policy=RestartPolicy(server.restart_config),
        )
        self.stream.add_listener(self._on_stream_event)
        self._tasks: set[asyncio.Task] = set()

        self.message_handlers = {
            "ping": self._wrap_handler(handlers.handle_ping),
            "start_transcription": self._wrap_handler(handlers.handle_start_transcription),
            "stop_transcription": self._wrap_handler(handlers.handle_stop_transcription),
            "audio_chunk": self._wrap_handler(handlers.handle_audio_chunk),
            "audio_final": self._wrap_handler(handlers.handle_audio_final),
            "speaker_mapping": self._wrap_handler(handlers.handle_speaker_mapping),
            "get_status": self._wrap_handler(handlers.handle_get_status),
            "join_session": self._wrap_handler(handlers.handle_join_session),
            "leave_session": self._wrap_handler(handlers.handle_leave_session),
            "analyze_batch": self._wrap_handler(handlers.handle_analyze_batch),
            "analyze_realtime": self._wrap_handler(handlers.handle_analyze_realtime),
            "submit_segment": self._wrap_handler(handlers.handle_submit_segment),
            "upsert_context": self._wrap_handler(handlers.handle_upsert_context),
            "get_context": self._wrap_handler(handlers.handle_get_context),
            "end_session": self._wrap_handler(handlers.handle_end_session),
        }

    def _wrap_handler(self, handler):
        """Wrap a handler to inject the gateway as the first argument."""

        async def wrapped(message: InboundMessage):
            return await handler(self, message)

        return wrapped

    async def run(self) -> None:
        """Serve the connection until the client goes away, then clean up."""
        self.server.connected_clients.add(self)
        logger.info(
            f"Client {self.transport.id} connected from {self.transport.remote_address} "
            f"({self.transport.kind}), session {self.session_id}"
        )
        try:
            await self.send(ConnectedMessage(session_id=self.session_id))
            async for frame in self.transport.frames():
                try:
                    message = self.transport.decode(frame)
                except ValueError:
                    await self.send_error("Invalid message format")
                    continue
                await self.process_message(message)
        except Exception as e:
            logger.exception(f"Error handling client {self.transport.id}: {e}")
        finally:
            await self.cleanup()

    async def process_message(self, message: InboundMessage) -> None:
        handler = self.message_handlers.get(message.type)
        if handler is None:
            logger.warning(f"Unknown message type from session {self.session_id}: {message.type}")
            await self.send_error("Unknown message type")
            return

        try:
            await handler(message)
        except ValidationError as e:
            details = "; ".join(f"{'.'.join(str(p) for p in err['loc'])}: {err['msg']}" for err in e.errors())
            await self.send_error(f"Invalid {message.type} message: {details}")
        except DundraLiveError as e:
            await self.send_error(str(e), code=getattr(e, "code", None))
        except ValueError as e:
            await self.send_error(str(e))
        except Exception as e:
            logger.exception(f"Error processing {message.type} for session {self.session_id}: {e}")
            await self.send_error(f"Processing error: {e!s}")

    async def send(self, payload: EventPayload) -> None:
        await self.send_event(payload.event, payload.to_payload())

    async def send_event(self, event: str, data: dict[str, Any]) -> None:
        try:
            await self.transport.send(event, data)
        except TransportClosedError:
            logger.debug(f"Cannot send {event}, connection closed for session {self.session_id}")

    async def send_error(self, error: str, code: str | None = None) -> None:
        await self.send(ErrorMessage(error=error, code=code))

    def bind_game_session(self, game_session_id: str) -> None:
        """Forward final segments from this stream into a game session's pipeline."""
        self.game_session_id = game_session_id
        logger.info(f"Session {self.session_id} bound to game session {game_session_id}")

    def get_status(self) -> dict[str, Any]:
        return {**self.stream.get_status(), "game_session_id": self.game_session_id}

    async def _on_stream_event(self, event: StreamEvent) -> None:
        data = event.data
        if event.type in (StreamEventType.STARTED, StreamEventType.STOPPED):
            if data.get("status") == "failed":
                self.server.sessions.unregister(self.session_id)
            await self.send(StatusMessage(status=data["status"]))
        elif event.type == StreamEventType.TRANSCRIPTION:
            await self.send(TranscriptionMessage(**data))
            if data.get("is_final"):
                self._forward_segment(data)
        elif event.type == StreamEventType.SPEAKER_DETECTED:
            await self.send(SpeakerDetected(**data))
        elif event.type == StreamEventType.SPEAKER_MAPPED:
            await self.send(SpeakerMapped(**data))
        elif event.type == StreamEventType.ERROR:
            await self.send(ErrorMessage(**data))

    def _forward_segment(self, data: dict[str, Any]) -> None:
        game_session_id = self.game_session_id
        text = (data.get("text") or "").strip()
        if game_session_id is None or not text:
            return
        if self.server.store.get_game_context(game_session_id) is None:
            logger.debug(f"No game context for {game_session_id}, segment not analyzed")
            return

        segment = TranscriptionSegment(
            text=text,
            speaker=self.stream.speakers.display_name(data.get("speaker_id")),
            timestamp=coerce_timestamp(data.get("timestamp")),
            confidence=data.get("confidence", 1.0),
        )
        self.server.scheduler.add_segment(game_session_id, segment)
        if self.server.config.realtime_enabled:
            self._spawn(self.server.analyze_realtime(game_session_id, segment))

    def _spawn(self, coro) -> None:
        task = asyncio.create_task(coro)
        self._tasks.add(task)
        task.add_done_callback(self._task_done)

    def _task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if isinstance(error, ContextNotFoundError):
            logger.debug(f"Real-time analysis skipped: {error}")
        elif error is not None:
            logger.error(f"Real-time analysis failed for session {self.session_id}: {error}")

    async def cleanup(self) -> None:
        """Release everything this connection owns."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

        try:
            await self.stream.cleanup()
        except Exception as e:
            logger.exception(f"Error cleaning up stream for session {self.session_id}: {e}")

        if self.game_session_id:
            # Segments this stream left pending are analyzed now
            self.server.scheduler.flush_soon(self.game_session_id)
        self.server.sessions.unregister(self.session_id)
        left = self.server.rooms.leave_all(self.transport)
        self.server.connected_clients.discard(self)
        if left:
            logger.debug(f"Client {self.transport.id}: left {len(left)} room(s)")
        logger.info(f"Client {self.transport.id} removed, session {self.session_id}")


class CompanionServer:
    """Live-play companion server.

    This server handles:
    - Raw WebSocket clients streaming audio for transcription
    - Room socket clients joining game sessions for analysis events
    - Batch and real-time analysis of final transcription segments
    - Periodic cleanup of stale game contexts
    """

    def __init__(
        self,
        config: ConfigLoader | None = None,
        recognizer: SpeechRecognizer | None = None,
        analyzer: TextAnalyzer | None = None,
        store: GameContextStore | None = None,
    ):
        self.config = config or get_config()
        self.host = self.config.host
        self.port = self.config.websocket_port

        self.recognizer = recognizer or create_recognizer(self.config)
        self.recognition_config = RecognitionConfig.from_config(self.config)
        self.restart_config = RestartPolicyConfig.from_config(self.config)

        self.store = store or GameContextStore(max_recent_events=self.config.max_recent_events)
        self.analyzer = analyzer or create_analyzer(self.config)
        self.engine = TranscriptionAnalysisEngine.from_config(self.config, self.analyzer, self.store)

        self.rooms = RoomHub()
        self.sessions = SessionRegistry()
        self.scheduler = BatchScheduler.from_config(self.config, self.engine, self.store, self.rooms)

        self.connected_clients: set[SessionGateway] = set()

        # Health server runner (set during start_server)
        self._health_runner = None

        logger.debug(
            f"Initializing server on ws://{self.host}:{self.port} "
            f"(recognizer={self.recognizer.name}, analyzer={self.analyzer.name})"
        )

    async def handle_client(self, websocket, path=None) -> None:
        """Serve one raw WebSocket connection."""
        await SessionGateway(self, WebSocketTransport(websocket)).run()

    async def handle_room_socket(self, request):
        """Serve one room socket connection (aiohttp route handler)."""
        from aiohttp import web

        ws = web.WebSocketResponse(
            heartbeat=float(self.config.get("server.ping_interval", 30)),
            max_msg_size=self.config.max_message_bytes,
        )
        await ws.prepare(request)
        await SessionGateway(self, RoomSocketTransport(ws, request.remote)).run()
        return ws

    async def analyze_realtime(self, session_id: str, segment: TranscriptionSegment) -> RealtimeResult:
        """Run real-time analysis for a segment and publish urgent signals to the room.

        Raises:
            ContextNotFoundError: If the session has no game context

        """
        context = self.store.get_game_context(session_id)
        if context is None:
            raise ContextNotFoundError(session_id)

        result = await self.engine.analyze_realtime(segment, context)
        if result.trigger_card:
            await self.rooms.publish(
                session_id,
                "cards:immediate_trigger",
                {"sessionId": session_id, "segment": segment.to_dict(), "actions": result.immediate_actions},
            )
        if result.urgent_updates:
            await self.rooms.publish(
                session_id,
                "characters:urgent_updates",
                {"sessionId": session_id, "updates": [u.to_wire() for u in result.urgent_updates]},
            )
        return result

    async def start_server(self, host=None, port=None) -> None:
        from .main import start_server as _start_server

        await _start_server(self, host, port)

    async def shutdown(self) -> None:
        """Stop streams, pending batches, the sweeper and the HTTP server."""
        cleaned = await self.sessions.cleanup_all()
        await self.scheduler.close()
        await self.store.stop_sweeper()
        if self._health_runner is not None:
            await self._health_runner.cleanup()
            self._health_runner = None
        logger.info(f"Server shut down, {cleaned} active session(s) cleaned up")
