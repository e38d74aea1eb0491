"""Command handlers for client connections.

Each handler receives the connection's SessionGateway and the decoded
message. Handlers raise on bad input; SessionGateway.process_message turns
exceptions into `error` events so one bad command never drops the connection.

- handle_ping: Liveness check
- handle_start_transcription / handle_stop_transcription: Stream lifecycle
- handle_audio_chunk / handle_audio_final: Audio frames
- handle_speaker_mapping: Speaker tag to player name
- handle_get_status: Stream status
- handle_join_session / handle_leave_session: Room membership
- handle_analyze_batch / handle_analyze_realtime / handle_submit_segment: Analysis
- handle_upsert_context / handle_get_context: Game context
- handle_end_session: Game session teardown
"""

from __future__ import annotations

import base64
import binascii
import time
from typing import TYPE_CHECKING, Any

from ..core.config import setup_logging
from ..core.errors import ContextNotFoundError
from ..schemas.requests import (
    AnalyzeBatchRequest,
    AnalyzeRealtimeRequest,
    AudioChunkRequest,
    AudioFinalRequest,
    EndSessionRequest,
    GetContextRequest,
    JoinSessionRequest,
    LeaveSessionRequest,
    SpeakerMappingRequest,
    StartTranscriptionRequest,
    SubmitSegmentRequest,
    UpsertContextRequest,
)
from ..schemas.responses import (
    AnalysisResultMessage,
    ContextMessage,
    PongMessage,
    RealtimeResultMessage,
    SegmentQueued,
    SessionEnded,
    SessionJoined,
    SessionLeft,
    SessionStatus,
)
from ..transcription.types import TranscriptionSegment
from .transport import InboundMessage

if TYPE_CHECKING:
    from .core import SessionGateway

logger = setup_logging(__name__)


def decode_audio(data: Any) -> bytes:
    """Accept audio as bytes, a list of byte values or a base64 string.

    Raises:
        ValueError: If the payload cannot be turned into bytes

    """
    if isinstance(data, (bytes, bytearray)):
        return bytes(data)
    if isinstance(data, list):
        return bytes(data)
    if isinstance(data, str):
        try:
            return base64.b64decode(data, validate=True)
        except binascii.Error as e:
            raise ValueError(f"Invalid base64 audio data: {e}") from e
    raise ValueError("Audio data must be binary, a byte list or base64")


def _validate(model, message: InboundMessage):
    return model.model_validate({**message.data, "type": message.type})


def _require_context(gateway: SessionGateway, session_id: str):
    context = gateway.server.store.get_game_context(session_id)
    if context is None:
        raise ContextNotFoundError(session_id)
    return context


async def handle_ping(gateway: SessionGateway, message: InboundMessage) -> None:
    await gateway.send(PongMessage(timestamp=time.time()))


async def handle_start_transcription(gateway: SessionGateway, message: InboundMessage) -> None:
    request = _validate(StartTranscriptionRequest, message)
    logger.info(f"Starting transcription for session {gateway.session_id}")
    await gateway.stream.start()
    gateway.server.sessions.register(gateway)
    if request.session_id:
        gateway.bind_game_session(request.session_id)


async def handle_stop_transcription(gateway: SessionGateway, message: InboundMessage) -> None:
    logger.info(f"Stopping transcription for session {gateway.session_id}")
    await gateway.stream.stop()
    gateway.server.sessions.unregister(gateway.session_id)
    if gateway.game_session_id:
        gateway.server.scheduler.flush_soon(gateway.game_session_id)


async def _write_audio(gateway: SessionGateway, message: InboundMessage, model) -> None:
    if message.binary is not None:
        audio = message.binary
    else:
        request = _validate(model, message)
        if request.data is None:
            return
        audio = decode_audio(request.data)
    if audio:
        await gateway.stream.process_audio_chunk(audio)


async def handle_audio_chunk(gateway: SessionGateway, message: InboundMessage) -> None:
    await _write_audio(gateway, message, AudioChunkRequest)


async def handle_audio_final(gateway: SessionGateway, message: InboundMessage) -> None:
    await _write_audio(gateway, message, AudioFinalRequest)


async def handle_speaker_mapping(gateway: SessionGateway, message: InboundMessage) -> None:
    request = _validate(SpeakerMappingRequest, message)
    await gateway.stream.update_speaker_mapping(request.speaker_id, request.player_name)


async def handle_get_status(gateway: SessionGateway, message: InboundMessage) -> None:
    await gateway.send(SessionStatus(**gateway.get_status()))


async def handle_join_session(gateway: SessionGateway, message: InboundMessage) -> None:
    request = _validate(JoinSessionRequest, message)
    store = gateway.server.store
    context = store.get_game_context(request.session_id)
    if context is None:
        if request.campaign_id is None:
            raise ContextNotFoundError(request.session_id)
        context = store.create_game_context(request.campaign_id, request.session_id)
    gateway.server.rooms.join(request.session_id, gateway.transport)
    await gateway.send(SessionJoined(session_id=request.session_id, context=context.to_dict()))


async def handle_leave_session(gateway: SessionGateway, message: InboundMessage) -> None:
    request = _validate(LeaveSessionRequest, message)
    gateway.server.rooms.leave(request.session_id, gateway.transport)
    await gateway.send(SessionLeft(session_id=request.session_id))


async def handle_analyze_batch(gateway: SessionGateway, message: InboundMessage) -> None:
    request = _validate(AnalyzeBatchRequest, message)
    _require_context(gateway, request.session_id)
    segments = [TranscriptionSegment.from_dict(seg) for seg in request.segments]

    result = await gateway.server.scheduler.submit(request.session_id, segments)
    context = _require_context(gateway, request.session_id)
    await gateway.send(
        AnalysisResultMessage(
            session_id=request.session_id,
            analysis_result=result.to_wire(),
            updated_context=context.to_dict(),
        )
    )


async def handle_analyze_realtime(gateway: SessionGateway, message: InboundMessage) -> None:
    request = _validate(AnalyzeRealtimeRequest, message)
    segment = TranscriptionSegment.from_dict(request.segment)
    result = await gateway.server.analyze_realtime(request.session_id, segment)
    await gateway.send(RealtimeResultMessage(session_id=request.session_id, **result.to_wire()))


async def handle_submit_segment(gateway: SessionGateway, message: InboundMessage) -> None:
    request = _validate(SubmitSegmentRequest, message)
    _require_context(gateway, request.session_id)
    segment = TranscriptionSegment.from_dict(request.segment)

    if request.realtime:
        await gateway.server.analyze_realtime(request.session_id, segment)
        return
    scheduler = gateway.server.scheduler
    scheduler.add_segment(request.session_id, segment)
    await gateway.send(
        SegmentQueued(
            session_id=request.session_id,
            segment_id=segment.id,
            pending=scheduler.pending_count(request.session_id),
        )
    )


async def handle_upsert_context(gateway: SessionGateway, message: InboundMessage) -> None:
    request = _validate(UpsertContextRequest, message)
    store = gateway.server.store
    if store.get_game_context(request.session_id) is None:
        if request.campaign_id is None:
            raise ContextNotFoundError(request.session_id)
        store.create_game_context(request.campaign_id, request.session_id)

    if request.context_fields:
        store.update_game_context(request.session_id, request.context_fields)
    context = _require_context(gateway, request.session_id)
    await gateway.send(ContextMessage(session_id=request.session_id, context=context.to_dict()))


async def handle_get_context(gateway: SessionGateway, message: InboundMessage) -> None:
    request = _validate(GetContextRequest, message)
    context = _require_context(gateway, request.session_id)
    await gateway.send(ContextMessage(session_id=request.session_id, context=context.to_dict()))


async def handle_end_session(gateway: SessionGateway, message: InboundMessage) -> None:
    """Drop a game session's pending batch and context, then tell the room."""
    request = _validate(EndSessionRequest, message)
    server = gateway.server
    _require_context(gateway, request.session_id)

    server.scheduler.discard(request.session_id)
    server.store.remove_game_context(request.session_id)
    logger.info(f"Game session {request.session_id} ended by client {gateway.transport.id}")
    await server.rooms.publish(request.session_id, "session:ended", {"sessionId": request.session_id})
    await gateway.send(SessionEnded(session_id=request.session_id))
