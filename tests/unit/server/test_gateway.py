import asyncio
import base64
import json

import pytest

from dundra_live.analysis.llm import DummyAnalyzer
from dundra_live.core.config import ConfigLoader
from dundra_live.server.core import CompanionServer, SessionGateway
from dundra_live.server.transport import InboundMessage, WebSocketTransport
from dundra_live.transcription.recognizers.internal.dummy import DummyRecognizer
from dundra_live.transcription.types import StreamEvent, StreamEventType


class _FakeWebSocket:
    def __init__(self, frames=()):
        self.remote_address = ("127.0.0.1", 9999)
        self.frames = list(frames)
        self.sent = []
        self.closed = False

    async def send(self, message):
        self.sent.append(json.loads(message))

    def __aiter__(self):
        return self

    async def __anext__(self):
        if not self.frames:
            raise StopAsyncIteration
        return self.frames.pop(0)

    async def close(self):
        self.closed = True

    def types(self):
        return [m["type"] for m in self.sent]

    def of(self, event):
        return [m["data"] for m in self.sent if m["type"] == event]


def _frame(event, data=None):
    return json.dumps({"type": event, "data": data})


def _server(tmp_path, analyzer=None, echo_text=None):
    config = ConfigLoader(tmp_path / "missing.toml")
    return CompanionServer(
        config,
        recognizer=DummyRecognizer(echo_text=echo_text),
        analyzer=analyzer or DummyAnalyzer(),
    )


async def _serve(server, frames):
    ws = _FakeWebSocket(frames)
    await server.handle_client(ws)
    await server.scheduler.close()
    return ws


@pytest.mark.asyncio
async def test_connect_announces_session_id(tmp_path):
    server = _server(tmp_path)

    ws = await _serve(server, [])

    assert ws.types() == ["connected"]
    assert ws.sent[0]["data"]["sessionId"]
    assert server.connected_clients == set()


@pytest.mark.asyncio
async def test_double_start_reports_already_active(tmp_path):
    server = _server(tmp_path)

    ws = await _serve(server, [_frame("start_transcription"), _frame("start_transcription")])

    assert ws.types() == ["connected", "status", "error"]
    assert ws.of("status") == [{"status": "started"}]
    assert ws.of("error") == [{"error": "Transcription is already active", "code": "already_active"}]
    assert len(server.recognizer.streams) == 1


@pytest.mark.asyncio
async def test_malformed_and_unknown_frames_keep_connection(tmp_path):
    server = _server(tmp_path)

    ws = await _serve(server, ["not json{", json.dumps([1, 2]), _frame("dance"), _frame("ping")])

    errors = [e["error"] for e in ws.of("error")]
    assert errors == ["Invalid message format", "Invalid message format", "Unknown message type"]
    assert ws.types()[-1] == "pong"


@pytest.mark.asyncio
async def test_disconnect_releases_stream_and_rooms(tmp_path):
    server = _server(tmp_path)

    await _serve(
        server,
        [
            _frame("join_session", {"sessionId": "g1", "campaignId": "c1"}),
            _frame("start_transcription"),
        ],
    )

    assert server.sessions.get_active_session_count() == 0
    assert server.recognizer.open_streams == []
    assert server.rooms.room_count() == 0
    assert server.connected_clients == set()
    # The game context outlives the connection
    assert server.store.get_game_context("g1") is not None


@pytest.mark.asyncio
async def test_audio_frames_in_every_encoding(tmp_path):
    server = _server(tmp_path)

    ws = await _serve(
        server,
        [
            _frame("start_transcription"),
            json.dumps({"type": "audio_chunk", "data": base64.b64encode(b"abc").decode(), "timestamp": 1}),
            b"\x01",
            _frame("audio_chunk", {"data": [1, 2, 3]}),
            _frame("audio_final", {"data": "!!!"}),
        ],
    )

    assert server.recognizer.streams[0].written == [b"abc", b"\x01", b"\x01\x02\x03"]
    assert ws.of("error")[0]["error"].startswith("Invalid base64 audio data")


@pytest.mark.asyncio
async def test_speaker_mapping_and_validation(tmp_path):
    server = _server(tmp_path)

    ws = await _serve(
        server,
        [
            _frame("speaker_mapping", {"speakerId": 1, "playerName": "Aria"}),
            _frame("speaker_mapping", {"speakerId": "2"}),
        ],
    )

    assert ws.of("speaker_mapped") == [{"speaker_id": "1", "player_name": "Aria"}]
    assert ws.of("error")[0]["error"].startswith("Invalid speaker_mapping message")


@pytest.mark.asyncio
async def test_get_status_reports_stream_state(tmp_path):
    server = _server(tmp_path)

    ws = await _serve(server, [_frame("start_transcription", {"sessionId": "g1"}), _frame("get_status")])

    status = ws.sent[-1]["data"]
    assert status["is_active"] is True
    assert status["state"] == "active"
    assert status["game_session_id"] == "g1"
    assert status["restart_attempts"] == 0


@pytest.mark.asyncio
async def test_context_commands(tmp_path):
    server = _server(tmp_path)

    ws = await _serve(
        server,
        [
            _frame("get_context", {"sessionId": "g1"}),
            _frame("join_session", {"sessionId": "g1"}),
            _frame("upsert_context", {"sessionId": "g1", "campaignId": "c1", "fields": {"gameState": "combat"}}),
            _frame("upsert_context", {"sessionId": "g1", "fields": {"hitPoints": 3}}),
            _frame("get_context", "g1"),
        ],
    )

    errors = ws.of("error")
    assert [e.get("code") for e in errors] == ["context_not_found", "context_not_found", None]
    contexts = ws.of("context")
    assert len(contexts) == 2
    assert contexts[0]["context"]["gameState"] == "combat"
    assert contexts[1]["context"]["campaignId"] == "c1"


@pytest.mark.asyncio
async def test_analyze_batch_replies_and_publishes_to_room(tmp_path):
    analyzer = DummyAnalyzer(responses=[json.dumps({"contextSummary": "Quiet tavern"})])
    server = _server(tmp_path, analyzer=analyzer)

    ws = await _serve(
        server,
        [
            _frame("join_session", {"sessionId": "g1", "campaignId": "c1"}),
            _frame("analyze_batch", {"sessionId": "g1", "segments": [{"text": "We enter the tavern"}]}),
        ],
    )

    assert ws.types() == ["connected", "session_joined", "analysis:complete", "analysis_result"]
    reply = ws.of("analysis_result")[0]
    assert reply["sessionId"] == "g1"
    assert reply["analysisResult"]["contextSummary"] == "Quiet tavern"
    assert reply["updatedContext"]["sessionId"] == "g1"


@pytest.mark.asyncio
async def test_submit_segment_queues_for_batching(tmp_path):
    server = _server(tmp_path)
    server.store.create_game_context("c1", "g1")

    ws = await _serve(server, [_frame("submit_segment", {"sessionId": "g1", "segment": {"text": "I roll a 17"}})])

    queued = ws.of("segment_queued")[0]
    assert queued["sessionId"] == "g1"
    assert queued["pending"] == 1
    assert queued["segmentId"].startswith("segment_")


@pytest.mark.asyncio
async def test_final_segment_forwarded_to_analysis(tmp_path):
    realtime = {"immediateActions": ["Roll initiative"], "triggerCard": True, "urgentUpdates": []}
    analyzer = DummyAnalyzer(responses=[json.dumps(realtime)])
    server = _server(tmp_path, analyzer=analyzer)
    server.store.create_game_context("c1", "g1")
    listener = WebSocketTransport(_FakeWebSocket())
    server.rooms.join("g1", listener)

    ws = _FakeWebSocket()
    gateway = SessionGateway(server, WebSocketTransport(ws))
    gateway.bind_game_session("g1")
    await gateway.stream.update_speaker_mapping("1", "Aria")

    data = {
        "text": "I draw my sword",
        "confidence": 0.8,
        "speaker_id": "1",
        "speaker_name": "Aria",
        "timestamp": 1714594500000,
        "is_final": True,
    }
    await gateway._on_stream_event(StreamEvent(StreamEventType.TRANSCRIPTION, gateway.session_id, data))
    await asyncio.gather(*list(gateway._tasks))

    assert ws.of("transcription")[0]["text"] == "I draw my sword"
    pending = server.scheduler._pending["g1"]
    assert [(s.text, s.speaker) for s in pending] == [("I draw my sword", "Aria")]
    assert '"I draw my sword"' in analyzer.prompts[0]
    trigger = listener._ws.of("cards:immediate_trigger")[0]
    assert trigger["actions"] == ["Roll initiative"]
    await gateway.cleanup()
    await server.scheduler.close()


@pytest.mark.asyncio
async def test_interim_or_unbound_segments_not_forwarded(tmp_path):
    server = _server(tmp_path)
    server.store.create_game_context("c1", "g1")
    gateway = SessionGateway(server, WebSocketTransport(_FakeWebSocket()))
    data = {"text": "I", "confidence": 0.5, "timestamp": 1714594500000, "is_final": False}

    gateway.bind_game_session("g1")
    await gateway._on_stream_event(StreamEvent(StreamEventType.TRANSCRIPTION, gateway.session_id, data))
    gateway.game_session_id = None
    final = {**data, "is_final": True}
    await gateway._on_stream_event(StreamEvent(StreamEventType.TRANSCRIPTION, gateway.session_id, final))

    assert server.scheduler.pending_count("g1") == 0
    assert gateway._tasks == set()
    await gateway.cleanup()


@pytest.mark.asyncio
async def test_handler_crash_reported_as_processing_error(tmp_path):
    server = _server(tmp_path)
    ws = _FakeWebSocket()
    gateway = SessionGateway(server, WebSocketTransport(ws))

    async def boom(message):
        raise RuntimeError("kaboom")

    gateway.message_handlers["ping"] = boom
    await gateway.process_message(InboundMessage(type="ping"))

    assert ws.of("error") == [{"error": "Processing error: kaboom"}]


@pytest.mark.asyncio
async def test_end_session_tears_down_context_and_batch(tmp_path):
    server = _server(tmp_path)

    ws = await _serve(
        server,
        [
            _frame("join_session", {"sessionId": "g1", "campaignId": "c1"}),
            _frame("submit_segment", {"sessionId": "g1", "segment": {"text": "We rest"}}),
            _frame("end_session", {"sessionId": "g1"}),
            _frame("end_session", {"sessionId": "g1"}),
        ],
    )

    assert ws.types() == [
        "connected",
        "session_joined",
        "segment_queued",
        "session:ended",
        "session_ended",
        "error",
    ]
    assert ws.of("session_ended") == [{"sessionId": "g1"}]
    assert ws.of("error")[0]["code"] == "context_not_found"
    assert server.store.get_game_context("g1") is None
    assert server.scheduler.pending_count("g1") == 0


@pytest.mark.asyncio
async def test_stop_transcription_flushes_pending_segments(tmp_path):
    analyzer = DummyAnalyzer()
    server = _server(tmp_path, analyzer=analyzer)
    server.store.create_game_context("c1", "g1")
    gateway = SessionGateway(server, WebSocketTransport(_FakeWebSocket()))

    for frame in [
        _frame("start_transcription", {"sessionId": "g1"}),
        _frame("submit_segment", {"sessionId": "g1", "segment": {"text": "I roll a 17"}}),
        _frame("submit_segment", {"sessionId": "g1", "segment": {"text": "That hits"}}),
        _frame("stop_transcription"),
    ]:
        await gateway.process_message(gateway.transport.decode(frame))

    flushes = list(server.scheduler._flushes)
    assert len(flushes) == 1
    await asyncio.gather(*flushes)

    assert len(analyzer.prompts) == 1
    assert "I roll a 17" in analyzer.prompts[0]
    assert "That hits" in analyzer.prompts[0]
    assert server.scheduler.pending_count("g1") == 0
    await gateway.cleanup()
    await server.scheduler.close()
