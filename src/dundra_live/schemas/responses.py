"""Outbound event payloads.

Every model is the `data` half of an event; the event name lives on the class
as `event`. Field names go out in the casing clients already expect, so
camelCase fields carry explicit aliases.
"""

from __future__ import annotations

from typing import Any, ClassVar

from pydantic import BaseModel, ConfigDict, Field


class EventPayload(BaseModel):
    model_config = ConfigDict(extra="allow", populate_by_name=True)

    event: ClassVar[str] = ""

    def to_payload(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class ErrorMessage(EventPayload):
    event: ClassVar[str] = "error"

    error: str
    code: str | None = None
    fatal: bool | None = None


class ConnectedMessage(EventPayload):
    event: ClassVar[str] = "connected"

    session_id: str = Field(alias="sessionId")


class StatusMessage(EventPayload):
    event: ClassVar[str] = "status"

    status: str


class SessionStatus(EventPayload):
    event: ClassVar[str] = "status"

    is_active: bool
    session_id: str
    speaker_count: int
    state: str
    restart_attempts: int = 0
    game_session_id: str | None = None


class PongMessage(EventPayload):
    event: ClassVar[str] = "pong"

    timestamp: float


class TranscriptionMessage(EventPayload):
    event: ClassVar[str] = "transcription"

    text: str
    confidence: float
    speaker_id: str | None = None
    speaker_name: str | None = None
    timestamp: int
    is_final: bool
    words: list[dict[str, Any]] | None = None


class SpeakerDetected(EventPayload):
    event: ClassVar[str] = "speaker_detected"

    speaker_id: str


class SpeakerMapped(EventPayload):
    event: ClassVar[str] = "speaker_mapped"

    speaker_id: str
    player_name: str


class SessionJoined(EventPayload):
    event: ClassVar[str] = "session_joined"

    session_id: str = Field(alias="sessionId")
    context: dict[str, Any]


class SessionLeft(EventPayload):
    event: ClassVar[str] = "session_left"

    session_id: str = Field(alias="sessionId")


class SessionEnded(EventPayload):
    event: ClassVar[str] = "session_ended"

    session_id: str = Field(alias="sessionId")


class ContextMessage(EventPayload):
    event: ClassVar[str] = "context"

    session_id: str = Field(alias="sessionId")
    context: dict[str, Any]


class AnalysisResultMessage(EventPayload):
    event: ClassVar[str] = "analysis_result"

    session_id: str = Field(alias="sessionId")
    analysis_result: dict[str, Any] = Field(alias="analysisResult")
    updated_context: dict[str, Any] = Field(alias="updatedContext")


class RealtimeResultMessage(EventPayload):
    event: ClassVar[str] = "realtime_result"

    session_id: str = Field(alias="sessionId")
    immediate_actions: list[str] = Field(alias="immediateActions")
    trigger_card: bool = Field(alias="triggerCard")
    urgent_updates: list[dict[str, Any]] = Field(alias="urgentUpdates")


class SegmentQueued(EventPayload):
    event: ClassVar[str] = "segment_queued"

    session_id: str = Field(alias="sessionId")
    segment_id: str = Field(alias="segmentId")
    pending: int
