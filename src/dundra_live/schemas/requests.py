from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from pydantic.alias_generators import to_camel


class BaseMessage(BaseModel):
    model_config = ConfigDict(extra="allow", alias_generator=to_camel, populate_by_name=True)

    type: str


class SessionMessage(BaseMessage):
    session_id: str

    @model_validator(mode="before")
    @classmethod
    def _bare_session_id(cls, values: Any) -> Any:
        # Room clients may emit the session id alone, e.g. ["join_session", "abc"].
        if isinstance(values, dict) and "sessionId" not in values and "session_id" not in values:
            bare = values.get("data")
            if isinstance(bare, (str, int)):
                values = {**values, "sessionId": str(bare)}
        return values

    @field_validator("session_id", mode="before")
    @classmethod
    def _coerce_session_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class PingRequest(BaseMessage):
    type: str = "ping"


class StartTranscriptionRequest(BaseMessage):
    type: str = "start_transcription"
    session_id: str | None = None


class StopTranscriptionRequest(BaseMessage):
    type: str = "stop_transcription"


class AudioChunkRequest(BaseMessage):
    type: str = "audio_chunk"
    data: str | list[int] | bytes | None = None
    timestamp: float | None = None


class AudioFinalRequest(BaseMessage):
    type: str = "audio_final"
    data: str | list[int] | bytes | None = None


class SpeakerMappingRequest(BaseMessage):
    type: str = "speaker_mapping"
    speaker_id: str
    player_name: str

    @field_validator("speaker_id", mode="before")
    @classmethod
    def _coerce_speaker_id(cls, value: Any) -> Any:
        return str(value) if isinstance(value, int) else value


class GetStatusRequest(BaseMessage):
    type: str = "get_status"


class JoinSessionRequest(SessionMessage):
    type: str = "join_session"
    campaign_id: str | None = None


class LeaveSessionRequest(SessionMessage):
    type: str = "leave_session"


class AnalyzeBatchRequest(SessionMessage):
    type: str = "analyze_batch"
    segments: list[dict[str, Any]] = Field(min_length=1)


class AnalyzeRealtimeRequest(SessionMessage):
    type: str = "analyze_realtime"
    segment: dict[str, Any]


class SubmitSegmentRequest(SessionMessage):
    type: str = "submit_segment"
    segment: dict[str, Any]
    realtime: bool = False


class UpsertContextRequest(SessionMessage):
    type: str = "upsert_context"
    campaign_id: str | None = None
    context_fields: dict[str, Any] = Field(default_factory=dict, alias="fields")


class GetContextRequest(SessionMessage):
    type: str = "get_context"


class EndSessionRequest(SessionMessage):
    type: str = "end_session"
