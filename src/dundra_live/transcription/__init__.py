"""Live transcription.

Public API:
- TranscriptionStream: Adapter owning one recognizer stream per session
- SpeakerRegistry: Speaker tag to player name mapping
- RestartPolicy: Backoff policy for stream auto-restart
- TranscriptionSegment / RecognitionConfig / StreamEvent: Types
"""

from .restart_policy import RestartPolicy, RestartPolicyConfig
from .speakers import SpeakerMapping, SpeakerRegistry
from .stream import TranscriptionStream
from .types import (
    RecognitionConfig,
    RecognitionResult,
    StreamEvent,
    StreamEventType,
    StreamState,
    TranscriptionSegment,
    WordInfo,
)

__all__ = [
    "RecognitionConfig",
    "RecognitionResult",
    "RestartPolicy",
    "RestartPolicyConfig",
    "SpeakerMapping",
    "SpeakerRegistry",
    "StreamEvent",
    "StreamEventType",
    "StreamState",
    "TranscriptionSegment",
    "TranscriptionStream",
    "WordInfo",
]
