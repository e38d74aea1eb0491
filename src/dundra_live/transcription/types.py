"""Type definitions for live transcription.

Provides:
- TranscriptionSegment: Immutable unit of recognized speech
- WordInfo: Word with timing and speaker tag
- RecognitionResult: One result yielded by a recognizer stream
- RecognitionConfig: Settings used to open a recognizer stream
- StreamState / StreamEvent: Adapter lifecycle and observer payloads
"""

from __future__ import annotations

import random
import string
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any

# Common D&D terms that generic models tend to misrecognize.
GAME_VOCABULARY = [
    "dungeon master", "DM", "GM", "game master",
    "initiative", "armor class", "AC", "hit points", "HP",
    "saving throw", "spell slot", "cantrip", "ritual",
    "barbarian", "bard", "cleric", "druid", "fighter",
    "monk", "paladin", "ranger", "rogue", "sorcerer",
    "warlock", "wizard", "artificer",
    "strength", "dexterity", "constitution", "intelligence",
    "wisdom", "charisma", "proficiency",
    "advantage", "disadvantage", "critical hit", "nat twenty",
    "perception check", "investigation", "insight",
    "persuasion", "deception", "intimidation",
    "stealth", "sleight of hand", "acrobatics", "athletics",
]


def generate_segment_id() -> str:
    suffix = "".join(random.choices(string.ascii_lowercase + string.digits, k=9))
    return f"segment_{int(time.time() * 1000)}_{suffix}"


def coerce_timestamp(value: Any) -> datetime:
    """Normalize ISO strings, epoch seconds/milliseconds and datetimes to aware UTC."""
    if value is None or value == "":
        return datetime.now(timezone.utc)
    if isinstance(value, datetime):
        return value if value.tzinfo else value.replace(tzinfo=timezone.utc)
    if isinstance(value, (int, float)):
        # Anything past ~2001-09 in seconds is treated as milliseconds.
        seconds = value / 1000.0 if value > 1e11 else float(value)
        return datetime.fromtimestamp(seconds, tz=timezone.utc)
    if isinstance(value, str):
        text = value.strip()
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        parsed = datetime.fromisoformat(text)
        return parsed if parsed.tzinfo else parsed.replace(tzinfo=timezone.utc)
    raise ValueError(f"Unsupported timestamp value: {value!r}")


def format_timestamp(value: datetime) -> str:
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass(frozen=True)
class TranscriptionSegment:
    """One unit of recognized speech with speaker, confidence and timing."""

    text: str
    speaker: str = "Unknown"
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    confidence: float = 1.0
    id: str = field(default_factory=generate_segment_id)

    def __post_init__(self) -> None:
        object.__setattr__(self, "confidence", min(1.0, max(0.0, float(self.confidence))))

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, TranscriptionSegment):
            return NotImplemented
        return self.id == other.id

    def __hash__(self) -> int:
        return hash(self.id)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "TranscriptionSegment":
        """Build a segment from a loosely-shaped client payload."""
        confidence = data.get("confidence")
        return cls(
            id=data.get("id") or generate_segment_id(),
            text=str(data.get("text", "")),
            speaker=data.get("speaker") or data.get("speakerId") or data.get("speaker_id") or "Unknown",
            timestamp=coerce_timestamp(data.get("timestamp")),
            confidence=1.0 if confidence is None else confidence,
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "text": self.text,
            "speaker": self.speaker,
            "timestamp": format_timestamp(self.timestamp),
            "confidence": self.confidence,
        }


@dataclass
class WordInfo:
    """A recognized word; times are milliseconds from stream start."""

    word: str
    start_time: int = 0
    end_time: int = 0
    speaker_tag: str | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "word": self.word,
            "start_time": self.start_time,
            "end_time": self.end_time,
            "speaker_id": self.speaker_tag,
        }


@dataclass
class RecognitionResult:
    """A single utterance hypothesis yielded by a recognizer stream."""

    text: str
    confidence: float = 0.0
    is_final: bool = False
    words: list[WordInfo] = field(default_factory=list)

    @property
    def speaker_tag(self) -> str | None:
        """Speaker of the utterance, taken from its first word."""
        if self.words and self.words[0].speaker_tag is not None:
            return self.words[0].speaker_tag
        return None


@dataclass(frozen=True)
class RecognitionConfig:
    """Settings used to open a recognizer stream."""

    encoding: str = "WEBM_OPUS"
    sample_rate_hertz: int = 16000
    language_code: str = "en-US"
    enable_diarization: bool = True
    min_speaker_count: int = 2
    max_speaker_count: int = 6
    enable_automatic_punctuation: bool = True
    enable_word_time_offsets: bool = True
    model: str | None = "latest_long"
    use_enhanced: bool = True
    interim_results: bool = True
    phrases: tuple[str, ...] = tuple(GAME_VOCABULARY)

    @classmethod
    def from_config(cls, config) -> "RecognitionConfig":
        """Build from the application ConfigLoader."""
        return cls(
            encoding=str(config.get("speech.encoding", "WEBM_OPUS")),
            sample_rate_hertz=int(config.get("speech.sample_rate", 16000)),
            language_code=str(config.get("speech.language", "en-US")),
            enable_diarization=bool(config.get("speech.diarization.enabled", True)),
            min_speaker_count=int(config.get("speech.diarization.min_speakers", 2)),
            max_speaker_count=int(config.get("speech.diarization.max_speakers", 6)),
            enable_automatic_punctuation=bool(config.get("speech.punctuation", True)),
            enable_word_time_offsets=bool(config.get("speech.word_time_offsets", True)),
            model=config.get("speech.model", "latest_long"),
            use_enhanced=bool(config.get("speech.use_enhanced", True)),
        )


class StreamState(Enum):
    """State of a transcription stream."""

    IDLE = "idle"
    ACTIVE = "active"
    RESTARTING = "restarting"
    STOPPED = "stopped"
    FAILED = "failed"


class StreamEventType(str, Enum):
    STARTED = "started"
    STOPPED = "stopped"
    TRANSCRIPTION = "transcription"
    SPEAKER_DETECTED = "speaker_detected"
    SPEAKER_MAPPED = "speaker_mapped"
    ERROR = "error"


@dataclass
class StreamEvent:
    """Observer payload emitted by TranscriptionStream."""

    type: StreamEventType
    session_id: str
    data: dict[str, Any] = field(default_factory=dict)
