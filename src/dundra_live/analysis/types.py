"""Game context types.

GameContext is the mutable summary of what is currently happening in one
session's game world. It primes every analysis prompt.
"""

from __future__ import annotations

from dataclasses import dataclass, field, fields
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from ..transcription.types import format_timestamp


class GameState(str, Enum):
    COMBAT = "combat"
    EXPLORATION = "exploration"
    SOCIAL = "social"
    PLANNING = "planning"
    UNKNOWN = "unknown"


DEFAULT_LOCATION = "Starting Location"

# Wire (camelCase) names accepted for context fields.
FIELD_ALIASES = {
    "campaignId": "campaign_id",
    "sessionId": "session_id",
    "currentLocation": "current_location",
    "activeCharacters": "active_characters",
    "ongoingQuests": "ongoing_quests",
    "recentEvents": "recent_events",
    "gameState": "game_state",
    "lastUpdated": "last_updated",
}

# Identity and the timestamp are owned by the store.
READONLY_FIELDS = {"campaign_id", "session_id", "last_updated"}


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class GameContext:
    campaign_id: str
    session_id: str
    current_location: str | None = DEFAULT_LOCATION
    active_characters: list[str] = field(default_factory=list)
    ongoing_quests: list[str] = field(default_factory=list)
    recent_events: list[str] = field(default_factory=list)
    game_state: GameState = GameState.UNKNOWN
    last_updated: datetime = field(default_factory=_now)

    def to_dict(self) -> dict[str, Any]:
        """Convert to the camelCase wire shape."""
        return {
            "campaignId": self.campaign_id,
            "sessionId": self.session_id,
            "currentLocation": self.current_location,
            "activeCharacters": list(self.active_characters),
            "ongoingQuests": list(self.ongoing_quests),
            "recentEvents": list(self.recent_events),
            "gameState": self.game_state.value,
            "lastUpdated": format_timestamp(self.last_updated),
        }


_CONTEXT_FIELDS = {f.name for f in fields(GameContext)}


def normalize_context_fields(updates: dict[str, Any]) -> dict[str, Any]:
    """Map wire names to attribute names and coerce values.

    Raises:
        ValueError: On unknown or read-only field names, or a bad game state

    """
    normalized: dict[str, Any] = {}
    for key, value in updates.items():
        name = FIELD_ALIASES.get(key, key)
        if name not in _CONTEXT_FIELDS:
            raise ValueError(f"Unknown game context field: {key}")
        if name in READONLY_FIELDS:
            raise ValueError(f"Game context field is read-only: {key}")
        if name == "game_state":
            value = GameState(value)
        elif name in ("active_characters", "ongoing_quests", "recent_events"):
            value = [str(item) for item in (value or [])]
        normalized[name] = value
    return normalized
