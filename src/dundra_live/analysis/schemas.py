"""Structured analysis output.

These models validate what the language model returns and double as the wire
shape sent to clients (camelCase via `model_dump(by_alias=True)`).

List items are validated one by one: an item the model got wrong is dropped
with a warning and the rest of the result is kept. The same goes for single
fields of `gameStateUpdate`.
"""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator
from pydantic.alias_generators import to_camel

from .types import GameState

logger = logging.getLogger(__name__)

ANALYSIS_PARSE_FAILED = "Analysis parsing failed"


class _AnalysisModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)


class KeyMoment(_AnalysisModel):
    type: Literal[
        "combat_start",
        "combat_end",
        "discovery",
        "social_encounter",
        "quest_update",
        "character_development",
        "environmental_change",
    ]
    description: str
    timestamp: datetime | None = None
    severity: Literal["low", "medium", "high"] = "low"
    related_characters: list[str] = Field(default_factory=list)


class CardGenerationTrigger(_AnalysisModel):
    type: Literal["npc", "location", "item", "creature", "plot_hook", "environmental"]
    priority: int | float
    description: str
    context: str = ""
    suggested_content: str = ""


class CharacterUpdate(_AnalysisModel):
    character_name: str
    update_type: Literal[
        "damage",
        "healing",
        "status_effect",
        "item_gain",
        "item_loss",
        "skill_use",
        "spell_cast",
    ]
    details: str = ""
    value: float | None = None


class GameStateUpdate(_AnalysisModel):
    """Partial GameContext proposed by an analysis. Unset fields mean unchanged."""

    current_location: str | None = None
    active_characters: list[str] | None = None
    ongoing_quests: list[str] | None = None
    recent_events: list[str] | None = None
    game_state: GameState | None = None

    def to_fields(self) -> dict[str, Any]:
        """Attribute-named fields ready for GameContextStore.update_game_context."""
        return self.model_dump(exclude_none=True)

    def is_empty(self) -> bool:
        return not self.to_fields()


def _keep_valid(model: type[BaseModel], value: Any, field_name: str) -> list[Any]:
    """Validate list items one at a time and drop the ones that do not fit."""
    if value is None:
        return []
    if not isinstance(value, list):
        logger.warning(f"Ignoring {field_name}: expected a list, got {type(value).__name__}")
        return []

    kept = []
    for index, item in enumerate(value):
        try:
            kept.append(model.model_validate(item))
        except ValidationError as e:
            error = e.errors()[0]
            loc = ".".join(str(part) for part in error["loc"]) or "item"
            logger.warning(f"Dropping {field_name}[{index}]: {loc} {error['msg']}")
    return kept


class AnalysisResult(_AnalysisModel):
    key_moments: list[KeyMoment] = Field(default_factory=list)
    game_state_update: GameStateUpdate = Field(default_factory=GameStateUpdate)
    card_generation_triggers: list[CardGenerationTrigger] = Field(default_factory=list)
    character_updates: list[CharacterUpdate] = Field(default_factory=list)
    context_summary: str = ""

    @field_validator("key_moments", mode="before")
    @classmethod
    def _valid_moments(cls, value: Any) -> list[Any]:
        return _keep_valid(KeyMoment, value, "keyMoments")

    @field_validator("card_generation_triggers", mode="before")
    @classmethod
    def _valid_triggers(cls, value: Any) -> list[Any]:
        return _keep_valid(CardGenerationTrigger, value, "cardGenerationTriggers")

    @field_validator("character_updates", mode="before")
    @classmethod
    def _valid_updates(cls, value: Any) -> list[Any]:
        return _keep_valid(CharacterUpdate, value, "characterUpdates")

    @field_validator("game_state_update", mode="before")
    @classmethod
    def _valid_state_fields(cls, value: Any) -> Any:
        if value is None:
            return {}
        if not isinstance(value, dict):
            logger.warning(f"Ignoring gameStateUpdate: expected an object, got {type(value).__name__}")
            return {}
        try:
            return GameStateUpdate.model_validate(value)
        except ValidationError as e:
            bad = {str(err["loc"][0]) for err in e.errors() if err["loc"]}
            logger.warning(f"Ignoring gameStateUpdate field(s): {', '.join(sorted(bad))}")
            kept = {k: v for k, v in value.items() if k not in bad and to_camel(k) not in bad}
            return GameStateUpdate.model_validate(kept)

    @field_validator("context_summary", mode="before")
    @classmethod
    def _summary_text(cls, value: Any) -> Any:
        if value is None:
            return ""
        return value if isinstance(value, str) else str(value)

    @classmethod
    def empty(cls, summary: str = ANALYSIS_PARSE_FAILED) -> "AnalysisResult":
        return cls(context_summary=summary)

    def to_wire(self) -> dict[str, Any]:
        # Keep gameStateUpdate present even when nothing changed.
        payload = super().to_wire()
        payload.setdefault("gameStateUpdate", {})
        return payload


class RealtimeResult(_AnalysisModel):
    immediate_actions: list[str] = Field(default_factory=list)
    trigger_card: bool = False
    urgent_updates: list[CharacterUpdate] = Field(default_factory=list)

    @field_validator("urgent_updates", mode="before")
    @classmethod
    def _valid_updates(cls, value: Any) -> list[Any]:
        return _keep_valid(CharacterUpdate, value, "urgentUpdates")

    @classmethod
    def empty(cls) -> "RealtimeResult":
        return cls()
