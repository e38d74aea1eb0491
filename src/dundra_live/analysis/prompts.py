"""Prompt templates for transcript analysis.

Each template is a plain string with ``{placeholders}`` filled by the engine.
Literal JSON braces are doubled.
"""

from __future__ import annotations

from collections.abc import Iterable

from ..transcription.types import TranscriptionSegment, format_timestamp
from .types import GameContext

# ── Batch analysis ────────────────────────────────────────
ANALYSIS_PROMPT = """\
You are an expert D&D Game Master assistant analyzing live gameplay transcription. \
Your task is to identify key moments, track game state, and determine when AI-generated \
content should be created.

CURRENT GAME CONTEXT:
- Location: {current_location}
- Active Characters: {active_characters}
- Ongoing Quests: {ongoing_quests}
- Recent Events: {recent_events}
- Current State: {game_state}

TRANSCRIPTION TO ANALYZE:
{transcription}

Please analyze this transcription and provide a structured JSON response with the following sections:

1. KEY_MOMENTS: Identify significant events that should be tracked
2. GAME_STATE_UPDATE: Changes to location, characters, quests, or game state
3. CARD_GENERATION_TRIGGERS: Moments that require AI-generated content (NPCs, locations, items)
4. CHARACTER_UPDATES: Damage, healing, status changes, item gains/losses
5. CONTEXT_SUMMARY: Brief summary of what happened for future context

Use this JSON structure:
{{
  "keyMoments": [
    {{
      "type": "combat_start|combat_end|discovery|social_encounter|quest_update|character_development|environmental_change",
      "description": "Description of what happened",
      "timestamp": "ISO_timestamp_from_transcription",
      "severity": "low|medium|high",
      "relatedCharacters": ["character1", "character2"]
    }}
  ],
  "gameStateUpdate": {{
    "currentLocation": "New location if changed",
    "activeCharacters": ["updated character list"],
    "ongoingQuests": ["updated quest list"],
    "recentEvents": ["new events to add"],
    "gameState": "combat|exploration|social|planning|unknown"
  }},
  "cardGenerationTriggers": [
    {{
      "type": "npc|location|item|creature|plot_hook|environmental",
      "priority": 1-10,
      "description": "What needs to be generated",
      "context": "Context for generation",
      "suggestedContent": "Specific suggestion for the AI generator"
    }}
  ],
  "characterUpdates": [
    {{
      "characterName": "Character name",
      "updateType": "damage|healing|status_effect|item_gain|item_loss|skill_use|spell_cast",
      "details": "Specific details",
      "value": 123
    }}
  ],
  "contextSummary": "Brief summary of events for future reference"
}}

Focus on:
- Combat: Initiative, damage, spells, tactical decisions
- Exploration: New locations, discoveries, environmental details
- Social: NPC interactions, negotiations, roleplay moments
- Items/Equipment: Gains, losses, identification, usage
- Character Development: Level ups, new abilities, story moments
- Environmental: Weather, lighting, atmosphere changes

Be thorough but concise. Only include genuine updates and triggers.
Respond with the JSON document only.
"""

# ── Real-time analysis ────────────────────────────────────
REALTIME_PROMPT = """\
You are a D&D assistant providing real-time analysis of gameplay. Analyze this single \
statement for immediate actions needed.

CONTEXT:
- Speaker: {speaker}
- Game State: {game_state}
- Active Characters: {active_characters}

STATEMENT TO ANALYZE:
"{text}"

Provide a JSON response indicating immediate actions:

{{
  "immediateActions": ["List of immediate actions to take"],
  "triggerCard": true/false,
  "urgentUpdates": [
    {{
      "characterName": "Character name",
      "updateType": "damage|healing|status_effect|item_gain|item_loss",
      "details": "What happened",
      "value": 123
    }}
  ]
}}

Focus on urgent needs:
- Combat damage/healing that should be tracked immediately
- Critical status effects
- Important item acquisitions
- Environmental hazards
- NPC introductions requiring immediate card generation

Only include truly urgent items that need immediate processing.
Respond with the JSON document only.
"""


def format_transcript(segments: Iterable[TranscriptionSegment]) -> str:
    """One `[timestamp] speaker: text` line per segment."""
    return "\n".join(f"[{format_timestamp(s.timestamp)}] {s.speaker}: {s.text}" for s in segments)


def render_analysis_prompt(segments: list[TranscriptionSegment], context: GameContext) -> str:
    return ANALYSIS_PROMPT.format(
        transcription=format_transcript(segments),
        current_location=context.current_location or "Unknown",
        active_characters=", ".join(context.active_characters),
        ongoing_quests=", ".join(context.ongoing_quests),
        recent_events=", ".join(context.recent_events),
        game_state=context.game_state.value,
    )


def render_realtime_prompt(segment: TranscriptionSegment, context: GameContext) -> str:
    return REALTIME_PROMPT.format(
        text=segment.text,
        speaker=segment.speaker,
        game_state=context.game_state.value,
        active_characters=", ".join(context.active_characters),
    )
