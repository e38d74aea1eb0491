"""Transcription analysis engine.

Turns transcript segments plus the session's GameContext into structured game
signals using a TextAnalyzer. Analysis is advisory: every failure degrades to
an empty result and is logged, nothing is raised to the caller.
"""

from __future__ import annotations

import logging
import re
from typing import Any

from pydantic import ValidationError

from ..transcription.types import TranscriptionSegment
from .context_store import GameContextStore
from .llm import TextAnalyzer
from .prompts import render_analysis_prompt, render_realtime_prompt
from .schemas import AnalysisResult, RealtimeResult
from .types import GameContext

logger = logging.getLogger(__name__)

_CODE_FENCE = re.compile(r"^\s*```(?:json)?\s*(.*?)\s*```\s*$", re.DOTALL)


def strip_code_fence(raw: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    match = _CODE_FENCE.match(raw)
    return match.group(1) if match else raw.strip()


class TranscriptionAnalysisEngine:
    """Batch and real-time analysis over an injected analyzer and context store."""

    def __init__(
        self,
        analyzer: TextAnalyzer,
        store: GameContextStore,
        temperature: float = 0.1,
        max_tokens: int = 2000,
        realtime_max_tokens: int = 500,
    ):
        self.analyzer = analyzer
        self.store = store
        self.temperature = temperature
        self.max_tokens = max_tokens
        self.realtime_max_tokens = realtime_max_tokens

    @classmethod
    def from_config(cls, config, analyzer: TextAnalyzer, store: GameContextStore) -> "TranscriptionAnalysisEngine":
        return cls(
            analyzer,
            store,
            temperature=float(config.get("analysis.temperature", 0.1)),
            max_tokens=int(config.get("analysis.max_tokens", 2000)),
            realtime_max_tokens=int(config.get("analysis.realtime_max_tokens", 500)),
        )

    async def analyze_transcription(
        self, segments: list[TranscriptionSegment], context: GameContext
    ) -> AnalysisResult:
        """Run the batch prompt over `segments`. Never raises."""
        try:
            prompt = render_analysis_prompt(segments, context)
            raw = await self.analyzer.complete(prompt, temperature=self.temperature, max_tokens=self.max_tokens)
        except Exception as e:
            logger.warning(f"Batch analysis failed for session {context.session_id}: {e}")
            return AnalysisResult.empty()
        return self.parse_analysis_result(raw, segments)

    async def analyze_realtime(self, segment: TranscriptionSegment, context: GameContext) -> RealtimeResult:
        """Run the single-utterance prompt. Never raises."""
        try:
            prompt = render_realtime_prompt(segment, context)
            raw = await self.analyzer.complete(
                prompt, temperature=self.temperature, max_tokens=self.realtime_max_tokens
            )
        except Exception as e:
            logger.warning(f"Real-time analysis failed for session {context.session_id}: {e}")
            return RealtimeResult.empty()
        return self.parse_realtime_result(raw)

    def parse_analysis_result(
        self, raw: str, segments: list[TranscriptionSegment] | None = None
    ) -> AnalysisResult:
        try:
            result = AnalysisResult.model_validate_json(strip_code_fence(raw))
        except (ValidationError, ValueError, TypeError) as e:
            logger.warning(f"Failed to parse analysis result: {e}")
            return AnalysisResult.empty()

        if segments:
            fallback = segments[0].timestamp
            for moment in result.key_moments:
                if moment.timestamp is None:
                    moment.timestamp = fallback
        return result

    def parse_realtime_result(self, raw: str) -> RealtimeResult:
        try:
            return RealtimeResult.model_validate_json(strip_code_fence(raw))
        except (ValidationError, ValueError, TypeError) as e:
            logger.warning(f"Failed to parse real-time analysis: {e}")
            return RealtimeResult.empty()

    # Context lifecycle, delegated to the store
    def get_game_context(self, session_id: str) -> GameContext | None:
        return self.store.get_game_context(session_id)

    def update_game_context(self, session_id: str, updates: dict[str, Any]) -> GameContext | None:
        return self.store.update_game_context(session_id, updates)

    def create_game_context(self, campaign_id: str, session_id: str) -> GameContext:
        return self.store.create_game_context(campaign_id, session_id)

    def cleanup_old_contexts(self, max_age_hours: float = 24) -> int:
        return self.store.cleanup_old_contexts(max_age_hours)
