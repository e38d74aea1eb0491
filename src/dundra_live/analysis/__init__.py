"""Game context tracking and transcript analysis.

Public API:
- GameContextStore: Owner of every session's GameContext
- TranscriptionAnalysisEngine: Batch and real-time analysis
- BatchScheduler: Per-session batching in front of the engine
- TextAnalyzer / create_analyzer: Language model capability
"""

from .context_store import GameContextStore
from .engine import TranscriptionAnalysisEngine
from .llm import DummyAnalyzer, OpenAIAnalyzer, TextAnalyzer, create_analyzer
from .scheduler import BatchScheduler
from .schemas import (
    ANALYSIS_PARSE_FAILED,
    AnalysisResult,
    CardGenerationTrigger,
    CharacterUpdate,
    GameStateUpdate,
    KeyMoment,
    RealtimeResult,
)
from .types import GameContext, GameState

__all__ = [
    "ANALYSIS_PARSE_FAILED",
    "AnalysisResult",
    "BatchScheduler",
    "CardGenerationTrigger",
    "CharacterUpdate",
    "DummyAnalyzer",
    "GameContext",
    "GameContextStore",
    "GameState",
    "GameStateUpdate",
    "KeyMoment",
    "OpenAIAnalyzer",
    "RealtimeResult",
    "TextAnalyzer",
    "TranscriptionAnalysisEngine",
    "create_analyzer",
]
