"""
Speech recognizer backends.

Supported backends:
- google: Google Cloud Speech-to-Text streaming (optional extra)
- dummy: Deterministic in-memory recognizer for tests and local runs
"""

from .base import RecognizerStream, SpeechRecognizer
from .registry import (
    create_recognizer,
    get_available_recognizers,
    get_recognizer_class,
    get_recognizer_info,
)

__all__ = [
    "RecognizerStream",
    "SpeechRecognizer",
    "create_recognizer",
    "get_available_recognizers",
    "get_recognizer_class",
    "get_recognizer_info",
]
