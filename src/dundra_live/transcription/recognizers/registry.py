"""Recognizer registry and availability checks.

Keep backend selection logic centralized here so other modules don't need to do
import-probing.
"""

from __future__ import annotations

import logging

from ...core.errors import BackendNotAvailableError
from .base import SpeechRecognizer

logger = logging.getLogger(__name__)

GOOGLE_AVAILABLE: bool | None = None


def _check_google_available() -> bool:
    """Return whether the Google Cloud Speech backend can be imported."""
    global GOOGLE_AVAILABLE
    if GOOGLE_AVAILABLE is not None:
        return GOOGLE_AVAILABLE
    try:
        from .internal import google as _google_backend  # noqa: F401

        GOOGLE_AVAILABLE = True
    except Exception as exc:
        logger.debug("Google speech backend unavailable: %s", exc)
        GOOGLE_AVAILABLE = False
    return GOOGLE_AVAILABLE


def get_available_recognizers() -> list[str]:
    """Return list of available recognizer names."""
    recognizers = ["dummy"]
    if _check_google_available():
        recognizers.append("google")
    return recognizers


def get_recognizer_info() -> dict[str, dict]:
    """Return detailed info about all recognizers."""
    return {
        "dummy": {
            "available": True,
            "description": "Deterministic echo recognizer (no network)",
            "install": "Included by default",
        },
        "google": {
            "available": _check_google_available(),
            "description": "Google Cloud Speech-to-Text streaming with diarization",
            "install": "pip install dundra-live[google]",
        },
    }


def get_recognizer_class(name: str) -> type[SpeechRecognizer]:
    """Factory function to get the recognizer class based on name."""
    if name == "dummy":
        from .internal.dummy import DummyRecognizer

        return DummyRecognizer

    if name == "google":
        if not _check_google_available():
            raise BackendNotAvailableError(
                "Google speech backend requested but google-cloud-speech is not installed.\n"
                "  Install: pip install dundra-live[google]\n"
                'Or pick another backend: [live.speech] backend = "dummy"'
            )
        from .internal.google import GoogleSpeechRecognizer

        return GoogleSpeechRecognizer

    available = get_available_recognizers()
    raise ValueError(
        f"Unknown recognizer: '{name}'\n"
        f"Available recognizers: {', '.join(available)}\n"
        f"  - 'dummy': Deterministic echo recognizer\n"
        f"  - 'google': Google Cloud Speech-to-Text (requires [google] extras)"
    )


def create_recognizer(config) -> SpeechRecognizer:
    """Instantiate the recognizer named in the application config."""
    recognizer_class = get_recognizer_class(config.speech_backend)
    from_config = getattr(recognizer_class, "from_config", None)
    if from_config is not None:
        return from_config(config)
    return recognizer_class()
