"""Core package exports."""

from .config import ConfigLoader, get_config, reload_config
from .errors import (
    AnalyzerError,
    BackendNotAvailableError,
    ContextNotFoundError,
    DundraLiveError,
    RecognizerError,
    StreamAlreadyActiveError,
    StreamError,
    TransportClosedError,
)
from .logging import setup_logging

__all__ = [
    "AnalyzerError",
    "BackendNotAvailableError",
    "ConfigLoader",
    "ContextNotFoundError",
    "DundraLiveError",
    "RecognizerError",
    "StreamAlreadyActiveError",
    "StreamError",
    "TransportClosedError",
    "get_config",
    "reload_config",
    "setup_logging",
]
