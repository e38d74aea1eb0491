#!/usr/bin/env python3
"""Configuration loader that reads from config files."""
import os
from pathlib import Path
from typing import Any

import tomllib

DEFAULT_CONFIG: dict[str, Any] = {
    "server": {
        "host": "0.0.0.0",
        "websocket_port": 3001,
        "http_port": 3002,
        "max_message_mb": 10,
        "ping_interval": 30,
        "ping_timeout": 10,
    },
    "speech": {
        "backend": "google",
        "encoding": "WEBM_OPUS",
        "sample_rate": 16000,
        "language": "en-US",
        "diarization": {"enabled": True, "min_speakers": 2, "max_speakers": 6},
        "punctuation": True,
        "word_time_offsets": True,
        "model": "latest_long",
        "use_enhanced": True,
        "restart": {"base_delay_s": 1.0, "max_delay_s": 30.0, "max_attempts": 10},
        "google": {"project_id": "", "api_key": "", "key_file": ""},
    },
    "analysis": {
        "backend": "openai",
        "model": "gpt-4o",
        "temperature": 0.1,
        "max_tokens": 2000,
        "realtime_max_tokens": 500,
        "realtime_enabled": True,
        "timeout_seconds": 60.0,
        "batch_size": 5,
        "idle_flush_seconds": 30.0,
        "max_recent_events": 50,
        "context_max_age_hours": 24.0,
        "cleanup_interval_seconds": 3600.0,
    },
}


class ConfigLoader:
    """Load configuration from config files."""

    def __init__(self, config_path: str | Path | None = None) -> None:
        if config_path is None:
            config_path = self._default_config_path()

        self.config_file = str(config_path)
        config_path = Path(config_path)
        if config_path.exists():
            with open(config_path, "rb") as f:
                full_config = tomllib.load(f)
            live_config = full_config.get("live", {})
        else:
            live_config = {}

        self._config = self._merge_dicts(DEFAULT_CONFIG, live_config)

    def _default_config_path(self) -> Path:
        env_path = os.environ.get("DUNDRA_CONFIG")
        if env_path:
            return Path(env_path)
        return Path.home() / ".dundra" / "config.toml"

    def _merge_dicts(self, base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
        merged = base.copy()
        for key, value in override.items():
            if key in merged and isinstance(merged[key], dict) and isinstance(value, dict):
                merged[key] = self._merge_dicts(merged[key], value)
            else:
                merged[key] = value
        return merged

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get a value using dot notation (e.g., 'server.websocket_port')"""
        keys = key_path.split(".")
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    @property
    def host(self) -> str:
        return str(self.get("server.host", "0.0.0.0"))

    @property
    def websocket_port(self) -> int:
        env_port = os.environ.get("DUNDRA_LIVE_PORT")
        if env_port:
            return int(env_port)
        return int(self.get("server.websocket_port", 3001))

    @property
    def http_port(self) -> int:
        return int(self.get("server.http_port", self.websocket_port + 1))

    @property
    def max_message_bytes(self) -> int:
        return int(float(self.get("server.max_message_mb", 10)) * 1024 * 1024)

    @property
    def speech_backend(self) -> str:
        """Recognizer backend name. 'DUNDRA_RECOGNIZER' wins over the config file."""
        env_backend = os.environ.get("DUNDRA_RECOGNIZER")
        if env_backend:
            return env_backend
        return str(self.get("speech.backend", "google"))

    @property
    def analysis_backend(self) -> str:
        env_backend = os.environ.get("DUNDRA_ANALYZER")
        if env_backend:
            return env_backend
        return str(self.get("analysis.backend", "openai"))

    @property
    def openai_api_key(self) -> str:
        return os.environ.get("OPENAI_API_KEY", "")

    @property
    def google_api_key(self) -> str:
        return os.environ.get("GOOGLE_CLOUD_API_KEY") or str(self.get("speech.google.api_key", ""))

    @property
    def google_key_file(self) -> str:
        return os.environ.get("GOOGLE_CLOUD_KEY_FILE") or str(self.get("speech.google.key_file", ""))

    @property
    def google_project_id(self) -> str:
        return os.environ.get("GOOGLE_CLOUD_PROJECT_ID") or str(self.get("speech.google.project_id", ""))

    @property
    def batch_size(self) -> int:
        return int(self.get("analysis.batch_size", 5))

    @property
    def idle_flush_seconds(self) -> float:
        return float(self.get("analysis.idle_flush_seconds", 30.0))

    @property
    def realtime_enabled(self) -> bool:
        return bool(self.get("analysis.realtime_enabled", True))

    @property
    def max_recent_events(self) -> int:
        return int(self.get("analysis.max_recent_events", 50))

    @property
    def context_max_age_hours(self) -> float:
        return float(self.get("analysis.context_max_age_hours", 24.0))

    @property
    def cleanup_interval_seconds(self) -> float:
        return float(self.get("analysis.cleanup_interval_seconds", 3600.0))


_config_loader: ConfigLoader | None = None


def get_config() -> ConfigLoader:
    """Get the process-wide configuration instance."""
    global _config_loader
    if _config_loader is None:
        _config_loader = ConfigLoader()
    return _config_loader


def reload_config(config_path: str | Path | None = None) -> ConfigLoader:
    """Replace the process-wide configuration instance."""
    global _config_loader
    _config_loader = ConfigLoader(config_path)
    return _config_loader


from .logging import setup_logging  # noqa: E402, F401
