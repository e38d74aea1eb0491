import logging

import pytest

from dundra_live.core.config import ConfigLoader
from dundra_live.core.errors import ContextNotFoundError, DundraLiveError, StreamAlreadyActiveError


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for name in ("DUNDRA_LIVE_PORT", "DUNDRA_RECOGNIZER", "DUNDRA_ANALYZER", "OPENAI_API_KEY"):
        monkeypatch.delenv(name, raising=False)


def test_defaults_without_file(tmp_path):
    config = ConfigLoader(tmp_path / "missing.toml")

    assert config.websocket_port == 3001
    assert config.http_port == 3002
    assert config.batch_size == 5
    assert config.idle_flush_seconds == 30.0
    assert config.max_recent_events == 50
    assert config.speech_backend == "google"
    assert config.analysis_backend == "openai"
    assert config.max_message_bytes == 10 * 1024 * 1024
    assert config.get("speech.restart.max_attempts") == 10
    assert config.get("speech.nope", "fallback") == "fallback"


def test_live_section_is_deep_merged(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text(
        "[other]\nignored = true\n\n"
        "[live.server]\nwebsocket_port = 4000\n\n"
        "[live.analysis]\nbatch_size = 3\nrealtime_enabled = false\n"
    )

    config = ConfigLoader(path)

    assert config.websocket_port == 4000
    assert config.host == "0.0.0.0"
    assert config.batch_size == 3
    assert config.realtime_enabled is False
    assert config.get("analysis.model") == "gpt-4o"
    assert config.get("other") is None


def test_environment_overrides(tmp_path, monkeypatch):
    monkeypatch.setenv("DUNDRA_LIVE_PORT", "5050")
    monkeypatch.setenv("DUNDRA_RECOGNIZER", "dummy")
    monkeypatch.setenv("DUNDRA_ANALYZER", "dummy")
    monkeypatch.setenv("OPENAI_API_KEY", "sk-env")

    config = ConfigLoader(tmp_path / "missing.toml")

    assert config.websocket_port == 5050
    assert config.speech_backend == "dummy"
    assert config.analysis_backend == "dummy"
    assert config.openai_api_key == "sk-env"


def test_config_path_from_environment(tmp_path, monkeypatch):
    path = tmp_path / "alt.toml"
    path.write_text("[live.analysis]\nbatch_size = 9\n")
    monkeypatch.setenv("DUNDRA_CONFIG", str(path))

    assert ConfigLoader().batch_size == 9


def test_error_codes():
    assert StreamAlreadyActiveError("s1").code == "already_active"
    error = ContextNotFoundError("g1")
    assert error.code == "context_not_found"
    assert "g1" in str(error)
    assert isinstance(error, DundraLiveError)


def test_setup_logging_returns_named_logger():
    from dundra_live.core.logging import setup_logging

    logger = setup_logging("dundra_live.tests.config")

    assert isinstance(logger, logging.Logger)
    assert logger.name == "dundra_live.tests.config"
    assert setup_logging("dundra_live.tests.config") is logger
    assert len(logger.handlers) == 1
