"""Text analysis capability: prompt in, completion text out.

The engine only depends on `TextAnalyzer`; `create_analyzer()` picks the
implementation named in config.
"""

from __future__ import annotations

import json
import logging
from abc import ABC, abstractmethod
from typing import Any

from ..core.errors import AnalyzerError, BackendNotAvailableError

logger = logging.getLogger(__name__)


class TextAnalyzer(ABC):
    """A language-model completion service."""

    name: str = "base"

    @abstractmethod
    async def complete(self, prompt: str, *, temperature: float = 0.1, max_tokens: int = 2000) -> str:
        """Return the model's completion for `prompt`.

        Raises:
            AnalyzerError: If the upstream call fails

        """
        pass

    @property
    def is_ready(self) -> bool:
        return True


class OpenAIAnalyzer(TextAnalyzer):
    """OpenAI chat-completions wrapper with JSON mode and token accounting."""

    name = "openai"

    def __init__(self, *, api_key: str = "", model: str = "gpt-4o", timeout: float = 60.0) -> None:
        self.api_key = api_key
        self.model = model
        self.timeout = timeout
        self._client: Any = None
        self.total_input_tokens = 0
        self.total_output_tokens = 0

    @classmethod
    def from_config(cls, config) -> "OpenAIAnalyzer":
        return cls(
            api_key=config.openai_api_key,
            model=str(config.get("analysis.model", "gpt-4o")),
            timeout=float(config.get("analysis.timeout_seconds", 60.0)),
        )

    # ── lazy OpenAI client ────────────────────────────────
    @property
    def client(self) -> Any:
        if self._client is None:
            try:
                from openai import AsyncOpenAI
            except ImportError as exc:
                raise BackendNotAvailableError("openai is not installed: pip install openai") from exc
            self._client = AsyncOpenAI(api_key=self.api_key or None, timeout=self.timeout)
        return self._client

    async def complete(self, prompt: str, *, temperature: float = 0.1, max_tokens: int = 2000) -> str:
        try:
            response = await self.client.chat.completions.create(
                model=self.model,
                messages=[{"role": "user", "content": prompt}],
                temperature=temperature,
                max_tokens=max_tokens,
                response_format={"type": "json_object"},
            )
        except BackendNotAvailableError:
            raise
        except Exception as exc:
            raise AnalyzerError(f"OpenAI completion failed: {exc}") from exc

        usage = response.usage
        if usage:
            self.total_input_tokens += usage.prompt_tokens
            self.total_output_tokens += usage.completion_tokens
        return response.choices[0].message.content or ""

    @property
    def is_ready(self) -> bool:
        return bool(self.api_key)


class DummyAnalyzer(TextAnalyzer):
    """Deterministic analyzer for tests and offline runs.

    Returns queued responses in order, then `default` forever.
    """

    name = "dummy"

    def __init__(self, responses: list[str] | None = None, default: str | None = None) -> None:
        self.responses = list(responses or [])
        self.default = default if default is not None else json.dumps({"contextSummary": "No analysis available"})
        self.prompts: list[str] = []

    async def complete(self, prompt: str, *, temperature: float = 0.1, max_tokens: int = 2000) -> str:
        self.prompts.append(prompt)
        if self.responses:
            return self.responses.pop(0)
        return self.default


def create_analyzer(config) -> TextAnalyzer:
    """Instantiate the analyzer named in the application config."""
    name = config.analysis_backend
    if name == "openai":
        return OpenAIAnalyzer.from_config(config)
    if name == "dummy":
        return DummyAnalyzer()
    raise ValueError(f"Unknown analyzer: '{name}' (expected 'openai' or 'dummy')")
