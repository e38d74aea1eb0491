from abc import ABC, abstractmethod
from collections.abc import AsyncIterator

from ..types import RecognitionConfig, RecognitionResult


class RecognizerStream(ABC):
    """One open duplex stream to a speech-recognition service.

    Audio goes in through `write()`; hypotheses come out of `results()`.
    `results()` ends when the upstream stream ends and raises when it fails.
    """

    @abstractmethod
    def write(self, chunk: bytes) -> None:
        """Queue one audio frame. Must not block."""
        pass

    @abstractmethod
    def results(self) -> AsyncIterator[RecognitionResult]:
        """Iterate recognition results until the stream ends."""
        pass

    @abstractmethod
    async def close(self) -> None:
        """Stop sending audio and release the stream."""
        pass


class SpeechRecognizer(ABC):
    """Abstract base class for speech-recognition backends."""

    name: str = "base"

    @abstractmethod
    async def open(self, config: RecognitionConfig) -> RecognizerStream:
        """
        Open a new streaming recognition session.

        Args:
            config: Recognition settings for the stream.

        Returns:
            The open RecognizerStream.
        """
        pass

    @property
    def is_ready(self) -> bool:
        """Whether the backend has what it needs (credentials, client) to open streams."""
        return True
