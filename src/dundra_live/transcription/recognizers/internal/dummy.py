from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator

from ..base import RecognizerStream, SpeechRecognizer
from ...types import RecognitionConfig, RecognitionResult, WordInfo

_END = object()


class DummyRecognizerStream(RecognizerStream):
    """In-memory recognizer stream.

    With `echo_text` set, every written chunk yields one final result spoken by
    speaker "1". Tests drive it directly with `push()`, `fail()` and `end()`.
    """

    def __init__(self, config: RecognitionConfig, echo_text: str | None = None) -> None:
        self.config = config
        self.echo_text = echo_text
        self.written: list[bytes] = []
        self.closed = False
        self._queue: asyncio.Queue = asyncio.Queue()

    def write(self, chunk: bytes) -> None:
        if self.closed:
            raise RuntimeError("write after close")
        self.written.append(chunk)
        if self.echo_text:
            self.push(
                RecognitionResult(
                    text=self.echo_text,
                    confidence=1.0,
                    is_final=True,
                    words=[WordInfo(word=w, speaker_tag="1") for w in self.echo_text.split()],
                )
            )

    def push(self, result: RecognitionResult) -> None:
        self._queue.put_nowait(result)

    def fail(self, error: Exception) -> None:
        self._queue.put_nowait(error)

    def end(self) -> None:
        self._queue.put_nowait(_END)

    async def results(self) -> AsyncIterator[RecognitionResult]:
        while True:
            item = await self._queue.get()
            if item is _END:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    async def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.end()


class DummyRecognizer(SpeechRecognizer):
    """Deterministic backend for tests and local development.

    This backend never touches the network.
    """

    name = "dummy"

    def __init__(self, *, echo_text: str | None = "Hello world") -> None:
        self.echo_text = echo_text
        self.streams: list[DummyRecognizerStream] = []
        self.open_failures: list[Exception] = []

    async def open(self, config: RecognitionConfig) -> DummyRecognizerStream:
        if self.open_failures:
            raise self.open_failures.pop(0)
        stream = DummyRecognizerStream(config, echo_text=self.echo_text)
        self.streams.append(stream)
        return stream

    @property
    def open_streams(self) -> list[DummyRecognizerStream]:
        return [s for s in self.streams if not s.closed]
