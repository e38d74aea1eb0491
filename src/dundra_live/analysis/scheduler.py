"""Batch scheduler.

Accumulates final transcription segments per session and hands them to the
analysis engine in batches:
- A batch is submitted once `batch_size` segments are pending
- At most one batch per session is in flight; segments arriving meanwhile
  queue up and the threshold is re-checked when the batch completes
- Pending segments that sit idle for `idle_flush_seconds` are flushed anyway
  (0 disables the idle flush)

Results are folded into the context store and published to the session room.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

from ..core.errors import ContextNotFoundError
from ..transcription.types import TranscriptionSegment
from .context_store import GameContextStore
from .engine import TranscriptionAnalysisEngine
from .schemas import AnalysisResult

logger = logging.getLogger(__name__)


class BatchScheduler:
    def __init__(
        self,
        engine: TranscriptionAnalysisEngine,
        store: GameContextStore,
        publisher: Any,
        batch_size: int = 5,
        idle_flush_seconds: float = 30.0,
    ):
        """Initialize the scheduler.

        Args:
            engine: Analysis engine used for batch calls
            store: Context store the results are folded into
            publisher: Object with `async publish(session_id, event, data)`
            batch_size: Pending count that triggers a submission
            idle_flush_seconds: Quiet period before a partial batch is flushed

        """
        self.engine = engine
        self.store = store
        self.publisher = publisher
        self.batch_size = max(1, batch_size)
        self.idle_flush_seconds = idle_flush_seconds

        self._pending: dict[str, list[TranscriptionSegment]] = {}
        self._in_flight: dict[str, asyncio.Task] = {}
        self._idle_timers: dict[str, asyncio.TimerHandle] = {}
        self._flushes: set[asyncio.Task] = set()

    @classmethod
    def from_config(cls, config, engine, store, publisher) -> "BatchScheduler":
        return cls(
            engine,
            store,
            publisher,
            batch_size=config.batch_size,
            idle_flush_seconds=config.idle_flush_seconds,
        )

    def pending_count(self, session_id: str) -> int:
        return len(self._pending.get(session_id, ()))

    def is_in_flight(self, session_id: str) -> bool:
        return session_id in self._in_flight

    def add_segment(self, session_id: str, segment: TranscriptionSegment) -> asyncio.Task | None:
        """Queue a segment. Returns the batch task if this segment started one."""
        self._pending.setdefault(session_id, []).append(segment)
        self._arm_idle_timer(session_id)

        if session_id in self._in_flight:
            return None
        batch = self._take(session_id, force=False)
        if not batch:
            return None
        return self._start(session_id, batch)

    async def flush(self, session_id: str) -> AnalysisResult | None:
        """Submit whatever is pending right now and wait for the result."""
        self._cancel_idle_timer(session_id)
        await self._wait_for_in_flight(session_id)

        batch = self._take(session_id, force=True)
        if not batch:
            return None
        return await self._start(session_id, batch)

    def flush_soon(self, session_id: str) -> asyncio.Task:
        """Flush in the background, independent of the caller's lifetime."""
        task = asyncio.create_task(self.flush(session_id))
        self._flushes.add(task)
        task.add_done_callback(self._flushes.discard)
        return task

    def discard(self, session_id: str) -> None:
        """Forget a session's pending segments and cancel its in-flight batch."""
        self._cancel_idle_timer(session_id)
        self._pending.pop(session_id, None)
        task = self._in_flight.pop(session_id, None)
        if task is not None:
            task.cancel()

    async def close(self) -> None:
        for session_id in list(self._idle_timers):
            self._cancel_idle_timer(session_id)
        tasks = [*self._flushes, *self._in_flight.values()]
        self._flushes.clear()
        self._in_flight.clear()
        self._pending.clear()
        for task in tasks:
            task.cancel()
        if tasks:
            await asyncio.gather(*tasks, return_exceptions=True)

    async def _wait_for_in_flight(self, session_id: str) -> None:
        # A new batch may start while we wait, so check again after each one.
        running = self._in_flight.get(session_id)
        while running is not None:
            await asyncio.gather(running, return_exceptions=True)
            running = self._in_flight.get(session_id)

    def _take(self, session_id: str, force: bool) -> list[TranscriptionSegment]:
        pending = self._pending.get(session_id)
        if not pending or (not force and len(pending) < self.batch_size):
            return []
        del self._pending[session_id]
        self._cancel_idle_timer(session_id)
        return pending

    def _start(self, session_id: str, batch: list[TranscriptionSegment]) -> asyncio.Task:
        task = asyncio.create_task(self._run(session_id, batch))
        self._in_flight[session_id] = task
        return task

    async def _run(self, session_id: str, batch: list[TranscriptionSegment]) -> AnalysisResult | None:
        result = None
        try:
            while batch:
                try:
                    result = await self._submit(session_id, batch)
                except ContextNotFoundError as e:
                    logger.warning(f"Dropping batch of {len(batch)} segment(s): {e}")
                except Exception as e:
                    logger.exception(f"Batch analysis failed for session {session_id}: {e}")
                batch = self._take(session_id, force=False)
        finally:
            if self._in_flight.get(session_id) is asyncio.current_task():
                del self._in_flight[session_id]
            if self._pending.get(session_id):
                self._arm_idle_timer(session_id)
        return result

    async def submit(self, session_id: str, batch: list[TranscriptionSegment]) -> AnalysisResult:
        """Analyze `batch` right away, ahead of the pending list.

        Waits for a batch already in flight for the session and counts as the
        in-flight batch while it runs.

        Raises:
            ContextNotFoundError: If the session has no game context

        """
        await self._wait_for_in_flight(session_id)
        task = asyncio.create_task(self._submit(session_id, batch))
        self._in_flight[session_id] = task
        try:
            return await task
        except asyncio.CancelledError:
            current = asyncio.current_task()
            if current is not None and current.cancelling():
                raise
            # Discarded while running
            raise ContextNotFoundError(session_id) from None
        finally:
            if self._in_flight.get(session_id) is task:
                del self._in_flight[session_id]
                follow_up = self._take(session_id, force=False)
                if follow_up:
                    self._start(session_id, follow_up)
                elif self._pending.get(session_id):
                    self._arm_idle_timer(session_id)

    async def _submit(self, session_id: str, batch: list[TranscriptionSegment]) -> AnalysisResult:
        context = self.store.get_game_context(session_id)
        if context is None:
            raise ContextNotFoundError(session_id)

        logger.info(f"Analyzing batch of {len(batch)} segment(s) for session {session_id}")
        result = await self.engine.analyze_transcription(batch, context)

        # The context may have changed or vanished while the analyzer ran.
        context = self.store.get_game_context(session_id)
        if context is None:
            raise ContextNotFoundError(session_id)

        fields = result.game_state_update.to_fields()
        if "recent_events" in fields:
            fields["recent_events"] = context.recent_events + fields["recent_events"]
        if fields:
            context = self.store.update_game_context(session_id, fields) or context

        await self.publisher.publish(
            session_id,
            "analysis:complete",
            {"sessionId": session_id, "analysisResult": result.to_wire(), "context": context.to_dict()},
        )
        if result.card_generation_triggers:
            await self.publisher.publish(
                session_id,
                "cards:generate_triggers",
                {"sessionId": session_id, "triggers": [t.to_wire() for t in result.card_generation_triggers]},
            )
        if result.character_updates:
            await self.publisher.publish(
                session_id,
                "characters:updates",
                {"sessionId": session_id, "updates": [u.to_wire() for u in result.character_updates]},
            )
        return result

    # Idle flush
    def _arm_idle_timer(self, session_id: str) -> None:
        self._cancel_idle_timer(session_id)
        if self.idle_flush_seconds <= 0:
            return
        loop = asyncio.get_running_loop()
        self._idle_timers[session_id] = loop.call_later(self.idle_flush_seconds, self._on_idle, session_id)

    def _cancel_idle_timer(self, session_id: str) -> None:
        handle = self._idle_timers.pop(session_id, None)
        if handle is not None:
            handle.cancel()

    def _on_idle(self, session_id: str) -> None:
        self._idle_timers.pop(session_id, None)
        if session_id in self._in_flight:
            # Re-armed when the running batch finishes.
            return
        batch = self._take(session_id, force=True)
        if batch:
            logger.debug(f"Idle flush of {len(batch)} segment(s) for session {session_id}")
            self._start(session_id, batch)
