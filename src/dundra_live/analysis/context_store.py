"""Game context store.

Owns every live session's GameContext. One instance is created at process
start and handed to the engine, scheduler and gateway; nothing reaches it
through module globals.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from typing import Any

from .types import GameContext, normalize_context_fields

logger = logging.getLogger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class GameContextStore:
    """Session id -> GameContext with shallow merge updates and age-based sweep."""

    def __init__(self, max_recent_events: int = 50, clock: Callable[[], datetime] = _utcnow):
        self.max_recent_events = max_recent_events
        self._clock = clock
        self._contexts: dict[str, GameContext] = {}
        self._sweeper: asyncio.Task | None = None

    def __len__(self) -> int:
        return len(self._contexts)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._contexts

    def session_ids(self) -> list[str]:
        return list(self._contexts)

    def create_game_context(self, campaign_id: str, session_id: str) -> GameContext:
        """Insert a fresh context, replacing any existing one for the session."""
        context = GameContext(campaign_id=campaign_id, session_id=session_id, last_updated=self._clock())
        if session_id in self._contexts:
            logger.info(f"Resetting game context for session {session_id}")
        self._contexts[session_id] = context
        return context

    def get_game_context(self, session_id: str) -> GameContext | None:
        return self._contexts.get(session_id)

    def update_game_context(self, session_id: str, updates: dict[str, Any]) -> GameContext | None:
        """Shallow-merge `updates` into the session's context.

        Sessions without a context are left alone; no context is created.
        Provided fields overwrite, untouched fields survive. `recent_events`
        is trimmed to the newest `max_recent_events` entries.

        Raises:
            ValueError: On unknown or read-only field names

        """
        existing = self._contexts.get(session_id)
        if existing is None:
            logger.debug(f"Ignoring context update for unknown session {session_id}")
            return None

        fields = normalize_context_fields(updates)
        if "recent_events" in fields and self.max_recent_events > 0:
            fields["recent_events"] = fields["recent_events"][-self.max_recent_events :]

        updated = replace(existing, **fields, last_updated=self._clock())
        self._contexts[session_id] = updated
        return updated

    def remove_game_context(self, session_id: str) -> bool:
        return self._contexts.pop(session_id, None) is not None

    def cleanup_old_contexts(self, max_age_hours: float = 24) -> int:
        """Drop contexts not updated within `max_age_hours`. Returns how many were removed."""
        cutoff = self._clock() - timedelta(hours=max_age_hours)
        stale = [sid for sid, ctx in self._contexts.items() if ctx.last_updated < cutoff]
        for session_id in stale:
            del self._contexts[session_id]
        if stale:
            logger.info(f"Cleaned up {len(stale)} game context(s) older than {max_age_hours}h")
        return len(stale)

    async def _sweep_forever(self, interval_seconds: float, max_age_hours: float) -> None:
        while True:
            await asyncio.sleep(interval_seconds)
            self.cleanup_old_contexts(max_age_hours)

    def start_sweeper(self, interval_seconds: float = 3600, max_age_hours: float = 24) -> None:
        """Run cleanup_old_contexts on a fixed interval in the background."""
        if self._sweeper is not None and not self._sweeper.done():
            return
        self._sweeper = asyncio.create_task(self._sweep_forever(interval_seconds, max_age_hours))

    async def stop_sweeper(self) -> None:
        sweeper, self._sweeper = self._sweeper, None
        if sweeper is None:
            return
        sweeper.cancel()
        await asyncio.gather(sweeper, return_exceptions=True)
