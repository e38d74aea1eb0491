"""Event fan-out to the clients joined to a game session."""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Any

from ..core.config import setup_logging

if TYPE_CHECKING:
    from .transport import Transport

logger = setup_logging(__name__)


def room_name(session_id: str) -> str:
    return f"session_{session_id}"


class RoomHub:
    """Room membership plus fire-and-forget publishing.

    Delivery has no acknowledgement and nothing is replayed to late joiners.
    A member whose send fails and whose connection is gone is dropped.
    """

    def __init__(self) -> None:
        self._rooms: dict[str, set[Transport]] = {}

    def join(self, session_id: str, transport: Transport) -> None:
        self._rooms.setdefault(room_name(session_id), set()).add(transport)
        logger.info(f"Client {transport.id} joined session {session_id}")

    def leave(self, session_id: str, transport: Transport) -> None:
        name = room_name(session_id)
        members = self._rooms.get(name)
        if members is None:
            return
        members.discard(transport)
        if not members:
            del self._rooms[name]
        logger.info(f"Client {transport.id} left session {session_id}")

    def leave_all(self, transport: Transport) -> list[str]:
        """Remove a transport from every room. Returns the rooms it was in."""
        left = []
        for name in list(self._rooms):
            members = self._rooms[name]
            if transport in members:
                members.discard(transport)
                left.append(name)
                if not members:
                    del self._rooms[name]
        return left

    def members(self, session_id: str) -> set[Transport]:
        return set(self._rooms.get(room_name(session_id), ()))

    def room_count(self) -> int:
        return len(self._rooms)

    async def publish(self, session_id: str, event: str, data: dict[str, Any]) -> int:
        """Send to every member of the session room. Returns how many were reached."""
        members = self.members(session_id)
        if not members:
            return 0

        ordered = list(members)
        results = await asyncio.gather(*(m.send(event, data) for m in ordered), return_exceptions=True)
        delivered = 0
        for transport, outcome in zip(ordered, results):
            if isinstance(outcome, Exception):
                logger.warning(f"Failed to deliver {event} to client {transport.id}: {outcome}")
                if not transport.is_open:
                    self.leave(session_id, transport)
            else:
                delivered += 1
        return delivered
