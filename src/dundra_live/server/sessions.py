"""Registry of connections that currently own an active transcription stream."""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from ..core.config import setup_logging

if TYPE_CHECKING:
    from .core import SessionGateway

logger = setup_logging(__name__)


class SessionRegistry:
    def __init__(self) -> None:
        self._sessions: dict[str, SessionGateway] = {}

    def register(self, gateway: SessionGateway) -> None:
        self._sessions[gateway.session_id] = gateway

    def unregister(self, session_id: str) -> None:
        self._sessions.pop(session_id, None)

    def __contains__(self, session_id: object) -> bool:
        return session_id in self._sessions

    def get_active_session_count(self) -> int:
        return len(self._sessions)

    def get_session_info(self, session_id: str) -> dict[str, Any] | None:
        gateway = self._sessions.get(session_id)
        if gateway is None:
            return None
        return gateway.get_status()

    async def cleanup_all(self) -> int:
        """Stop every registered stream. Returns how many sessions were cleaned up."""
        gateways = list(self._sessions.values())
        self._sessions.clear()
        for gateway in gateways:
            logger.info(f"Cleaning up session {gateway.session_id}")
            try:
                await gateway.stream.cleanup()
            except Exception as e:
                logger.exception(f"Error cleaning up session {gateway.session_id}: {e}")
        return len(gateways)
