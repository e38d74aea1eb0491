"""Client transports.

One capability, implemented once per real transport:
- WebSocketTransport: raw duplex socket (`websockets`), JSON frames
  `{"type": ..., "data": ...}`, binary frames are audio
- RoomSocketTransport: room-style socket (aiohttp), JSON array frames
  `[event, data]`, binary frames are audio

The gateway only sees `frames()`, `decode()`, `send()` and `close()`.
"""

from __future__ import annotations

import json
import uuid
from abc import ABC, abstractmethod
from collections.abc import AsyncIterator
from dataclasses import dataclass, field
from typing import Any

import websockets
import websockets.exceptions
from aiohttp import WSMsgType, web

from ..core.errors import TransportClosedError

AUDIO_CHUNK = "audio_chunk"


@dataclass
class InboundMessage:
    """A decoded client command."""

    type: str
    data: dict[str, Any] = field(default_factory=dict)
    binary: bytes | None = None


def _payload(value: Any, frame: dict[str, Any] | None = None) -> dict[str, Any]:
    if isinstance(value, dict):
        return value
    if frame is not None:
        # Flat frames such as {"type": "audio_chunk", "data": "...", "timestamp": 1}
        return {k: v for k, v in frame.items() if k != "type"}
    return {} if value is None else {"data": value}


class Transport(ABC):
    """A connected client."""

    kind = "base"

    def __init__(self) -> None:
        self.id = str(uuid.uuid4())[:8]

    @property
    @abstractmethod
    def is_open(self) -> bool:
        pass

    @property
    def remote_address(self) -> str:
        return "unknown"

    @abstractmethod
    def frames(self) -> AsyncIterator[str | bytes]:
        """Raw inbound frames until the client goes away."""
        pass

    @abstractmethod
    def decode(self, frame: str | bytes) -> InboundMessage:
        """Decode one frame.

        Raises:
            ValueError: If the frame is not a well-formed command

        """
        pass

    @abstractmethod
    async def send(self, event: str, data: dict[str, Any] | None = None) -> None:
        """Deliver one event.

        Raises:
            TransportClosedError: If the connection is gone

        """
        pass

    @abstractmethod
    async def close(self) -> None:
        pass


class WebSocketTransport(Transport):
    kind = "websocket"

    def __init__(self, websocket) -> None:
        super().__init__()
        self._ws = websocket
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def remote_address(self) -> str:
        address = getattr(self._ws, "remote_address", None)
        return str(address[0]) if address else "unknown"

    async def frames(self) -> AsyncIterator[str | bytes]:
        try:
            async for message in self._ws:
                yield message
        except websockets.exceptions.ConnectionClosed:
            pass
        finally:
            self._closed = True

    def decode(self, frame: str | bytes) -> InboundMessage:
        if isinstance(frame, bytes):
            return InboundMessage(type=AUDIO_CHUNK, binary=frame)
        message = json.loads(frame)
        if not isinstance(message, dict) or not isinstance(message.get("type"), str):
            raise ValueError("Frame must be an object with a string 'type'")
        return InboundMessage(type=message["type"], data=_payload(message.get("data"), message))

    async def send(self, event: str, data: dict[str, Any] | None = None) -> None:
        if self._closed:
            raise TransportClosedError(f"WebSocket {self.id} is closed")
        try:
            await self._ws.send(json.dumps({"type": event, "data": data}))
        except websockets.exceptions.ConnectionClosed as e:
            self._closed = True
            raise TransportClosedError(f"WebSocket {self.id} is closed") from e

    async def close(self) -> None:
        self._closed = True
        await self._ws.close()


class RoomSocketTransport(Transport):
    kind = "room"

    def __init__(self, ws: web.WebSocketResponse, remote: str | None = None) -> None:
        super().__init__()
        self._ws = ws
        self._remote = remote or "unknown"

    @property
    def is_open(self) -> bool:
        return not self._ws.closed

    @property
    def remote_address(self) -> str:
        return self._remote

    async def frames(self) -> AsyncIterator[str | bytes]:
        async for msg in self._ws:
            if msg.type == WSMsgType.TEXT:
                yield msg.data
            elif msg.type == WSMsgType.BINARY:
                yield msg.data
            elif msg.type == WSMsgType.ERROR:
                break

    def decode(self, frame: str | bytes) -> InboundMessage:
        if isinstance(frame, bytes):
            return InboundMessage(type=AUDIO_CHUNK, binary=frame)
        message = json.loads(frame)
        if isinstance(message, list) and message and isinstance(message[0], str):
            return InboundMessage(type=message[0], data=_payload(message[1] if len(message) > 1 else None))
        if isinstance(message, dict) and isinstance(message.get("type"), str):
            return InboundMessage(type=message["type"], data=_payload(message.get("data"), message))
        raise ValueError("Frame must be [event, data]")

    async def send(self, event: str, data: dict[str, Any] | None = None) -> None:
        if self._ws.closed:
            raise TransportClosedError(f"Room socket {self.id} is closed")
        try:
            await self._ws.send_str(json.dumps([event, data]))
        except ConnectionResetError as e:
            raise TransportClosedError(f"Room socket {self.id} is closed") from e

    async def close(self) -> None:
        await self._ws.close()
