"""Server package for dundra-live.

Public API:
    - CompanionServer: Owns shared services and accepts connections
    - SessionGateway: One client connection and its transcription stream
    - RoomHub: Session room fan-out
    - SessionRegistry: Active transcription sessions
    - main: Main entry point function
"""

from .core import CompanionServer, SessionGateway
from .main import main
from .rooms import RoomHub
from .sessions import SessionRegistry
from .transport import InboundMessage, RoomSocketTransport, Transport, WebSocketTransport

__all__ = [
    "CompanionServer",
    "InboundMessage",
    "RoomHub",
    "RoomSocketTransport",
    "SessionGateway",
    "SessionRegistry",
    "Transport",
    "WebSocketTransport",
    "main",
]
