"""Typed event names.

Emitters are ``pyee.asyncio.AsyncIOEventEmitter`` instances. The enums mix in
``str``, so a member and its value name the same event.
"""

from enum import Enum


class ClientEvent(str, Enum):
    """Events surfaced by the session engine to the application."""
    DISCOVER = "discover"
    REQUEST = "request"


class RelayEvent(str, Enum):
    """Events surfaced by the relay to the hosting application."""
    DISCOVER = "discover"
    REQUEST = "request"
    DISCONNECT = "disconnect"


class PeerEvent(str, Enum):
    """Events a peer-connection object emits."""
    SIGNAL = "signal"
    CONNECT = "connect"
    STREAM = "stream"
    TRACK = "track"
    DATA = "data"
    CLOSE = "close"


class SocketEvent(str, Enum):
    """Lifecycle events of socket-like channels."""
    CONNECTION = "connection"
    DISCONNECT = "disconnect"
