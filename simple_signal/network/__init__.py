"""Network module."""

from simple_signal.network.transport import RelaySocket, WebSocketRelay, WebSocketSocket

__all__ = [
    "RelaySocket",
    "WebSocketRelay",
    "WebSocketSocket",
]
