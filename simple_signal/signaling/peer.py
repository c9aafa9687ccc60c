"""Base peer-connection interface consumed by the session engine."""

from abc import ABC, abstractmethod
from typing import Any

from pyee.asyncio import AsyncIOEventEmitter

from simple_signal.signaling.events import PeerEvent


class BasePeer(AsyncIOEventEmitter, ABC):
    """Base class for peer-connection implementations.

    A peer negotiates one direct connection from opaque signaling payloads:

    * ``signal(data)`` feeds it a payload received from the remote side;
    * it emits ``signal`` with payloads that must reach the remote side;
    * it emits ``connect`` once the direct connection is up, ``stream`` and
      ``track`` for remote media, ``data`` for application messages and
      ``close`` exactly once when it goes away.

    ``destroy()`` must be idempotent.
    """

    def __init__(self, initiator: bool = False):
        """Initialize peer.

        Args:
            initiator: Whether this side starts the negotiation
        """
        super().__init__()
        self.initiator = initiator
        self.connected = False
        self.destroyed = False

    @abstractmethod
    def signal(self, data: Any) -> None:
        """Apply a signaling payload from the remote side."""
        pass

    @abstractmethod
    def _close(self) -> None:
        """Release the underlying connection resources."""
        pass

    def destroy(self) -> None:
        """Close the peer and emit ``close`` once."""
        if self.destroyed:
            return
        self.destroyed = True
        self.connected = False
        self._close()
        self.emit(PeerEvent.CLOSE)

    def _mark_connected(self) -> None:
        if self.connected or self.destroyed:
            return
        self.connected = True
        self.emit(PeerEvent.CONNECT)
