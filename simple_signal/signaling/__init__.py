"""Signaling module."""

from simple_signal.signaling.client import ConnectionResult, Request, SignalingClient
from simple_signal.signaling.errors import (
    ERR_CONNECTION_TIMEOUT,
    ERR_PREMATURE_CLOSE,
    ConnectionRejected,
    ConnectionTimeout,
    EngineDestroyedError,
    NotDiscoveredError,
    PrematureClose,
    Rejected,
    RequestAlreadyHandledError,
    SignalingError,
)
from simple_signal.signaling.events import ClientEvent, PeerEvent, RelayEvent, SocketEvent
from simple_signal.signaling.peer import BasePeer
from simple_signal.signaling.server import DiscoveryRequest, OfferRequest, SignalingServer

__all__ = [
    "SignalingClient",
    "SignalingServer",
    "ConnectionResult",
    "Request",
    "DiscoveryRequest",
    "OfferRequest",
    "BasePeer",
    "ClientEvent",
    "RelayEvent",
    "PeerEvent",
    "SocketEvent",
    "SignalingError",
    "NotDiscoveredError",
    "EngineDestroyedError",
    "RequestAlreadyHandledError",
    "ConnectionRejected",
    "ConnectionTimeout",
    "PrematureClose",
    "Rejected",
    "ERR_CONNECTION_TIMEOUT",
    "ERR_PREMATURE_CLOSE",
]
