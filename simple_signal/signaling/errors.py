"""Signaling error taxonomy."""

from typing import Any, Optional

ERR_CONNECTION_TIMEOUT = "ERR_CONNECTION_TIMEOUT"
ERR_PREMATURE_CLOSE = "ERR_PREMATURE_CLOSE"


class SignalingError(Exception):
    """Base class for signaling errors."""


class NotDiscoveredError(SignalingError):
    """Operation attempted before the relay assigned an identity."""

    def __init__(self, message: str = "Must complete discovery first."):
        super().__init__(message)


class EngineDestroyedError(SignalingError):
    """Operation attempted after the engine was destroyed."""

    def __init__(self, message: str = "Client is destroyed."):
        super().__init__(message)


class RequestAlreadyHandledError(SignalingError):
    """A connection request was accepted or rejected more than once."""


class ConnectionRejected(SignalingError):
    """A pending connect/accept failed.

    Attributes:
        metadata: Rejection metadata; for explicit rejections this is
            exactly what the counterpart supplied
    """

    def __init__(self, metadata: Any = None, message: Optional[str] = None):
        self.metadata = metadata
        super().__init__(message or f"Connection rejected: {metadata!r}")

    @property
    def code(self) -> Optional[str]:
        if isinstance(self.metadata, dict):
            return self.metadata.get("code")
        return None


class ConnectionTimeout(ConnectionRejected):
    """No resolution within the configured window."""

    def __init__(self):
        super().__init__({"code": ERR_CONNECTION_TIMEOUT}, "Connection timed out")


class PrematureClose(ConnectionRejected):
    """The local peer closed before the session resolved."""

    def __init__(self):
        super().__init__({"code": ERR_PREMATURE_CLOSE}, "Peer closed before connecting")


class Rejected(ConnectionRejected):
    """The counterpart explicitly rejected the session."""
