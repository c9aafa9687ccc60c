"""WebRTC signaling server: the relay side of the session protocol."""

from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict

from pydantic import ValidationError
from pyee.asyncio import AsyncIOEventEmitter

from simple_signal.signaling import protocol
from simple_signal.signaling.events import RelayEvent, SocketEvent
from simple_signal.utils.logger import get_logger

logger = get_logger(__name__)

_UNSET = object()


class ConnectionState(str, Enum):
    CONNECTED = "connected"
    AWAITING_DISCOVERY = "awaiting_discovery"
    DISCOVERED = "discovered"
    DISCONNECTED = "disconnected"


@dataclass
class DiscoveryRequest:
    """Discovery handed to the application's discover hook.

    The hook must call ``discover(discovery_data)`` to answer the endpoint
    and start accepting its offers.
    """
    socket: Any
    discovery_data: Any
    discover: Callable[..., None] = field(repr=False)


@dataclass
class OfferRequest:
    """Offer handed to the application's request hook.

    The hook must call ``forward(metadata)`` to relay the offer; without an
    argument the current ``metadata`` attribute is sent, so a hook may also
    rewrite it in place. ``forward(None)`` sends null metadata.
    """
    initiator_id: str
    target_id: str
    session_id: str
    metadata: Any
    socket: Any
    forward: Callable[..., None] = field(repr=False)


@dataclass
class _Connection:
    """Relay-side state for one endpoint connection."""
    socket: Any
    state: ConnectionState = ConnectionState.CONNECTED
    handlers: Dict[str, Callable] = field(default_factory=dict)


class SignalingServer(AsyncIOEventEmitter):
    """Signaling relay.

    Application events (all optional):
        ``RelayEvent.DISCOVER``: a ``DiscoveryRequest``; when unhandled every
            endpoint is answered with its own id and empty discovery data
        ``RelayEvent.REQUEST``: an ``OfferRequest``; when unhandled offers are
            forwarded immediately
        ``RelayEvent.DISCONNECT``: the socket of a closed connection
    """

    def __init__(self, io: Any):
        """Initialize signaling server.

        Args:
            io: Connection source emitting ``connection`` with socket-like
                objects (on/off/emit, ``id``, ``broadcast.to(id).emit``)
        """
        super().__init__()
        self._connections: Dict[str, _Connection] = {}
        io.on(SocketEvent.CONNECTION.value, self._on_connection)

    def connection_state(self, socket_id: str) -> ConnectionState:
        connection = self._connections.get(socket_id)
        return connection.state if connection else ConnectionState.DISCONNECTED

    def _on_connection(self, socket: Any) -> None:
        """Start tracking a new endpoint connection.

        Args:
            socket: Socket of the new connection
        """
        connection = _Connection(socket=socket)
        self._connections[socket.id] = connection

        socket.on(protocol.DISCOVER, partial(self._on_discover, connection))
        socket.on(SocketEvent.DISCONNECT.value, partial(self._on_disconnect, connection))

        logger.debug(f"Connection opened: {socket.id} (total: {len(self._connections)})")

    def _on_discover(self, connection: _Connection, discovery_data: Any = None) -> None:
        """Handle a discovery announcement.

        Args:
            connection: Announcing connection
            discovery_data: Application payload sent by the endpoint
        """
        if connection.state is ConnectionState.DISCONNECTED:
            return
        if connection.state is ConnectionState.AWAITING_DISCOVERY:
            logger.debug(f"Ignoring discover from {connection.socket.id}: decision pending")
            return

        connection.state = ConnectionState.AWAITING_DISCOVERY
        request = DiscoveryRequest(
            socket=connection.socket,
            discovery_data=discovery_data,
            discover=partial(self._complete_discovery, connection),
        )

        if not self.listeners(RelayEvent.DISCOVER):
            request.discover()
        else:
            self.emit(RelayEvent.DISCOVER, request)

    def _complete_discovery(self, connection: _Connection, discovery_data: Any = None) -> None:
        """Answer a discovery and (re)bind the session message handlers.

        Args:
            connection: Connection being answered
            discovery_data: Payload returned to the endpoint; None sends ``{}``
        """
        if connection.state is ConnectionState.DISCONNECTED:
            return

        socket = connection.socket
        self._unbind(connection)

        reply = protocol.DiscoverReply(id=socket.id, discovery_data={} if discovery_data is None else discovery_data)
        socket.emit(protocol.DISCOVER, reply.to_wire())

        connection.handlers = {
            protocol.OFFER: partial(self._on_offer, connection),
            protocol.SIGNAL: partial(self._on_signal, connection),
            protocol.REJECT: partial(self._on_reject, connection),
        }
        for event, handler in connection.handlers.items():
            socket.on(event, handler)

        connection.state = ConnectionState.DISCOVERED
        logger.info(f"Endpoint discovered: {socket.id}")

    def _unbind(self, connection: _Connection) -> None:
        for event, handler in connection.handlers.items():
            connection.socket.off(event, handler)
        connection.handlers = {}

    def _on_offer(self, connection: _Connection, data: Any) -> None:
        """Handle an offer, forwarding it directly or through the request hook.

        Args:
            connection: Initiating connection
            data: Raw offer payload
        """
        try:
            offer = protocol.OfferRequestMessage.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Dropping malformed offer from {connection.socket.id}: {e}")
            return

        socket = connection.socket

        def forward(metadata: Any = _UNSET) -> None:
            # request.metadata is read at call time
            if metadata is _UNSET:
                metadata = request.metadata
            message = protocol.OfferMessage(
                initiator=socket.id,
                session_id=offer.session_id,
                signal=offer.signal,
                metadata=metadata,
            )
            self._forward(socket, offer.target, protocol.OFFER, message)

        request = OfferRequest(
            initiator_id=socket.id,
            target_id=offer.target,
            session_id=offer.session_id,
            metadata=offer.metadata,
            socket=socket,
            forward=forward,
        )

        if not self.listeners(RelayEvent.REQUEST):
            request.forward()
        else:
            self.emit(RelayEvent.REQUEST, request)

    def _on_signal(self, connection: _Connection, data: Any) -> None:
        """Forward a signal to its target.

        Args:
            connection: Sending connection
            data: Raw signal payload
        """
        try:
            signal = protocol.SignalRequestMessage.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Dropping malformed signal from {connection.socket.id}: {e}")
            return

        message = protocol.SignalMessage(
            session_id=signal.session_id,
            signal=signal.signal,
            metadata=signal.metadata,
        )
        self._forward(connection.socket, signal.target, protocol.SIGNAL, message)

    def _on_reject(self, connection: _Connection, data: Any) -> None:
        """Forward a rejection to its target.

        Args:
            connection: Rejecting connection
            data: Raw reject payload
        """
        try:
            reject = protocol.RejectRequestMessage.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Dropping malformed reject from {connection.socket.id}: {e}")
            return

        message = protocol.RejectMessage(session_id=reject.session_id, metadata=reject.metadata)
        self._forward(connection.socket, reject.target, protocol.REJECT, message)

    def _forward(self, socket: Any, target: str, event: str, message: protocol.WireModel) -> None:
        socket.broadcast.to(target).emit(event, message.to_wire())
        logger.debug(f"Forwarded {event} from {socket.id} to {target}")

    def _on_disconnect(self, connection: _Connection, *args) -> None:
        """Handle a closed connection.

        Args:
            connection: Closed connection
        """
        socket = connection.socket
        self._unbind(connection)
        connection.state = ConnectionState.DISCONNECTED
        if self._connections.get(socket.id) is connection:
            del self._connections[socket.id]

        logger.info(f"Connection closed: {socket.id} (remaining: {len(self._connections)})")
        self.emit(RelayEvent.DISCONNECT, socket)
