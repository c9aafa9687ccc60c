"""WebRTC signaling client: the per-endpoint session engine."""

import asyncio
from collections import OrderedDict
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import ValidationError
from pyee.asyncio import AsyncIOEventEmitter

from simple_signal.signaling import protocol
from simple_signal.signaling.errors import (
    ConnectionRejected,
    ConnectionTimeout,
    EngineDestroyedError,
    NotDiscoveredError,
    PrematureClose,
    Rejected,
    RequestAlreadyHandledError,
)
from simple_signal.signaling.events import ClientEvent, PeerEvent
from simple_signal.utils.logger import get_logger

logger = get_logger(__name__)

# Closed or rejected session ids remembered for dropping late messages
RETIRED_LIMIT = 4096


class Role(str, Enum):
    INITIATOR = "initiator"
    ACCEPTOR = "acceptor"


class SessionState(str, Enum):
    PENDING = "pending"
    ESTABLISHED = "established"


@dataclass
class ConnectionResult:
    """Outcome of a successful connect/accept."""
    peer: Any
    metadata: Any


class _ConnectGate:
    """Holds back a peer's ``stream``/``track`` events until it is released."""

    def __init__(self, peer: Any):
        self.peer = peer
        self.events: List[Tuple[str, tuple]] = []
        peer.on(PeerEvent.STREAM.value, self._on_stream)
        peer.on(PeerEvent.TRACK.value, self._on_track)

    def _on_stream(self, *args) -> None:
        self.events.append((PeerEvent.STREAM.value, args))

    def _on_track(self, *args) -> None:
        self.events.append((PeerEvent.TRACK.value, args))

    def release(self, loop: asyncio.AbstractEventLoop) -> None:
        """Detach the interceptors and replay on two deferred ticks.

        Tick one re-emits ``connect`` to the application's listeners; tick two
        replays the buffered events in arrival order.
        """
        self.peer.remove_listener(PeerEvent.STREAM.value, self._on_stream)
        self.peer.remove_listener(PeerEvent.TRACK.value, self._on_track)
        events, self.events = self.events, []

        def replay():
            for name, args in events:
                self.peer.emit(name, *args)

        def reconnect():
            self.peer.emit(PeerEvent.CONNECT.value)
            loop.call_soon(replay)

        loop.call_soon(reconnect)


@dataclass
class Session:
    """Engine-side state of one connection attempt."""
    session_id: str
    role: Role
    peer: Any
    remote_id: str
    metadata: Any
    future: asyncio.Future
    gate: _ConnectGate
    state: SessionState = SessionState.PENDING
    remote_metadata: Any = None
    metadata_received: bool = False
    connected: bool = False
    offer_sent: bool = False
    timer: Optional[asyncio.TimerHandle] = None


@dataclass
class Request:
    """An inbound connection request awaiting an accept/reject decision."""
    initiator_id: str
    session_id: str
    metadata: Any
    _client: "SignalingClient" = field(repr=False, compare=False)
    answered: bool = False

    def accept(self, metadata: Any = None, peer_options: Optional[dict] = None) -> "asyncio.Future":
        """Accept the request; see ``SignalingClient.connect`` for the result."""
        return self._client._accept(self, metadata, peer_options)

    def reject(self, metadata: Any = None) -> None:
        """Reject the request, sending ``metadata`` to the initiator."""
        self._client._reject(self, metadata)


def _default_peer_factory(**options):
    from simple_signal.network.rtc import RTCPeer
    return RTCPeer(**options)


def _failed(exc: Exception) -> "asyncio.Future":
    future = asyncio.get_running_loop().create_future()
    future.set_exception(exc)
    return future


class SignalingClient(AsyncIOEventEmitter):
    """Session engine for one endpoint.

    Application events:
        ``ClientEvent.DISCOVER``: discovery data announced by the relay
        ``ClientEvent.REQUEST``: a ``Request`` for an inbound session
    """

    def __init__(
        self,
        socket: Any,
        connection_timeout: Optional[float] = 10.0,
        peer_factory: Optional[Callable[..., Any]] = None,
    ):
        """Initialize signaling client.

        Args:
            socket: Socket-like channel to the relay (on/emit/close)
            connection_timeout: Seconds before a pending connect/accept fails,
                and before signals queued without an offer are dropped; None
                or a negative value disables both
            peer_factory: Callable building a peer from keyword options,
                always called with ``initiator``; defaults to ``RTCPeer``
        """
        super().__init__()

        self.id: Optional[str] = None
        self.socket = socket
        self.connection_timeout = connection_timeout
        self._peer_factory = peer_factory or _default_peer_factory

        self._sessions: Dict[str, Session] = {}
        self._queues: Dict[str, List[Any]] = {}
        self._requests: Dict[str, Request] = {}
        self._queue_timers: Dict[str, asyncio.TimerHandle] = {}
        self._retired: "OrderedDict[str, None]" = OrderedDict()
        self._destroyed = False

        socket.on(protocol.DISCOVER, self._on_discover)
        socket.on(protocol.OFFER, self._on_offer)
        socket.on(protocol.SIGNAL, self._on_signal)
        socket.on(protocol.REJECT, self._on_reject)

    @property
    def destroyed(self) -> bool:
        return self._destroyed

    # -- public API -----------------------------------------------------

    def discover(self, discovery_data: Any = None) -> None:
        """Announce this endpoint to the relay.

        Args:
            discovery_data: Application payload for the relay's discover hook
        """
        if self._destroyed:
            raise EngineDestroyedError()
        self.socket.emit(protocol.DISCOVER, {} if discovery_data is None else discovery_data)

    def connect(
        self,
        target_id: str,
        metadata: Any = None,
        peer_options: Optional[dict] = None,
    ) -> "asyncio.Future":
        """Start a session with ``target_id``.

        Args:
            target_id: Relay-assigned id of the remote endpoint
            metadata: Application payload sent with the offer
            peer_options: Extra keyword options for the peer factory

        Returns:
            Future resolving to a ``ConnectionResult`` carrying the acceptor's
            metadata, or failing with a ``ConnectionRejected`` subclass

        Raises:
            NotDiscoveredError: If discovery has not completed
        """
        if self._destroyed:
            return _failed(EngineDestroyedError())
        if self.id is None:
            raise NotDiscoveredError()

        session_id = protocol.new_session_id()
        peer = self._create_peer(True, peer_options)
        session = Session(
            session_id=session_id,
            role=Role.INITIATOR,
            peer=peer,
            remote_id=target_id,
            metadata={} if metadata is None else metadata,
            future=asyncio.get_running_loop().create_future(),
            gate=_ConnectGate(peer),
        )
        self._register(session)
        self._start_timer(session)

        logger.info(f"Connecting to {target_id} (session {session_id})")
        return session.future

    def peers(self) -> List[Any]:
        """Snapshot of the live peer objects."""
        if self._destroyed:
            raise EngineDestroyedError()
        return [session.peer for session in self._sessions.values()]

    def destroy(self) -> None:
        """Close the channel, destroy every peer and drop all state."""
        if self._destroyed:
            return
        self._destroyed = True

        self.socket.close()
        for session in list(self._sessions.values()):
            self._close_session(session, PrematureClose())

        for timer in self._queue_timers.values():
            timer.cancel()

        self.id = None
        self.socket = None
        self._queue_timers.clear()
        self._queues.clear()
        self._requests.clear()
        self._retired.clear()
        self.remove_all_listeners()
        logger.info("Signaling client destroyed")

    # -- request answers ------------------------------------------------

    def _accept(self, request: Request, metadata: Any, peer_options: Optional[dict]) -> "asyncio.Future":
        if self._destroyed:
            return _failed(EngineDestroyedError())
        if request.answered:
            return _failed(RequestAlreadyHandledError(f"Request {request.session_id} already answered"))
        request.answered = True

        session_id = request.session_id
        self._requests.pop(session_id, None)

        peer = self._create_peer(False, peer_options)
        session = Session(
            session_id=session_id,
            role=Role.ACCEPTOR,
            peer=peer,
            remote_id=request.initiator_id,
            metadata={} if metadata is None else metadata,
            future=asyncio.get_running_loop().create_future(),
            gate=_ConnectGate(peer),
            remote_metadata=request.metadata,
            metadata_received=True,
        )
        self._register(session)
        self._start_timer(session)

        # Queue replay and removal happen before control returns to the loop.
        self._cancel_queue_timer(session_id)
        queue = self._queues.pop(session_id, [])
        logger.info(f"Accepting session {session_id} from {request.initiator_id} ({len(queue)} queued signals)")
        for signal in queue:
            if self._sessions.get(session_id) is not session:
                break
            peer.signal(signal)

        return session.future

    def _reject(self, request: Request, metadata: Any) -> None:
        if self._destroyed:
            raise EngineDestroyedError()
        if request.answered:
            raise RequestAlreadyHandledError(f"Request {request.session_id} already answered")
        request.answered = True

        session_id = request.session_id
        self._requests.pop(session_id, None)
        self._cancel_queue_timer(session_id)
        self._queues.pop(session_id, None)
        self._retire(session_id)

        message = protocol.RejectRequestMessage(
            session_id=session_id,
            target=request.initiator_id,
            metadata={} if metadata is None else metadata,
        )
        self.socket.emit(protocol.REJECT, message.to_wire())
        logger.info(f"Rejected session {session_id} from {request.initiator_id}")

    # -- inbound channel messages ---------------------------------------

    def _on_discover(self, data: Any) -> None:
        """Handle the relay's discovery reply.

        Args:
            data: ``{id, discoveryData}`` payload
        """
        if self._destroyed:
            return
        try:
            reply = protocol.DiscoverReply.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Ignoring malformed discover message: {e}")
            return

        self.id = reply.id
        logger.info(f"Discovered as {self.id}")
        self.emit(ClientEvent.DISCOVER, reply.discovery_data)

    def _on_offer(self, data: Any) -> None:
        """Handle an inbound offer by raising a connection request.

        Args:
            data: ``{initiator, sessionId, signal, metadata}`` payload
        """
        if self._destroyed:
            return
        try:
            offer = protocol.OfferMessage.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Ignoring malformed offer: {e}")
            return

        session_id = offer.session_id
        if session_id in self._sessions or session_id in self._requests or session_id in self._retired:
            logger.debug(f"Ignoring duplicate offer for session {session_id}")
            return

        # Signals can overtake an offer held back by the relay's request hook.
        self._cancel_queue_timer(session_id)
        self._queues[session_id] = [offer.signal] + self._queues.get(session_id, [])

        request = Request(
            initiator_id=offer.initiator,
            session_id=session_id,
            metadata=offer.metadata,
            _client=self,
        )
        self._requests[session_id] = request

        logger.info(f"Connection request from {offer.initiator} (session {session_id})")
        self.emit(ClientEvent.REQUEST, request)

    def _on_signal(self, data: Any) -> None:
        """Handle an inbound signal.

        Signals for a live session go to its peer; others are queued until
        the session's request is answered.

        Args:
            data: ``{sessionId, signal, metadata}`` payload
        """
        if self._destroyed:
            return
        try:
            message = protocol.SignalMessage.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Ignoring malformed signal: {e}")
            return

        session_id = message.session_id
        if session_id in self._retired:
            logger.debug(f"Ignoring signal for closed session {session_id}")
            return

        session = self._sessions.get(session_id)
        if session is None:
            if session_id not in self._queues and session_id not in self._requests:
                self._start_queue_timer(session_id)
            self._queues.setdefault(session_id, []).append(message.signal)
            return

        session.peer.signal(message.signal)

        if (
            message.metadata is not None
            and session.role is Role.INITIATOR
            and not session.metadata_received
        ):
            session.metadata_received = True
            session.remote_metadata = message.metadata
            self._maybe_establish(session)

    def _on_reject(self, data: Any) -> None:
        """Handle a rejection of one of our sessions.

        Args:
            data: ``{sessionId, metadata}`` payload
        """
        if self._destroyed:
            return
        try:
            message = protocol.RejectMessage.model_validate(data)
        except ValidationError as e:
            logger.debug(f"Ignoring malformed reject: {e}")
            return

        session = self._sessions.get(message.session_id)
        if session is None:
            logger.debug(f"Ignoring reject for unknown session {message.session_id}")
            return

        logger.info(f"Session {message.session_id} rejected by {session.remote_id}")
        self._close_session(session, Rejected(message.metadata))

    # -- peer wiring ----------------------------------------------------

    def _create_peer(self, initiator: bool, peer_options: Optional[dict]):
        options = dict(peer_options or {})
        options["initiator"] = initiator
        return self._peer_factory(**options)

    def _register(self, session: Session) -> None:
        self._sessions[session.session_id] = session
        peer = session.peer
        peer.on(PeerEvent.SIGNAL.value, partial(self._on_peer_signal, session))
        peer.once(PeerEvent.CONNECT.value, partial(self._on_peer_connect, session))
        peer.once(PeerEvent.CLOSE.value, partial(self._on_peer_close, session))

    def _is_live(self, session: Session) -> bool:
        return not self._destroyed and self._sessions.get(session.session_id) is session

    def _on_peer_signal(self, session: Session, signal: Any) -> None:
        """Send a signal produced by a session's peer through the relay.

        The initiator's first session description goes out as the offer.

        Args:
            session: Session owning the peer
            signal: Opaque signaling payload
        """
        if not self._is_live(session):
            return

        if session.role is Role.INITIATOR and not session.offer_sent and protocol.has_sdp(signal):
            session.offer_sent = True
            event = protocol.OFFER
            message = protocol.OfferRequestMessage(
                session_id=session.session_id,
                signal=signal,
                target=session.remote_id,
                metadata=session.metadata,
            )
        else:
            event = protocol.SIGNAL
            message = protocol.SignalRequestMessage(
                session_id=session.session_id,
                signal=signal,
                target=session.remote_id,
                metadata=session.metadata,
            )

        logger.debug(f"Sending {event} for session {session.session_id}")
        self.socket.emit(event, message.to_wire())

    def _on_peer_connect(self, session: Session, *args) -> None:
        session.connected = True
        self._maybe_establish(session)

    def _on_peer_close(self, session: Session, *args) -> None:
        self._close_session(session, PrematureClose())

    def _maybe_establish(self, session: Session) -> None:
        """Resolve a session once it is connected and has remote metadata.

        Args:
            session: Session to check
        """
        if not (session.connected and session.metadata_received):
            return
        if session.state is not SessionState.PENDING or not self._is_live(session):
            return

        session.state = SessionState.ESTABLISHED
        self._clear_timer(session)
        if not session.future.done():
            session.future.set_result(ConnectionResult(peer=session.peer, metadata=session.remote_metadata))
        session.gate.release(asyncio.get_running_loop())
        logger.info(f"Session {session.session_id} connected to {session.remote_id}")

    # -- teardown -------------------------------------------------------

    def _close_session(self, session: Session, error: ConnectionRejected) -> None:
        """Single teardown path for every way a session ends.

        Args:
            session: Session to close
            error: Failure set on the session's future if still pending
        """
        if self._sessions.get(session.session_id) is not session:
            return

        del self._sessions[session.session_id]
        self._retire(session.session_id)
        self._clear_timer(session)

        if not session.future.done():
            session.future.set_exception(error)
            logger.info(f"Session {session.session_id} failed: {error}")

        session.peer.destroy()

    def _retire(self, session_id: str) -> None:
        self._retired[session_id] = None
        self._retired.move_to_end(session_id)
        while len(self._retired) > RETIRED_LIMIT:
            self._retired.popitem(last=False)

    def _timeout_enabled(self) -> bool:
        return self.connection_timeout is not None and self.connection_timeout >= 0

    def _start_timer(self, session: Session) -> None:
        if not self._timeout_enabled() or session.state is not SessionState.PENDING or not self._is_live(session):
            return
        self._clear_timer(session)
        session.timer = asyncio.get_running_loop().call_later(self.connection_timeout, self._on_timeout, session)

    def _clear_timer(self, session: Session) -> None:
        if session.timer is not None:
            session.timer.cancel()
            session.timer = None

    def _on_timeout(self, session: Session) -> None:
        session.timer = None
        logger.warning(f"Session {session.session_id} timed out after {self.connection_timeout}s")
        self._close_session(session, ConnectionTimeout())

    def _start_queue_timer(self, session_id: str) -> None:
        """Drop signals for ``session_id`` if no offer follows in time.

        Args:
            session_id: Session whose first signal arrived before its offer
        """
        if not self._timeout_enabled():
            return
        self._queue_timers[session_id] = asyncio.get_running_loop().call_later(
            self.connection_timeout, self._expire_queue, session_id
        )

    def _cancel_queue_timer(self, session_id: str) -> None:
        timer = self._queue_timers.pop(session_id, None)
        if timer is not None:
            timer.cancel()

    def _expire_queue(self, session_id: str) -> None:
        self._queue_timers.pop(session_id, None)
        queue = self._queues.pop(session_id, [])
        logger.debug(f"Dropped {len(queue)} signals for session {session_id}: no offer arrived")
