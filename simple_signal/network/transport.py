"""WebSocket transport implementing the socket contract of the signaling core."""

import asyncio
import uuid
from typing import Any, Callable, Dict, Optional

import websockets
from pyee.asyncio import AsyncIOEventEmitter
from websockets.exceptions import ConnectionClosed

from simple_signal.signaling.events import SocketEvent
from simple_signal.signaling.protocol import Frame
from simple_signal.utils.logger import get_logger

logger = get_logger(__name__)


class _Outbox:
    """Ordered writer for one websocket connection."""

    def __init__(self, websocket: Any):
        self.websocket = websocket
        self._queue: "asyncio.Queue[str]" = asyncio.Queue()
        self._task = asyncio.ensure_future(self._run())

    def put(self, frame: str) -> None:
        self._queue.put_nowait(frame)

    async def _run(self) -> None:
        while True:
            frame = await self._queue.get()
            try:
                await self.websocket.send(frame)
            except ConnectionClosed:
                logger.debug("Dropping frame: connection closed")
            except Exception as e:
                logger.error(f"Failed to send frame: {e}")
            finally:
                self._queue.task_done()

    async def flush(self, timeout: float = 1.0) -> None:
        try:
            await asyncio.wait_for(self._queue.join(), timeout)
        except asyncio.TimeoutError:
            logger.warning(f"Outbox not drained after {timeout}s ({self._queue.qsize()} frames left)")

    def cancel(self) -> None:
        self._task.cancel()


class _SocketBase:
    """Socket-like wrapper: ``on``/``off`` for inbound events, ``emit`` to send."""

    def __init__(self, websocket: Any, socket_id: Optional[str] = None):
        self.id = socket_id
        self.websocket = websocket
        self.connected = True
        self._events = AsyncIOEventEmitter()
        self._outbox = _Outbox(websocket)
        self._closing: Optional[asyncio.Future] = None

    def on(self, event: str, handler: Callable) -> Callable:
        return self._events.on(event, handler)

    def off(self, event: str, handler: Callable) -> None:
        self._events.remove_listener(event, handler)

    def emit(self, event: str, data: Any = None) -> None:
        """Send ``event`` with ``data`` to the other end."""
        if not self.connected:
            logger.debug(f"Not connected, dropping {event}")
            return
        self._outbox.put(Frame(event=event, data=data).encode())

    def close(self) -> "asyncio.Future":
        """Flush pending frames and close the connection."""
        if self._closing is None:
            self._closing = asyncio.ensure_future(self._close())
        return self._closing

    async def _close(self) -> None:
        if self.connected:
            await self._outbox.flush()
        await self.websocket.close()

    def _dispatch(self, raw: Any) -> None:
        try:
            frame = Frame.decode(raw)
        except ValueError as e:
            logger.error(f"Failed to decode frame: {e}")
            return

        try:
            self._events.emit(frame.event, frame.data)
        except Exception as e:
            logger.error(f"Error handling {frame.event}: {e}")

    def _on_closed(self) -> None:
        self.connected = False
        self._outbox.cancel()
        self._events.emit(SocketEvent.DISCONNECT)


class WebSocketSocket(_SocketBase):
    """Client-side socket connected to a relay."""

    def __init__(self, websocket: Any):
        super().__init__(websocket)
        self._reader = asyncio.ensure_future(self._receive_loop())

    @classmethod
    async def connect(cls, url: str, **kwargs) -> "WebSocketSocket":
        """Open a connection to a relay.

        Args:
            url: Relay URL (e.g., ws://localhost:8765)
            **kwargs: Passed to ``websockets.connect``
        """
        logger.info(f"Connecting to signaling server: {url}")
        websocket = await websockets.connect(url, **kwargs)
        return cls(websocket)

    async def wait_closed(self) -> None:
        await asyncio.shield(self._reader)

    async def _receive_loop(self) -> None:
        try:
            async for message in self.websocket:
                self._dispatch(message)
        except ConnectionClosed as e:
            logger.debug(f"Connection closed: {e}")
        finally:
            self._on_closed()
            logger.info("Signaling connection closed")


class _Room:
    def __init__(self, relay: "WebSocketRelay", sender_id: str, target_id: str):
        self.relay = relay
        self.sender_id = sender_id
        self.target_id = target_id

    def emit(self, event: str, data: Any = None) -> None:
        target = self.relay.sockets.get(self.target_id)
        if target is None or target.id == self.sender_id:
            logger.debug(f"No recipient {self.target_id} for {event}")
            return
        target.emit(event, data)


class _Broadcast:
    def __init__(self, relay: "WebSocketRelay", sender_id: str):
        self.relay = relay
        self.sender_id = sender_id

    def to(self, target_id: str) -> _Room:
        """Address exactly one connection, never the sender itself."""
        return _Room(self.relay, self.sender_id, target_id)


class RelaySocket(_SocketBase):
    """Server-side socket for one endpoint connected to the relay."""

    def __init__(self, socket_id: str, websocket: Any, relay: "WebSocketRelay"):
        super().__init__(websocket, socket_id)
        self.broadcast = _Broadcast(relay, socket_id)


class WebSocketRelay(AsyncIOEventEmitter):
    """WebSocket server handing ``RelaySocket`` connections to a relay.

    Emits ``connection`` with each new ``RelaySocket``; each socket emits
    ``disconnect`` when its connection ends.
    """

    def __init__(self, host: str = "0.0.0.0", port: int = 8765):
        """Initialize the WebSocket relay host.

        Args:
            host: Server host
            port: Server port (0 picks a free port)
        """
        super().__init__()
        self.host = host
        self._port = port
        self.sockets: Dict[str, RelaySocket] = {}
        self._server = None

    @property
    def port(self) -> int:
        if self._server is not None:
            for sock in self._server.sockets:
                return sock.getsockname()[1]
        return self._port

    async def start(self) -> None:
        """Start listening."""
        self._server = await websockets.serve(self.handle_client, self.host, self._port)
        logger.info(f"Signaling relay listening on ws://{self.host}:{self.port}")

    async def stop(self) -> None:
        if self._server is None:
            return
        self._server.close()
        await self._server.wait_closed()
        self._server = None
        logger.info("Signaling relay stopped")

    async def serve_forever(self) -> None:
        """Start the relay and run until cancelled."""
        await self.start()
        try:
            await asyncio.Future()
        finally:
            await self.stop()

    async def handle_client(self, websocket: Any) -> None:
        """Handle one endpoint connection.

        Args:
            websocket: WebSocket connection
        """
        socket = RelaySocket(uuid.uuid4().hex, websocket, self)
        self.sockets[socket.id] = socket
        logger.info(f"Client connected: {socket.id} (total: {len(self.sockets)})")

        try:
            self.emit(SocketEvent.CONNECTION, socket)
            async for message in websocket:
                socket._dispatch(message)
        except ConnectionClosed:
            logger.debug(f"Connection closed for {socket.id}")
        finally:
            del self.sockets[socket.id]
            socket._on_closed()
            logger.info(f"Client disconnected: {socket.id} (remaining: {len(self.sockets)})")
