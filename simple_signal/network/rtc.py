"""aiortc-backed peer connection."""

import asyncio
from typing import Any, List, Optional, Set

from aiortc import (
    RTCConfiguration,
    RTCDataChannel,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp

from simple_signal.signaling.events import PeerEvent
from simple_signal.signaling.peer import BasePeer
from simple_signal.signaling.protocol import has_sdp
from simple_signal.utils.logger import get_logger

logger = get_logger(__name__)

DEFAULT_ICE_SERVERS = ["stun:stun.l.google.com:19302"]


class RTCPeer(BasePeer):
    """Peer connection with one data channel.

    Signals are dicts: ``{"type": "offer"|"answer", "sdp": ...}`` for
    session descriptions and ``{"type": "candidate", "candidate": {...}}`` for
    trickled candidates. aiortc gathers candidates before emitting a
    description, so it never emits candidates itself.
    """

    def __init__(
        self,
        initiator: bool = False,
        ice_servers: Optional[List[str]] = None,
        channel_label: str = "simple-signal",
    ):
        """Initialize RTC peer.

        Args:
            initiator: Whether this side creates the offer and data channel
            ice_servers: STUN/TURN server URLs
            channel_label: Data channel label
        """
        super().__init__(initiator)
        self.channel_label = channel_label

        urls = DEFAULT_ICE_SERVERS if ice_servers is None else ice_servers
        config = RTCConfiguration(iceServers=[RTCIceServer(urls=[url]) for url in urls])
        self.pc = RTCPeerConnection(configuration=config)
        self.channel: Optional[RTCDataChannel] = None

        # Serializes description changes in signal arrival order
        self._signal_lock = asyncio.Lock()
        self._tasks: Set[asyncio.Task] = set()

        self.pc.on("datachannel", self._set_channel)
        self.pc.on("track", self._on_track)
        self.pc.on("connectionstatechange", self._on_connection_state)

        if initiator:
            self._set_channel(self.pc.createDataChannel(channel_label))
            self._spawn(self._negotiate())

        logger.debug(f"RTC peer created (initiator={initiator})")

    def signal(self, data: Any) -> None:
        if self.destroyed:
            logger.debug("Ignoring signal for destroyed peer")
            return
        self._spawn(self._apply_signal(data))

    def send(self, data) -> None:
        """Send data through the channel.

        Args:
            data: Bytes or text to send
        """
        if not self.channel or self.channel.readyState != "open":
            logger.warning("Cannot send: channel not open")
            return
        self.channel.send(data)

    def _close(self) -> None:
        if self.channel:
            self.channel.close()
        self._spawn(self.pc.close())

    def _spawn(self, coro) -> None:
        task = asyncio.ensure_future(self._guard(coro))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def _guard(self, coro) -> None:
        try:
            await coro
        except Exception as e:
            logger.error(f"Peer operation failed: {e}")
            self.destroy()

    async def _negotiate(self) -> None:
        async with self._signal_lock:
            offer = await self.pc.createOffer()
            await self.pc.setLocalDescription(offer)
            self._emit_description()

    async def _apply_signal(self, data: Any) -> None:
        async with self._signal_lock:
            if self.destroyed:
                return

            if has_sdp(data):
                await self.pc.setRemoteDescription(RTCSessionDescription(sdp=data["sdp"], type=data["type"]))
                if data["type"] == "offer":
                    answer = await self.pc.createAnswer()
                    await self.pc.setLocalDescription(answer)
                    self._emit_description()
            elif isinstance(data, dict) and data.get("candidate"):
                await self._add_candidate(data["candidate"])
            else:
                logger.debug(f"Unsupported signal: {data!r}")

    async def _add_candidate(self, init: dict) -> None:
        sdp = init.get("candidate", "")
        if not sdp:
            return  # end-of-candidates
        if sdp.startswith("candidate:"):
            sdp = sdp[len("candidate:"):]

        candidate = candidate_from_sdp(sdp)
        candidate.sdpMid = init.get("sdpMid")
        candidate.sdpMLineIndex = init.get("sdpMLineIndex")
        await self.pc.addIceCandidate(candidate)

    def _emit_description(self) -> None:
        description = self.pc.localDescription
        if self.destroyed or description is None:
            return
        self.emit(PeerEvent.SIGNAL, {"type": description.type, "sdp": description.sdp})

    def _set_channel(self, channel: RTCDataChannel) -> None:
        self.channel = channel
        logger.debug(f"Data channel set: {channel.label}")

        channel.on("open", self._mark_connected)
        channel.on("message", lambda message: self.emit(PeerEvent.DATA, message))
        channel.on("close", self.destroy)

        # The answering side receives the channel already open.
        if channel.readyState == "open":
            self._mark_connected()

    def _on_track(self, track) -> None:
        logger.debug(f"Track received: {track.kind}")
        self.emit(PeerEvent.TRACK, track)

    def _on_connection_state(self) -> None:
        state = self.pc.connectionState
        logger.debug(f"Connection state: {state}")
        if state in ("failed", "closed"):
            self.destroy()
