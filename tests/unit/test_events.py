"""Unit tests for typed event names on the engine, relay and peers."""
import pytest

from fakes import FakePeer, FakeSocket
from simple_signal.signaling import ClientEvent, PeerEvent, SignalingClient


def test_enum_and_string_names_are_interchangeable():
    client = SignalingClient(FakeSocket("x"))
    seen = []
    client.on(ClientEvent.DISCOVER, seen.append)

    client.socket.receive("simple-signal[discover]", {"id": "abc", "discoveryData": "payload"})
    client.emit("discover", "direct")

    assert seen == ["payload", "direct"]
    assert client.listeners("discover") == [seen.append]


@pytest.mark.asyncio
async def test_peer_connect_and_close_fire_once():
    peer = FakePeer(auto=False)
    events = []
    peer.on(PeerEvent.CONNECT, lambda: events.append("connect"))
    peer.on(PeerEvent.CLOSE, lambda: events.append("close"))

    peer._mark_connected()
    peer._mark_connected()
    peer.destroy()
    peer.destroy()

    assert events == ["connect", "close"]
    assert peer.close_calls == 1


def test_application_handler_errors_propagate():
    socket = FakeSocket("x")
    client = SignalingClient(socket)

    @client.on(ClientEvent.DISCOVER)
    def boom(data):
        raise RuntimeError("boom")

    with pytest.raises(RuntimeError):
        socket.receive("simple-signal[discover]", {"id": "abc", "discoveryData": {}})
