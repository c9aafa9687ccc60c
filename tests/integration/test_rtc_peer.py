"""aiortc peers negotiating over local candidates."""
import asyncio

import pytest

pytest.importorskip("aiortc")

from simple_signal.network.rtc import RTCPeer  # noqa: E402
from simple_signal.signaling import ClientEvent, PeerEvent  # noqa: E402

pytestmark = pytest.mark.integration

TIMEOUT = 10.0


def wait_for_event(peer, event):
    future = asyncio.get_running_loop().create_future()
    peer.once(event, lambda *args: future.done() or future.set_result(args))
    return future


@pytest.mark.asyncio
async def test_peers_connect_and_exchange_data():
    offerer = RTCPeer(initiator=True, ice_servers=[])
    answerer = RTCPeer(initiator=False, ice_servers=[])
    offerer.on(PeerEvent.SIGNAL, answerer.signal)
    answerer.on(PeerEvent.SIGNAL, offerer.signal)
    connected = [wait_for_event(offerer, PeerEvent.CONNECT), wait_for_event(answerer, PeerEvent.CONNECT)]

    try:
        await asyncio.wait_for(asyncio.gather(*connected), TIMEOUT)
        received = wait_for_event(answerer, PeerEvent.DATA)
        offerer.send("hello")

        assert await asyncio.wait_for(received, TIMEOUT) == ("hello",)
    finally:
        offerer.destroy()
        answerer.destroy()
        await asyncio.sleep(0.1)


@pytest.mark.asyncio
async def test_destroy_emits_close_once():
    peer = RTCPeer(initiator=True, ice_servers=[])
    closes = []
    peer.on(PeerEvent.CLOSE, lambda: closes.append(True))

    peer.destroy()
    peer.destroy()
    await asyncio.sleep(0.1)

    assert closes == [True]
    assert peer.destroyed
    assert peer._tasks == set()


@pytest.mark.asyncio
async def test_close_failure_is_collected(monkeypatch):
    peer = RTCPeer(initiator=False, ice_servers=[])

    async def broken_close():
        raise RuntimeError("close failed")

    monkeypatch.setattr(peer.pc, "close", broken_close)
    peer.destroy()
    await asyncio.sleep(0.1)

    assert peer.destroyed
    assert peer._tasks == set()


@pytest.mark.asyncio
async def test_engines_negotiate_rtc_sessions(make_client):
    def rtc_peers(**options):
        return RTCPeer(ice_servers=[], **options)

    alice = make_client(connection_timeout=TIMEOUT, peers=rtc_peers)
    bob = make_client(connection_timeout=TIMEOUT, peers=rtc_peers)
    accepted = []
    bob.on(ClientEvent.REQUEST, lambda request: accepted.append(request.accept({"ok": True})))

    result = await asyncio.wait_for(alice.connect(bob.id), TIMEOUT)
    bob_result = await asyncio.wait_for(accepted[0], TIMEOUT)

    assert result.metadata == {"ok": True}
    received = wait_for_event(bob_result.peer, PeerEvent.DATA)
    result.peer.send("ping")
    assert await asyncio.wait_for(received, TIMEOUT) == ("ping",)
