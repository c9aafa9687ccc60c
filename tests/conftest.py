"""Pytest configuration and shared fixtures."""
import shutil
import tempfile
from pathlib import Path

import pytest
import pytest_asyncio

from fakes import FakeIO, FakeSocket, PeerFactory
from simple_signal.signaling import SignalingClient, SignalingServer


@pytest.fixture
def io():
    """In-memory connection source for a relay."""
    return FakeIO()


@pytest.fixture
def relay(io):
    """Relay with no application hooks."""
    return SignalingServer(io)


@pytest.fixture
def peer_factory():
    """Factory building self-negotiating fake peers."""
    return PeerFactory()


@pytest.fixture
def manual_peer_factory():
    """Factory building fake peers driven entirely by the test."""
    return PeerFactory(auto=False)


@pytest_asyncio.fixture
async def make_client(io, relay, peer_factory):
    """Build session engines connected to the in-memory relay."""
    clients = []

    def factory(connection_timeout=10.0, discover=True, peers=None):
        client = SignalingClient(
            io.connect(),
            connection_timeout=connection_timeout,
            peer_factory=peers or peer_factory,
        )
        if discover:
            client.discover()
        clients.append(client)
        return client

    yield factory

    for client in clients:
        client.destroy()


@pytest_asyncio.fixture
async def lone_client(manual_peer_factory):
    """Discovered engine on a bare socket; tests inject inbound messages."""
    socket = FakeSocket("self-id")
    client = SignalingClient(socket, connection_timeout=None, peer_factory=manual_peer_factory)
    socket.receive("simple-signal[discover]", {"id": "self-id", "discoveryData": {}})
    yield client
    client.destroy()


@pytest.fixture
def temp_dir():
    """Create temporary directory for test files."""
    temp_path = tempfile.mkdtemp()
    yield Path(temp_path)
    shutil.rmtree(temp_path)


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line(
        "markers", "integration: marks tests as integration tests"
    )
