"""CLI application entry point."""

import asyncio
from functools import partial
from typing import Optional

import click

from simple_signal.utils import settings, setup_logging
from simple_signal.utils.config import load_config
from simple_signal.utils.logger import get_logger

# Setup logging
setup_logging(
    log_level=settings.log_level,
    log_file=settings.log_file,
)

logger = get_logger(__name__)


@click.group()
@click.version_option(version="0.1.0")
def cli():
    """simple-signal: peer discovery and connection signaling."""
    pass


@cli.command()
@click.option("--host", default=None, help="Bind host (default from config)")
@click.option("--port", type=int, default=None, help="Bind port (default from config)")
@click.option("--config", "config_path", help="Path to config file")
def relay(host: Optional[str], port: Optional[int], config_path: Optional[str]):
    """Run a WebSocket signaling relay."""
    from simple_signal.network import WebSocketRelay
    from simple_signal.signaling import RelayEvent, SignalingServer

    config = load_config(config_path or settings.config_file)
    io = WebSocketRelay(host=host or config.relay.host, port=port or config.relay.port)
    server = SignalingServer(io)

    @server.on(RelayEvent.DISCONNECT)
    def on_disconnect(socket):
        click.echo(f"Endpoint left: {socket.id}")

    try:
        asyncio.run(io.serve_forever())
    except KeyboardInterrupt:
        click.echo("\nShutting down...")
    finally:
        click.echo("Relay stopped.")


@cli.command()
@click.option("--signaling", default=None, help="Relay URL (e.g., ws://localhost:8765)")
@click.option("--connect-to", help="Endpoint id to connect to after discovery")
@click.option("--message", default="hello", help="Greeting sent over the data channel once connected")
@click.option("--timeout", type=float, default=None, help="Connection timeout in seconds (negative disables)")
@click.option("--config", "config_path", help="Path to config file")
def client(signaling: Optional[str], connect_to: Optional[str], message: str, timeout: Optional[float], config_path: Optional[str]):
    """Discover through a relay, accept requests and optionally connect to a peer."""
    config = load_config(config_path or settings.config_file)
    url = signaling or config.client.signaling_url
    connection_timeout = timeout if timeout is not None else config.client.connection_timeout

    try:
        asyncio.run(_run_client(url, connect_to, message, connection_timeout, config))
    except KeyboardInterrupt:
        click.echo("\nShutting down...")
    finally:
        click.echo("Client stopped.")


async def _run_client(url, connect_to, message, connection_timeout, config):
    from simple_signal.network import WebSocketSocket
    from simple_signal.network.rtc import RTCPeer
    from simple_signal.signaling import ClientEvent, ConnectionRejected, PeerEvent, SignalingClient

    socket = await WebSocketSocket.connect(url)
    peer_factory = partial(RTCPeer, ice_servers=config.rtc.ice_servers, channel_label=config.rtc.channel_label)
    engine = SignalingClient(socket, connection_timeout=connection_timeout, peer_factory=peer_factory)

    discovered = asyncio.get_running_loop().create_future()

    def attach(peer, remote):
        peer.on(PeerEvent.DATA, lambda data: click.echo(f"[{remote}] {data}"))
        peer.on(PeerEvent.CLOSE, lambda: click.echo(f"Connection with {remote} closed"))

    @engine.on(ClientEvent.DISCOVER)
    def on_discover(discovery_data):
        if not discovered.done():
            discovered.set_result(discovery_data)

    @engine.on(ClientEvent.REQUEST)
    async def on_request(request):
        click.echo(f"Request from {request.initiator_id}, accepting")
        try:
            result = await request.accept({"greeting": message})
        except ConnectionRejected as e:
            click.echo(f"Accept failed: {e.metadata}")
            return
        attach(result.peer, request.initiator_id)
        result.peer.send(message)

    try:
        engine.discover()
        await discovered
        click.echo(f"Discovered as {engine.id}")

        if connect_to:
            try:
                result = await engine.connect(connect_to, {"greeting": message})
            except ConnectionRejected as e:
                click.echo(f"Connection failed: {e.metadata}")
            else:
                click.echo(f"Connected to {connect_to}")
                attach(result.peer, connect_to)
                result.peer.send(message)

        await socket.wait_closed()
    finally:
        engine.destroy()


if __name__ == "__main__":
    cli()
