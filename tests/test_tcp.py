"""
PeerChat - TCP transport tests.

Created by orpheus497

Runs sessions over loopback sockets to check identity assignment, framing
and failure reporting of the TCP transport.
"""

import asyncio

import pytest

from peerchat.connection_fsm import ConnectionState
from peerchat.errors import TransportError, ValidationError
from peerchat.message import Sender
from peerchat.protocol import Protocol
from peerchat.session import PeerSession
from peerchat.tcp import TcpTransport
from peerchat.utils import parse_peer_address

pytestmark = pytest.mark.network

HOST = "127.0.0.1"


def _session(name=""):
    return PeerSession(TcpTransport(host=HOST, port=0, connect_timeout=2.0), display_name=name)


def _texts(session, sender):
    return [e.text for e in session.log.by_sender(sender)]


def test_invalid_port_rejected():
    """Test the transport refuses a privileged or out of range port."""
    with pytest.raises(ValidationError):
        TcpTransport(port=80)


@pytest.mark.asyncio
async def test_open_assigns_host_port_identity():
    """Test the identity is the bound host and port."""
    async with _session() as a:
        peer_id = await a.open()

        host, port = parse_peer_address(peer_id)
        assert host == HOST
        assert port > 0
        assert a.state == ConnectionState.PEER_ID_ASSIGNED


@pytest.mark.asyncio
async def test_chat_over_loopback(wait_until):
    """Test key exchange and messages both ways over real sockets."""
    async with _session() as a, _session("bob") as b:
        await a.open()
        await b.open()

        await b.connect(a.peer_id)
        await wait_until(
            lambda: a.is_connected
            and b.is_connected
            and a.key_exchange.key is not None
            and a.key_exchange.key == b.key_exchange.key
        )
        await wait_until(lambda: a.remote_display_name == "bob")

        await a.send_message("hello")
        await b.send_message("hi ✓")
        await wait_until(lambda: _texts(b, Sender.REMOTE) == ["hello"])
        await wait_until(lambda: _texts(a, Sender.REMOTE) == ["hi ✓"])

        b.notify_typing()
        await wait_until(lambda: a.is_remote_typing)

        b.disconnect()
        await wait_until(lambda: a.state == ConnectionState.DISCONNECTED)
        assert a.key_exchange.key is None


@pytest.mark.asyncio
async def test_listen_port_in_use():
    """Test opening on a port already taken fails with a provider error."""
    async with _session() as a:
        await a.open()
        _, port = parse_peer_address(a.peer_id)

        async with PeerSession(TcpTransport(host=HOST, port=port)) as b:
            with pytest.raises(TransportError):
                await b.open()

            assert b.state == ConnectionState.ERROR
            assert any(t.startswith("Error: Could not listen") for t in _texts(b, Sender.SYSTEM))


@pytest.mark.asyncio
async def test_connect_refused(wait_until):
    """Test connecting to a closed port reports an error on the session."""
    probe = TcpTransport(host=HOST, port=0)
    await probe.open()
    closed_peer = probe.peer_id
    await probe.destroy()

    async with _session() as a:
        await a.open()
        await a.connect(closed_peer)

        await wait_until(lambda: a.state == ConnectionState.ERROR)
        assert a.error_message.startswith(f"Could not connect to peer {closed_peer}")
        assert not a.is_connected


@pytest.mark.asyncio
async def test_connect_invalid_address():
    """Test an address that is not host:port is rejected up front."""
    async with _session() as a:
        await a.open()

        with pytest.raises(ValidationError):
            await a.connect("not-an-address")


@pytest.mark.asyncio
async def test_garbage_stream_is_a_connection_error(wait_until):
    """Test bytes that are not frames end the channel with a connection error."""
    async with _session() as a:
        await a.open()
        host, port = parse_peer_address(a.peer_id)

        reader, writer = await asyncio.open_connection(host, port)
        try:
            writer.write(b"\x07garbage that is not a frame")
            await writer.drain()

            await wait_until(lambda: any(t.startswith("Connection error") for t in _texts(a, Sender.SYSTEM)))
            await wait_until(lambda: a.channel is None)
            assert a.state == ConnectionState.ERROR
        finally:
            writer.close()


@pytest.mark.asyncio
async def test_frames_split_across_reads(wait_until):
    """Test a frame written in pieces is reassembled."""
    async with _session() as a:
        await a.open()
        host, port = parse_peer_address(a.peer_id)

        reader, writer = await asyncio.open_connection(host, port)
        try:
            data = Protocol.pack_frame(Protocol.create_user_info("slow"))
            for i in range(len(data)):
                writer.write(data[i : i + 1])
                await writer.drain()

            await wait_until(lambda: a.remote_display_name == "slow")
        finally:
            writer.close()
