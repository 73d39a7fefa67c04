"""
PeerChat - Direct TCP transport.

Created by orpheus497

Listens on a local address and connects to peers by "host:port" identity.
Frames travel length-prefixed on the stream (see protocol.Protocol). This
provider does no discovery or NAT traversal: both peers must be reachable
on the given address.
"""

import asyncio
import logging
from typing import Any, Dict, Optional, Set

from .constants import (
    CONNECT_TIMEOUT,
    DEFAULT_HOST,
    DEFAULT_LISTEN_PORT,
    READ_CHUNK_SIZE,
    RECEIVE_BUFFER_MAX_SIZE,
)
from .errors import ErrorCode, ProtocolError, TransportError, ValidationError
from .protocol import Protocol
from .transport import Channel, TransportProvider
from .utils import format_peer_address, parse_peer_address, validate_port

logger = logging.getLogger(__name__)


class TcpChannel(Channel):
    """A frame channel over one TCP stream."""

    def __init__(self, peer: str, owner: "TcpTransport"):
        super().__init__(peer)
        self.owner = owner
        self.reader: Optional[asyncio.StreamReader] = None
        self.writer: Optional[asyncio.StreamWriter] = None
        self.buffer = b""
        self.bytes_sent = 0
        self.bytes_received = 0
        self._receive_task: Optional[asyncio.Task] = None
        self._closed_event = asyncio.Event()

    def attach(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        """Bind the connected stream, emit "open" and start receiving."""
        self.reader = reader
        self.writer = writer
        self.is_open = True
        self._receive_task = asyncio.create_task(self._receive_loop())
        self.emit("open")

    def send(self, frame: Dict[str, Any]) -> None:
        if not self.is_open or self.writer is None:
            raise TransportError(
                ErrorCode.E203_CONNECTION_CLOSED,
                f"Channel to {self.peer} is not open",
                {"peer": self.peer},
            )
        try:
            data = Protocol.pack_frame(frame)
        except ProtocolError as e:
            raise TransportError(ErrorCode.E204_SEND_FAILED, e.message, e.details) from e
        self.writer.write(data)
        self.bytes_sent += len(data)

    async def _receive_loop(self) -> None:
        logger.debug(f"Receive loop started for {self.peer}")
        try:
            while self.is_open:
                data = await self.reader.read(READ_CHUNK_SIZE)
                if not data:
                    logger.info(f"Connection closed by {self.peer}")
                    break

                self.bytes_received += len(data)
                self.buffer += data

                if len(self.buffer) > RECEIVE_BUFFER_MAX_SIZE:
                    logger.error(
                        f"Receive buffer overflow for {self.peer} "
                        f"({len(self.buffer)} bytes), disconnecting"
                    )
                    break

                while len(self.buffer) >= Protocol.HEADER_SIZE:
                    result = Protocol.unpack_frame(self.buffer)
                    if result is None:
                        break
                    frame, consumed = result
                    self.buffer = self.buffer[consumed:]
                    self.emit("data", frame)

        except ProtocolError as e:
            logger.error(f"Protocol error from {self.peer}: {e}")
            self.emit("error", e)
        except (ConnectionError, OSError) as e:
            logger.warning(f"Connection to {self.peer} failed: {e}")
            self.emit(
                "error",
                TransportError(ErrorCode.E200_TRANSPORT_ERROR, str(e), {"peer": self.peer}),
            )
        finally:
            logger.debug(f"Receive loop ended for {self.peer}")
            self.close()

    def fail(self, error: TransportError) -> None:
        """Give up on a channel that never opened."""
        self.closed = True
        self.is_open = False
        self.owner.channels.discard(self)
        self._closed_event.set()
        self.emit("error", error)

    def close(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.is_open = False
        self.owner.channels.discard(self)

        task = self._receive_task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

        if self.writer is not None:
            self.writer.close()

        self._closed_event.set()
        asyncio.get_running_loop().call_soon(self.emit, "close")

    async def wait_closed(self) -> None:
        await self._closed_event.wait()


class TcpTransport(TransportProvider):
    """Transport provider whose peer identities are "host:port" strings."""

    def __init__(
        self,
        host: str = DEFAULT_HOST,
        port: int = DEFAULT_LISTEN_PORT,
        connect_timeout: float = CONNECT_TIMEOUT,
    ):
        super().__init__()
        if not validate_port(port):
            raise ValidationError(ErrorCode.E002_INVALID_ARGUMENT, f"Invalid port: {port}")
        self.host = host
        self.port = port
        self.connect_timeout = connect_timeout
        self.server: Optional[asyncio.AbstractServer] = None
        self.channels: Set[TcpChannel] = set()
        self._connect_tasks: Set[asyncio.Task] = set()
        self.destroyed = False

    async def open(self, local_id: Optional[str] = None) -> None:
        host, port = self.host, self.port
        if local_id:
            host, port = parse_peer_address(local_id)

        loop = asyncio.get_running_loop()
        try:
            self.server = await asyncio.start_server(self._handle_client, host, port)
        except OSError as e:
            error = TransportError(
                ErrorCode.E201_CONNECTION_FAILED,
                f"Could not listen on {format_peer_address(host, port)}: {e}",
                {"host": host, "port": port},
            )
            loop.call_soon(self.emit, "error", error)
            return

        bound_port = self.server.sockets[0].getsockname()[1]
        self.peer_id = format_peer_address(host, bound_port)
        logger.info(f"TCP transport listening on {self.peer_id}")
        loop.call_soon(self.emit, "open", self.peer_id)

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        peername = writer.get_extra_info("peername")
        peer = format_peer_address(peername[0], peername[1]) if peername else "unknown"

        if self.destroyed:
            writer.close()
            return

        logger.info(f"Inbound TCP connection from {peer}")
        channel = TcpChannel(peer, self)
        self.channels.add(channel)
        self.emit("connection", channel)
        channel.attach(reader, writer)
        # Keep the stream owned by this handler until the channel closes
        await channel.wait_closed()

    def connect(self, remote_id: str) -> TcpChannel:
        host, port = parse_peer_address(remote_id)
        if self.server is None or self.destroyed:
            raise TransportError(ErrorCode.E209_PROVIDER_NOT_OPEN, "Transport is not open")

        channel = TcpChannel(remote_id, self)
        self.channels.add(channel)
        task = asyncio.create_task(self._open_channel(channel, host, port))
        self._connect_tasks.add(task)
        task.add_done_callback(self._connect_tasks.discard)
        return channel

    async def _open_channel(self, channel: TcpChannel, host: str, port: int) -> None:
        try:
            reader, writer = await asyncio.wait_for(
                asyncio.open_connection(host, port), timeout=self.connect_timeout
            )
        except asyncio.TimeoutError:
            channel.fail(
                TransportError(
                    ErrorCode.E202_CONNECTION_TIMEOUT,
                    f"Connection to {channel.peer} timed out",
                    {"peer": channel.peer},
                )
            )
            return
        except OSError as e:
            channel.fail(
                TransportError(
                    ErrorCode.E205_PEER_UNAVAILABLE,
                    f"Could not connect to peer {channel.peer}: {e}",
                    {"peer": channel.peer},
                )
            )
            return

        if channel.closed:
            writer.close()
            return
        channel.attach(reader, writer)

    async def destroy(self) -> None:
        if self.destroyed:
            return
        self.destroyed = True

        for task in list(self._connect_tasks):
            task.cancel()
        for channel in list(self.channels):
            channel.close()

        if self.server is not None:
            self.server.close()
            await self.server.wait_closed()
        logger.info(f"TCP transport {self.peer_id} destroyed")
