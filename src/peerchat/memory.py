"""
PeerChat - In-process loopback transport.

Created by orpheus497

Providers registered on the same MemoryHub can reach each other by peer
identity. Frames are serialized to JSON and back on every send, and all
deliveries go through loop.call_soon so they arrive in send order and
never re-enter the sender's call stack.
"""

import asyncio
import json
import logging
import uuid
from typing import Any, Dict, List, Optional

from .errors import ErrorCode, TransportError, ValidationError
from .transport import Channel, TransportProvider

logger = logging.getLogger(__name__)


class MemoryHub:
    """Registry of open in-memory providers keyed by peer identity."""

    def __init__(self):
        self.providers: Dict[str, "MemoryTransport"] = {}

    def register(self, peer_id: str, provider: "MemoryTransport") -> None:
        if peer_id in self.providers:
            raise TransportError(
                ErrorCode.E201_CONNECTION_FAILED,
                f"ID {peer_id} is taken",
                {"peer_id": peer_id},
            )
        self.providers[peer_id] = provider

    def unregister(self, peer_id: str) -> None:
        self.providers.pop(peer_id, None)

    def lookup(self, peer_id: str) -> Optional["MemoryTransport"]:
        return self.providers.get(peer_id)


class MemoryChannel(Channel):
    """One end of an in-memory channel pair."""

    def __init__(self, peer: str, owner: "MemoryTransport"):
        super().__init__(peer)
        self.owner = owner
        self.remote: Optional["MemoryChannel"] = None
        self.sent_frames: List[Dict[str, Any]] = []

    def _schedule(self, event: str, *args: Any) -> None:
        asyncio.get_running_loop().call_soon(self.emit, event, *args)

    def _mark_open(self) -> None:
        if self.closed:
            return
        self.is_open = True
        self.emit("open")

    def send(self, frame: Dict[str, Any]) -> None:
        if not self.is_open or self.remote is None:
            raise TransportError(
                ErrorCode.E203_CONNECTION_CLOSED,
                f"Channel to {self.peer} is not open",
                {"peer": self.peer},
            )
        wire = json.dumps(frame)
        self.sent_frames.append(json.loads(wire))
        self.remote._deliver(json.loads(wire))

    def _deliver(self, frame: Dict[str, Any]) -> None:
        asyncio.get_running_loop().call_soon(self._receive, frame)

    def _receive(self, frame: Dict[str, Any]) -> None:
        if self.closed:
            logger.debug(f"Dropping frame for closed channel to {self.peer}")
            return
        self.emit("data", frame)

    def close(self) -> None:
        if self.closed:
            return
        self._shutdown()
        if self.remote is not None:
            self.remote._shutdown()

    def _shutdown(self) -> None:
        if self.closed:
            return
        self.closed = True
        self.is_open = False
        self.owner.channels.discard(self)
        self._schedule("close")


class MemoryTransport(TransportProvider):
    """In-process provider; identities are plain strings on a shared hub."""

    def __init__(self, hub: MemoryHub):
        super().__init__()
        self.hub = hub
        self.channels: set = set()
        self.destroyed = False

    async def open(self, local_id: Optional[str] = None) -> None:
        peer_id = local_id or uuid.uuid4().hex
        try:
            self.hub.register(peer_id, self)
        except TransportError as e:
            asyncio.get_running_loop().call_soon(self.emit, "error", e)
            return
        self.peer_id = peer_id
        logger.info(f"Memory transport open as {peer_id}")
        asyncio.get_running_loop().call_soon(self.emit, "open", peer_id)

    def connect(self, remote_id: str) -> MemoryChannel:
        if not remote_id:
            raise ValidationError(ErrorCode.E003_EMPTY_REMOTE_ID, "Remote peer ID is empty")
        if self.peer_id is None or self.destroyed:
            raise TransportError(ErrorCode.E209_PROVIDER_NOT_OPEN, "Transport is not open")

        local_end = MemoryChannel(remote_id, self)
        loop = asyncio.get_running_loop()
        remote_provider = self.hub.lookup(remote_id)

        if remote_provider is None or remote_provider.destroyed:
            error = TransportError(
                ErrorCode.E205_PEER_UNAVAILABLE,
                f"Could not connect to peer {remote_id}",
                {"peer": remote_id},
            )
            loop.call_soon(self.emit, "error", error)
            return local_end

        remote_end = MemoryChannel(self.peer_id, remote_provider)
        local_end.remote = remote_end
        remote_end.remote = local_end
        self.channels.add(local_end)
        remote_provider.channels.add(remote_end)

        loop.call_soon(remote_provider.emit, "connection", remote_end)
        loop.call_soon(remote_end._mark_open)
        loop.call_soon(local_end._mark_open)
        return local_end

    def fail(self, message: str) -> None:
        """Report a provider-level failure to subscribers."""
        self.emit("error", TransportError(ErrorCode.E200_TRANSPORT_ERROR, message))

    async def destroy(self) -> None:
        if self.destroyed:
            return
        self.destroyed = True
        for channel in list(self.channels):
            channel.close()
        if self.peer_id is not None:
            self.hub.unregister(self.peer_id)
        logger.info(f"Memory transport {self.peer_id} destroyed")
