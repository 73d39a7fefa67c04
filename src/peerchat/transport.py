"""
PeerChat - Transport provider contract.

Created by orpheus497

A transport provider hands out one identity per open provider and
reliable, ordered, bidirectional channels to other identities. Discovery,
NAT traversal and relays live behind this contract.

Provider events:
- "open" (peer_id): the local identity was assigned
- "connection" (channel): a remote peer opened a channel to us
- "error" (exception): provider-level failure

Channel events:
- "open" (): the channel is ready for frames
- "data" (frame): a frame dictionary arrived
- "close" (): the channel closed, from either side
- "error" (exception): channel-level failure

Handlers may be plain functions or coroutine functions; coroutines are
scheduled as tasks on the running loop.
"""

import asyncio
import inspect
import logging
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Set

logger = logging.getLogger(__name__)


class EventEmitter:
    """Minimal named-event subscription used by providers and channels."""

    EVENTS: Set[str] = set()

    def __init__(self):
        self._handlers: Dict[str, List[Callable]] = {}
        self._tasks: Set[asyncio.Task] = set()

    def on(self, event: str, handler: Callable) -> None:
        """Subscribe a handler to a named event."""
        if self.EVENTS and event not in self.EVENTS:
            raise ValueError(f"Unknown event: {event}")
        self._handlers.setdefault(event, []).append(handler)

    def off(self, event: str, handler: Optional[Callable] = None) -> None:
        """Remove one handler, or all handlers of an event."""
        if handler is None:
            self._handlers.pop(event, None)
        elif handler in self._handlers.get(event, []):
            self._handlers[event].remove(handler)

    def emit(self, event: str, *args: Any) -> None:
        """Invoke every handler registered for the event."""
        for handler in list(self._handlers.get(event, [])):
            try:
                result = handler(*args)
            except Exception as e:
                logger.error(f"Handler for '{event}' raised: {e}", exc_info=True)
                continue

            if inspect.isawaitable(result):
                task = asyncio.ensure_future(result)
                self._tasks.add(task)
                task.add_done_callback(self._tasks.discard)


class Channel(EventEmitter, ABC):
    """A reliable, ordered, bidirectional frame channel to one peer."""

    EVENTS = {"open", "data", "close", "error"}

    def __init__(self, peer: str):
        super().__init__()
        self.peer = peer
        self.is_open = False
        self.closed = False

    @abstractmethod
    def send(self, frame: Dict[str, Any]) -> None:
        """
        Send one frame.

        Raises:
            TransportError: If the channel is not open
        """

    @abstractmethod
    def close(self) -> None:
        """Close the channel. Idempotent."""

    def __repr__(self) -> str:
        return f"{type(self).__name__}(peer={self.peer!r}, open={self.is_open})"


class TransportProvider(EventEmitter, ABC):
    """Assigns the local identity and establishes channels to peers."""

    EVENTS = {"open", "connection", "error"}

    def __init__(self):
        super().__init__()
        self.peer_id: Optional[str] = None

    @abstractmethod
    async def open(self, local_id: Optional[str] = None) -> None:
        """Start the provider; emits "open" with the assigned identity."""

    @abstractmethod
    def connect(self, remote_id: str) -> Channel:
        """Begin connecting to a peer; the channel emits "open" when ready."""

    @abstractmethod
    async def destroy(self) -> None:
        """Close all channels and release the provider. Idempotent."""
