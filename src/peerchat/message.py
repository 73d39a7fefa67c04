"""
PeerChat - Chat entries and the append-only message log.

Created by orpheus497
Version: 1.0.0

Every line shown in a conversation is a ChatEntry: text we sent, text the
peer sent, or a system notice. Entries are immutable and the log only
ever grows; nothing is persisted to disk.
"""

import logging
import uuid
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

logger = logging.getLogger(__name__)


class Sender(Enum):
    """Who produced an entry."""

    LOCAL = "local"
    REMOTE = "remote"
    SYSTEM = "system"


class EntryKind(Enum):
    """Ordinary text, or a placeholder for a message that could not be read."""

    TEXT = "text"
    ERROR = "error"


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@dataclass(frozen=True)
class ChatEntry:
    """Represents one immutable line of a conversation."""

    sender: Sender
    text: str
    timestamp: str = field(default_factory=_now)
    kind: EntryKind = EntryKind.TEXT
    entry_id: str = field(default_factory=lambda: str(uuid.uuid4()))

    @property
    def is_error(self) -> bool:
        return self.kind == EntryKind.ERROR

    def to_dict(self) -> Dict[str, Any]:
        """Convert entry to dictionary."""
        return {
            "entry_id": self.entry_id,
            "sender": self.sender.value,
            "text": self.text,
            "timestamp": self.timestamp,
            "kind": self.kind.value,
        }

    @staticmethod
    def from_dict(data: Dict[str, Any]) -> "ChatEntry":
        """Create entry from dictionary."""
        return ChatEntry(
            sender=Sender(data["sender"]),
            text=data["text"],
            timestamp=data["timestamp"],
            kind=EntryKind(data.get("kind", EntryKind.TEXT.value)),
            entry_id=data["entry_id"],
        )


class MessageLog:
    """Append-only, ordered record of chat entries.

    Listeners registered with subscribe() are called with each new entry
    after it has been appended.
    """

    def __init__(self):
        self._entries: List[ChatEntry] = []
        self._listeners: List[Callable[[ChatEntry], None]] = []

    def append(self, entry: ChatEntry) -> ChatEntry:
        """Append an entry and notify listeners."""
        self._entries.append(entry)
        logger.debug(f"Log entry appended ({entry.sender.value}, {entry.kind.value})")

        for listener in list(self._listeners):
            try:
                listener(entry)
            except Exception as e:
                logger.error(f"Message log listener error: {e}")

        return entry

    def add_local(self, text: str) -> ChatEntry:
        """Record plaintext we sent."""
        return self.append(ChatEntry(Sender.LOCAL, text))

    def add_remote(self, text: str) -> ChatEntry:
        """Record plaintext the peer sent."""
        return self.append(ChatEntry(Sender.REMOTE, text))

    def add_remote_error(self, text: str) -> ChatEntry:
        """Record a placeholder for a peer message that could not be decrypted."""
        return self.append(ChatEntry(Sender.REMOTE, text, kind=EntryKind.ERROR))

    def add_system(self, text: str) -> ChatEntry:
        """Record a system notice."""
        return self.append(ChatEntry(Sender.SYSTEM, text))

    def subscribe(self, listener: Callable[[ChatEntry], None]) -> None:
        """Register a callback for new entries."""
        self._listeners.append(listener)

    def unsubscribe(self, listener: Callable[[ChatEntry], None]) -> None:
        """Remove a previously registered callback."""
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def entries(self) -> Tuple[ChatEntry, ...]:
        """Snapshot of all entries in order."""
        return tuple(self._entries)

    def by_sender(self, sender: Sender) -> List[ChatEntry]:
        """Get entries produced by one sender."""
        return [e for e in self._entries if e.sender == sender]

    def errors(self) -> List[ChatEntry]:
        """Get all error placeholder entries."""
        return [e for e in self._entries if e.is_error]

    def last(self) -> Optional[ChatEntry]:
        """Get the most recent entry, if any."""
        return self._entries[-1] if self._entries else None

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[ChatEntry]:
        return iter(tuple(self._entries))
