"""
PeerChat - Direct peer-to-peer encrypted chat

A two-party chat core: symmetric AES-256-GCM key exchange over a direct
channel, per-message authenticated encryption, typing presence and a
connection lifecycle state machine.

Author: orpheus497
Version: 1.0.0
License: MIT
"""

__version__ = "1.0.0"
__author__ = "orpheus497"
__license__ = "MIT"

# Import core modules for easy access
from .config import Config
from .connection_fsm import ConnectionEvent, ConnectionState, ConnectionStateMachine
from .constants import APP_NAME, VERSION
from .crypto import KeyExchange, SecureChannel, SymmetricKey
from .errors import (
    ConfigError,
    CryptoError,
    DecryptionError,
    ErrorCode,
    KeyGenerationError,
    KeyImportError,
    NoKeyError,
    PeerChatError,
    ProtocolError,
    TransportError,
    ValidationError,
)
from .memory import MemoryHub, MemoryTransport
from .message import ChatEntry, EntryKind, MessageLog, Sender
from .presence import PresenceSignaling
from .session import PeerSession
from .tcp import TcpTransport

__all__ = [
    "APP_NAME",
    "VERSION",
    "ChatEntry",
    "Config",
    "ConfigError",
    "ConnectionEvent",
    "ConnectionState",
    "ConnectionStateMachine",
    "CryptoError",
    "DecryptionError",
    "EntryKind",
    "ErrorCode",
    "KeyExchange",
    "KeyGenerationError",
    "KeyImportError",
    "MemoryHub",
    "MemoryTransport",
    "MessageLog",
    "NoKeyError",
    "PeerChatError",
    "PeerSession",
    "PresenceSignaling",
    "ProtocolError",
    "SecureChannel",
    "Sender",
    "SymmetricKey",
    "TcpTransport",
    "TransportError",
    "ValidationError",
    "__author__",
    "__license__",
    "__version__",
]
