"""
PeerChat - Custom Exception Classes and Error Codes

Every failure PeerChat raises carries a stable code from ErrorCode so logs
and notifications can be matched without parsing message text.

Author: orpheus497
Version: 1.0.0
"""

from enum import Enum
from typing import Any, Dict, Optional


class ErrorCode(Enum):
    """Enumeration of all PeerChat error codes."""

    # General Errors (E001-E099)
    E001_UNKNOWN_ERROR = "E001"
    E002_INVALID_ARGUMENT = "E002"
    E003_EMPTY_REMOTE_ID = "E003"
    E004_INVALID_STATE = "E004"
    E005_EMPTY_MESSAGE = "E005"

    # Crypto Errors (E100-E199)
    E100_CRYPTO_ERROR = "E100"
    E101_ENCRYPTION_FAILED = "E101"
    E102_DECRYPTION_FAILED = "E102"
    E103_INVALID_KEY = "E103"
    E104_KEY_GENERATION_FAILED = "E104"
    E105_KEY_IMPORT_FAILED = "E105"
    E106_NO_KEY = "E106"

    # Transport Errors (E200-E299)
    E200_TRANSPORT_ERROR = "E200"
    E201_CONNECTION_FAILED = "E201"
    E202_CONNECTION_TIMEOUT = "E202"
    E203_CONNECTION_CLOSED = "E203"
    E204_SEND_FAILED = "E204"
    E205_PEER_UNAVAILABLE = "E205"
    E206_INVALID_FRAME = "E206"
    E207_FRAME_TOO_LARGE = "E207"
    E208_UNKNOWN_FRAME_TYPE = "E208"
    E209_PROVIDER_NOT_OPEN = "E209"

    # Config Errors (E700-E799)
    E700_CONFIG_ERROR = "E700"
    E701_CONFIG_LOAD_FAILED = "E701"
    E702_CONFIG_SAVE_FAILED = "E702"
    E703_INVALID_CONFIG = "E703"
    E704_CONFIG_PARSE_ERROR = "E704"


class PeerChatError(Exception):
    """Base exception class for all PeerChat errors.

    Subclasses set default_code and default_message so callers only
    pass what differs from the usual case.

    Attributes:
        code: Error code from ErrorCode enum
        message: Human-readable error message
        details: Extra context for logs, never None
    """

    default_code = ErrorCode.E001_UNKNOWN_ERROR
    default_message = "Unknown error"

    def __init__(
        self,
        code: Optional[ErrorCode] = None,
        message: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ):
        self.code = code or self.default_code
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(f"[{self.code.value}] {self.message}")

    def to_dict(self) -> Dict[str, Any]:
        """Serializable form for logs and diagnostics."""
        return {"code": self.code.value, "message": self.message, "details": self.details}


class ValidationError(PeerChatError):
    """A user action was rejected before any state changed.

    For example connecting with an empty remote identifier.
    """

    default_code = ErrorCode.E002_INVALID_ARGUMENT
    default_message = "Invalid argument"


class CryptoError(PeerChatError):
    """Exception raised for cryptographic operation failures."""

    default_code = ErrorCode.E100_CRYPTO_ERROR
    default_message = "Cryptographic operation failed"


class _FixedCodeCryptoError(CryptoError):
    """Crypto failure whose code is implied by its class."""

    def __init__(self, message: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(self.default_code, message, details)


class KeyGenerationError(_FixedCodeCryptoError):
    """The secure random source or AES-GCM provider is unavailable."""

    default_code = ErrorCode.E104_KEY_GENERATION_FAILED
    default_message = "Key generation failed"


class KeyImportError(_FixedCodeCryptoError):
    """Received key material could not be imported."""

    default_code = ErrorCode.E105_KEY_IMPORT_FAILED
    default_message = "Key import failed"


class NoKeyError(_FixedCodeCryptoError):
    """A message was encrypted or decrypted while the key slot was empty."""

    default_code = ErrorCode.E106_NO_KEY
    default_message = "No encryption key established"


class DecryptionError(_FixedCodeCryptoError):
    """Authentication tag mismatch, wrong key, or corrupted input."""

    default_code = ErrorCode.E102_DECRYPTION_FAILED
    default_message = "Decryption failed"


class TransportError(PeerChatError):
    """Connection errors, timeouts, unreachable peers and sends on a closed channel."""

    default_code = ErrorCode.E200_TRANSPORT_ERROR
    default_message = "Transport operation failed"


class ProtocolError(PeerChatError):
    """Exception raised for malformed, oversized or unknown frames."""

    default_code = ErrorCode.E206_INVALID_FRAME
    default_message = "Invalid frame"


class ConfigError(PeerChatError):
    """Loading, parsing, validating or saving the configuration file failed."""

    default_code = ErrorCode.E700_CONFIG_ERROR
    default_message = "Configuration operation failed"
