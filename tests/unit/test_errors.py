"""
Unit tests for peerchat.errors module.

Created by orpheus497

Tests the error hierarchy and its serialization.
"""

from peerchat.errors import (
    CryptoError,
    DecryptionError,
    ErrorCode,
    KeyImportError,
    PeerChatError,
    ProtocolError,
    TransportError,
    ValidationError,
)


def test_hierarchy():
    """Test every error is a PeerChatError and crypto errors group together."""
    assert issubclass(DecryptionError, CryptoError)
    assert issubclass(KeyImportError, CryptoError)
    for cls in (CryptoError, TransportError, ProtocolError, ValidationError):
        assert issubclass(cls, PeerChatError)


def test_fixed_codes():
    """Test crypto subclasses carry their own codes."""
    assert DecryptionError().code == ErrorCode.E102_DECRYPTION_FAILED
    assert KeyImportError("bad").code == ErrorCode.E105_KEY_IMPORT_FAILED
    assert ValidationError(message="empty").code == ErrorCode.E002_INVALID_ARGUMENT


def test_str_and_to_dict():
    """Test the string form includes the code and to_dict is serializable."""
    error = TransportError(
        ErrorCode.E205_PEER_UNAVAILABLE, "Could not connect to peer X", {"peer": "X"}
    )

    assert str(error) == "[E205] Could not connect to peer X"
    assert error.to_dict() == {
        "code": "E205",
        "message": "Could not connect to peer X",
        "details": {"peer": "X"},
    }


def test_details_default_to_empty():
    """Test details are never None."""
    assert ProtocolError().details == {}
