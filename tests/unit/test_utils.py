"""
Unit tests for peerchat.utils module.

Created by orpheus497

Tests utility functions for formatting, validation, and helpers.
"""

import pytest

from peerchat.errors import ValidationError
from peerchat.utils import (
    format_peer_address,
    format_timestamp,
    parse_peer_address,
    truncate_string,
    validate_hostname,
    validate_port,
)


class TestPortValidation:
    """Test port number validation."""

    def test_valid_ports(self):
        """Test that valid port numbers are accepted."""
        assert validate_port(1024) is True
        assert validate_port(5000) is True
        assert validate_port(65535) is True

    def test_ephemeral_port(self):
        """Test that port 0 is accepted as "any free port"."""
        assert validate_port(0) is True

    def test_invalid_ports(self):
        """Test that invalid port numbers are rejected."""
        assert validate_port(1) is False
        assert validate_port(1023) is False
        assert validate_port(65536) is False
        assert validate_port(-1) is False


class TestHostnameValidation:
    """Test hostname validation."""

    def test_valid_hostnames(self):
        """Test that valid hostnames and IP literals are accepted."""
        assert validate_hostname("localhost") is True
        assert validate_hostname("example.com") is True
        assert validate_hostname("sub.example.com.") is True
        assert validate_hostname("127.0.0.1") is True
        assert validate_hostname("::1") is True

    def test_invalid_hostnames(self):
        """Test that invalid hostnames are rejected."""
        assert validate_hostname("") is False
        assert validate_hostname("-invalid.com") is False
        assert validate_hostname("invalid-.com") is False
        assert validate_hostname("a" * 256) is False
        assert validate_hostname("bad host") is False


class TestPeerAddress:
    """Test host:port peer identities."""

    def test_parse_ipv4(self):
        """Test parsing an IPv4 identity."""
        assert parse_peer_address("127.0.0.1:5000") == ("127.0.0.1", 5000)

    def test_parse_hostname(self):
        """Test parsing a hostname identity with surrounding space."""
        assert parse_peer_address("  localhost:6000 ") == ("localhost", 6000)

    def test_parse_ipv6(self):
        """Test parsing a bracketed IPv6 identity."""
        assert parse_peer_address("[::1]:5000") == ("::1", 5000)

    @pytest.mark.parametrize(
        "peer_id",
        ["", "localhost", "localhost:", ":5000", "localhost:abc", "localhost:0", "host:70000", None],
    )
    def test_parse_invalid(self, peer_id):
        """Test malformed identities raise ValidationError."""
        with pytest.raises(ValidationError):
            parse_peer_address(peer_id)

    def test_format(self):
        """Test formatting brackets IPv6 hosts only."""
        assert format_peer_address("127.0.0.1", 5000) == "127.0.0.1:5000"
        assert format_peer_address("::1", 5000) == "[::1]:5000"

    def test_format_parse_agree(self):
        """Test a formatted identity parses back to its parts."""
        assert parse_peer_address(format_peer_address("::1", 6001)) == ("::1", 6001)


class TestTimestampFormatting:
    """Test timestamp formatting."""

    def test_format_custom(self):
        """Test formatting an aware timestamp with a custom format."""
        result = format_timestamp("2025-01-01T12:34:56+00:00", "%S")
        assert result == "56"

    def test_format_naive(self):
        """Test a naive timestamp is formatted as is."""
        assert format_timestamp("2025-01-01T12:34:56", "%H:%M") == "12:34"

    def test_format_invalid(self):
        """Test that unparsable input is returned unchanged."""
        assert format_timestamp("not a timestamp") == "not a timestamp"


class TestStringTruncation:
    """Test string truncation."""

    def test_short_string(self):
        """Test that short strings are not truncated."""
        assert truncate_string("short", 10) == "short"

    def test_long_string(self):
        """Test that long strings are truncated."""
        result = truncate_string("this is a very long string", 10)
        assert len(result) == 10
        assert result.endswith("...")

    def test_custom_suffix(self):
        """Test truncation with custom suffix."""
        result = truncate_string("this is a long string", 10, suffix=">>")
        assert result.endswith(">>")
        assert len(result) == 10
