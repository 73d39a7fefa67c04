"""
PeerChat - Utility functions.

Created by orpheus497
Version: 1.0.0

Provides formatting and validation helpers shared by the transports and
the terminal UI.
"""

import ipaddress
import logging
import re
from datetime import datetime
from typing import Tuple

from .constants import UI_TIMESTAMP_FORMAT
from .errors import ErrorCode, ValidationError

logger = logging.getLogger(__name__)


def format_timestamp(iso_timestamp: str, format_str: str = UI_TIMESTAMP_FORMAT) -> str:
    """
    Format an ISO timestamp as local time for display.

    Args:
        iso_timestamp: ISO 8601 timestamp string
        format_str: strftime format string

    Returns:
        Formatted timestamp string, or original if parsing fails
    """
    try:
        dt = datetime.fromisoformat(iso_timestamp.replace("Z", "+00:00"))
        if dt.tzinfo is not None:
            dt = dt.astimezone()
        return dt.strftime(format_str)
    except (ValueError, TypeError, AttributeError) as e:
        logger.debug(f"Failed to parse timestamp '{iso_timestamp}': {e}")
        return iso_timestamp


def validate_port(port: int) -> bool:
    """
    Validate a port number. Port 0 asks the OS for an ephemeral port.

    Args:
        port: Port number to validate

    Returns:
        True if valid, False otherwise
    """
    return port == 0 or 1024 <= port <= 65535


def validate_hostname(hostname: str) -> bool:
    """
    Validate a hostname or IP address literal.

    Args:
        hostname: Hostname string

    Returns:
        True if valid hostname, False otherwise
    """
    if not hostname:
        return False

    try:
        ipaddress.ip_address(hostname)
        return True
    except ValueError:
        pass

    if len(hostname) > 255:
        return False

    if hostname[-1] == ".":
        hostname = hostname[:-1]

    if not hostname:
        return False

    pattern = r"^[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?(\.[a-zA-Z0-9]([a-zA-Z0-9-]{0,61}[a-zA-Z0-9])?)*$"
    return bool(re.match(pattern, hostname))


def parse_peer_address(peer_id: str) -> Tuple[str, int]:
    """
    Split a TCP peer identity of the form host:port.

    IPv6 literals are written in brackets, e.g. [::1]:5000.

    Raises:
        ValidationError: If the identity is not a valid host:port
    """
    host, sep, port_str = (peer_id or "").strip().rpartition(":")
    if host.startswith("[") and host.endswith("]"):
        host = host[1:-1]

    if not sep or not validate_hostname(host):
        raise ValidationError(
            ErrorCode.E002_INVALID_ARGUMENT,
            f"Peer ID must look like host:port, got {peer_id!r}",
            {"peer_id": peer_id},
        )

    try:
        port = int(port_str)
    except ValueError:
        port = -1
    if port <= 0 or port > 65535:
        raise ValidationError(
            ErrorCode.E002_INVALID_ARGUMENT,
            f"Invalid port in peer ID: {port_str!r}",
            {"peer_id": peer_id},
        )

    return host, port


def format_peer_address(host: str, port: int) -> str:
    """Build a TCP peer identity from host and port."""
    if ":" in host:
        return f"[{host}]:{port}"
    return f"{host}:{port}"


def truncate_string(s: str, max_length: int, suffix: str = "...") -> str:
    """
    Truncate a string to a maximum length.

    Args:
        s: String to truncate
        max_length: Maximum length
        suffix: Suffix to add if truncated

    Returns:
        Truncated string
    """
    if len(s) <= max_length:
        return s
    return s[: max_length - len(suffix)] + suffix
