"""
PeerChat - Frame protocol definitions.

Created by orpheus497

This module defines the five logical frames exchanged over a data channel
and how they are packed onto a byte stream. A frame is a JSON object whose
"type" field selects the variant:

    {"type": "key", "key": <base64 raw AES-GCM-256 key>}
    {"type": "message", "iv": <base64 12 bytes>, "encrypted": <base64>}
    {"type": "typing", "user": <string>}
    {"type": "stop-typing"}
    {"type": "user-info", "name": <string>}

Byte-stream transports prefix every frame with a header containing:
- Protocol version (1 byte)
- Payload length (4 bytes)

Total header size: 5 bytes
"""

import json
import struct
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from .constants import MAX_ENCRYPTED_FIELD_SIZE, MAX_FRAME_SIZE, PROTOCOL_VERSION
from .errors import ErrorCode, ProtocolError


class FrameType(str, Enum):
    """Frame type definitions."""

    KEY = "key"
    MESSAGE = "message"
    TYPING = "typing"
    STOP_TYPING = "stop-typing"
    USER_INFO = "user-info"


# Fields each frame type must carry, with their expected type
REQUIRED_FIELDS: Dict[FrameType, Dict[str, type]] = {
    FrameType.KEY: {"key": str},
    FrameType.MESSAGE: {"iv": str, "encrypted": str},
    FrameType.TYPING: {},
    FrameType.STOP_TYPING: {},
    FrameType.USER_INFO: {"name": str},
}


class Protocol:
    """Frame construction, validation and stream packing."""

    VERSION = PROTOCOL_VERSION
    HEADER_FORMAT = "!BI"
    HEADER_SIZE = struct.calcsize(HEADER_FORMAT)
    MAX_PAYLOAD_SIZE = MAX_FRAME_SIZE

    @staticmethod
    def create_key(key_b64: str) -> Dict[str, Any]:
        """Create key frame."""
        return {"type": FrameType.KEY.value, "key": key_b64}

    @staticmethod
    def create_message(encrypted: Dict[str, str]) -> Dict[str, Any]:
        """Create message frame from an {iv, encrypted} payload."""
        return {
            "type": FrameType.MESSAGE.value,
            "iv": encrypted["iv"],
            "encrypted": encrypted["encrypted"],
        }

    @staticmethod
    def create_typing(user: str) -> Dict[str, Any]:
        """Create typing frame."""
        return {"type": FrameType.TYPING.value, "user": user}

    @staticmethod
    def create_stop_typing() -> Dict[str, Any]:
        """Create stop-typing frame."""
        return {"type": FrameType.STOP_TYPING.value}

    @staticmethod
    def create_user_info(name: str) -> Dict[str, Any]:
        """Create user-info frame."""
        return {"type": FrameType.USER_INFO.value, "name": name}

    @staticmethod
    def frame_type(frame: Any) -> FrameType:
        """
        Validate a received frame and return its type.

        Typing frames may omit "user"; the receiver falls back to a
        placeholder name.

        Raises:
            ProtocolError: If the frame is not an object, has an unknown
                type, or lacks a required field
        """
        if not isinstance(frame, dict):
            raise ProtocolError(
                ErrorCode.E206_INVALID_FRAME,
                f"Frame must be an object, got {type(frame).__name__}",
            )

        raw_type = frame.get("type")
        try:
            ftype = FrameType(raw_type)
        except ValueError:
            raise ProtocolError(
                ErrorCode.E208_UNKNOWN_FRAME_TYPE,
                f"Unknown frame type: {raw_type!r}",
                {"type": raw_type},
            )

        for name, expected in REQUIRED_FIELDS[ftype].items():
            if not isinstance(frame.get(name), expected):
                raise ProtocolError(
                    ErrorCode.E206_INVALID_FRAME,
                    f"Missing or invalid field: {name}",
                    {"frame_type": ftype.value, "field": name},
                )

        if ftype == FrameType.MESSAGE and len(frame["encrypted"]) > MAX_ENCRYPTED_FIELD_SIZE:
            raise ProtocolError(
                ErrorCode.E207_FRAME_TOO_LARGE,
                f"Message frame too large: {len(frame['encrypted'])}",
                {"size": len(frame["encrypted"])},
            )

        return ftype

    @staticmethod
    def pack_frame(frame: Dict[str, Any]) -> bytes:
        """
        Pack a frame with the stream header.

        Format:
        - Version: 1 byte (unsigned char)
        - Payload Length: 4 bytes (unsigned int, big-endian)
        - Payload: variable length (UTF-8 JSON)

        Raises:
            ProtocolError: If the payload is too large
        """
        payload_bytes = json.dumps(frame, ensure_ascii=False).encode("utf-8")

        if len(payload_bytes) > Protocol.MAX_PAYLOAD_SIZE:
            raise ProtocolError(
                ErrorCode.E207_FRAME_TOO_LARGE,
                f"Payload too large: {len(payload_bytes)} bytes",
                {"size": len(payload_bytes), "max_size": Protocol.MAX_PAYLOAD_SIZE},
            )

        header = struct.pack(Protocol.HEADER_FORMAT, Protocol.VERSION, len(payload_bytes))
        return header + payload_bytes

    @staticmethod
    def unpack_frame(data: bytes) -> Optional[Tuple[Dict[str, Any], int]]:
        """
        Unpack one frame from the front of a receive buffer.

        Returns:
        - Frame dictionary (not yet validated against its type)
        - Total bytes consumed (header + payload)

        Returns None if the buffer does not yet hold a complete frame.

        Raises:
            ProtocolError: On version mismatch, oversized or unparsable payload
        """
        if len(data) < Protocol.HEADER_SIZE:
            return None

        version, length = struct.unpack(Protocol.HEADER_FORMAT, data[: Protocol.HEADER_SIZE])

        if version != Protocol.VERSION:
            raise ProtocolError(
                ErrorCode.E206_INVALID_FRAME,
                f"Unsupported protocol version: {version}",
                {"version": version, "expected": Protocol.VERSION},
            )

        if length > Protocol.MAX_PAYLOAD_SIZE:
            raise ProtocolError(
                ErrorCode.E207_FRAME_TOO_LARGE,
                f"Payload too large: {length} bytes",
                {"size": length, "max_size": Protocol.MAX_PAYLOAD_SIZE},
            )

        if len(data) < Protocol.HEADER_SIZE + length:
            return None

        payload_bytes = data[Protocol.HEADER_SIZE : Protocol.HEADER_SIZE + length]
        try:
            frame = json.loads(payload_bytes.decode("utf-8"))
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            raise ProtocolError(
                ErrorCode.E206_INVALID_FRAME, f"Failed to parse frame: {e}", {"error": str(e)}
            )

        return frame, Protocol.HEADER_SIZE + length
