"""
PeerChat - Global Constants and Configuration Values

This module defines all constants used throughout PeerChat.
All magic numbers and configuration defaults are centralized here.

Author: orpheus497
Version: 1.0.0
"""

# Version Information
VERSION = "1.0.0"
APP_NAME = "PeerChat"
AUTHOR = "orpheus497"

# Network Constants
DEFAULT_LISTEN_PORT = 5000
DEFAULT_HOST = "127.0.0.1"
CONNECT_TIMEOUT = 10  # seconds
READ_CHUNK_SIZE = 4096
RECEIVE_BUFFER_MAX_SIZE = 2 * 1024 * 1024  # 2 MB

# Frame Limits
MAX_FRAME_SIZE = 1024 * 1024  # 1 MB
MAX_TEXT_MESSAGE_SIZE = 100 * 1024  # 100 KB
MAX_DISPLAY_NAME_LENGTH = 64

# Cryptography Constants
KEY_SIZE = 32  # 256 bits for AES-256-GCM
NONCE_SIZE = 12  # 96 bits for GCM
TAG_SIZE = 16  # GCM authentication tag appended to the ciphertext

# Longest base64 "encrypted" field a legal message can produce: every
# character may take 4 UTF-8 bytes, plus the tag, base64 rounds up to 4
MAX_ENCRYPTED_FIELD_SIZE = -(-(4 * MAX_TEXT_MESSAGE_SIZE + TAG_SIZE) // 3) * 4

# Presence Constants
TYPING_IDLE_TIMEOUT = 2.0  # seconds without a keystroke before stop-typing
REMOTE_USER_PLACEHOLDER = "Remote user"

# System entry texts
TEXT_KEY_SENT = "Encryption key sent"
TEXT_KEY_RECEIVED = "Encryption key received"
TEXT_CONNECTION_CLOSED = "Connection closed"
TEXT_ERROR = "Error"
TEXT_CONNECTION_ERROR = "Connection error"
TEXT_DECRYPTION_ERROR = "Decryption Error"

# Notification texts
NOTIFY_CONNECTION_ESTABLISHED = "Connection established"
NOTIFY_NEW_MESSAGE = "New message"
NOTIFY_NO_CONNECTION = "Not connected"
NOTIFY_ENTER_PEER_ID = "Please enter a peer ID"
NOTIFY_EMPTY_MESSAGE = "Cannot send an empty message"
NOTIFY_MESSAGE_TOO_LONG = "Message is too long"
NOTIFY_KEY_GENERATION_FAILED = "Failed to generate encryption key"
NOTIFY_KEY_IMPORT_FAILED = "Failed to import encryption key"

# File Paths
DEFAULT_DATA_DIR = "~/.peerchat"
CONFIG_FILENAME = "config.toml"
LOG_FILENAME = "peerchat.log"

# Logging Configuration
LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"
LOG_MAX_BYTES = 10 * 1024 * 1024  # 10 MB
LOG_BACKUP_COUNT = 5

# UI Configuration
UI_NOTIFICATION_TIMEOUT = 3  # seconds
UI_TIMESTAMP_FORMAT = "%Y-%m-%d %H:%M:%S"

# Connection State Machine Constants
STATE_HISTORY_MAX = 100  # transitions kept for diagnostics

# Protocol Version (stream packing)
PROTOCOL_VERSION = 1
