"""
PeerChat - Symmetric key exchange and message encryption.

Created by orpheus497

This module implements the cryptographic core of a chat session:
- AES-256-GCM key generation, raw export and import (KeyExchange)
- Per-message authenticated encryption with a fresh 96-bit nonce (SecureChannel)

The connecting peer's key is sent in the clear over the already
point-to-point channel and becomes authoritative for that channel.
Both the sync primitives and their async wrappers are provided; the
async forms run in the default executor so the event loop never blocks.

All cryptographic operations use the cryptography library (Apache 2.0/BSD License).
"""

import asyncio
import base64
import binascii
import functools
import hashlib
import logging
import os
from dataclasses import dataclass, field
from typing import Dict, Optional

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from .constants import KEY_SIZE, NONCE_SIZE
from .errors import DecryptionError, KeyGenerationError, KeyImportError, NoKeyError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SymmetricKey:
    """
    A 256-bit AES-GCM key.

    Instances are never mutated; a key is replaced wholesale on exchange
    or reconnect.
    """

    material: bytes = field(repr=False)

    def __post_init__(self):
        if not isinstance(self.material, bytes) or len(self.material) != KEY_SIZE:
            raise KeyImportError(
                f"Key must be {KEY_SIZE} bytes",
                {"length": len(self.material) if isinstance(self.material, bytes) else None},
            )

    @property
    def fingerprint(self) -> str:
        """Short SHA-256 fingerprint, safe to log and display."""
        return hashlib.sha256(self.material).hexdigest()[:16]

    def __repr__(self) -> str:
        return f"SymmetricKey(fingerprint={self.fingerprint})"


def generate_key() -> SymmetricKey:
    """
    Generate a fresh AES-256-GCM key from the platform's secure random source.

    Raises:
        KeyGenerationError: If no secure random source or AES provider is available
    """
    try:
        material = AESGCM.generate_key(bit_length=KEY_SIZE * 8)
    except (NotImplementedError, OSError, ValueError) as e:
        raise KeyGenerationError(f"Secure key generation unavailable: {e}", {"error": str(e)}) from e
    return SymmetricKey(material)


def export_key(key: SymmetricKey) -> str:
    """Serialize raw key material as base64 for a Key frame."""
    return base64.b64encode(key.material).decode("utf-8")


def import_key(data: str) -> SymmetricKey:
    """
    Import base64 raw key material received in a Key frame.

    Raises:
        KeyImportError: If the input is not a string, not valid base64,
            or not exactly 256 bits
    """
    if not isinstance(data, str) or not data:
        raise KeyImportError("Key material must be a non-empty base64 string")
    try:
        material = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        raise KeyImportError(f"Malformed key material: {e}", {"error": str(e)}) from e
    return SymmetricKey(material)


def encrypt_text(key: SymmetricKey, plaintext: str) -> Dict[str, str]:
    """
    Encrypt a UTF-8 message with AES-256-GCM.

    A new random 96-bit nonce is drawn for every call, so a nonce never
    repeats under the same key in practice.

    Returns dict with base64 'iv' and 'encrypted' (ciphertext + 16-byte tag).
    """
    nonce = os.urandom(NONCE_SIZE)
    ciphertext = AESGCM(key.material).encrypt(nonce, plaintext.encode("utf-8"), None)
    return {
        "iv": base64.b64encode(nonce).decode("utf-8"),
        "encrypted": base64.b64encode(ciphertext).decode("utf-8"),
    }


def decrypt_text(key: SymmetricKey, payload: Dict[str, str]) -> str:
    """
    Decrypt a payload produced by encrypt_text.

    Raises:
        DecryptionError: On tag mismatch, wrong key, missing fields,
            bad base64, a wrong nonce length, or non-UTF-8 plaintext
    """
    try:
        nonce = base64.b64decode(payload["iv"], validate=True)
        ciphertext = base64.b64decode(payload["encrypted"], validate=True)
    except (KeyError, TypeError, binascii.Error, ValueError) as e:
        raise DecryptionError(f"Corrupted message payload: {e}") from e

    if len(nonce) != NONCE_SIZE:
        raise DecryptionError(
            f"Invalid nonce length: {len(nonce)}", {"length": len(nonce), "expected": NONCE_SIZE}
        )

    try:
        plaintext = AESGCM(key.material).decrypt(nonce, ciphertext, None)
        return plaintext.decode("utf-8")
    except InvalidTag as e:
        raise DecryptionError("Authentication failed (wrong key or tampered message)") from e
    except UnicodeDecodeError as e:
        raise DecryptionError("Decrypted payload is not valid UTF-8") from e


async def _run_in_executor(func, *args):
    loop = asyncio.get_running_loop()
    return await loop.run_in_executor(None, functools.partial(func, *args))


class KeyExchange:
    """
    Owns the single symmetric key slot of a session.

    Every change of the slot bumps an epoch counter. A local generation
    that started before a remote key was imported sees a newer epoch on
    completion and is discarded, so the imported key wins the race.
    """

    def __init__(self):
        self._key: Optional[SymmetricKey] = None
        self._epoch = 0

    @property
    def key(self) -> Optional[SymmetricKey]:
        """Current key, or None when no key is established."""
        return self._key

    @property
    def has_key(self) -> bool:
        return self._key is not None

    @property
    def epoch(self) -> int:
        return self._epoch

    def _install(self, key: Optional[SymmetricKey]) -> None:
        self._key = key
        self._epoch += 1

    async def generate_local_key(self) -> Optional[SymmetricKey]:
        """
        Generate a local key and install it unless the slot changed meanwhile.

        Returns:
            The key now in the slot

        Raises:
            KeyGenerationError: If secure generation is unavailable
        """
        started_at = self._epoch
        key = await _run_in_executor(generate_key)
        if self._epoch != started_at:
            logger.debug("Discarding locally generated key: slot replaced during generation")
            return self._key
        self._install(key)
        logger.debug(f"Local key generated ({key.fingerprint})")
        return key

    async def export_key(self) -> str:
        """
        Export the current key as base64.

        Raises:
            NoKeyError: If no key is established
        """
        if self._key is None:
            raise NoKeyError("No key to export")
        return export_key(self._key)

    async def read_key(self, data: str) -> SymmetricKey:
        """
        Decode received key material without touching the slot.

        Raises:
            KeyImportError: On malformed input
        """
        return await _run_in_executor(import_key, data)

    def adopt(self, key: SymmetricKey) -> bool:
        """
        Make a decoded remote key authoritative.

        Returns:
            False if the key equals the current one and nothing changed
        """
        if self._key is not None and self._key.material == key.material:
            logger.debug("Received key matches current key, nothing to replace")
            return False
        self._install(key)
        logger.info(f"Remote key imported ({key.fingerprint})")
        return True

    async def import_key(self, data: str) -> SymmetricKey:
        """
        Import a remote key and make it authoritative.

        Importing material identical to the current key leaves the slot
        untouched.

        Raises:
            KeyImportError: On malformed input
        """
        key = await self.read_key(data)
        self.adopt(key)
        return self._key

    def clear(self) -> None:
        """Drop the current key to force a fresh exchange."""
        if self._key is not None:
            logger.debug("Clearing session key")
        self._install(None)


class SecureChannel:
    """Encrypts and decrypts Message payloads with the KeyExchange key."""

    def __init__(self, key_exchange: KeyExchange):
        self.key_exchange = key_exchange

    async def encrypt_message(self, text: str) -> Dict[str, str]:
        """
        Encrypt plaintext into an {iv, encrypted} payload.

        Raises:
            NoKeyError: If no key is established
        """
        key = self.key_exchange.key
        if key is None:
            raise NoKeyError("Cannot encrypt: no key established")
        return await _run_in_executor(encrypt_text, key, text)

    async def decrypt_message(self, payload: Dict[str, str]) -> str:
        """
        Decrypt an {iv, encrypted} payload.

        Raises:
            NoKeyError: If no key is established
            DecryptionError: On authentication failure or corrupted input
        """
        key = self.key_exchange.key
        if key is None:
            raise NoKeyError("Cannot decrypt: no key established")
        return await _run_in_executor(decrypt_text, key, payload)
