"""
AES-256-GCM Authenticated Encryption
====================================

The symmetric primitive under both the hybrid envelope and the private-key
vault.

Security Properties:
    - 256-bit key
    - 96-bit nonce (NIST recommended), freshly random per seal
    - 128-bit authentication tag, kept apart from the ciphertext
    - No associated data

NIST SP 800-38D Compliance:
    - GCM mode with 96-bit IV
    - Unique nonce for each encryption under same key

Legacy Compatibility:
    Envelopes written by the first generation of the registry tooling used a
    16-byte GCM IV under the same "v2" tag. open() accepts those; seal()
    always produces 12-byte nonces.

WARNING:
    - Never reuse (key, nonce) pairs
    - open() releases no plaintext unless the tag verifies
"""

from __future__ import annotations

import secrets
from dataclasses import dataclass
from typing import Final, Iterator

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

from registryvault.core.exceptions import (
    AuthenticationFailure,
    KeyMaterialError,
    PlaintextTooLargeError,
)

AES_KEY_SIZE: Final[int] = 32  # 256 bits
AES_NONCE_SIZE: Final[int] = 12  # 96 bits
AES_LEGACY_NONCE_SIZE: Final[int] = 16
AES_TAG_SIZE: Final[int] = 16  # 128 bits

ACCEPTED_NONCE_SIZES: Final[frozenset[int]] = frozenset({AES_NONCE_SIZE, AES_LEGACY_NONCE_SIZE})

# Largest single buffer the OpenSSL-backed AESGCM binding accepts.
MAX_PLAINTEXT_SIZE: Final[int] = 2**31 - 1


@dataclass(frozen=True, slots=True)
class SealedData:
    """
    Immutable result of AES-GCM sealing.

    Attributes:
        ciphertext: Encrypted payload, same length as the plaintext
        tag: 16-byte authentication tag
    """

    ciphertext: bytes
    tag: bytes

    def __iter__(self) -> Iterator[bytes]:
        return iter((self.ciphertext, self.tag))

    def __repr__(self) -> str:
        """Safe representation."""
        return f"SealedData(ciphertext_len={len(self.ciphertext)}, tag_len={len(self.tag)})"


class AesGcmCipher:
    """
    AES-256-GCM with detached tag.

    Usage:
        cipher = AesGcmCipher()
        key = cipher.generate_key()
        nonce = cipher.generate_nonce()

        ciphertext, tag = cipher.seal(key, nonce, plaintext)
        plaintext = cipher.open(key, nonce, ciphertext, tag)

    Security Notes:
        - Stateless; safe to share between threads
        - Tag comparison is constant-time inside OpenSSL
    """

    __slots__ = ()

    @staticmethod
    def generate_key() -> bytes:
        """
        Generate a random AES-256 key.

        Returns:
            32 bytes from the OS CSPRNG
        """
        return secrets.token_bytes(AES_KEY_SIZE)

    @staticmethod
    def generate_nonce() -> bytes:
        """
        Generate a random 96-bit nonce.

        Returns:
            12 bytes from the OS CSPRNG
        """
        return secrets.token_bytes(AES_NONCE_SIZE)

    def seal(
        self,
        key: bytes | bytearray,
        nonce: bytes,
        plaintext: bytes,
    ) -> SealedData:
        """
        Encrypt plaintext and return ciphertext and tag separately.

        Args:
            key: 32-byte key
            nonce: 12-byte nonce, never reused under the same key
            plaintext: Data to encrypt (may be empty)

        Returns:
            SealedData(ciphertext, tag)

        Raises:
            KeyMaterialError: If the key or nonce has the wrong size
            PlaintextTooLargeError: If plaintext exceeds MAX_PLAINTEXT_SIZE
        """
        if len(key) != AES_KEY_SIZE:
            raise KeyMaterialError(f"Key must be exactly {AES_KEY_SIZE} bytes")
        if len(nonce) != AES_NONCE_SIZE:
            raise KeyMaterialError(f"Nonce must be exactly {AES_NONCE_SIZE} bytes")
        if len(plaintext) > MAX_PLAINTEXT_SIZE:
            raise PlaintextTooLargeError(
                f"Plaintext exceeds {MAX_PLAINTEXT_SIZE} bytes"
            )

        sealed = AESGCM(key).encrypt(nonce, plaintext, None)
        return SealedData(
            ciphertext=sealed[:-AES_TAG_SIZE],
            tag=sealed[-AES_TAG_SIZE:],
        )

    def open(
        self,
        key: bytes | bytearray,
        nonce: bytes,
        ciphertext: bytes,
        tag: bytes,
    ) -> bytes:
        """
        Verify the tag and decrypt.

        Args:
            key: 32-byte key
            nonce: Nonce used at seal time (12 bytes, or 16 for legacy data)
            ciphertext: Encrypted payload
            tag: 16-byte authentication tag

        Returns:
            Decrypted plaintext

        Raises:
            AuthenticationFailure: On any mismatch (tampered data, wrong key,
                wrong nonce, malformed parameters). No plaintext is released.
        """
        if (
            len(key) != AES_KEY_SIZE
            or len(nonce) not in ACCEPTED_NONCE_SIZES
            or len(tag) != AES_TAG_SIZE
        ):
            raise AuthenticationFailure()

        try:
            return AESGCM(key).decrypt(nonce, ciphertext + tag, None)
        except InvalidTag:
            raise AuthenticationFailure() from None
