"""
Hybrid Envelope Wire Format
===========================

Serializes and parses the self-describing ciphertext that is stored in the
registry blob.

Format (single ASCII line, fixed field order):
    <version>:<kem_ct>:<wrapped_key>:<nonce>:<auth_tag>:<payload>

    version      short literal tag, "v2" in the current generation
    kem_ct       hex(ML-KEM ciphertext)
    wrapped_key  hex(RSA-OAEP(DEK XOR shared_secret))
    nonce        hex(AES-GCM nonce), 12 bytes (16 accepted for legacy data)
    auth_tag     hex(AES-GCM tag), 16 bytes
    payload      hex(AES-GCM ciphertext), empty for an empty plaintext

Parsing Rules:
    - The version tag is checked before any other field is looked at
    - Exactly six fields; all binary fields strictly lower-case hex
    - Splitting on ":" is only safe because hex cannot contain the
      separator; encode() checks this on every field it emits
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Final, Pattern

from registryvault.core.crypto.aes_gcm import ACCEPTED_NONCE_SIZES, AES_TAG_SIZE
from registryvault.core.exceptions import EnvelopeFormatError, UnsupportedVersionError

ENVELOPE_VERSION_V2: Final[str] = "v2"
CURRENT_VERSION: Final[str] = ENVELOPE_VERSION_V2
SUPPORTED_VERSIONS: Final[frozenset[str]] = frozenset({ENVELOPE_VERSION_V2})

SEPARATOR: Final[str] = ":"
FIELD_COUNT: Final[int] = 6

_HEX_RE: Final[Pattern[str]] = re.compile(r"[0-9a-f]*")
_VERSION_RE: Final[Pattern[str]] = re.compile(r"[a-z0-9][a-z0-9._-]{0,15}")


def _hex_field(value: bytes, name: str) -> str:
    encoded = bytes(value).hex()
    if SEPARATOR in encoded or not _HEX_RE.fullmatch(encoded):
        raise ValueError(f"Envelope field {name} is not lower-case hex")
    return encoded


def _unhex_field(text: str, name: str) -> bytes:
    if len(text) % 2 or not _HEX_RE.fullmatch(text):
        raise EnvelopeFormatError(f"Envelope field {name} is not lower-case hex")
    return bytes.fromhex(text)


@dataclass(frozen=True, slots=True)
class HybridEnvelope:
    """
    Immutable container for one hybrid-encrypted blob.

    Contains everything needed for decryption except the two private keys.
    """

    version: str
    kem_ciphertext: bytes
    wrapped_key: bytes
    nonce: bytes
    auth_tag: bytes
    payload_ciphertext: bytes

    def encode(self) -> str:
        """
        Serialize to the colon-delimited wire format.

        Raises:
            ValueError: If the version tag is not a plain token or a field
                does not hex-encode cleanly
        """
        if not isinstance(self.version, str) or not _VERSION_RE.fullmatch(self.version):
            raise ValueError(f"Invalid envelope version tag: {self.version!r}")

        return SEPARATOR.join((
            self.version,
            _hex_field(self.kem_ciphertext, "kem_ciphertext"),
            _hex_field(self.wrapped_key, "wrapped_key"),
            _hex_field(self.nonce, "nonce"),
            _hex_field(self.auth_tag, "auth_tag"),
            _hex_field(self.payload_ciphertext, "payload_ciphertext"),
        ))

    def to_bytes(self) -> bytes:
        """Serialize to ASCII bytes for a blob store."""
        return self.encode().encode("ascii")

    def __str__(self) -> str:
        return self.encode()

    def __repr__(self) -> str:
        """Safe representation."""
        return (
            f"HybridEnvelope({self.version}, "
            f"kem_ct_len={len(self.kem_ciphertext)}, "
            f"wrapped_len={len(self.wrapped_key)}, "
            f"payload_len={len(self.payload_ciphertext)})"
        )


def _as_text(data: str | bytes) -> str:
    if isinstance(data, str):
        return data
    if isinstance(data, (bytes, bytearray, memoryview)):
        # Non-ASCII bytes cannot be hex; surface them as a field error
        return bytes(data).decode("ascii", errors="replace")
    raise EnvelopeFormatError("Envelope must be str or bytes")


def peek_version(data: str | bytes) -> str:
    """
    Return the version tag of an encoded envelope without parsing the rest.
    """
    version, _, _ = _as_text(data).strip().partition(SEPARATOR)
    return version


def check_version(version: str) -> None:
    """
    Reject envelope versions this build does not implement.

    Raises:
        UnsupportedVersionError: If version is not in SUPPORTED_VERSIONS
    """
    if version not in SUPPORTED_VERSIONS:
        raise UnsupportedVersionError(version)


def parse_envelope(data: str | bytes) -> HybridEnvelope:
    """
    Parse the wire format into a HybridEnvelope.

    Args:
        data: Encoded envelope as str or ASCII bytes; surrounding whitespace
            (e.g. a trailing newline from a file) is ignored

    Returns:
        HybridEnvelope

    Raises:
        UnsupportedVersionError: If the version tag is unknown (checked first)
        EnvelopeFormatError: If any field is missing, not lower-case hex or
            of an impossible size
    """
    text = _as_text(data).strip()
    check_version(peek_version(text))

    parts = text.split(SEPARATOR)
    if len(parts) != FIELD_COUNT:
        raise EnvelopeFormatError(
            f"Envelope must have {FIELD_COUNT} fields, got {len(parts)}"
        )

    version, kem_hex, wrapped_hex, nonce_hex, tag_hex, payload_hex = parts

    kem_ciphertext = _unhex_field(kem_hex, "kem_ciphertext")
    wrapped_key = _unhex_field(wrapped_hex, "wrapped_key")
    nonce = _unhex_field(nonce_hex, "nonce")
    auth_tag = _unhex_field(tag_hex, "auth_tag")
    payload_ciphertext = _unhex_field(payload_hex, "payload_ciphertext")

    if not kem_ciphertext:
        raise EnvelopeFormatError("Envelope KEM ciphertext is empty")
    if not wrapped_key:
        raise EnvelopeFormatError("Envelope wrapped key is empty")
    if len(nonce) not in ACCEPTED_NONCE_SIZES:
        raise EnvelopeFormatError(f"Envelope nonce has invalid size {len(nonce)}")
    if len(auth_tag) != AES_TAG_SIZE:
        raise EnvelopeFormatError(f"Envelope auth tag has invalid size {len(auth_tag)}")

    return HybridEnvelope(
        version=version,
        kem_ciphertext=kem_ciphertext,
        wrapped_key=wrapped_key,
        nonce=nonce,
        auth_tag=auth_tag,
        payload_ciphertext=payload_ciphertext,
    )


def encode_envelope(envelope: HybridEnvelope) -> str:
    """Serialize a HybridEnvelope to the wire format."""
    return envelope.encode()
