"""
Hybrid Post-Quantum Encryption Engine
=====================================

Combines three primitives so that breaking either public-key scheme alone
reveals nothing about the data:
    1. AES-256-GCM (payload encryption under a single-use DEK)
    2. ML-KEM-768 (post-quantum key encapsulation)
    3. RSA-OAEP (classical key wrapping)

Encryption Flow:
    plaintext
        ↓ AES-256-GCM (DEK, nonce)
    payload_ciphertext + auth_tag
    DEK
        ↓ XOR ML-KEM shared secret
    protected_key
        ↓ RSA-OAEP wrap
    wrapped_key
    → HybridEnvelope(v2, kem_ciphertext, wrapped_key, nonce, auth_tag, payload)

Decryption Flow:
    wrapped_key    ↓ RSA-OAEP unwrap     → protected_key
    kem_ciphertext ↓ ML-KEM decapsulate  → shared_secret
    protected_key XOR shared_secret      → DEK
    payload        ↓ AES-256-GCM open    → plaintext

Security Properties:
    - Recovering the DEK needs both the KEM secret key and the RSA private key
    - Fresh DEK and nonce for every envelope
    - DEK and protected key are held in bytearrays and zeroed on every exit
    - Every decryption failure raises the same DecryptionFailed (no oracle)

WARNING:
    - The XOR combination is what provides the hybrid guarantee; keep it
      exactly when swapping primitives
"""

from __future__ import annotations

import logging
from typing import Optional

from registryvault.core.crypto.aes_gcm import AES_KEY_SIZE, AesGcmCipher
from registryvault.core.crypto.envelope import (
    CURRENT_VERSION,
    HybridEnvelope,
    check_version,
    parse_envelope,
    peek_version,
)
from registryvault.core.crypto.kem import SHARED_SECRET_SIZE, KemPrimitive
from registryvault.core.crypto.rsa_oaep import RsaOaepWrapper, load_public_key
from registryvault.core.exceptions import DecryptionFailed, KeyMaterialError
from registryvault.core.memory.zeroization import ZeroizeContext, secure_zero

logger = logging.getLogger("registryvault.crypto.hybrid")


def _xor_into(out: bytearray, a: bytes | bytearray, b: bytes | bytearray) -> None:
    """XOR two equal-length byte strings into out, without an immutable copy."""
    if not (len(out) == len(a) == len(b)):
        raise ValueError("Byte strings must be same length for XOR")
    for i in range(len(out)):
        out[i] = a[i] ^ b[i]


class HybridEncryptor:
    """
    Turns a plaintext blob into a HybridEnvelope.

    Usage:
        encryptor = HybridEncryptor()
        envelope = encryptor.encrypt(plaintext, kem_public_key, rsa_public_pem)
        blob = envelope.encode()

    Security Notes:
        - Stateless; safe to call concurrently
        - Needs only public keys
    """

    __slots__ = ("_cipher", "_kem", "_wrapper")

    def __init__(
        self,
        kem: Optional[KemPrimitive] = None,
        wrapper: Optional[RsaOaepWrapper] = None,
        cipher: Optional[AesGcmCipher] = None,
    ) -> None:
        self._cipher = cipher or AesGcmCipher()
        self._kem = kem or KemPrimitive()
        self._wrapper = wrapper or RsaOaepWrapper()

    def encrypt(
        self,
        plaintext: bytes,
        kem_public_key: bytes,
        asymmetric_public_key: bytes,
    ) -> HybridEnvelope:
        """
        Encrypt plaintext into a v2 envelope.

        Args:
            plaintext: Data to encrypt (may be empty)
            kem_public_key: ML-KEM public key
            asymmetric_public_key: RSA public key (PEM or DER)

        Returns:
            HybridEnvelope

        Raises:
            KeyMaterialError: If either public key is malformed or the wrong size
            PlaintextTooLargeError: If plaintext exceeds the AES-GCM ceiling
        """
        if not isinstance(plaintext, (bytes, bytearray, memoryview)):
            raise TypeError("plaintext must be bytes")

        # Reject bad configuration before consuming any randomness
        self._kem.validate_public_key(kem_public_key)
        load_public_key(asymmetric_public_key)

        dek = bytearray(self._cipher.generate_key())
        protected_key = bytearray(AES_KEY_SIZE)
        nonce = self._cipher.generate_nonce()

        with ZeroizeContext(dek, protected_key):
            sealed = self._cipher.seal(dek, nonce, bytes(plaintext))

            encapsulation = self._kem.encapsulate(kem_public_key)
            if len(encapsulation.shared_secret) != SHARED_SECRET_SIZE:
                raise KeyMaterialError("KEM shared secret must be 32 bytes")

            _xor_into(protected_key, dek, encapsulation.shared_secret)
            wrapped_key = self._wrapper.wrap(protected_key, asymmetric_public_key)

        logger.debug(
            "Encrypted %d bytes into %s envelope (%s + RSA-OAEP)",
            len(plaintext), CURRENT_VERSION, self._kem.algorithm,
        )

        return HybridEnvelope(
            version=CURRENT_VERSION,
            kem_ciphertext=encapsulation.ciphertext,
            wrapped_key=wrapped_key,
            nonce=nonce,
            auth_tag=sealed.tag,
            payload_ciphertext=sealed.ciphertext,
        )


class HybridDecryptor:
    """
    Recovers the plaintext from a HybridEnvelope.

    Usage:
        decryptor = HybridDecryptor()
        plaintext = decryptor.decrypt(blob, kem_secret_key, rsa_private_pem)

    Security Notes:
        - The version tag is checked before anything else
        - Any later failure raises DecryptionFailed with a fixed message,
          whichever step failed
        - No partial plaintext is ever returned
    """

    __slots__ = ("_cipher", "_kem", "_wrapper")

    def __init__(
        self,
        kem: Optional[KemPrimitive] = None,
        wrapper: Optional[RsaOaepWrapper] = None,
        cipher: Optional[AesGcmCipher] = None,
    ) -> None:
        self._cipher = cipher or AesGcmCipher()
        self._kem = kem or KemPrimitive()
        self._wrapper = wrapper or RsaOaepWrapper()

    def decrypt(
        self,
        envelope: HybridEnvelope | str | bytes,
        kem_secret_key: bytes,
        asymmetric_private_key: bytes,
    ) -> bytes:
        """
        Decrypt an envelope.

        Args:
            envelope: HybridEnvelope, or its encoded str / bytes form
            kem_secret_key: ML-KEM secret key
            asymmetric_private_key: RSA private key (PEM or DER)

        Returns:
            Decrypted plaintext

        Raises:
            UnsupportedVersionError: If the version tag is unknown
            DecryptionFailed: On any other failure
        """
        if isinstance(envelope, HybridEnvelope):
            check_version(envelope.version)
        else:
            check_version(peek_version(envelope))
            try:
                envelope = parse_envelope(envelope)
            except DecryptionFailed:
                logger.debug("Rejected malformed envelope")
                raise DecryptionFailed() from None

        protected_key = bytearray()
        dek = bytearray(AES_KEY_SIZE)

        with ZeroizeContext(dek, protected_key):
            try:
                unwrapped = self._wrapper.unwrap(
                    envelope.wrapped_key, asymmetric_private_key
                )
                protected_key[:] = unwrapped
                secure_zero(unwrapped)
                shared_secret = self._kem.decapsulate(
                    envelope.kem_ciphertext, kem_secret_key
                )
                _xor_into(dek, protected_key, shared_secret)

                return self._cipher.open(
                    dek,
                    envelope.nonce,
                    envelope.payload_ciphertext,
                    envelope.auth_tag,
                )
            except Exception as e:
                # Generic error to prevent information leakage
                logger.debug("Envelope decryption failed (%s)", type(e).__name__)
                raise DecryptionFailed() from None


class HybridCryptoEngine:
    """
    Convenience facade over HybridEncryptor and HybridDecryptor that shares
    one set of primitives and works on encoded strings.

    Usage:
        engine = HybridCryptoEngine(kem_level=768)
        blob = engine.encrypt_string(json_text, kem_pk, rsa_pk)
        json_text = engine.decrypt_string(blob, kem_sk, rsa_sk)
    """

    __slots__ = ("_encryptor", "_decryptor", "_kem")

    def __init__(
        self,
        kem_level: int = 768,
        kem: Optional[KemPrimitive] = None,
        wrapper: Optional[RsaOaepWrapper] = None,
    ) -> None:
        self._kem = kem or KemPrimitive(security_level=kem_level)
        wrapper = wrapper or RsaOaepWrapper()
        cipher = AesGcmCipher()
        self._encryptor = HybridEncryptor(self._kem, wrapper, cipher)
        self._decryptor = HybridDecryptor(self._kem, wrapper, cipher)

    @property
    def kem_algorithm(self) -> str:
        """Name of the KEM in use."""
        return self._kem.algorithm

    def encrypt(self, plaintext: bytes, kem_public_key: bytes, asymmetric_public_key: bytes) -> HybridEnvelope:
        """See HybridEncryptor.encrypt()."""
        return self._encryptor.encrypt(plaintext, kem_public_key, asymmetric_public_key)

    def decrypt(
        self,
        envelope: HybridEnvelope | str | bytes,
        kem_secret_key: bytes,
        asymmetric_private_key: bytes,
    ) -> bytes:
        """See HybridDecryptor.decrypt()."""
        return self._decryptor.decrypt(envelope, kem_secret_key, asymmetric_private_key)

    def encrypt_string(self, text: str, kem_public_key: bytes, asymmetric_public_key: bytes) -> str:
        """Encrypt UTF-8 text and return the encoded envelope."""
        return self.encrypt(text.encode("utf-8"), kem_public_key, asymmetric_public_key).encode()

    def decrypt_string(self, blob: str | bytes, kem_secret_key: bytes, asymmetric_private_key: bytes) -> str:
        """
        Decrypt an encoded envelope holding UTF-8 text.

        Raises:
            UnsupportedVersionError: If the version tag is unknown
            DecryptionFailed: On any other failure, including invalid UTF-8
        """
        plaintext = self.decrypt(blob, kem_secret_key, asymmetric_private_key)
        try:
            return plaintext.decode("utf-8")
        except UnicodeDecodeError:
            raise DecryptionFailed() from None
