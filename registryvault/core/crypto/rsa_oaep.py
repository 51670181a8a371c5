"""
RSA-OAEP Key Wrapping
=====================

Classical half of the hybrid key protection: wraps the 32-byte protected key
(DEK XOR KEM shared secret) under an RSA public key.

Security Properties:
    - RSA-4096 by default, 2048 minimum
    - OAEP padding with MGF1
    - Keys accepted as PEM (SPKI / PKCS#8) or DER

Compatibility:
    v2 envelopes use OAEP with SHA-1 for both the label hash and MGF1, the
    defaults of the Node.js tooling that introduced the format. Changing the
    hash requires a new envelope version.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Final

from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa

from registryvault.core.exceptions import KeyMaterialError

logger = logging.getLogger("registryvault.crypto.rsa")

DEFAULT_RSA_KEY_SIZE: Final[int] = 4096
MIN_RSA_KEY_SIZE: Final[int] = 2048
RSA_PUBLIC_EXPONENT: Final[int] = 65537

_PEM_MARKER: Final[bytes] = b"-----BEGIN"


def _oaep_padding() -> padding.OAEP:
    return padding.OAEP(
        mgf=padding.MGF1(algorithm=hashes.SHA1()),
        algorithm=hashes.SHA1(),
        label=None,
    )


@dataclass(frozen=True, slots=True)
class AsymmetricKeyPair:
    """
    Immutable RSA keypair in serialized form.

    Attributes:
        public_key: SubjectPublicKeyInfo PEM
        private_key: Unencrypted PKCS#8 PEM (protect it with PrivateKeyVault)
    """

    public_key: bytes
    private_key: bytes

    def __repr__(self) -> str:
        """Safe representation without exposing key material."""
        return f"AsymmetricKeyPair(pk_len={len(self.public_key)})"


def load_public_key(data: bytes) -> rsa.RSAPublicKey:
    """
    Parse a serialized RSA public key.

    Args:
        data: PEM or DER encoded SubjectPublicKeyInfo

    Returns:
        RSAPublicKey

    Raises:
        KeyMaterialError: If the data is not an RSA public key of acceptable size
    """
    if not isinstance(data, (bytes, bytearray)) or not data:
        raise KeyMaterialError("RSA public key must be non-empty bytes")
    try:
        if data.lstrip().startswith(_PEM_MARKER):
            key = serialization.load_pem_public_key(bytes(data))
        else:
            key = serialization.load_der_public_key(bytes(data))
    except (ValueError, TypeError) as e:
        raise KeyMaterialError("RSA public key is malformed") from e

    if not isinstance(key, rsa.RSAPublicKey):
        raise KeyMaterialError("Asymmetric public key is not an RSA key")
    if key.key_size < MIN_RSA_KEY_SIZE:
        raise KeyMaterialError(f"RSA public key must be at least {MIN_RSA_KEY_SIZE} bits")
    return key


def load_private_key(data: bytes) -> rsa.RSAPrivateKey:
    """
    Parse a serialized, unencrypted RSA private key.

    Args:
        data: PEM or DER encoded PKCS#8 (or traditional) private key

    Returns:
        RSAPrivateKey

    Raises:
        KeyMaterialError: If the data is not an RSA private key of acceptable size
    """
    if not isinstance(data, (bytes, bytearray)) or not data:
        raise KeyMaterialError("RSA private key must be non-empty bytes")
    try:
        if data.lstrip().startswith(_PEM_MARKER):
            key = serialization.load_pem_private_key(bytes(data), password=None)
        else:
            key = serialization.load_der_private_key(bytes(data), password=None)
    except (ValueError, TypeError) as e:
        raise KeyMaterialError("RSA private key is malformed") from e

    if not isinstance(key, rsa.RSAPrivateKey):
        raise KeyMaterialError("Asymmetric private key is not an RSA key")
    if key.key_size < MIN_RSA_KEY_SIZE:
        raise KeyMaterialError(f"RSA private key must be at least {MIN_RSA_KEY_SIZE} bits")
    return key


class RsaOaepWrapper:
    """
    RSA-OAEP wrap/unwrap of short secrets.

    Usage:
        wrapper = RsaOaepWrapper()
        keypair = wrapper.generate()

        wrapped = wrapper.wrap(secret32, keypair.public_key)
        secret32 = wrapper.unwrap(wrapped, keypair.private_key)
    """

    __slots__ = ("_key_size",)

    def __init__(self, key_size: int = DEFAULT_RSA_KEY_SIZE) -> None:
        """
        Args:
            key_size: Modulus size in bits for generate()
        """
        if key_size < MIN_RSA_KEY_SIZE:
            raise ValueError(f"RSA key size must be at least {MIN_RSA_KEY_SIZE} bits")
        self._key_size = key_size

    @property
    def key_size(self) -> int:
        """Modulus size used by generate()."""
        return self._key_size

    def generate(self) -> AsymmetricKeyPair:
        """
        Generate a new RSA keypair.

        Returns:
            AsymmetricKeyPair serialized as PEM
        """
        private_key = rsa.generate_private_key(
            public_exponent=RSA_PUBLIC_EXPONENT,
            key_size=self._key_size,
        )
        private_pem = private_key.private_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PrivateFormat.PKCS8,
            encryption_algorithm=serialization.NoEncryption(),
        )
        public_pem = private_key.public_key().public_bytes(
            encoding=serialization.Encoding.PEM,
            format=serialization.PublicFormat.SubjectPublicKeyInfo,
        )
        logger.debug("Generated RSA-%d keypair", self._key_size)
        return AsymmetricKeyPair(public_key=public_pem, private_key=private_pem)

    @staticmethod
    def max_wrap_size(public_key: rsa.RSAPublicKey) -> int:
        """Largest plaintext OAEP-SHA1 can wrap under this key."""
        return public_key.key_size // 8 - 2 * hashes.SHA1.digest_size - 2

    def wrap(self, plaintext: bytes | bytearray, public_key: bytes) -> bytes:
        """
        Encrypt a short secret under an RSA public key.

        Args:
            plaintext: Secret to wrap (32 bytes in the hybrid protocol)
            public_key: Serialized RSA public key

        Returns:
            RSA-OAEP ciphertext, modulus-sized

        Raises:
            KeyMaterialError: If the public key is malformed or too small for
                the plaintext
        """
        key = load_public_key(public_key)
        if len(plaintext) > self.max_wrap_size(key):
            raise KeyMaterialError("RSA public key too small to wrap the requested secret")
        return key.encrypt(bytes(plaintext), _oaep_padding())

    def unwrap(self, ciphertext: bytes, private_key: bytes) -> bytearray:
        """
        Decrypt a wrapped secret.

        Args:
            ciphertext: RSA-OAEP ciphertext
            private_key: Serialized RSA private key

        Returns:
            The secret as a mutable buffer so the caller can zero it

        Raises:
            KeyMaterialError: If the private key is malformed
            ValueError: If OAEP decoding fails (wrong key or tampered data)
        """
        key = load_private_key(private_key)
        return bytearray(key.decrypt(ciphertext, _oaep_padding()))
