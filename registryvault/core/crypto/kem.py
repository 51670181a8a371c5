"""
ML-KEM Post-Quantum Key Encapsulation
=====================================

Post-quantum half of the hybrid key protection.

Security Properties:
    - ML-KEM-768 (FIPS 203, formerly CRYSTALS-Kyber): NIST Security Level 3
    - IND-CCA2 secure key encapsulation
    - Implicit rejection: a wrong secret key yields an unrelated shared
      secret instead of an error, so a mismatch only surfaces when the
      payload tag fails to verify

Algorithm Details (ML-KEM-768):
    - Public (encapsulation) key: 1184 bytes
    - Secret (decapsulation) key: 2400 bytes
    - Ciphertext: 1088 bytes
    - Shared secret: 32 bytes

The hybrid protocol only relies on the KemBackend interface. Any KEM with a
32-byte shared secret can be dropped in by adding a backend; nothing else in
the package changes.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Final, Tuple

from kyber_py.ml_kem import ML_KEM_512, ML_KEM_768, ML_KEM_1024

from registryvault.core.exceptions import KeyMaterialError

logger = logging.getLogger("registryvault.crypto.kem")

ML_KEM_512_PK_SIZE: Final[int] = 800
ML_KEM_512_SK_SIZE: Final[int] = 1632
ML_KEM_512_CT_SIZE: Final[int] = 768

ML_KEM_768_PK_SIZE: Final[int] = 1184
ML_KEM_768_SK_SIZE: Final[int] = 2400
ML_KEM_768_CT_SIZE: Final[int] = 1088

ML_KEM_1024_PK_SIZE: Final[int] = 1568
ML_KEM_1024_SK_SIZE: Final[int] = 3168
ML_KEM_1024_CT_SIZE: Final[int] = 1568

SHARED_SECRET_SIZE: Final[int] = 32  # 256 bits

DEFAULT_KEM_LEVEL: Final[int] = 768

_PARAMETER_SETS: Final[dict] = {
    512: (ML_KEM_512, ML_KEM_512_PK_SIZE, ML_KEM_512_SK_SIZE, ML_KEM_512_CT_SIZE),
    768: (ML_KEM_768, ML_KEM_768_PK_SIZE, ML_KEM_768_SK_SIZE, ML_KEM_768_CT_SIZE),
    1024: (ML_KEM_1024, ML_KEM_1024_PK_SIZE, ML_KEM_1024_SK_SIZE, ML_KEM_1024_CT_SIZE),
}


@dataclass(frozen=True, slots=True)
class KemKeyPair:
    """
    Immutable KEM keypair.

    Attributes:
        public_key: Used for encapsulation (freely distributable)
        secret_key: Used for decapsulation (owned by the decrypting side only)
    """

    public_key: bytes
    secret_key: bytes

    def __repr__(self) -> str:
        """Safe representation without exposing key material."""
        return f"KemKeyPair(pk_len={len(self.public_key)}, sk_len={len(self.secret_key)})"


@dataclass(frozen=True, slots=True)
class EncapsulationResult:
    """
    Result of key encapsulation.

    Attributes:
        ciphertext: Encapsulated key ciphertext (goes into the envelope)
        shared_secret: 32-byte shared secret (never leaves the encryptor)
    """

    ciphertext: bytes
    shared_secret: bytes

    def __repr__(self) -> str:
        """Safe representation without exposing secret material."""
        return f"EncapsulationResult(ct_len={len(self.ciphertext)})"


class KemBackend(ABC):
    """Abstract base for KEM implementations."""

    name: str = "abstract"
    public_key_size: int
    secret_key_size: int
    ciphertext_size: int

    @abstractmethod
    def keygen(self) -> Tuple[bytes, bytes]:
        """Generate keypair. Returns (public_key, secret_key)."""
        ...

    @abstractmethod
    def encapsulate(self, public_key: bytes) -> Tuple[bytes, bytes]:
        """Encapsulate. Returns (ciphertext, shared_secret)."""
        ...

    @abstractmethod
    def decapsulate(self, ciphertext: bytes, secret_key: bytes) -> bytes:
        """Decapsulate. Returns shared_secret."""
        ...


class MlKemBackend(KemBackend):
    """
    ML-KEM backend built on kyber-py.

    kyber-py is a pure-Python implementation of FIPS 203. It is slower than
    liboqs but has no native dependency, which suits a registry that is
    encrypted a handful of times per deployment.
    """

    def __init__(self, security_level: int = DEFAULT_KEM_LEVEL) -> None:
        if security_level not in _PARAMETER_SETS:
            raise ValueError("Security level must be 512, 768, or 1024")
        (
            self._ml_kem,
            self.public_key_size,
            self.secret_key_size,
            self.ciphertext_size,
        ) = _PARAMETER_SETS[security_level]
        self.security_level = security_level
        self.name = f"ML-KEM-{security_level}"

    def keygen(self) -> Tuple[bytes, bytes]:
        """Generate an (encapsulation key, decapsulation key) pair."""
        ek, dk = self._ml_kem.keygen()
        return bytes(ek), bytes(dk)

    def encapsulate(self, public_key: bytes) -> Tuple[bytes, bytes]:
        """Encapsulate against public_key; kyber-py returns (key, ciphertext)."""
        shared_secret, ciphertext = self._ml_kem.encaps(public_key)
        return bytes(ciphertext), bytes(shared_secret)

    def decapsulate(self, ciphertext: bytes, secret_key: bytes) -> bytes:
        """Recover the shared secret; kyber-py takes (dk, ciphertext)."""
        return bytes(self._ml_kem.decaps(secret_key, ciphertext))


class KemPrimitive:
    """
    Post-quantum key encapsulation wrapper.

    Usage:
        kem = KemPrimitive()
        keypair = kem.generate()

        result = kem.encapsulate(keypair.public_key)
        shared = kem.decapsulate(result.ciphertext, keypair.secret_key)
        assert shared == result.shared_secret

    Security Notes:
        - Stateless after construction; safe to share between threads
        - Public keys are validated before encapsulation
    """

    __slots__ = ("_backend",)

    def __init__(self, backend: KemBackend | None = None, security_level: int = DEFAULT_KEM_LEVEL) -> None:
        """
        Initialize the KEM wrapper.

        Args:
            backend: Explicit backend; defaults to MlKemBackend(security_level)
            security_level: ML-KEM parameter set (512, 768 or 1024)
        """
        self._backend = backend or MlKemBackend(security_level)

    @property
    def backend(self) -> KemBackend:
        """The active KEM backend."""
        return self._backend

    @property
    def algorithm(self) -> str:
        """Name of the active KEM algorithm."""
        return self._backend.name

    def generate(self) -> KemKeyPair:
        """
        Generate a new KEM keypair.

        Returns:
            KemKeyPair with public and secret keys

        Raises:
            KeyMaterialError: If the backend produced keys of unexpected size
        """
        public_key, secret_key = self._backend.keygen()
        if (
            len(public_key) != self._backend.public_key_size
            or len(secret_key) != self._backend.secret_key_size
        ):
            raise KeyMaterialError(f"{self.algorithm} key generation produced malformed keys")

        logger.debug("Generated %s keypair (pk_len=%d)", self.algorithm, len(public_key))
        return KemKeyPair(public_key=public_key, secret_key=secret_key)

    def validate_public_key(self, public_key: bytes) -> None:
        """
        Check the public key length for the active parameter set.

        Raises:
            KeyMaterialError: If the key is not bytes or has the wrong size
        """
        if not isinstance(public_key, (bytes, bytearray)):
            raise KeyMaterialError("KEM public key must be bytes")
        if len(public_key) != self._backend.public_key_size:
            raise KeyMaterialError(
                f"{self.algorithm} public key must be {self._backend.public_key_size} bytes, "
                f"got {len(public_key)}"
            )

    def validate_secret_key(self, secret_key: bytes) -> None:
        """
        Check the secret key length for the active parameter set.

        Raises:
            KeyMaterialError: If the key is not bytes or has the wrong size
        """
        if not isinstance(secret_key, (bytes, bytearray)):
            raise KeyMaterialError("KEM secret key must be bytes")
        if len(secret_key) != self._backend.secret_key_size:
            raise KeyMaterialError(
                f"{self.algorithm} secret key must be {self._backend.secret_key_size} bytes"
            )

    def encapsulate(self, public_key: bytes) -> EncapsulationResult:
        """
        Produce a KEM ciphertext and a fresh 32-byte shared secret.

        Args:
            public_key: Recipient KEM public key

        Returns:
            EncapsulationResult(ciphertext, shared_secret)

        Raises:
            KeyMaterialError: If the public key is malformed
        """
        self.validate_public_key(public_key)
        try:
            ciphertext, shared_secret = self._backend.encapsulate(bytes(public_key))
        except ValueError as e:
            # kyber-py rejects encapsulation keys whose coefficients are not reduced
            raise KeyMaterialError(f"{self.algorithm} public key is malformed") from e

        if len(shared_secret) != SHARED_SECRET_SIZE:
            raise KeyMaterialError(f"{self.algorithm} produced a shared secret of unexpected size")

        return EncapsulationResult(ciphertext=ciphertext, shared_secret=shared_secret)

    def decapsulate(self, ciphertext: bytes, secret_key: bytes) -> bytes:
        """
        Recover the shared secret from a KEM ciphertext.

        Args:
            ciphertext: KEM ciphertext from the envelope
            secret_key: KEM secret key

        Returns:
            32-byte shared secret. With a wrong secret key this is an
            unrelated pseudorandom value, not an error.

        Raises:
            KeyMaterialError: If the secret key is malformed
            ValueError: If the ciphertext has the wrong size
        """
        self.validate_secret_key(secret_key)
        if len(ciphertext) != self._backend.ciphertext_size:
            raise ValueError(f"Invalid {self.algorithm} ciphertext size: {len(ciphertext)}")

        try:
            return self._backend.decapsulate(ciphertext, bytes(secret_key))
        except ValueError as e:
            # kyber-py checks the embedded hash of the encapsulation key
            raise KeyMaterialError(f"{self.algorithm} secret key failed its integrity check") from e
