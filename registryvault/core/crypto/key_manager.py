"""
Key Manager
===========

One-shot generation of all key material for a key epoch.

State Machine:
    UNINITIALIZED --generate()--> INITIALIZED

generate() creates an ML-KEM keypair, an RSA keypair and (unless one is
supplied) a master key, seals both private keys into a VaultRecord and
returns everything that has to be distributed. The manager keeps only the
public half and the sealed record afterwards.

WARNING:
    - generate() is not idempotent. New key material silently orphans every
      envelope produced under the previous epoch; nothing re-encrypts them.
    - Run it once per epoch, out of the request path. A second call on the
      same manager raises KeyManagerStateError; start a new epoch with a new
      KeyManager.
"""

from __future__ import annotations

import base64
import hashlib
import logging
import threading
from dataclasses import dataclass
from datetime import datetime, timezone
from enum import Enum
from typing import Dict, Optional

from registryvault.core.crypto.kem import KemKeyPair, KemPrimitive
from registryvault.core.crypto.rsa_oaep import AsymmetricKeyPair, RsaOaepWrapper
from registryvault.core.crypto.vault import (
    MasterKey,
    PrivateKeys,
    PrivateKeyVault,
    VaultRecord,
)
from registryvault.core.exceptions import KeyManagerStateError, KeyMaterialError
from registryvault.security.constants import KEM_PUBLIC_KEY_NAME, RSA_PUBLIC_KEY_NAME

logger = logging.getLogger("registryvault.crypto.keys")


class KeyManagerState(Enum):
    """Lifecycle of a KeyManager."""
    UNINITIALIZED = "UNINITIALIZED"
    INITIALIZED = "INITIALIZED"


@dataclass(frozen=True, slots=True)
class PublicKeys:
    """
    The freely distributable half of the key material.

    Attributes:
        kem_public_key: ML-KEM public key (raw bytes)
        asymmetric_public_key: RSA public key (PEM)
    """

    kem_public_key: bytes
    asymmetric_public_key: bytes

    def fingerprint(self) -> str:
        """Short SHA-256 identifier of the key epoch, safe to log."""
        digest = hashlib.sha256(self.kem_public_key + b"|" + self.asymmetric_public_key)
        return digest.hexdigest()[:16]

    def distribution(
        self,
        kem_name: str = KEM_PUBLIC_KEY_NAME,
        rsa_name: str = RSA_PUBLIC_KEY_NAME,
    ) -> Dict[str, str]:
        """
        Configuration values every encrypting process needs.

        The KEM key is hex, the RSA PEM is base64-encoded so it fits on one
        line of an environment variable.
        """
        return {
            kem_name: self.kem_public_key.hex(),
            rsa_name: base64.b64encode(self.asymmetric_public_key).decode("ascii"),
        }


@dataclass(frozen=True, slots=True)
class KeyMaterial:
    """
    Result of KeyManager.generate().

    Attributes:
        public_keys: Public keys for distribution
        vault_record: Sealed private keys, for the key blob store
        master_key: Master key that opens vault_record; distribute it on a
            channel separate from the vault record
        master_key_generated: False when the caller supplied the master key
        generated_at: Start of the key epoch (UTC)
        kem_algorithm: KEM parameter set in use
        rsa_key_size: RSA modulus size in bits
    """

    public_keys: PublicKeys
    vault_record: VaultRecord
    master_key: MasterKey
    master_key_generated: bool
    generated_at: datetime
    kem_algorithm: str
    rsa_key_size: int

    def distribution(self) -> Dict[str, str]:
        """Public configuration values (see PublicKeys.distribution)."""
        return self.public_keys.distribution()

    def master_key_hex(self) -> str:
        """Hex form of the master key for its out-of-band channel."""
        return self.master_key.to_hex()

    def __repr__(self) -> str:
        """Safe representation."""
        return (
            f"KeyMaterial(epoch={self.public_keys.fingerprint()}, "
            f"kem={self.kem_algorithm}, rsa={self.rsa_key_size})"
        )


class KeyManager:
    """
    Coordinates one-time generation of a key epoch.

    Usage:
        manager = KeyManager()
        material = manager.generate()

        publish(material.distribution())          # every encrypting process
        key_store.put("private-keys", material.vault_record.to_bytes())
        send_out_of_band(material.master_key_hex())

        # Later, on the decrypting side
        kem_sk, rsa_sk = manager.unlock(master_key)

    Thread Safety:
        generate() is serialized by a lock and runs at most once; every
        other method is read-only.
    """

    __slots__ = (
        "_kem", "_wrapper", "_vault", "_lock", "_state",
        "_public_keys", "_vault_record", "_generated_at",
    )

    def __init__(
        self,
        kem: Optional[KemPrimitive] = None,
        wrapper: Optional[RsaOaepWrapper] = None,
        vault: Optional[PrivateKeyVault] = None,
    ) -> None:
        self._kem = kem or KemPrimitive()
        self._wrapper = wrapper or RsaOaepWrapper()
        self._vault = vault or PrivateKeyVault()
        self._lock = threading.Lock()
        self._state = KeyManagerState.UNINITIALIZED
        self._public_keys: Optional[PublicKeys] = None
        self._vault_record: Optional[VaultRecord] = None
        self._generated_at: Optional[datetime] = None

    @property
    def state(self) -> KeyManagerState:
        """Current lifecycle state."""
        return self._state

    @property
    def is_initialized(self) -> bool:
        return self._state is KeyManagerState.INITIALIZED

    @property
    def public_keys(self) -> PublicKeys:
        """Public keys of this epoch."""
        self._require_initialized()
        return self._public_keys

    @property
    def vault_record(self) -> VaultRecord:
        """Sealed private keys of this epoch."""
        self._require_initialized()
        return self._vault_record

    @property
    def generated_at(self) -> datetime:
        """When this epoch's keys were generated."""
        self._require_initialized()
        return self._generated_at

    def generate(self, master_key: Optional[MasterKey | bytes] = None) -> KeyMaterial:
        """
        Generate all key material for a new epoch.

        Args:
            master_key: Existing master key to seal the private keys under;
                a fresh one is generated when omitted

        Returns:
            KeyMaterial

        Raises:
            KeyManagerStateError: If this manager already generated keys
            KeyMaterialError: If any part of generation fails; nothing is
                kept and the manager stays UNINITIALIZED
        """
        with self._lock:
            if self._state is KeyManagerState.INITIALIZED:
                raise KeyManagerStateError(
                    "Key material already generated for this epoch; "
                    "use a new KeyManager to start another"
                )

            try:
                master = self._resolve_master_key(master_key)
                kem_pair = self._kem.generate()
                rsa_pair = self._wrapper.generate()
                record = self._vault.wrap(master, kem_pair.secret_key, rsa_pair.private_key)
            except KeyMaterialError:
                logger.error("Key generation aborted; no key material kept")
                raise
            except Exception as e:
                logger.error("Key generation aborted (%s); no key material kept", type(e).__name__)
                raise KeyMaterialError("Key generation failed") from e

            public_keys = self._public_half(kem_pair, rsa_pair)
            generated_at = datetime.now(timezone.utc)

            self._public_keys = public_keys
            self._vault_record = record
            self._generated_at = generated_at
            self._state = KeyManagerState.INITIALIZED

        logger.info(
            "Generated key epoch %s (%s + RSA-%d)",
            public_keys.fingerprint(), self._kem.algorithm, self._wrapper.key_size,
        )

        return KeyMaterial(
            public_keys=public_keys,
            vault_record=record,
            master_key=master,
            master_key_generated=master_key is None,
            generated_at=generated_at,
            kem_algorithm=self._kem.algorithm,
            rsa_key_size=self._wrapper.key_size,
        )

    def unlock(self, master_key: MasterKey | bytes) -> PrivateKeys:
        """
        Open this epoch's vault record.

        Raises:
            KeyManagerStateError: If generate() has not run
            VaultUnlockError: If the master key is wrong
        """
        self._require_initialized()
        return self._vault.unwrap(master_key, self._vault_record)

    def _require_initialized(self) -> None:
        if self._state is not KeyManagerState.INITIALIZED:
            raise KeyManagerStateError("Key material has not been generated yet")

    @staticmethod
    def _resolve_master_key(master_key: Optional[MasterKey | bytes]) -> MasterKey:
        if master_key is None:
            return MasterKey.generate()
        if isinstance(master_key, MasterKey):
            return master_key
        return MasterKey(master_key)

    @staticmethod
    def _public_half(kem_pair: KemKeyPair, rsa_pair: AsymmetricKeyPair) -> PublicKeys:
        return PublicKeys(
            kem_public_key=kem_pair.public_key,
            asymmetric_public_key=rsa_pair.public_key,
        )
