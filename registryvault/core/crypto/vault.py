"""
Private Key Vault
=================

Protects the two private keys at rest under a separately held master key.

Record Format (JSON, stored in the key blob store):
    {"nonce": "<hex>", "authTag": "<hex>", "payload": "<hex>"}

Sealed Payload (JSON, never stored in clear):
    {"kyberPrivate": "<hex KEM secret key>",
     "rsaPrivateB64": "<base64 of the RSA private key PEM>"}

Security Properties:
    - AES-256-GCM directly under the 32-byte master key
    - Fresh random nonce per wrap
    - Tamper, wrong master key and malformed contents all raise the same
      VaultUnlockError

WARNING:
    - The master key travels on its own channel; never store it next to
      the vault record
"""

from __future__ import annotations

import base64
import json
import logging
import secrets
from dataclasses import dataclass
from typing import Any, Dict, Final, NamedTuple, Optional

from registryvault.core.crypto.aes_gcm import (
    ACCEPTED_NONCE_SIZES,
    AES_KEY_SIZE,
    AES_TAG_SIZE,
    AesGcmCipher,
)
from registryvault.core.exceptions import (
    AuthenticationFailure,
    KeyMaterialError,
    VaultUnlockError,
)
from registryvault.core.memory.zeroization import ZeroizeContext, secure_zero

logger = logging.getLogger("registryvault.crypto.vault")

MASTER_KEY_SIZE: Final[int] = AES_KEY_SIZE

_KEM_FIELD: Final[str] = "kyberPrivate"
_RSA_FIELD: Final[str] = "rsaPrivateB64"


@dataclass(frozen=True, slots=True)
class MasterKey:
    """
    32-byte symmetric secret that unlocks the vault record.

    Distributed out-of-band (QUANTUM_MASTER_KEY as 64 hex characters).
    """

    key: bytes

    def __post_init__(self) -> None:
        if not isinstance(self.key, (bytes, bytearray)) or len(self.key) != MASTER_KEY_SIZE:
            raise KeyMaterialError(f"Master key must be exactly {MASTER_KEY_SIZE} bytes")

    @classmethod
    def generate(cls) -> "MasterKey":
        """Generate a fresh random master key."""
        return cls(secrets.token_bytes(MASTER_KEY_SIZE))

    @classmethod
    def from_hex(cls, value: str) -> "MasterKey":
        """
        Parse a hex-encoded master key.

        Raises:
            KeyMaterialError: If the value is not 64 hex characters
        """
        try:
            key = bytes.fromhex(value.strip())
        except (ValueError, AttributeError) as e:
            raise KeyMaterialError("Master key must be hex-encoded") from e
        return cls(key)

    def to_hex(self) -> str:
        """Hex form for the out-of-band distribution channel."""
        return bytes(self.key).hex()

    def __repr__(self) -> str:
        """Safe representation without exposing key material."""
        return "MasterKey(<redacted>)"


class PrivateKeys(NamedTuple):
    """
    The two private keys held by the decrypting side.

    Both fields are bytearrays so the holder can wipe them once the keys
    are no longer needed:

        with vault.unwrap(master_key, record) as keys:
            plaintext = decryptor.decrypt(blob, *keys)
        # both keys are zeroed here
    """

    kem_secret_key: bytearray
    asymmetric_private_key: bytearray

    def wipe(self) -> None:
        """Zero both keys in place."""
        secure_zero(self.kem_secret_key)
        secure_zero(self.asymmetric_private_key)

    def __enter__(self) -> "PrivateKeys":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.wipe()

    def __repr__(self) -> str:
        """Safe representation without exposing key material."""
        return "PrivateKeys(<redacted>)"


@dataclass(frozen=True, slots=True)
class VaultRecord:
    """
    Immutable at-rest form of the private keys.
    """

    nonce: bytes
    auth_tag: bytes
    payload: bytes

    def to_dict(self) -> Dict[str, str]:
        """Hex-encoded field mapping."""
        return {
            "nonce": self.nonce.hex(),
            "authTag": self.auth_tag.hex(),
            "payload": self.payload.hex(),
        }

    def to_json(self) -> str:
        """Serialize to the JSON record format."""
        return json.dumps(self.to_dict())

    def to_bytes(self) -> bytes:
        """Serialize to UTF-8 JSON bytes for a blob store."""
        return self.to_json().encode("utf-8")

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VaultRecord":
        """
        Build a record from its hex-encoded field mapping.

        Records written by the first deployment used "iv" and "data" for
        the nonce and payload fields; both spellings are accepted.

        Raises:
            VaultUnlockError: If a field is missing or not hex
        """
        try:
            return cls(
                nonce=bytes.fromhex(data["nonce"] if "nonce" in data else data["iv"]),
                auth_tag=bytes.fromhex(data["authTag"]),
                payload=bytes.fromhex(data["payload"] if "payload" in data else data["data"]),
            )
        except (KeyError, TypeError, ValueError):
            raise VaultUnlockError() from None

    @classmethod
    def from_json(cls, data: str | bytes) -> "VaultRecord":
        """
        Deserialize from the JSON record format.

        Raises:
            VaultUnlockError: If the record is not valid JSON or is malformed
        """
        try:
            parsed = json.loads(data)
        except (ValueError, TypeError):
            raise VaultUnlockError() from None
        if not isinstance(parsed, dict):
            raise VaultUnlockError()
        return cls.from_dict(parsed)

    def __repr__(self) -> str:
        """Safe representation."""
        return f"VaultRecord(payload_len={len(self.payload)})"


def _as_master_key(master_key: MasterKey | bytes) -> MasterKey:
    if isinstance(master_key, MasterKey):
        return master_key
    return MasterKey(master_key)


class PrivateKeyVault:
    """
    Seals and opens the KEM secret key and RSA private key together.

    Usage:
        vault = PrivateKeyVault()
        record = vault.wrap(master_key, kem_secret_key, rsa_private_pem)
        kem_sk, rsa_sk = vault.unwrap(master_key, record)

    Security Notes:
        - Stateless; safe to call concurrently
        - No KEM or RSA step: the master key is already a pre-shared secret
    """

    __slots__ = ("_cipher",)

    def __init__(self, cipher: Optional[AesGcmCipher] = None) -> None:
        self._cipher = cipher or AesGcmCipher()

    def wrap(
        self,
        master_key: MasterKey | bytes,
        kem_secret_key: bytes,
        asymmetric_private_key: bytes,
    ) -> VaultRecord:
        """
        Seal both private keys under the master key.

        Args:
            master_key: 32-byte master key
            kem_secret_key: KEM secret key
            asymmetric_private_key: RSA private key (PEM or DER)

        Returns:
            VaultRecord

        Raises:
            KeyMaterialError: If the master key or a private key is malformed
        """
        master = _as_master_key(master_key)
        if not kem_secret_key or not asymmetric_private_key:
            raise KeyMaterialError("Both private keys are required")

        document = bytearray(json.dumps({
            _KEM_FIELD: bytes(kem_secret_key).hex(),
            _RSA_FIELD: base64.b64encode(bytes(asymmetric_private_key)).decode("ascii"),
        }).encode("utf-8"))

        with ZeroizeContext(document):
            nonce = self._cipher.generate_nonce()
            sealed = self._cipher.seal(master.key, nonce, bytes(document))

        logger.debug("Sealed private keys into vault record (%d bytes)", len(sealed.ciphertext))
        return VaultRecord(nonce=nonce, auth_tag=sealed.tag, payload=sealed.ciphertext)

    def unwrap(self, master_key: MasterKey | bytes, record: VaultRecord) -> PrivateKeys:
        """
        Open a vault record.

        Args:
            master_key: 32-byte master key
            record: VaultRecord from wrap()

        Returns:
            PrivateKeys(kem_secret_key, asymmetric_private_key), as wipeable
            bytearrays

        Raises:
            KeyMaterialError: If the master key is not 32 bytes
            VaultUnlockError: On tamper, wrong master key or malformed contents
        """
        master = _as_master_key(master_key)
        if len(record.nonce) not in ACCEPTED_NONCE_SIZES or len(record.auth_tag) != AES_TAG_SIZE:
            raise VaultUnlockError()

        try:
            document = bytearray(
                self._cipher.open(master.key, record.nonce, record.payload, record.auth_tag)
            )
        except AuthenticationFailure:
            logger.warning("Vault record failed authentication")
            raise VaultUnlockError() from None

        with ZeroizeContext(document):
            try:
                parsed = json.loads(document.decode("utf-8"))
                kem_secret_key = bytearray.fromhex(parsed[_KEM_FIELD])
                asymmetric_private_key = bytearray(
                    base64.b64decode(parsed[_RSA_FIELD], validate=True)
                )
            except (ValueError, KeyError, TypeError):
                raise VaultUnlockError() from None

        if not kem_secret_key or not asymmetric_private_key:
            raise VaultUnlockError()

        return PrivateKeys(kem_secret_key, asymmetric_private_key)
