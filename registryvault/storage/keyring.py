"""
Keyring
=======

Loads distributed key material into the types the crypto core expects.

Public keys and the master key are published as configuration values:
    KYBER_PUBLIC_KEY    hex ML-KEM public key
    RSA_PUBLIC_KEY_B64  base64 of the RSA public key PEM
    QUANTUM_MASTER_KEY  64 hex characters

The sealed private keys live in the key blob store ("quantum-keys",
key "private-keys") as a VaultRecord and are opened with the master key.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

from registryvault.core.config import KeyDistributionConfig, StorageConfig
from registryvault.core.crypto.kem import KemPrimitive
from registryvault.core.crypto.key_manager import KeyMaterial, PublicKeys
from registryvault.core.crypto.rsa_oaep import load_public_key
from registryvault.core.crypto.vault import MasterKey, PrivateKeys, PrivateKeyVault, VaultRecord
from registryvault.core.exceptions import KeyMaterialError, VaultUnlockError
from registryvault.security.audit import AuditEventType, AuditSeverity, TamperAwareAuditLog
from registryvault.storage.blob_store import BlobStore
from registryvault.storage.config_source import ConfigSource

logger = logging.getLogger("registryvault.storage.keyring")


def _require(config: ConfigSource, name: str) -> str:
    value = config.get(name)
    if not value or not value.strip():
        raise KeyMaterialError(f"{name} is not configured")
    return value.strip()


def load_public_keys(
    config: ConfigSource,
    names: Optional[KeyDistributionConfig] = None,
    kem: Optional[KemPrimitive] = None,
) -> PublicKeys:
    """
    Read and validate the published public keys.

    Args:
        config: Where the key values are published
        names: Configuration names (defaults to KYBER_PUBLIC_KEY / RSA_PUBLIC_KEY_B64)
        kem: KEM used to check the public key size (ML-KEM-768 by default)

    Raises:
        KeyMaterialError: If a value is missing, badly encoded or not a valid key
    """
    names = names or KeyDistributionConfig()
    kem = kem or KemPrimitive()

    kem_hex = _require(config, names.kem_public_key_name)
    rsa_b64 = _require(config, names.rsa_public_key_name)

    try:
        kem_public_key = bytes.fromhex(kem_hex)
    except ValueError:
        raise KeyMaterialError(f"{names.kem_public_key_name} must be hex-encoded") from None
    try:
        rsa_public_pem = base64.b64decode(rsa_b64, validate=True)
    except (binascii.Error, ValueError):
        raise KeyMaterialError(f"{names.rsa_public_key_name} must be base64-encoded") from None

    kem.validate_public_key(kem_public_key)
    load_public_key(rsa_public_pem)

    return PublicKeys(kem_public_key=kem_public_key, asymmetric_public_key=rsa_public_pem)


def load_master_key(config: ConfigSource, names: Optional[KeyDistributionConfig] = None) -> MasterKey:
    """
    Read the master key.

    Raises:
        KeyMaterialError: If it is missing or not 64 hex characters
    """
    names = names or KeyDistributionConfig()
    return MasterKey.from_hex(_require(config, names.master_key_name))


def load_private_keys(
    config: ConfigSource,
    key_store: BlobStore,
    names: Optional[KeyDistributionConfig] = None,
    storage: Optional[StorageConfig] = None,
    vault: Optional[PrivateKeyVault] = None,
    audit: Optional[TamperAwareAuditLog] = None,
) -> PrivateKeys:
    """
    Open the sealed private keys from the key store.

    Raises:
        KeyMaterialError: If the master key is not configured or malformed
        VaultUnlockError: If there is no vault record, or it does not open
            under the master key
    """
    storage = storage or StorageConfig()
    vault = vault or PrivateKeyVault()

    master_key = load_master_key(config, names)

    raw = key_store.get(storage.private_keys_key)
    if raw is None:
        logger.error("No vault record in %s/%s", key_store.name, storage.private_keys_key)
        raise VaultUnlockError("Private keys have not been provisioned")

    try:
        keys = vault.unwrap(master_key, VaultRecord.from_json(raw))
    except VaultUnlockError:
        if audit is not None:
            audit.log(
                AuditEventType.VAULT_UNLOCK_FAILED,
                AuditSeverity.CRITICAL,
                "Vault record did not open under the configured master key",
            )
        raise

    if audit is not None:
        audit.log(AuditEventType.KEYS_LOADED, AuditSeverity.INFO, "Private keys loaded")
    return keys


def provision(
    material: KeyMaterial,
    key_store: BlobStore,
    storage: Optional[StorageConfig] = None,
    audit: Optional[TamperAwareAuditLog] = None,
) -> None:
    """
    Persist a freshly generated vault record to the key store.

    Overwrites any previous record: envelopes sealed under the previous
    epoch will no longer decrypt.
    """
    storage = storage or StorageConfig()
    epoch = material.public_keys.fingerprint()

    if key_store.get(storage.private_keys_key) is not None:
        logger.warning("Replacing existing vault record; previous key epoch is orphaned")

    key_store.put(
        storage.private_keys_key,
        material.vault_record.to_bytes(),
        metadata={
            "generatedAt": material.generated_at.isoformat(),
            "kemAlgorithm": material.kem_algorithm,
            "rsaKeySize": material.rsa_key_size,
            "epoch": epoch,
        },
    )
    logger.info("Provisioned key epoch %s into %s", epoch, key_store.name)

    if audit is not None:
        audit.log(
            AuditEventType.KEYS_PROVISIONED,
            AuditSeverity.WARNING,
            "Vault record provisioned",
            details={"epoch": epoch, "kemAlgorithm": material.kem_algorithm},
        )
