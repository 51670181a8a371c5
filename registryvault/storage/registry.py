"""
Registry Store
==============

Persists the lodge registry (a JSON object) as a single hybrid-encrypted
blob in the "gadu-registry" store under key "lodges".

    registry = RegistryStore.from_config(config, EnvConfigSource())
    lodges = registry.load_registry()      # {} before the first save
    lodges["0001"] = {...}
    registry.save_registry(lodges)

Saving needs only the public keys. Loading needs the private keys, which
are opened from the key store for each load and wiped right after the
blob is decrypted.
"""

from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Union

from registryvault.core.config import RegistryVaultConfig
from registryvault.core.crypto.hybrid_engine import HybridCryptoEngine
from registryvault.core.crypto.key_manager import PublicKeys
from registryvault.core.crypto.kem import KemPrimitive
from registryvault.core.crypto.rsa_oaep import RsaOaepWrapper
from registryvault.core.crypto.vault import PrivateKeys
from registryvault.core.exceptions import (
    DecryptionFailed,
    KeyMaterialError,
    RegistryFormatError,
    UnsupportedVersionError,
)
from registryvault.security.audit import AuditEventType, AuditSeverity, TamperAwareAuditLog
from registryvault.security.constants import ENCRYPTION_SCHEME, REGISTRY_KEY
from registryvault.storage.blob_store import BlobStore, FileBlobStore
from registryvault.storage.config_source import ConfigSource
from registryvault.storage.keyring import load_private_keys, load_public_keys

logger = logging.getLogger("registryvault.storage.registry")

PrivateKeySource = Union[PrivateKeys, Callable[[], PrivateKeys]]


class RegistryStore:
    """
    Encrypted load/save of the registry blob.

    Security Notes:
        - The registry is never written in clear
        - A missing blob is an empty registry; any blob that exists but
          does not decrypt raises DecryptionFailed
    """

    def __init__(
        self,
        store: BlobStore,
        public_keys: Optional[PublicKeys] = None,
        private_keys: Optional[PrivateKeySource] = None,
        engine: Optional[HybridCryptoEngine] = None,
        audit: Optional[TamperAwareAuditLog] = None,
        key: str = REGISTRY_KEY,
    ) -> None:
        self._store = store
        self._public_keys = public_keys
        self._private_keys = private_keys
        self._engine = engine or HybridCryptoEngine()
        self._audit = audit
        self._key = key

    @classmethod
    def from_config(
        cls,
        config: RegistryVaultConfig,
        source: ConfigSource,
        root: Optional[Path] = None,
    ) -> "RegistryStore":
        """
        Build a RegistryStore over file-backed stores under the data directory.

        Public keys are loaded immediately; private keys are opened from the
        key store each time load_registry() runs.

        Raises:
            KeyMaterialError: If the public keys are missing or malformed
        """
        storage = config.storage
        root = root or storage.data_dir

        kem = KemPrimitive(security_level=config.crypto.kem_level)
        engine = HybridCryptoEngine(
            kem_level=config.crypto.kem_level,
            kem=kem,
            wrapper=RsaOaepWrapper(key_size=config.crypto.rsa_key_size),
        )
        audit = TamperAwareAuditLog(FileBlobStore(root, storage.audit_store))
        key_store = FileBlobStore(root, storage.keys_store)

        def open_private_keys() -> PrivateKeys:
            return load_private_keys(
                source, key_store, names=config.distribution, storage=storage, audit=audit,
            )

        return cls(
            FileBlobStore(root, storage.registry_store),
            public_keys=load_public_keys(source, names=config.distribution, kem=kem),
            private_keys=open_private_keys,
            engine=engine,
            audit=audit,
            key=storage.registry_key,
        )

    def _open_private_keys(self) -> Tuple[PrivateKeys, bool]:
        """Return the private keys and whether this call owns (and must wipe) them."""
        if self._private_keys is None:
            raise KeyMaterialError("Private keys are required to load the registry")
        if callable(self._private_keys):
            return self._private_keys(), True
        return self._private_keys, False

    def _audit_event(
        self,
        event_type: AuditEventType,
        severity: AuditSeverity,
        description: str,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        if self._audit is not None:
            self._audit.log(event_type, severity, description, details=details)

    def load_registry(self) -> Dict[str, Any]:
        """
        Load and decrypt the registry.

        Returns:
            The registry object; {} when nothing has been saved yet

        Raises:
            UnsupportedVersionError: If the blob has an unknown envelope version
            DecryptionFailed: If the blob does not decrypt with the private keys
            RegistryFormatError: If the decrypted blob is not a JSON object
            KeyMaterialError, VaultUnlockError: If the private keys are unavailable
        """
        raw = self._store.get(self._key)
        if raw is None:
            logger.info("Registry %s/%s not initialized yet", self._store.name, self._key)
            return {}

        keys, owned = self._open_private_keys()

        try:
            plaintext = self._engine.decrypt(raw, keys.kem_secret_key, keys.asymmetric_private_key)
        except UnsupportedVersionError as e:
            logger.error("Registry blob has unsupported envelope version")
            self._audit_event(
                AuditEventType.UNSUPPORTED_ENVELOPE_VERSION,
                AuditSeverity.CRITICAL,
                "Registry blob has an unsupported envelope version",
                details={"version": e.version[:16]},
            )
            raise
        except DecryptionFailed:
            logger.error("Registry blob failed to decrypt")
            self._audit_event(
                AuditEventType.REGISTRY_DECRYPTION_FAILED,
                AuditSeverity.CRITICAL,
                "Registry blob failed to decrypt",
                details={"size": len(raw)},
            )
            raise
        finally:
            if owned:
                keys.wipe()

        try:
            registry = json.loads(plaintext.decode("utf-8"))
        except (UnicodeDecodeError, ValueError):
            raise RegistryFormatError("Decrypted registry is not valid JSON") from None
        if not isinstance(registry, dict):
            raise RegistryFormatError("Decrypted registry is not a JSON object")

        self._audit_event(
            AuditEventType.REGISTRY_LOADED,
            AuditSeverity.INFO,
            "Registry loaded",
            details={"lodgeCount": len(registry)},
        )
        return registry

    def save_registry(self, registry: Mapping[str, Any]) -> None:
        """
        Encrypt and store the registry, replacing the previous blob.

        Raises:
            KeyMaterialError: If no public keys are configured
            TypeError: If the registry is not JSON-serializable
        """
        if self._public_keys is None:
            raise KeyMaterialError("Public keys are required to save the registry")

        document = json.dumps(dict(registry), separators=(",", ":"), ensure_ascii=False)
        envelope = self._engine.encrypt(
            document.encode("utf-8"),
            self._public_keys.kem_public_key,
            self._public_keys.asymmetric_public_key,
        )

        metadata = {
            "lastUpdate": datetime.now(timezone.utc).isoformat(),
            "encrypted": ENCRYPTION_SCHEME,
            "format": envelope.version,
            "lodgeCount": len(registry),
        }
        self._store.put(self._key, envelope.to_bytes(), metadata=metadata)

        logger.info("Saved registry with %d lodges", len(registry))
        self._audit_event(
            AuditEventType.REGISTRY_SAVED,
            AuditSeverity.INFO,
            "Registry saved",
            details={"lodgeCount": len(registry), "format": envelope.version},
        )

    def metadata(self) -> Optional[Dict[str, Any]]:
        """Metadata written with the last save, or None."""
        return self._store.get_metadata(self._key)
