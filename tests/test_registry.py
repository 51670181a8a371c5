"""
Tests for the encrypted registry store.
"""
import json

import pytest

from registryvault.core.config import RegistryVaultConfig, StorageConfig
from registryvault.core.crypto.vault import PrivateKeyVault, VaultRecord
from registryvault.core.exceptions import (
    DecryptionFailed,
    KeyMaterialError,
    RegistryFormatError,
    UnsupportedVersionError,
)
from registryvault.core.memory import is_zeroed
from registryvault.security.audit import AuditEventType, TamperAwareAuditLog
from registryvault.storage.blob_store import FileBlobStore, InMemoryBlobStore
from registryvault.storage.config_source import MappingConfigSource
from registryvault.storage.keyring import provision
from registryvault.storage.registry import RegistryStore


LODGES = {
    "0042": {"name": "Fratellanza", "city": "Torino", "members": []},
    "0105": {"name": "Aurora", "city": "Genova", "members": ["a", "b"]},
}


@pytest.fixture
def registry_blobs():
    return InMemoryBlobStore("gadu-registry")


@pytest.fixture
def audit():
    return TamperAwareAuditLog(InMemoryBlobStore("gadu-audit"))


@pytest.fixture
def private_keys(key_material):
    return PrivateKeyVault().unwrap(key_material.master_key, key_material.vault_record)


@pytest.fixture
def registry(registry_blobs, key_material, private_keys, engine, audit):
    return RegistryStore(
        registry_blobs,
        public_keys=key_material.public_keys,
        private_keys=private_keys,
        engine=engine,
        audit=audit,
    )


class TestLoadSave:
    """load_registry() / save_registry()."""

    def test_empty_before_first_save(self, registry):
        assert registry.load_registry() == {}

    def test_round_trip(self, registry):
        registry.save_registry(LODGES)
        assert registry.load_registry() == LODGES

    def test_blob_is_a_v2_envelope(self, registry, registry_blobs):
        registry.save_registry(LODGES)
        blob = registry_blobs.get("lodges")
        assert blob.startswith(b"v2:")
        assert b"Fratellanza" not in blob

    def test_metadata(self, registry):
        registry.save_registry(LODGES)
        metadata = registry.metadata()
        assert metadata["encrypted"] == "quantum-hybrid"
        assert metadata["format"] == "v2"
        assert metadata["lodgeCount"] == 2
        assert "lastUpdate" in metadata

    def test_save_replaces_previous(self, registry):
        registry.save_registry(LODGES)
        registry.save_registry({"0001": {"name": "Nuova"}})
        assert registry.load_registry() == {"0001": {"name": "Nuova"}}

    def test_save_needs_public_keys(self, registry_blobs, private_keys, engine):
        store = RegistryStore(registry_blobs, private_keys=private_keys, engine=engine)
        with pytest.raises(KeyMaterialError):
            store.save_registry(LODGES)

    def test_load_needs_private_keys(self, registry, registry_blobs, key_material, engine):
        registry.save_registry(LODGES)
        store = RegistryStore(registry_blobs, public_keys=key_material.public_keys, engine=engine)
        with pytest.raises(KeyMaterialError):
            store.load_registry()

    def test_private_keys_opened_per_load(self, registry_blobs, key_material, engine):
        calls = []

        def loader():
            calls.append(1)
            return PrivateKeyVault().unwrap(key_material.master_key, key_material.vault_record)

        store = RegistryStore(
            registry_blobs, public_keys=key_material.public_keys, private_keys=loader, engine=engine,
        )
        assert store.load_registry() == {}
        assert calls == []
        store.save_registry(LODGES)
        store.load_registry()
        store.load_registry()
        assert calls == [1, 1]

    def test_opened_private_keys_are_wiped(self, registry_blobs, key_material, engine):
        opened = []

        def loader():
            keys = PrivateKeyVault().unwrap(key_material.master_key, key_material.vault_record)
            opened.append(keys)
            return keys

        store = RegistryStore(
            registry_blobs, public_keys=key_material.public_keys, private_keys=loader, engine=engine,
        )
        store.save_registry(LODGES)
        assert store.load_registry() == LODGES

        registry_blobs.put("lodges", b"v2:00:00:00:00:00")
        with pytest.raises(DecryptionFailed):
            store.load_registry()

        assert len(opened) == 2
        for keys in opened:
            assert isinstance(keys.kem_secret_key, bytearray)
            assert is_zeroed(keys.kem_secret_key)
            assert is_zeroed(keys.asymmetric_private_key)

    def test_supplied_private_keys_left_intact(self, registry, private_keys):
        registry.save_registry(LODGES)
        registry.load_registry()
        assert not is_zeroed(private_keys.kem_secret_key)
        assert not is_zeroed(private_keys.asymmetric_private_key)


class TestFailures:
    """Corrupted or foreign blobs."""

    def test_tampered_blob(self, registry, registry_blobs):
        registry.save_registry(LODGES)
        blob = registry_blobs.get("lodges").decode("ascii")
        last = blob[-1]
        registry_blobs.put("lodges", (blob[:-1] + ("0" if last != "0" else "1")).encode("ascii"))
        with pytest.raises(DecryptionFailed):
            registry.load_registry()

    def test_unknown_version(self, registry, registry_blobs):
        registry.save_registry(LODGES)
        blob = registry_blobs.get("lodges")
        registry_blobs.put("lodges", b"v3" + blob[2:])
        with pytest.raises(UnsupportedVersionError):
            registry.load_registry()

    def test_legacy_plaintext_blob(self, registry, registry_blobs):
        registry_blobs.put("lodges", json.dumps(LODGES).encode("utf-8"))
        with pytest.raises(UnsupportedVersionError):
            registry.load_registry()

    def test_non_object_registry(self, registry, registry_blobs, key_material, engine):
        envelope = engine.encrypt(
            b"[1, 2, 3]",
            key_material.public_keys.kem_public_key,
            key_material.public_keys.asymmetric_public_key,
        )
        registry_blobs.put("lodges", envelope.to_bytes())
        with pytest.raises(RegistryFormatError):
            registry.load_registry()


class TestAudit:
    """Registry operations leave a verifiable audit trail."""

    def test_events_recorded(self, registry, registry_blobs, audit):
        registry.save_registry(LODGES)
        registry.load_registry()
        registry_blobs.put("lodges", b"v2:00:00:00:00:00")
        with pytest.raises(DecryptionFailed):
            registry.load_registry()

        types = [event["event_type"] for event in audit.get_events()]
        assert types == [
            AuditEventType.REGISTRY_SAVED.value,
            AuditEventType.REGISTRY_LOADED.value,
            AuditEventType.REGISTRY_DECRYPTION_FAILED.value,
        ]
        assert audit.verify_integrity() == (True, 3)

    def test_events_carry_no_registry_contents(self, registry, audit):
        registry.save_registry(LODGES)
        registry.load_registry()
        dumped = json.dumps(audit.get_events())
        assert "Fratellanza" not in dumped
        assert "Torino" not in dumped


class TestFromConfig:
    """End to end over file-backed stores."""

    def test_from_config(self, tmp_path, key_material):
        config = RegistryVaultConfig(storage=StorageConfig(data_dir=tmp_path))
        provision(key_material, FileBlobStore(tmp_path, config.storage.keys_store))

        values = dict(key_material.distribution())
        values["QUANTUM_MASTER_KEY"] = key_material.master_key_hex()
        source = MappingConfigSource(values)

        writer = RegistryStore.from_config(config, source)
        writer.save_registry(LODGES)

        reader = RegistryStore.from_config(config, source)
        assert reader.load_registry() == LODGES

        assert (tmp_path / "gadu-registry").is_dir()
        assert (tmp_path / "gadu-audit").is_dir()
        record = FileBlobStore(tmp_path, "quantum-keys").get("private-keys")
        assert VaultRecord.from_json(record) == key_material.vault_record

    def test_from_config_requires_public_keys(self, tmp_path):
        config = RegistryVaultConfig(storage=StorageConfig(data_dir=tmp_path))
        with pytest.raises(KeyMaterialError):
            RegistryStore.from_config(config, MappingConfigSource({}))
