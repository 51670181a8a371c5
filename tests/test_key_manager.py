"""
Tests for the KeyManager state machine.
"""
import base64
import threading

import pytest

from registryvault.core.crypto.hybrid_engine import HybridCryptoEngine
from registryvault.core.crypto.kem import ML_KEM_768_PK_SIZE, KemPrimitive
from registryvault.core.crypto.key_manager import KeyManager, KeyManagerState
from registryvault.core.crypto.vault import MasterKey
from registryvault.core.exceptions import (
    DecryptionFailed,
    KeyManagerStateError,
    KeyMaterialError,
    VaultUnlockError,
)


@pytest.fixture
def manager(kem, wrapper):
    return KeyManager(kem=kem, wrapper=wrapper)


class TestLifecycle:
    """UNINITIALIZED -> INITIALIZED, exactly once."""

    def test_starts_uninitialized(self, manager):
        assert manager.state is KeyManagerState.UNINITIALIZED
        assert manager.is_initialized is False

    def test_accessors_require_generation(self, manager):
        with pytest.raises(KeyManagerStateError):
            manager.public_keys
        with pytest.raises(KeyManagerStateError):
            manager.unlock(MasterKey.generate())

    def test_generate_initializes(self, manager):
        material = manager.generate()
        assert manager.state is KeyManagerState.INITIALIZED
        assert manager.public_keys == material.public_keys
        assert manager.vault_record == material.vault_record
        assert manager.generated_at == material.generated_at

    def test_second_generate_rejected(self, manager):
        material = manager.generate()
        with pytest.raises(KeyManagerStateError):
            manager.generate()
        assert manager.public_keys == material.public_keys

    def test_concurrent_generate_runs_once(self, manager):
        results, errors = [], []

        def worker():
            try:
                results.append(manager.generate())
            except KeyManagerStateError as e:
                errors.append(e)

        threads = [threading.Thread(target=worker) for _ in range(4)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert len(results) == 1
        assert len(errors) == 3


class TestGeneratedMaterial:
    """Contents of the KeyMaterial bundle."""

    def test_bundle_contents(self, manager):
        material = manager.generate()
        assert len(material.public_keys.kem_public_key) == ML_KEM_768_PK_SIZE
        assert material.public_keys.asymmetric_public_key.startswith(b"-----BEGIN PUBLIC KEY-----")
        assert material.master_key_generated is True
        assert material.kem_algorithm == "ML-KEM-768"
        assert material.rsa_key_size == 2048

    def test_vault_record_opens_with_master_key(self, manager, kem):
        material = manager.generate()
        keys = manager.unlock(material.master_key)
        encapsulation = kem.encapsulate(material.public_keys.kem_public_key)
        assert kem.decapsulate(encapsulation.ciphertext, keys.kem_secret_key) == encapsulation.shared_secret

    def test_supplied_master_key(self, manager, master_key):
        material = manager.generate(master_key=master_key)
        assert material.master_key == master_key
        assert material.master_key_generated is False
        assert manager.unlock(master_key.key)

    def test_unlock_with_wrong_master_key(self, manager):
        manager.generate()
        with pytest.raises(VaultUnlockError):
            manager.unlock(MasterKey.generate())

    def test_distribution_values(self, manager):
        material = manager.generate()
        values = material.distribution()
        assert set(values) == {"KYBER_PUBLIC_KEY", "RSA_PUBLIC_KEY_B64"}
        assert bytes.fromhex(values["KYBER_PUBLIC_KEY"]) == material.public_keys.kem_public_key
        assert base64.b64decode(values["RSA_PUBLIC_KEY_B64"]) == material.public_keys.asymmetric_public_key
        assert len(material.master_key_hex()) == 64

    def test_fingerprint_is_stable_and_short(self, manager):
        material = manager.generate()
        assert material.public_keys.fingerprint() == manager.public_keys.fingerprint()
        assert len(material.public_keys.fingerprint()) == 16

    def test_repr_hides_master_key(self, manager):
        material = manager.generate()
        assert material.master_key_hex() not in repr(material)

    def test_independent_managers_produce_distinct_epochs(self, kem, wrapper):
        first = KeyManager(kem=kem, wrapper=wrapper).generate()
        second = KeyManager(kem=kem, wrapper=wrapper).generate()
        assert first.public_keys.fingerprint() != second.public_keys.fingerprint()

    def test_other_epoch_cannot_decrypt(self, kem, wrapper):
        first, second = KeyManager(kem=kem, wrapper=wrapper), KeyManager(kem=kem, wrapper=wrapper)
        first_material, second_material = first.generate(), second.generate()
        engine = HybridCryptoEngine(kem=kem, wrapper=wrapper)

        blob = engine.encrypt(
            b'{"members":[]}',
            first_material.public_keys.kem_public_key,
            first_material.public_keys.asymmetric_public_key,
        ).encode()
        assert blob.startswith("v2:")

        with first.unlock(first_material.master_key) as keys:
            assert engine.decrypt(blob, *keys) == b'{"members":[]}'
        with second.unlock(second_material.master_key) as keys:
            with pytest.raises(DecryptionFailed):
                engine.decrypt(blob, *keys)


class TestFailedGeneration:
    """A failure leaves the manager UNINITIALIZED and returns nothing."""

    def test_bad_master_key(self, manager):
        with pytest.raises(KeyMaterialError):
            manager.generate(master_key=b"short")
        assert manager.state is KeyManagerState.UNINITIALIZED

    def test_backend_failure_wrapped(self, wrapper):
        class BrokenBackend:
            name = "broken"
            public_key_size = 1
            secret_key_size = 1
            ciphertext_size = 1

            def keygen(self):
                raise RuntimeError("entropy source unavailable")

        manager = KeyManager(kem=KemPrimitive(backend=BrokenBackend()), wrapper=wrapper)
        with pytest.raises(KeyMaterialError) as exc_info:
            manager.generate()
        assert isinstance(exc_info.value.__cause__, RuntimeError)
        assert manager.state is KeyManagerState.UNINITIALIZED

    def test_can_retry_after_failure(self, kem, wrapper):
        manager = KeyManager(kem=kem, wrapper=wrapper)
        with pytest.raises(KeyMaterialError):
            manager.generate(master_key=b"short")
        assert manager.generate().public_keys is not None
