"""
Tests for the private key vault and its record format.
"""
import base64
import json

import pytest

from registryvault.core.crypto.aes_gcm import AesGcmCipher
from registryvault.core.crypto.vault import (
    MasterKey,
    PrivateKeyVault,
    VaultRecord,
)
from registryvault.core.exceptions import (
    VAULT_UNLOCK_MESSAGE,
    KeyMaterialError,
    VaultUnlockError,
)
from registryvault.core.memory import is_zeroed


@pytest.fixture
def vault():
    return PrivateKeyVault()


@pytest.fixture
def record(vault, master_key, kem_keys, rsa_keys):
    return vault.wrap(master_key, kem_keys.secret_key, rsa_keys.private_key)


class TestMasterKey:
    """MasterKey construction and encoding."""

    def test_generate(self):
        assert len(MasterKey.generate().key) == 32

    def test_hex_round_trip(self, master_key):
        assert MasterKey.from_hex(master_key.to_hex()) == master_key
        assert len(master_key.to_hex()) == 64

    def test_hex_tolerates_whitespace(self, master_key):
        assert MasterKey.from_hex(f"  {master_key.to_hex()}\n") == master_key

    @pytest.mark.parametrize("value", ["", "abc", "zz" * 32, "00" * 31, "00" * 33])
    def test_bad_hex_rejected(self, value):
        with pytest.raises(KeyMaterialError):
            MasterKey.from_hex(value)

    def test_repr_redacted(self, master_key):
        assert master_key.to_hex() not in repr(master_key)


class TestWrapUnwrap:
    """Sealing both private keys under the master key."""

    def test_round_trip(self, vault, master_key, record, kem_keys, rsa_keys):
        keys = vault.unwrap(master_key, record)
        assert keys.kem_secret_key == kem_keys.secret_key
        assert keys.asymmetric_private_key == rsa_keys.private_key

    def test_unpacks_as_tuple(self, vault, master_key, record, kem_keys):
        kem_sk, rsa_sk = vault.unwrap(master_key, record)
        assert kem_sk == kem_keys.secret_key

    def test_raw_bytes_master_key(self, vault, master_key, record, kem_keys):
        assert vault.unwrap(master_key.key, record).kem_secret_key == kem_keys.secret_key

    def test_unwrapped_keys_are_mutable(self, vault, master_key, record):
        keys = vault.unwrap(master_key, record)
        assert isinstance(keys.kem_secret_key, bytearray)
        assert isinstance(keys.asymmetric_private_key, bytearray)

    def test_wipe(self, vault, master_key, record):
        keys = vault.unwrap(master_key, record)
        keys.wipe()
        assert is_zeroed(keys.kem_secret_key)
        assert is_zeroed(keys.asymmetric_private_key)

    def test_context_manager_wipes_on_error(self, vault, master_key, record):
        with pytest.raises(RuntimeError):
            with vault.unwrap(master_key, record) as keys:
                assert not is_zeroed(keys.kem_secret_key)
                raise RuntimeError("decrypt failed")
        assert is_zeroed(keys.kem_secret_key)
        assert is_zeroed(keys.asymmetric_private_key)

    def test_fresh_nonce_per_wrap(self, vault, master_key, kem_keys, rsa_keys):
        first = vault.wrap(master_key, kem_keys.secret_key, rsa_keys.private_key)
        second = vault.wrap(master_key, kem_keys.secret_key, rsa_keys.private_key)
        assert first.nonce != second.nonce
        assert first.payload != second.payload

    def test_wrong_master_key(self, vault, record):
        with pytest.raises(VaultUnlockError) as exc_info:
            vault.unwrap(MasterKey.generate(), record)
        assert str(exc_info.value) == VAULT_UNLOCK_MESSAGE

    @pytest.mark.parametrize("field", ["nonce", "auth_tag", "payload"])
    def test_tampered_record(self, vault, master_key, record, field):
        value = getattr(record, field)
        fields = dict(nonce=record.nonce, auth_tag=record.auth_tag, payload=record.payload)
        fields[field] = bytes([value[0] ^ 0x01]) + value[1:]
        with pytest.raises(VaultUnlockError):
            vault.unwrap(master_key, VaultRecord(**fields))

    def test_bad_nonce_size(self, vault, master_key, record):
        with pytest.raises(VaultUnlockError):
            vault.unwrap(master_key, VaultRecord(b"\x00" * 5, record.auth_tag, record.payload))

    def test_bad_master_key_size(self, vault, record):
        with pytest.raises(KeyMaterialError):
            vault.unwrap(b"\x00" * 16, record)

    def test_empty_private_keys_rejected(self, vault, master_key, rsa_keys):
        with pytest.raises(KeyMaterialError):
            vault.wrap(master_key, b"", rsa_keys.private_key)

    def test_authentic_but_malformed_contents(self, vault, master_key):
        cipher = AesGcmCipher()
        nonce = cipher.generate_nonce()
        sealed = cipher.seal(master_key.key, nonce, b'{"kyberPrivate": "zz"}')
        record = VaultRecord(nonce=nonce, auth_tag=sealed.tag, payload=sealed.ciphertext)
        with pytest.raises(VaultUnlockError):
            vault.unwrap(master_key, record)


class TestRecordFormat:
    """JSON serialization of VaultRecord."""

    def test_json_fields(self, record):
        data = json.loads(record.to_json())
        assert set(data) == {"nonce", "authTag", "payload"}
        assert bytes.fromhex(data["nonce"]) == record.nonce
        assert len(bytes.fromhex(data["authTag"])) == 16

    def test_json_round_trip(self, record):
        assert VaultRecord.from_json(record.to_bytes()) == record

    def test_legacy_field_names(self, record):
        legacy = json.dumps({
            "iv": record.nonce.hex(),
            "authTag": record.auth_tag.hex(),
            "data": record.payload.hex(),
        })
        assert VaultRecord.from_json(legacy) == record

    def test_inner_document_format(self, master_key, record, kem_keys, rsa_keys):
        inner = AesGcmCipher().open(master_key.key, record.nonce, record.payload, record.auth_tag)
        document = json.loads(inner)
        assert document["kyberPrivate"] == kem_keys.secret_key.hex()
        assert base64.b64decode(document["rsaPrivateB64"]) == rsa_keys.private_key

    def test_legacy_16_byte_nonce_record(self, vault, master_key, kem_keys, rsa_keys):
        from cryptography.hazmat.primitives.ciphers.aead import AESGCM

        nonce = b"\x05" * 16
        document = json.dumps({
            "kyberPrivate": kem_keys.secret_key.hex(),
            "rsaPrivateB64": base64.b64encode(rsa_keys.private_key).decode("ascii"),
        }).encode("utf-8")
        sealed = AESGCM(master_key.key).encrypt(nonce, document, None)
        record = VaultRecord.from_dict({
            "iv": nonce.hex(),
            "authTag": sealed[-16:].hex(),
            "data": sealed[:-16].hex(),
        })
        assert vault.unwrap(master_key, record).asymmetric_private_key == rsa_keys.private_key

    @pytest.mark.parametrize("blob", [
        b"not json",
        b"[]",
        b'{"nonce": "00"}',
        b'{"nonce": "zz", "authTag": "00", "payload": "00"}',
    ])
    def test_malformed_records(self, blob):
        with pytest.raises(VaultUnlockError):
            VaultRecord.from_json(blob)

    def test_repr_redacted(self, record):
        assert record.payload.hex()[:32] not in repr(record)
