"""
Tests for the AES-256-GCM primitive.
"""
import pytest

from registryvault.core.crypto import aes_gcm
from registryvault.core.crypto.aes_gcm import (
    AES_KEY_SIZE,
    AES_LEGACY_NONCE_SIZE,
    AES_NONCE_SIZE,
    AES_TAG_SIZE,
    AesGcmCipher,
)
from registryvault.core.exceptions import (
    AuthenticationFailure,
    KeyMaterialError,
    PlaintextTooLargeError,
)

from cryptography.hazmat.primitives.ciphers.aead import AESGCM


@pytest.fixture
def cipher():
    return AesGcmCipher()


@pytest.fixture
def key(cipher):
    return cipher.generate_key()


class TestGeneration:
    """Random key and nonce generation."""

    def test_key_size(self, cipher):
        assert len(cipher.generate_key()) == AES_KEY_SIZE

    def test_nonce_size(self, cipher):
        assert len(cipher.generate_nonce()) == AES_NONCE_SIZE

    def test_keys_are_random(self, cipher):
        assert cipher.generate_key() != cipher.generate_key()


class TestSealOpen:
    """seal() / open() behaviour."""

    def test_round_trip(self, cipher, key):
        nonce = cipher.generate_nonce()
        sealed = cipher.seal(key, nonce, b"lodge registry")
        assert cipher.open(key, nonce, sealed.ciphertext, sealed.tag) == b"lodge registry"

    def test_detached_tag_and_same_length_ciphertext(self, cipher, key):
        ciphertext, tag = cipher.seal(key, cipher.generate_nonce(), b"x" * 37)
        assert len(ciphertext) == 37
        assert len(tag) == AES_TAG_SIZE

    def test_empty_plaintext(self, cipher, key):
        nonce = cipher.generate_nonce()
        ciphertext, tag = cipher.seal(key, nonce, b"")
        assert ciphertext == b""
        assert cipher.open(key, nonce, ciphertext, tag) == b""

    def test_bytearray_key_accepted(self, cipher, key):
        nonce = cipher.generate_nonce()
        ciphertext, tag = cipher.seal(bytearray(key), nonce, b"data")
        assert cipher.open(bytearray(key), nonce, ciphertext, tag) == b"data"

    def test_tampered_ciphertext_fails(self, cipher, key):
        nonce = cipher.generate_nonce()
        ciphertext, tag = cipher.seal(key, nonce, b"data")
        tampered = bytes([ciphertext[0] ^ 1]) + ciphertext[1:]
        with pytest.raises(AuthenticationFailure):
            cipher.open(key, nonce, tampered, tag)

    def test_tampered_tag_fails(self, cipher, key):
        nonce = cipher.generate_nonce()
        ciphertext, tag = cipher.seal(key, nonce, b"data")
        with pytest.raises(AuthenticationFailure):
            cipher.open(key, nonce, ciphertext, bytes([tag[0] ^ 0x80]) + tag[1:])

    def test_wrong_key_fails(self, cipher, key):
        nonce = cipher.generate_nonce()
        ciphertext, tag = cipher.seal(key, nonce, b"data")
        with pytest.raises(AuthenticationFailure):
            cipher.open(cipher.generate_key(), nonce, ciphertext, tag)

    def test_malformed_parameters_fail_as_authentication(self, cipher, key):
        with pytest.raises(AuthenticationFailure):
            cipher.open(key, b"\x00" * 8, b"", b"\x00" * AES_TAG_SIZE)
        with pytest.raises(AuthenticationFailure):
            cipher.open(key, b"\x00" * AES_NONCE_SIZE, b"", b"\x00" * 4)

    def test_seal_rejects_bad_key_size(self, cipher):
        with pytest.raises(KeyMaterialError):
            cipher.seal(b"\x00" * 16, cipher.generate_nonce(), b"data")

    def test_seal_rejects_legacy_nonce(self, cipher, key):
        with pytest.raises(KeyMaterialError):
            cipher.seal(key, b"\x00" * AES_LEGACY_NONCE_SIZE, b"data")

    def test_open_accepts_legacy_16_byte_nonce(self, cipher, key):
        nonce = b"\x07" * AES_LEGACY_NONCE_SIZE
        sealed = AESGCM(key).encrypt(nonce, b"legacy", None)
        assert cipher.open(key, nonce, sealed[:-16], sealed[-16:]) == b"legacy"


class TestSizeLimit:
    """seal() refuses plaintexts above MAX_PLAINTEXT_SIZE."""

    def test_limit_enforced(self, monkeypatch, cipher, key):
        monkeypatch.setattr(aes_gcm, "MAX_PLAINTEXT_SIZE", 16)
        nonce = cipher.generate_nonce()
        assert len(cipher.seal(key, nonce, b"x" * 16).ciphertext) == 16
        with pytest.raises(PlaintextTooLargeError):
            cipher.seal(key, nonce, b"x" * 17)
