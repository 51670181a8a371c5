"""
Shared fixtures.

Key generation is slow (RSA in particular), so key material is generated
once per session. RSA uses 2048-bit keys here; production defaults to 4096.
"""
import pytest

from registryvault.core.config import RegistryVaultConfig
from registryvault.core.crypto.hybrid_engine import HybridCryptoEngine
from registryvault.core.crypto.kem import KemPrimitive
from registryvault.core.crypto.key_manager import KeyManager
from registryvault.core.crypto.rsa_oaep import RsaOaepWrapper
from registryvault.core.crypto.vault import MasterKey


TEST_RSA_BITS = 2048


@pytest.fixture(scope="session")
def kem():
    return KemPrimitive()


@pytest.fixture(scope="session")
def wrapper():
    return RsaOaepWrapper(key_size=TEST_RSA_BITS)


@pytest.fixture(scope="session")
def kem_keys(kem):
    return kem.generate()


@pytest.fixture(scope="session")
def rsa_keys(wrapper):
    return wrapper.generate()


@pytest.fixture(scope="session")
def other_kem_keys(kem):
    """A second, unrelated KEM keypair."""
    return kem.generate()


@pytest.fixture(scope="session")
def other_rsa_keys(wrapper):
    """A second, unrelated RSA keypair."""
    return wrapper.generate()


@pytest.fixture(scope="session")
def engine(kem, wrapper):
    return HybridCryptoEngine(kem=kem, wrapper=wrapper)


@pytest.fixture(scope="session")
def key_material(kem, wrapper):
    """One generated key epoch, shared by the storage tests."""
    return KeyManager(kem=kem, wrapper=wrapper).generate()


@pytest.fixture
def master_key():
    return MasterKey.generate()


@pytest.fixture(autouse=True)
def _reset_config_singleton():
    yield
    RegistryVaultConfig.reset_instance()
