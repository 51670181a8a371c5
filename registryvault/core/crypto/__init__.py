"""
RegistryVault Cryptographic Core
================================

Hybrid post-quantum protection for the registry blob.

Architecture:
    1. AES-256-GCM: payload encryption under a single-use DEK
    2. ML-KEM-768: post-quantum key encapsulation
    3. RSA-OAEP: classical key wrapping
    4. PrivateKeyVault: private keys at rest under a master key
    5. KeyManager: one-shot generation of a key epoch

Security Properties:
    - All encryption is authenticated (AEAD)
    - The DEK needs both the KEM secret key and the RSA private key
    - Uniform DecryptionFailed on every post-parse failure
    - Short-lived secrets are zeroed after use

WARNING: This module handles sensitive cryptographic material.
         Incorrect usage can compromise security.
"""

from registryvault.core.crypto.aes_gcm import AesGcmCipher, SealedData
from registryvault.core.crypto.envelope import (
    HybridEnvelope,
    encode_envelope,
    parse_envelope,
    SUPPORTED_VERSIONS,
)
from registryvault.core.crypto.hybrid_engine import (
    HybridCryptoEngine,
    HybridDecryptor,
    HybridEncryptor,
)
from registryvault.core.crypto.kem import KemKeyPair, KemPrimitive, MlKemBackend
from registryvault.core.crypto.key_manager import (
    KeyManager,
    KeyManagerState,
    KeyMaterial,
    PublicKeys,
)
from registryvault.core.crypto.rsa_oaep import AsymmetricKeyPair, RsaOaepWrapper
from registryvault.core.crypto.vault import (
    MasterKey,
    PrivateKeys,
    PrivateKeyVault,
    VaultRecord,
)

__all__ = [
    "AesGcmCipher",
    "SealedData",
    "HybridEnvelope",
    "encode_envelope",
    "parse_envelope",
    "SUPPORTED_VERSIONS",
    "HybridCryptoEngine",
    "HybridDecryptor",
    "HybridEncryptor",
    "KemKeyPair",
    "KemPrimitive",
    "MlKemBackend",
    "KeyManager",
    "KeyManagerState",
    "KeyMaterial",
    "PublicKeys",
    "AsymmetricKeyPair",
    "RsaOaepWrapper",
    "MasterKey",
    "PrivateKeys",
    "PrivateKeyVault",
    "VaultRecord",
]
