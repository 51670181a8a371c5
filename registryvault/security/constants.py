"""
Security Constants
==================

Names and defaults shared by the key distribution, storage and
configuration layers. These values are part of the deployed contract with
existing environments and should not be modified without a migration plan.
"""

from typing import Final

# Key distribution (configuration-level names)
KEM_PUBLIC_KEY_NAME: Final[str] = "KYBER_PUBLIC_KEY"
RSA_PUBLIC_KEY_NAME: Final[str] = "RSA_PUBLIC_KEY_B64"
MASTER_KEY_NAME: Final[str] = "QUANTUM_MASTER_KEY"

# Blob stores and keys
REGISTRY_STORE: Final[str] = "gadu-registry"
REGISTRY_KEY: Final[str] = "lodges"
KEYS_STORE: Final[str] = "quantum-keys"
PRIVATE_KEYS_KEY: Final[str] = "private-keys"
AUDIT_STORE: Final[str] = "gadu-audit"

# Encryption settings
ENCRYPTION_SCHEME: Final[str] = "quantum-hybrid"
KEM_ALGORITHM_LEVEL: Final[int] = 768  # ML-KEM-768, NIST Level 3
RSA_KEY_SIZE_BITS: Final[int] = 4096
ENVELOPE_VERSION: Final[str] = "v2"
