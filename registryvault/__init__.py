"""
RegistryVault - Hybrid Post-Quantum Protection for the Lodge Registry
=====================================================================

This package encrypts the registry blob with AES-256-GCM under a
single-use key that is protected by both ML-KEM-768 and RSA-OAEP, and
keeps the matching private keys sealed under a separately held master key.

Security Notice:
- No key material is logged
- Fail-closed design pattern
- All decryption failures look the same to the caller
"""

from registryvault.core.config import RegistryVaultConfig
from registryvault.core.logging import get_secure_logger

__version__ = "0.1.0"
__author__ = "RegistryVault Team"

__all__ = ["RegistryVaultConfig", "get_secure_logger", "__version__"]
