"""
Core module - Configuration, logging, errors and the cryptographic core.
"""

from registryvault.core.config import RegistryVaultConfig
from registryvault.core.logging import get_secure_logger, configure_root_logger, SecureLogFilter

__all__ = ["RegistryVaultConfig", "get_secure_logger", "configure_root_logger", "SecureLogFilter"]
