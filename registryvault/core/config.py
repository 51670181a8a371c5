"""
Secure Configuration Module
===========================

Immutable, environment-aware configuration for the registry vault.

Security Features:
- Immutable configuration after initialization
- Environment variable override support
- No secrets in default values or in this layer at all; key material
  comes from a ConfigSource (see registryvault.storage.config_source)
- OS-aware path handling
"""

from __future__ import annotations

import hashlib
import os
import platform
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Final, Optional

from registryvault.security.constants import (
    AUDIT_STORE,
    ENVELOPE_VERSION,
    KEM_ALGORITHM_LEVEL,
    KEM_PUBLIC_KEY_NAME,
    KEYS_STORE,
    MASTER_KEY_NAME,
    PRIVATE_KEYS_KEY,
    REGISTRY_KEY,
    REGISTRY_STORE,
    RSA_KEY_SIZE_BITS,
    RSA_PUBLIC_KEY_NAME,
)


_SENSITIVE_KEYS: Final[frozenset[str]] = frozenset({
    "password", "secret", "key", "token", "api_key",
    "private", "credential", "auth", "salt", "master",
})

_VALID_KEM_LEVELS: Final[frozenset[int]] = frozenset({512, 768, 1024})


def _is_sensitive_key(key: str) -> bool:
    """Check if a configuration key might contain sensitive data."""
    key_lower = key.lower()
    return any(sensitive in key_lower for sensitive in _SENSITIVE_KEYS)


def _get_default_data_dir() -> Path:
    """Get OS-appropriate default data directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
    elif system == "darwin":
        base = Path.home() / "Library" / "Application Support"
    else:
        base = Path(os.environ.get("XDG_DATA_HOME", Path.home() / ".local" / "share"))

    return base / "RegistryVault"


def _get_default_log_dir() -> Path:
    """Get OS-appropriate default log directory."""
    system = platform.system().lower()

    if system == "windows":
        base = Path(os.environ.get("LOCALAPPDATA", Path.home() / "AppData" / "Local"))
        return base / "RegistryVault" / "Logs"
    elif system == "darwin":
        return Path.home() / "Library" / "Logs" / "RegistryVault"
    else:
        return Path(os.environ.get("XDG_STATE_HOME", Path.home() / ".local" / "state")) / "RegistryVault" / "logs"


@dataclass(frozen=True, slots=True)
class CryptoConfig:
    """Immutable hybrid encryption settings."""

    kem_level: int = KEM_ALGORITHM_LEVEL
    rsa_key_size: int = RSA_KEY_SIZE_BITS
    envelope_version: str = ENVELOPE_VERSION

    def __post_init__(self) -> None:
        """Validate crypto settings."""
        if self.kem_level not in _VALID_KEM_LEVELS:
            raise ValueError(f"Unsupported ML-KEM level: {self.kem_level}")
        if self.rsa_key_size < 2048:
            raise ValueError("RSA key size must be at least 2048 bits")
        if self.envelope_version != ENVELOPE_VERSION:
            raise ValueError(f"Unsupported envelope version: {self.envelope_version}")


@dataclass(frozen=True, slots=True)
class KeyDistributionConfig:
    """Names under which key material is published to processes."""

    kem_public_key_name: str = KEM_PUBLIC_KEY_NAME
    rsa_public_key_name: str = RSA_PUBLIC_KEY_NAME
    master_key_name: str = MASTER_KEY_NAME

    def __post_init__(self) -> None:
        names = (self.kem_public_key_name, self.rsa_public_key_name, self.master_key_name)
        if not all(names):
            raise ValueError("Key distribution names must be non-empty")
        if len(set(names)) != len(names):
            raise ValueError("Key distribution names must be distinct")


@dataclass(frozen=True, slots=True)
class StorageConfig:
    """Immutable blob store layout with an OS-aware data directory."""

    registry_store: str = REGISTRY_STORE
    registry_key: str = REGISTRY_KEY
    keys_store: str = KEYS_STORE
    private_keys_key: str = PRIVATE_KEYS_KEY
    audit_store: str = AUDIT_STORE
    data_dir: Path = field(default_factory=_get_default_data_dir)

    def __post_init__(self) -> None:
        """Validate storage settings."""
        if not self.data_dir.is_absolute():
            raise ValueError(f"data_dir must be an absolute path: {self.data_dir}")
        for field_name in ("registry_store", "keys_store", "audit_store"):
            if not getattr(self, field_name):
                raise ValueError(f"{field_name} must be non-empty")


@dataclass(frozen=True, slots=True)
class LoggingConfig:
    """Immutable logging configuration."""

    level: str = "INFO"
    log_dir: Path = field(default_factory=_get_default_log_dir)
    max_file_size_bytes: int = 10 * 1024 * 1024  # 10 MB
    backup_count: int = 5
    enable_console: bool = True
    enable_file: bool = False
    structured: bool = False

    def __post_init__(self) -> None:
        """Validate logging settings."""
        valid_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if self.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.level}")
        if self.backup_count < 0:
            raise ValueError("backup_count must not be negative")


def _as_bool(value: str) -> bool:
    return value.strip().lower() in {"1", "true", "yes", "on"}


class RegistryVaultConfig:
    """
    Centralized, immutable configuration loader with environment override support.

    Environment overrides use the REGISTRYVAULT_ prefix and double underscores
    for nested values. Names that look sensitive are ignored: this layer never
    carries key material.

    Usage:
        config = RegistryVaultConfig.load()
        level = config.crypto.kem_level
        data_dir = config.storage.data_dir
    """

    __slots__ = ("_crypto", "_distribution", "_storage", "_logging", "_frozen", "_config_hash")

    _instance: Optional[RegistryVaultConfig] = None

    def __init__(
        self,
        crypto: Optional[CryptoConfig] = None,
        distribution: Optional[KeyDistributionConfig] = None,
        storage: Optional[StorageConfig] = None,
        logging: Optional[LoggingConfig] = None,
    ) -> None:
        """Initialize configuration. Use RegistryVaultConfig.load() for standard initialization."""
        object.__setattr__(self, "_frozen", False)
        object.__setattr__(self, "_crypto", crypto or CryptoConfig())
        object.__setattr__(self, "_distribution", distribution or KeyDistributionConfig())
        object.__setattr__(self, "_storage", storage or StorageConfig())
        object.__setattr__(self, "_logging", logging or LoggingConfig())
        object.__setattr__(self, "_config_hash", self._compute_hash())
        object.__setattr__(self, "_frozen", True)

    def _compute_hash(self) -> str:
        """Compute a hash of the configuration for integrity checking."""
        config_str = f"{self._crypto}|{self._distribution}|{self._storage}|{self._logging}"
        return hashlib.sha256(config_str.encode()).hexdigest()[:16]

    @property
    def crypto(self) -> CryptoConfig:
        return self._crypto

    @property
    def distribution(self) -> KeyDistributionConfig:
        return self._distribution

    @property
    def storage(self) -> StorageConfig:
        return self._storage

    @property
    def logging(self) -> LoggingConfig:
        return self._logging

    @property
    def config_hash(self) -> str:
        """Get configuration integrity hash."""
        return self._config_hash

    @classmethod
    def load(cls, env_prefix: str = "REGISTRYVAULT") -> RegistryVaultConfig:
        """
        Load configuration with environment variable overrides.

        Examples:
            REGISTRYVAULT_LOGGING__LEVEL=DEBUG
            REGISTRYVAULT_CRYPTO__KEM_LEVEL=1024
            REGISTRYVAULT_STORAGE__DATA_DIR=/srv/registry

        Args:
            env_prefix: Prefix for environment variables (default: REGISTRYVAULT)

        Returns:
            Configured RegistryVaultConfig instance

        Raises:
            ValueError: If an override fails validation
        """
        env_overrides = cls._parse_env_overrides(env_prefix)

        crypto_kwargs: dict[str, Any] = {}
        if "crypto.kem_level" in env_overrides:
            crypto_kwargs["kem_level"] = int(env_overrides["crypto.kem_level"])
        if "crypto.envelope_version" in env_overrides:
            crypto_kwargs["envelope_version"] = env_overrides["crypto.envelope_version"]

        storage_kwargs: dict[str, Any] = {}
        if "storage.data_dir" in env_overrides:
            storage_kwargs["data_dir"] = Path(env_overrides["storage.data_dir"])
        for store in ("registry_store", "audit_store"):
            if f"storage.{store}" in env_overrides:
                storage_kwargs[store] = env_overrides[f"storage.{store}"]

        logging_kwargs: dict[str, Any] = {}
        if "logging.level" in env_overrides:
            logging_kwargs["level"] = env_overrides["logging.level"]
        if "logging.log_dir" in env_overrides:
            logging_kwargs["log_dir"] = Path(env_overrides["logging.log_dir"])
        for flag in ("enable_console", "enable_file", "structured"):
            if f"logging.{flag}" in env_overrides:
                logging_kwargs[flag] = _as_bool(env_overrides[f"logging.{flag}"])

        return cls(
            crypto=CryptoConfig(**crypto_kwargs) if crypto_kwargs else None,
            storage=StorageConfig(**storage_kwargs) if storage_kwargs else None,
            logging=LoggingConfig(**logging_kwargs) if logging_kwargs else None,
        )

    @staticmethod
    def _parse_env_overrides(prefix: str) -> dict[str, str]:
        """Parse environment variables with the given prefix."""
        overrides: dict[str, str] = {}
        prefix_upper = f"{prefix.upper()}_"

        for key, value in os.environ.items():
            if key.startswith(prefix_upper):
                # REGISTRYVAULT_SECTION__KEY -> section.key
                config_key = key[len(prefix_upper):].lower().replace("__", ".")

                # SECURITY: Skip sensitive keys from environment
                if _is_sensitive_key(config_key):
                    continue

                overrides[config_key] = value

        return overrides

    @classmethod
    def get_instance(cls) -> RegistryVaultConfig:
        """Get or create the singleton configuration instance."""
        if cls._instance is None:
            cls._instance = cls.load()
        return cls._instance

    @classmethod
    def reset_instance(cls) -> None:
        """Reset the singleton instance. Use only for testing."""
        cls._instance = None

    def ensure_directories(self) -> None:
        """Create the data and log directories with owner-only permissions."""
        import stat

        for directory in (self._storage.data_dir, self._logging.log_dir):
            directory.mkdir(parents=True, exist_ok=True)
            if platform.system().lower() != "windows":
                directory.chmod(stat.S_IRWXU)

    def __repr__(self) -> str:
        """Safe string representation without sensitive data."""
        return (
            f"RegistryVaultConfig(hash={self._config_hash}, "
            f"kem=ML-KEM-{self._crypto.kem_level}, rsa={self._crypto.rsa_key_size})"
        )

    def __setattr__(self, name: str, value: Any) -> None:
        """Prevent modification after initialization."""
        if getattr(self, "_frozen", False):
            raise AttributeError("RegistryVaultConfig is immutable after initialization")
        super().__setattr__(name, value)
