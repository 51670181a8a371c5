"""
Configuration Sources
=====================

Where distributed key material is read from. Secrets (the master key) and
public keys are published to processes as named string values, normally
environment variables.
"""

from __future__ import annotations

import os
from abc import ABC, abstractmethod
from typing import Mapping, Optional


class ConfigSource(ABC):
    """Read-only source of named configuration strings."""

    @abstractmethod
    def get(self, name: str) -> Optional[str]:
        """Return the value for name, or None when it is unset."""

    def require(self, name: str) -> str:
        """
        Return the value for name.

        Raises:
            KeyError: If the value is unset or empty
        """
        value = self.get(name)
        if not value:
            raise KeyError(name)
        return value


class EnvConfigSource(ConfigSource):
    """
    Process environment, optionally namespaced by a prefix.

        EnvConfigSource().get("KYBER_PUBLIC_KEY")
        EnvConfigSource(prefix="STAGING_").get("KYBER_PUBLIC_KEY")  # STAGING_KYBER_PUBLIC_KEY
    """

    __slots__ = ("_prefix", "_environ")

    def __init__(self, prefix: str = "", environ: Optional[Mapping[str, str]] = None) -> None:
        self._prefix = prefix
        self._environ = environ if environ is not None else os.environ

    def get(self, name: str) -> Optional[str]:
        return self._environ.get(f"{self._prefix}{name}")

    def __repr__(self) -> str:
        return f"EnvConfigSource(prefix={self._prefix!r})"


class MappingConfigSource(ConfigSource):
    """ConfigSource over a fixed mapping (tests, provisioning scripts)."""

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Mapping[str, str]] = None) -> None:
        self._values = dict(values or {})

    def get(self, name: str) -> Optional[str]:
        return self._values.get(name)

    def __repr__(self) -> str:
        # Values may be secrets; show names only.
        return f"MappingConfigSource(names={sorted(self._values)})"
