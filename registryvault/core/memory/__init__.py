"""
RegistryVault Memory Security Module
====================================

Explicit zeroization of short-lived key buffers.

WARNING:
- Python's memory model doesn't guarantee secure erasure
- These are best-effort mitigations
"""

from registryvault.core.memory.zeroization import (
    secure_zero,
    is_zeroed,
    ZeroizeContext,
)

__all__ = [
    "secure_zero",
    "is_zeroed",
    "ZeroizeContext",
]
