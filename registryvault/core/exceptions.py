"""
RegistryVault Error Taxonomy
============================

Every failure raised by the cryptographic core derives from
RegistryVaultError. All errors are terminal for the operation that raised
them; nothing in this package retries.

Hierarchy:
    RegistryVaultError
    ├── KeyMaterialError          malformed / wrong-size key material
    │   └── KeyManagerStateError  generate() on an initialized manager
    ├── PlaintextTooLargeError    payload over the cipher ceiling
    ├── UnsupportedVersionError   unknown envelope version tag
    ├── DecryptionFailed          umbrella for every post-parse failure
    │   └── EnvelopeFormatError   malformed envelope fields
    ├── AuthenticationFailure     AEAD tag mismatch (internal)
    ├── VaultUnlockError          wrong master key / corrupted vault record
    └── RegistryFormatError       decrypted registry is not a JSON object

Security Notes:
    - DecryptionFailed and VaultUnlockError carry a fixed message so the
      caller cannot tell which internal step failed.
    - AuthenticationFailure never escapes HybridDecryptor or PrivateKeyVault.
"""

from __future__ import annotations

from typing import Final, Optional

DECRYPTION_FAILED_MESSAGE: Final[str] = "Decryption failed"
VAULT_UNLOCK_MESSAGE: Final[str] = "Unable to unlock private key vault"


class RegistryVaultError(Exception):
    """Base class for all registryvault errors."""
    pass


class KeyMaterialError(RegistryVaultError, ValueError):
    """
    Raised when key material is malformed, missing or the wrong size.

    Recoverable by fixing configuration. During key generation it aborts
    provisioning entirely.
    """
    pass


class KeyManagerStateError(KeyMaterialError):
    """Raised when generate() is called on an already initialized KeyManager."""
    pass


class PlaintextTooLargeError(RegistryVaultError, ValueError):
    """Raised when the plaintext exceeds the symmetric cipher's length ceiling."""
    pass


class UnsupportedVersionError(RegistryVaultError):
    """
    Raised when an envelope carries a version tag this build does not implement.

    Fatal for that envelope: there is no migration path.
    """

    def __init__(self, version: str) -> None:
        self.version = version
        # Version tags come from untrusted input; keep the message short.
        shown = version if len(version) <= 16 else version[:16] + "..."
        super().__init__(f"Unsupported envelope version: {shown!r}")


class DecryptionFailed(RegistryVaultError):
    """
    Raised when an envelope cannot be decrypted.

    Deliberately undifferentiated: tag mismatch, KEM mismatch, RSA unwrap
    failure and malformed fields all look the same to the caller.
    """

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or DECRYPTION_FAILED_MESSAGE)


class EnvelopeFormatError(DecryptionFailed):
    """Raised by the envelope codec when a field is malformed."""
    pass


class AuthenticationFailure(RegistryVaultError):
    """Raised by AesGcmCipher.open when the authentication tag does not verify."""

    def __init__(self) -> None:
        super().__init__("Authentication failed")


class VaultUnlockError(RegistryVaultError):
    """Raised when a VaultRecord cannot be opened with the supplied master key."""

    def __init__(self, message: Optional[str] = None) -> None:
        super().__init__(message or VAULT_UNLOCK_MESSAGE)


class RegistryFormatError(RegistryVaultError, ValueError):
    """Raised when a decrypted registry blob is not a JSON object."""
    pass
