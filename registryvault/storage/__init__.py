"""
Storage module - Blob stores and configuration sources.

The keyring and registry services build on these and are imported from
their own modules:

    from registryvault.storage.keyring import load_public_keys
    from registryvault.storage.registry import RegistryStore
"""

from registryvault.storage.blob_store import BlobStore, FileBlobStore, InMemoryBlobStore
from registryvault.storage.config_source import (
    ConfigSource,
    EnvConfigSource,
    MappingConfigSource,
)

__all__ = [
    "BlobStore",
    "FileBlobStore",
    "InMemoryBlobStore",
    "ConfigSource",
    "EnvConfigSource",
    "MappingConfigSource",
]
