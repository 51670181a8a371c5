"""
Blob Stores
===========

Named key/value stores for opaque byte blobs: the encrypted registry, the
sealed private keys and the audit trail each live in their own store.

    store.put("lodges", blob, metadata={"encrypted": "quantum-hybrid"})
    store.get("lodges")            # -> bytes, or None when missing
    store.get_metadata("lodges")   # -> dict, or None

FileBlobStore keeps one directory per store. Keys are validated before they
touch the filesystem and writes go through a temporary file and an atomic
rename, so a reader never sees a half-written blob.
"""

from __future__ import annotations

import json
import logging
import os
import platform
import tempfile
import threading
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Any, Dict, Final, List, Mapping, Optional, Tuple
from urllib.parse import quote, unquote

from registryvault.utils.validators import (
    validate_blob_key,
    validate_path_safe,
    validate_store_name,
)

logger = logging.getLogger("registryvault.storage.blob")

_BLOB_SUFFIX: Final[str] = ".bin"
_META_SUFFIX: Final[str] = ".meta.json"


class BlobStore(ABC):
    """Abstract named blob store."""

    def __init__(self, name: str) -> None:
        self._name = validate_store_name(name)

    @property
    def name(self) -> str:
        """Store name (for example "gadu-registry")."""
        return self._name

    @abstractmethod
    def get(self, key: str) -> Optional[bytes]:
        """Return the blob stored under key, or None if there is none."""

    @abstractmethod
    def put(self, key: str, data: bytes, metadata: Optional[Mapping[str, Any]] = None) -> None:
        """Store data under key, replacing any previous blob and metadata."""

    @abstractmethod
    def get_metadata(self, key: str) -> Optional[Dict[str, Any]]:
        """Return the metadata stored with key, or None."""

    @abstractmethod
    def list_keys(self, prefix: str = "") -> List[str]:
        """Sorted keys starting with prefix."""

    def __contains__(self, key: str) -> bool:
        return self.get(key) is not None

    def __repr__(self) -> str:
        return f"{type(self).__name__}(name={self._name!r})"


class InMemoryBlobStore(BlobStore):
    """
    Process-local BlobStore, for tests and single-process deployments.
    """

    def __init__(self, name: str) -> None:
        super().__init__(name)
        self._lock = threading.Lock()
        self._blobs: Dict[str, Tuple[bytes, Optional[Dict[str, Any]]]] = {}

    def get(self, key: str) -> Optional[bytes]:
        validate_blob_key(key)
        with self._lock:
            entry = self._blobs.get(key)
        return entry[0] if entry else None

    def put(self, key: str, data: bytes, metadata: Optional[Mapping[str, Any]] = None) -> None:
        validate_blob_key(key)
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError("Blob data must be bytes")
        with self._lock:
            self._blobs[key] = (bytes(data), dict(metadata) if metadata is not None else None)

    def get_metadata(self, key: str) -> Optional[Dict[str, Any]]:
        validate_blob_key(key)
        with self._lock:
            entry = self._blobs.get(key)
        if entry is None or entry[1] is None:
            return None
        return dict(entry[1])

    def list_keys(self, prefix: str = "") -> List[str]:
        with self._lock:
            return sorted(k for k in self._blobs if k.startswith(prefix))


class FileBlobStore(BlobStore):
    """
    BlobStore backed by one directory under a data root.

    Usage:
        store = FileBlobStore(config.storage.data_dir, "gadu-registry")
        store.put("lodges", envelope.to_bytes())

    Security Notes:
        - Store directory is created owner-only (0700) on POSIX systems
        - Keys are escaped into file names and checked to stay inside the
          store directory
    """

    def __init__(self, root: Path | str, name: str) -> None:
        super().__init__(name)
        self._directory = validate_path_safe(Path(root) / name)
        self._directory.mkdir(parents=True, exist_ok=True)
        if platform.system().lower() != "windows":
            self._directory.chmod(0o700)
        self._lock = threading.Lock()

    @property
    def directory(self) -> Path:
        return self._directory

    def _path_for(self, key: str, suffix: str) -> Path:
        validate_blob_key(key)
        return validate_path_safe(
            self._directory / f"{quote(key, safe='')}{suffix}",
            base_directory=self._directory,
        )

    def get(self, key: str) -> Optional[bytes]:
        path = self._path_for(key, _BLOB_SUFFIX)
        try:
            return path.read_bytes()
        except FileNotFoundError:
            return None

    def put(self, key: str, data: bytes, metadata: Optional[Mapping[str, Any]] = None) -> None:
        if not isinstance(data, (bytes, bytearray)):
            raise TypeError("Blob data must be bytes")
        blob_path = self._path_for(key, _BLOB_SUFFIX)
        meta_path = self._path_for(key, _META_SUFFIX)

        with self._lock:
            if metadata is not None:
                self._atomic_write(meta_path, json.dumps(dict(metadata), sort_keys=True).encode("utf-8"))
            else:
                meta_path.unlink(missing_ok=True)
            self._atomic_write(blob_path, bytes(data))

        logger.debug("Stored %d bytes under %s/%s", len(data), self._name, key)

    def get_metadata(self, key: str) -> Optional[Dict[str, Any]]:
        path = self._path_for(key, _META_SUFFIX)
        try:
            return json.loads(path.read_text(encoding="utf-8"))
        except FileNotFoundError:
            return None

    def list_keys(self, prefix: str = "") -> List[str]:
        keys = []
        for path in self._directory.iterdir():
            if path.name.endswith(_BLOB_SUFFIX):
                key = unquote(path.name[: -len(_BLOB_SUFFIX)])
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    def _atomic_write(self, path: Path, data: bytes) -> None:
        fd, tmp_name = tempfile.mkstemp(dir=self._directory, prefix=".tmp-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp_name, path)
        except BaseException:
            Path(tmp_name).unlink(missing_ok=True)
            raise
