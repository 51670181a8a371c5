"""
Validation Utilities
====================

Input validation for blob store names and keys, and for the paths that
back them on disk.
"""

from __future__ import annotations

import re
from pathlib import Path
from typing import Final, Optional

# Letters, digits and the punctuation an ISO-8601 timestamp needs
_BLOB_KEY_RE: Final[re.Pattern[str]] = re.compile(r"^[A-Za-z0-9][A-Za-z0-9._:+-]*$")
_STORE_NAME_RE: Final[re.Pattern[str]] = re.compile(r"^[a-z0-9][a-z0-9._-]*$")

MAX_BLOB_KEY_LENGTH: Final[int] = 200


class ValidationError(ValueError):
    """Raised when validation fails."""
    pass


def validate_path_safe(
    path: str | Path,
    base_directory: Optional[Path] = None,
    must_exist: bool = False,
    allow_symlinks: bool = False,
) -> Path:
    """
    Resolve a store directory or file path, refusing traversal.

    Args:
        path: Directory or file backing a blob store
        base_directory: When given, the resolved path has to stay below it
        must_exist: Reject paths that are not on disk yet
        allow_symlinks: Accept a symlink as the final component

    Returns:
        The resolved Path

    Raises:
        ValidationError: On "..", escape from base_directory, a missing
            path or an unexpected symlink
    """
    candidate = Path(path)
    if ".." in candidate.parts:
        raise ValidationError("Path traversal detected")

    try:
        resolved = candidate.resolve()
    except (ValueError, RuntimeError, OSError) as e:
        raise ValidationError(f"Invalid path: {e}") from e

    if base_directory is not None:
        base = Path(base_directory).resolve()
        if not resolved.is_relative_to(base):
            raise ValidationError(f"Path must be within {base}")

    if must_exist and not resolved.exists():
        raise ValidationError(f"Path does not exist: {resolved}")

    if not allow_symlinks and candidate.is_symlink():
        raise ValidationError(f"Symlinked store paths are not allowed: {candidate}")

    return resolved


def validate_blob_key(key: str) -> str:
    """
    Validate a blob key.

    Keys are flat names: no separators, no leading dot, at most
    MAX_BLOB_KEY_LENGTH characters.

    Raises:
        ValidationError: If the key is not acceptable
    """
    if not isinstance(key, str):
        raise ValidationError("Blob key must be a string")
    if not key or len(key) > MAX_BLOB_KEY_LENGTH:
        raise ValidationError(f"Blob key must be 1-{MAX_BLOB_KEY_LENGTH} characters")
    if ".." in key or not _BLOB_KEY_RE.match(key):
        raise ValidationError(f"Invalid blob key: {key!r}")
    return key


def validate_store_name(name: str) -> str:
    """
    Validate a blob store name (lower-case, one path component).

    Raises:
        ValidationError: If the name is not acceptable
    """
    if not isinstance(name, str) or not _STORE_NAME_RE.match(name) or ".." in name:
        raise ValidationError(f"Invalid store name: {name!r}")
    return name
