"""
Utils module - Validation helpers shared by the storage layer.
"""

from registryvault.utils.validators import (
    ValidationError,
    validate_blob_key,
    validate_path_safe,
    validate_store_name,
)

__all__ = [
    "ValidationError",
    "validate_blob_key",
    "validate_path_safe",
    "validate_store_name",
]
