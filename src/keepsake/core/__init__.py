"""keepsake core - configuration, context, errors and store factory."""

from keepsake.core.context import PersistenceContext
from keepsake.core.errors import (
    CipherError,
    DatabaseError,
    FileStoreError,
    PersistenceError,
    SchemaError,
    UnsupportedValueError,
)
from keepsake.core.factory import Stores, build_stores

__all__ = [
    "PersistenceContext",
    "Stores",
    "build_stores",
    # Errors
    "CipherError",
    "DatabaseError",
    "FileStoreError",
    "PersistenceError",
    "SchemaError",
    "UnsupportedValueError",
]
