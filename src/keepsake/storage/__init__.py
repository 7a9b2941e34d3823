"""Storage layer for keepsake - relational, secure, preference and file stores."""

from keepsake.storage.db import Database
from keepsake.storage.expressions import Column, Condition, Order, count_all
from keepsake.storage.files import (
    BinaryFile,
    FileStore,
    ImageFile,
    StructuredFile,
    TextFile,
)
from keepsake.storage.keychain import SecureStore
from keepsake.storage.preferences import PreferencesStore
from keepsake.storage.relational import BoundTable, RelationalStore
from keepsake.storage.schema import TableSchema, schema_of, table

__all__ = [
    "Database",
    "RelationalStore",
    "BoundTable",
    "TableSchema",
    "schema_of",
    "table",
    "Column",
    "Condition",
    "Order",
    "count_all",
    "SecureStore",
    "PreferencesStore",
    "FileStore",
    "BinaryFile",
    "TextFile",
    "StructuredFile",
    "ImageFile",
]
