"""keepsake - thin persistence facades for SQLite, the keyring, preferences and files."""

from keepsake.core import (
    CipherError,
    DatabaseError,
    FileStoreError,
    PersistenceContext,
    PersistenceError,
    SchemaError,
    Stores,
    UnsupportedValueError,
    build_stores,
)
from keepsake.storage import (
    BinaryFile,
    BoundTable,
    Column,
    Condition,
    Database,
    FileStore,
    ImageFile,
    Order,
    PreferencesStore,
    RelationalStore,
    SecureStore,
    StructuredFile,
    TableSchema,
    TextFile,
    count_all,
    schema_of,
    table,
)

__version__ = "0.1.0"

__all__ = [
    "build_stores",
    "PersistenceContext",
    "Stores",
    "RelationalStore",
    "BoundTable",
    "Database",
    "TableSchema",
    "table",
    "schema_of",
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
    "PersistenceError",
    "DatabaseError",
    "SchemaError",
    "CipherError",
    "FileStoreError",
    "UnsupportedValueError",
]
