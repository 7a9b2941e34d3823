"""Exception types raised by the keepsake stores.

The facades convert most of these into ``False``/``None`` results and log
them. The raising layers (``Database``, ``FileStore.save``) let them through
so callers can tell failure kinds apart.
"""


class PersistenceError(Exception):
    """Base class for all keepsake errors."""


class DatabaseError(PersistenceError):
    """The relational engine reported a failure."""


class SchemaError(DatabaseError):
    """A record class or column does not fit the table schema."""


class CipherError(DatabaseError):
    """The encryption key is invalid or SQLCipher is not available."""


class FileStoreError(PersistenceError):
    """A file could not be written or decoded."""


class UnsupportedValueError(PersistenceError, TypeError):
    """A value of an unsupported kind was handed to a store."""
