"""SQLite database handle.

``Database`` owns one connection to one database file and exposes the
table-level operations the relational store forwards to. Unlike the store it
raises: engine failures surface as ``DatabaseError`` (or one of its
subclasses) so callers that need to tell failure kinds apart can use it
directly.

Encrypted databases go through SQLCipher (``sqlcipher3``), which is imported
only once a key has been set.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable, Iterator, Sequence
from contextlib import contextmanager
from pathlib import Path
from typing import Any, TypeVar

from pydantic import BaseModel

from keepsake.core.errors import CipherError, DatabaseError, PersistenceError, SchemaError
from keepsake.storage.expressions import (
    ColumnLike,
    Condition,
    OrderLike,
    ResultColumn,
    limit_sql,
    order_sql,
    quote_identifier,
    result_sql,
    where_sql,
)
from keepsake.storage.schema import TableSchema, schema_of

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Raw SQLCipher keys are 256 bits
RAW_KEY_LENGTH = 32


def normalize_cipher_key(key: str | bytes | bytearray | None) -> str | bytes | None:
    """Validate a cipher key.

    A 32-byte ``bytes`` key is a raw key. Any other ``bytes`` key is a
    passphrase and must be UTF-8 text without NUL characters.
    """
    if key is None:
        return None
    if isinstance(key, (bytes, bytearray)):
        if len(key) == RAW_KEY_LENGTH:
            return bytes(key)
        try:
            key = bytes(key).decode("utf-8")
        except UnicodeDecodeError as exc:
            raise CipherError(f"Cipher passphrase bytes are not UTF-8: {exc}") from exc
    if isinstance(key, str):
        if not key:
            raise CipherError("Cipher passphrase must not be empty")
        if "\x00" in key:
            raise CipherError("Cipher passphrase must not contain NUL characters")
        return key
    raise CipherError(f"Unsupported cipher key type: {type(key).__name__}")


def _key_pragma(key: str | bytes) -> str:
    # sqlcipher3 does not support parameter binding for PRAGMA key.
    if isinstance(key, bytes):
        return f"PRAGMA key = \"x'{key.hex()}'\""
    return "PRAGMA key = '" + key.replace("'", "''") + "'"


class Database:
    """One SQLite (or SQLCipher) database file."""

    def __init__(
        self,
        path: Path | str,
        cipher_key: str | bytes | None = None,
        timeout: float = 5.0,
    ):
        """
        Initialize database handle. The file is opened lazily.

        Args:
            path: Path to the database file
            cipher_key: Optional SQLCipher passphrase or 32-byte raw key
            timeout: Seconds to wait on a locked database
        """
        self.path = Path(path)
        self.timeout = timeout
        self._cipher_key = normalize_cipher_key(cipher_key)
        # Set when the last set_cipher call was rejected; blocks opening
        self._cipher_failure: str | None = None
        self._connection: Any = None
        self._engine_errors: tuple[type[Exception], ...] = (sqlite3.Error,)
        self._lock = threading.RLock()
        self._depth = 0

    def __repr__(self) -> str:
        return f"Database({str(self.path)!r}, encrypted={self.is_encrypted})"

    @property
    def name(self) -> str:
        return self.path.stem

    @property
    def is_encrypted(self) -> bool:
        return self._cipher_key is not None

    # Connection management

    def _connect(self) -> Any:
        if self._cipher_failure is not None:
            raise CipherError(f"Cipher not set on {self.name}: {self._cipher_failure}")
        self.path.parent.mkdir(parents=True, exist_ok=True)
        if self._cipher_key is None:
            conn = sqlite3.connect(
                self.path,
                timeout=self.timeout,
                check_same_thread=False,
                isolation_level=None,
            )
            self._engine_errors = (sqlite3.Error,)
        else:
            try:
                import sqlcipher3
            except ImportError as exc:
                raise CipherError(f"Missing SQLCipher dependency: {exc}") from exc
            conn = sqlcipher3.connect(
                str(self.path),
                timeout=self.timeout,
                check_same_thread=False,
                isolation_level=None,
            )
            self._engine_errors = (sqlite3.Error, sqlcipher3.dbapi2.Error)
            try:
                conn.execute(_key_pragma(self._cipher_key))
            except self._engine_errors as exc:
                conn.close()
                raise CipherError(f"Cannot apply key to {self.name}: {exc}") from exc

        try:
            # Touch the schema so a missing or wrong key fails here
            conn.execute("SELECT count(*) FROM sqlite_master").fetchone()
            conn.execute("PRAGMA foreign_keys=ON")
        except self._engine_errors as exc:
            conn.close()
            error_type = CipherError if self._cipher_key is not None else DatabaseError
            raise error_type(f"Cannot open database {self.name}: {exc}") from exc

        logger.debug("Opened database %s (encrypted=%s)", self.path, self.is_encrypted)
        return conn

    def _ensure_connection(self) -> Any:
        if self._connection is None:
            self._connection = self._connect()
        return self._connection

    def close(self) -> None:
        """Close the connection; the next operation reopens it."""
        with self._lock:
            if self._connection is not None:
                self._connection.close()
                self._connection = None
                self._depth = 0

    def set_cipher(self, key: str | bytes | None) -> None:
        """Set or clear (``None``) the encryption key.

        Must be called before any other operation on an encrypted database,
        otherwise reads fail to decrypt. A rejected key leaves the database
        closed and unopenable until a later call succeeds.
        """
        with self._lock:
            self.close()
            try:
                normalized = normalize_cipher_key(key)
            except CipherError as exc:
                self._cipher_key = None
                self._cipher_failure = str(exc)
                raise
            self._cipher_key = normalized
            self._cipher_failure = None

    @contextmanager
    def _translate(self, action: str) -> Iterator[None]:
        try:
            yield
        except PersistenceError:
            raise
        except self._engine_errors as exc:
            raise DatabaseError(f"{action} failed on {self.name}: {exc}") from exc

    def _execute(self, sql: str, params: Sequence[Any] = ()) -> int:
        with self._lock, self._translate(sql.split(" ", 1)[0]):
            conn = self._ensure_connection()
            cursor = conn.execute(sql, tuple(params))
            return cursor.rowcount

    def _fetch(self, sql: str, params: Sequence[Any] = ()) -> list[dict[str, Any]]:
        with self._lock, self._translate("SELECT"):
            conn = self._ensure_connection()
            cursor = conn.execute(sql, tuple(params))
            names = [description[0] for description in cursor.description]
            return [dict(zip(names, row)) for row in cursor.fetchall()]

    # Transactions

    @contextmanager
    def transaction(self) -> Iterator[Database]:
        """Run the enclosed block atomically.

        Nested blocks become savepoints, so an inner failure only rolls back
        its own work.
        """
        with self._lock:
            depth = self._depth
            savepoint = f"keepsake_sp_{depth}"
            with self._translate("BEGIN"):
                conn = self._ensure_connection()
                conn.execute("BEGIN IMMEDIATE" if depth == 0 else f"SAVEPOINT {savepoint}")
            self._depth += 1
            try:
                yield self
            except BaseException:
                self._depth = depth
                self._rollback(conn, depth, savepoint)
                raise
            self._depth = depth
            try:
                conn.execute("COMMIT" if depth == 0 else f"RELEASE {savepoint}")
            except self._engine_errors as exc:
                # A failed COMMIT leaves the transaction open
                self._rollback(conn, depth, savepoint)
                raise DatabaseError(f"COMMIT failed on {self.name}: {exc}") from exc

    def _rollback(self, conn: Any, depth: int, savepoint: str) -> None:
        try:
            if depth == 0:
                conn.execute("ROLLBACK")
            else:
                conn.execute(f"ROLLBACK TO {savepoint}")
                conn.execute(f"RELEASE {savepoint}")
        except self._engine_errors:
            logger.error("Rollback failed on %s", self.name, exc_info=True)

    def run(self, body: Callable[[Database], Any]) -> Any:
        """Call ``body(self)`` inside a transaction and return its result."""
        with self.transaction():
            return body(self)

    # Tables

    def table_exists(self, table_name: str) -> bool:
        rows = self._fetch(
            "SELECT name FROM sqlite_master WHERE type = 'table' AND name = ?",
            (table_name,),
        )
        return bool(rows)

    def create_table(self, schema: TableSchema) -> None:
        """Create the table for ``schema`` and add any columns it lacks."""
        with self.transaction():
            self._execute(schema.create_sql())
            existing = {
                row["name"]
                for row in self._fetch(
                    f"PRAGMA table_info({quote_identifier(schema.name)})"
                )
            }
            for column in schema.columns:
                if column.name not in existing:
                    logger.info(
                        "Adding column %s to %s.%s", column.name, self.name, schema.name
                    )
                    added = f"{quote_identifier(column.name)} {column.affinity}"
                    if column.default is not None:
                        added += f" DEFAULT {column.default}"
                    self._execute(
                        f"ALTER TABLE {quote_identifier(schema.name)} ADD COLUMN {added}"
                    )

    def drop_table(self, table_name: str) -> None:
        self._execute(f"DROP TABLE IF EXISTS {quote_identifier(table_name)}")

    # Rows

    def insert(
        self,
        records: Sequence[BaseModel],
        columns: Sequence[ColumnLike] | None = None,
        or_replace: bool = False,
        model: type[BaseModel] | None = None,
    ) -> int:
        """Insert records of one model, creating its table if needed.

        ``model`` lets an empty insert still create the table.

        Returns:
            Number of records written
        """
        if not records:
            if model is not None:
                self.create_table(schema_of(model))
            return 0
        model = type(records[0])
        if any(type(record) is not model for record in records):
            raise SchemaError("All records of one insert must share a model")

        schema = schema_of(model)
        names = schema.resolve_columns(_names(columns))
        verb = "INSERT OR REPLACE" if or_replace else "INSERT"
        sql = (
            f"{verb} INTO {quote_identifier(schema.name)} "
            f"({', '.join(quote_identifier(name) for name in names)}) "
            f"VALUES ({', '.join('?' for _ in names)})"
        )
        rows = [schema.encode(record, names) for record in records]

        with self.transaction():
            self.create_table(schema)
            with self._lock, self._translate(verb):
                self._ensure_connection().executemany(sql, rows)
        return len(rows)

    def insert_or_replace(
        self,
        records: Sequence[BaseModel],
        columns: Sequence[ColumnLike] | None = None,
        model: type[BaseModel] | None = None,
    ) -> int:
        return self.insert(records, columns=columns, or_replace=True, model=model)

    def delete(
        self,
        table_name: str,
        where: Condition | None = None,
        order_by: Sequence[OrderLike] | OrderLike | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> int:
        """Delete matching rows (all rows when ``where`` is None).

        Returns:
            Number of rows deleted
        """
        table = quote_identifier(table_name)
        clause, params = _row_filter(table, where, order_by, limit, offset)
        return self._execute(f"DELETE FROM {table}{clause}", params)

    def update(
        self,
        table_name: str,
        record: BaseModel,
        columns: Sequence[ColumnLike] | None = None,
        where: Condition | None = None,
        order_by: Sequence[OrderLike] | OrderLike | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> int:
        """Set ``columns`` (all when empty) of matching rows from ``record``.

        Returns:
            Number of rows updated
        """
        schema = schema_of(type(record))
        names = schema.resolve_columns(_names(columns))
        values = schema.encode(record, names)
        table = quote_identifier(table_name)
        assignments = ", ".join(f"{quote_identifier(name)} = ?" for name in names)
        clause, params = _row_filter(table, where, order_by, limit, offset)
        return self._execute(
            f"UPDATE {table} SET {assignments}{clause}", values + tuple(params)
        )

    def get_objects(
        self,
        model: type[ModelT],
        table_name: str | None = None,
        columns: Sequence[ColumnLike] | None = None,
        where: Condition | None = None,
        order_by: Sequence[OrderLike] | OrderLike | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[ModelT]:
        """Select rows and rebuild them as ``model`` instances."""
        schema = schema_of(model)
        names = schema.resolve_columns(_names(columns))
        table = quote_identifier(table_name or schema.name)
        selected = ", ".join(quote_identifier(name) for name in names)
        where_clause, params = where_sql(where)
        limit_clause, limit_params = limit_sql(limit, offset)
        rows = self._fetch(
            f"SELECT {selected} FROM {table}{where_clause}"
            f"{order_sql(order_by)}{limit_clause}",
            params + limit_params,
        )
        return [schema.decode(row) for row in rows]  # type: ignore[misc]

    def get_value(
        self,
        table_name: str,
        column: ColumnLike | ResultColumn,
        where: Condition | None = None,
        order_by: Sequence[OrderLike] | OrderLike | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Any:
        """Return the first column of the first matching row, or None."""
        where_clause, params = where_sql(where)
        limit_clause, limit_params = limit_sql(limit if limit is not None else 1, offset)
        with self._lock, self._translate("SELECT"):
            cursor = self._ensure_connection().execute(
                f"SELECT {result_sql(column)} FROM {quote_identifier(table_name)}"
                f"{where_clause}{order_sql(order_by)}{limit_clause}",
                params + limit_params,
            )
            row = cursor.fetchone()
        return row[0] if row else None


def _names(columns: Sequence[ColumnLike] | None) -> list[str] | None:
    if columns is None:
        return None
    return [column if isinstance(column, str) else column.name for column in columns]


def _row_filter(
    table: str,
    where: Condition | None,
    order_by: Sequence[OrderLike] | OrderLike | None,
    limit: int | None,
    offset: int | None,
) -> tuple[str, tuple[Any, ...]]:
    """WHERE clause for DELETE/UPDATE, windowed through rowid when needed.

    Stock SQLite builds reject ORDER BY/LIMIT on DELETE and UPDATE, so a
    window is expressed as a rowid subquery.
    """
    where_clause, params = where_sql(where)
    if limit is None and offset is None:
        return where_clause, params
    limit_clause, limit_params = limit_sql(limit, offset)
    return (
        f" WHERE rowid IN (SELECT rowid FROM {table}{where_clause}"
        f"{order_sql(order_by)}{limit_clause})",
        params + limit_params,
    )
