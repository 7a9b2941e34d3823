"""Relational store facade.

Maps record models to tables inside named database files under
``<documents>/<namespace>/<name>.db`` and forwards every call to the
``Database`` handle for that name. Any failure is logged and reported as
``False`` (actions) or ``None`` (reads); nothing is raised to the caller.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections.abc import Callable, Sequence
from typing import Any, Generic, TypeVar

from pydantic import BaseModel

from keepsake.core.context import PersistenceContext
from keepsake.core.errors import PersistenceError
from keepsake.storage.db import Database
from keepsake.storage.expressions import ColumnLike, Condition, OrderLike, ResultColumn
from keepsake.storage.schema import schema_of

logger = logging.getLogger(__name__)

ModelT = TypeVar("ModelT", bound=BaseModel)

# Errors converted into False/None by the facade
_GUARDED = (PersistenceError, sqlite3.Error, OSError)


class RelationalStore:
    """CRUD facade over one database file per name."""

    def __init__(self, context: PersistenceContext):
        """
        Initialize relational store.

        Args:
            context: Persistence context providing the database directory
        """
        self.context = context
        self._databases: dict[str, Database] = {}
        self._lock = threading.Lock()

    def database(self, name: str) -> Database:
        """Get or lazily create the handle for database ``name``."""
        with self._lock:
            database = self._databases.get(name)
            if database is None:
                database = Database(self.context.database_path(name))
                self._databases[name] = database
            return database

    def close(self) -> None:
        """Close every open database handle."""
        with self._lock:
            databases = list(self._databases.values())
        for database in databases:
            database.close()

    def table(self, model: type[ModelT]) -> BoundTable[ModelT]:
        """Operations on ``model`` in a database named after its table."""
        return BoundTable(self, model)

    def insert(
        self,
        records: Sequence[BaseModel],
        database_name: str,
        columns: Sequence[ColumnLike] | None = None,
        model: type[BaseModel] | None = None,
    ) -> bool:
        """Create the record table if missing and insert ``records``.

        Pass ``model`` so an empty insert still creates the table.
        """
        try:
            count = self.database(database_name).insert(
                records, columns=columns, model=model
            )
        except _GUARDED as exc:
            logger.error("Insert into %s failed: %s", database_name, exc)
            return False
        logger.debug("Inserted %s record(s) into %s", count, database_name)
        return True

    def insert_or_replace(
        self,
        records: Sequence[BaseModel],
        database_name: str,
        columns: Sequence[ColumnLike] | None = None,
        model: type[BaseModel] | None = None,
    ) -> bool:
        """Like ``insert`` but rows with a conflicting key are replaced."""
        try:
            count = self.database(database_name).insert_or_replace(
                records, columns=columns, model=model
            )
        except _GUARDED as exc:
            logger.error("Insert-or-replace into %s failed: %s", database_name, exc)
            return False
        logger.debug("Wrote %s record(s) into %s", count, database_name)
        return True

    def delete(
        self,
        database_name: str,
        table_name: str,
        where: Condition | None = None,
        order_by: Sequence[OrderLike] | OrderLike | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> bool:
        """Delete matching rows; without ``where`` every row goes, the table stays."""
        try:
            self.database(database_name).delete(
                table_name, where=where, order_by=order_by, limit=limit, offset=offset
            )
        except _GUARDED as exc:
            logger.error("Delete from %s.%s failed: %s", database_name, table_name, exc)
            return False
        return True

    def delete_table(self, database_name: str, table_name: str) -> bool:
        """Drop ``table_name`` with its data."""
        try:
            self.database(database_name).drop_table(table_name)
        except _GUARDED as exc:
            logger.error("Drop of %s.%s failed: %s", database_name, table_name, exc)
            return False
        return True

    def delete_database(self, database_name: str) -> bool:
        """Remove the database file from disk."""
        with self._lock:
            database = self._databases.pop(database_name, None)
        if database is not None:
            database.close()
        path = self.context.database_path(database_name)
        try:
            path.unlink()
        except OSError as exc:
            logger.error("Cannot remove database %s: %s", path, exc)
            return False
        return True

    def update(
        self,
        database_name: str,
        table_name: str,
        columns: Sequence[ColumnLike] | None,
        record: BaseModel,
        where: Condition | None = None,
        order_by: Sequence[OrderLike] | OrderLike | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> bool:
        """Update ``columns`` (all when empty) of matching rows from ``record``."""
        try:
            self.database(database_name).update(
                table_name,
                record,
                columns=columns,
                where=where,
                order_by=order_by,
                limit=limit,
                offset=offset,
            )
        except _GUARDED as exc:
            logger.error("Update of %s.%s failed: %s", database_name, table_name, exc)
            return False
        return True

    def get(
        self,
        database_name: str,
        model: type[ModelT],
        table_name: str | None = None,
        columns: Sequence[ColumnLike] | None = None,
        where: Condition | None = None,
        order_by: Sequence[OrderLike] | OrderLike | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[ModelT] | None:
        """Matching records; ``[]`` for no match, ``None`` on engine failure."""
        try:
            return self.database(database_name).get_objects(
                model,
                table_name=table_name,
                columns=columns,
                where=where,
                order_by=order_by,
                limit=limit,
                offset=offset,
            )
        except _GUARDED as exc:
            logger.error("Select from %s failed: %s", database_name, exc)
            return None

    def get_value(
        self,
        database_name: str,
        table_name: str,
        column: ColumnLike | ResultColumn,
        where: Condition | None = None,
        order_by: Sequence[OrderLike] | OrderLike | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Any:
        """Single scalar from the first matching row, ``None`` on error or absence."""
        try:
            return self.database(database_name).get_value(
                table_name,
                column,
                where=where,
                order_by=order_by,
                limit=limit,
                offset=offset,
            )
        except _GUARDED as exc:
            logger.error("Value query on %s.%s failed: %s", database_name, table_name, exc)
            return None

    def run(self, database_name: str, transaction: Callable[[Database], Any]) -> None:
        """Execute ``transaction`` atomically; failures roll back and are logged."""
        try:
            self.database(database_name).run(transaction)
        except Exception:
            logger.error("Transaction on %s rolled back", database_name, exc_info=True)

    def set_cipher(self, database_name: str, key: str | bytes | None) -> None:
        """Set or clear the encryption key of ``database_name``."""
        try:
            self.database(database_name).set_cipher(key)
        except _GUARDED as exc:
            logger.error("Cannot set cipher on %s: %s", database_name, exc)


class BoundTable(Generic[ModelT]):
    """Record-centric view: database and table are both named after the model.

    Mirrors the per-record convenience API (``Sample.get_objects()``,
    ``sample.insert()``) without relying on global state.
    """

    def __init__(self, store: RelationalStore, model: type[ModelT]):
        self.store = store
        self.model = model
        self.name = schema_of(model).name

    def insert(
        self,
        records: ModelT | Sequence[ModelT],
        columns: Sequence[ColumnLike] | None = None,
    ) -> bool:
        return self.store.insert(
            _as_list(records), self.name, columns=columns, model=self.model
        )

    def insert_or_replace(
        self,
        records: ModelT | Sequence[ModelT],
        columns: Sequence[ColumnLike] | None = None,
    ) -> bool:
        return self.store.insert_or_replace(
            _as_list(records), self.name, columns=columns, model=self.model
        )

    def delete(
        self,
        where: Condition | None = None,
        order_by: Sequence[OrderLike] | OrderLike | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> bool:
        return self.store.delete(
            self.name, self.name, where=where, order_by=order_by, limit=limit, offset=offset
        )

    def delete_table(self) -> bool:
        return self.store.delete_table(self.name, self.name)

    def delete_database(self) -> bool:
        return self.store.delete_database(self.name)

    def update(
        self,
        record: ModelT,
        columns: Sequence[ColumnLike] | None = None,
        where: Condition | None = None,
        order_by: Sequence[OrderLike] | OrderLike | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> bool:
        return self.store.update(
            self.name,
            self.name,
            columns,
            record,
            where=where,
            order_by=order_by,
            limit=limit,
            offset=offset,
        )

    def get_objects(
        self,
        columns: Sequence[ColumnLike] | None = None,
        where: Condition | None = None,
        order_by: Sequence[OrderLike] | OrderLike | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> list[ModelT] | None:
        return self.store.get(
            self.name,
            self.model,
            columns=columns,
            where=where,
            order_by=order_by,
            limit=limit,
            offset=offset,
        )

    def get_object(
        self,
        where: Condition,
        columns: Sequence[ColumnLike] | None = None,
    ) -> ModelT | None:
        """First record matching ``where``."""
        objects = self.get_objects(columns=columns, where=where, limit=1)
        return objects[0] if objects else None

    def get_value(
        self,
        column: ColumnLike | ResultColumn,
        where: Condition | None = None,
        order_by: Sequence[OrderLike] | OrderLike | None = None,
        limit: int | None = None,
        offset: int | None = None,
    ) -> Any:
        return self.store.get_value(
            self.name,
            self.name,
            column,
            where=where,
            order_by=order_by,
            limit=limit,
            offset=offset,
        )

    def run(self, transaction: Callable[[Database], Any]) -> None:
        self.store.run(self.name, transaction)

    def set_cipher(self, password: str | bytes | None) -> None:
        """Must run before any other operation on an encrypted table."""
        self.store.set_cipher(self.name, password)


def _as_list(records: BaseModel | Sequence[BaseModel]) -> list[BaseModel]:
    if isinstance(records, BaseModel):
        return [records]
    return list(records)
