"""Tests for keepsake.storage.db module (the raising layer)."""

import sqlite3
import sys

import pytest
from pydantic import BaseModel

from keepsake.core.errors import CipherError, DatabaseError, SchemaError
from keepsake.storage.db import Database, normalize_cipher_key
from keepsake.storage.expressions import Column, count_all
from keepsake.storage.schema import TableSchema, table


@table("notes", primary_key="identifier", autoincrement=True)
class Note(BaseModel):
    identifier: int | None = None
    body: str


class NoteV1(BaseModel):
    body: str


class NoteV2(BaseModel):
    body: str
    pinned: bool = False


@pytest.fixture
def database(tmp_path):
    db = Database(tmp_path / "App" / "notes.db")
    yield db
    db.close()


class TestConnection:
    def test_file_created_lazily(self, tmp_path):
        db = Database(tmp_path / "App" / "lazy.db")
        assert not db.path.exists()

        db.table_exists("x")

        assert db.path.exists()
        assert db.name == "lazy"
        db.close()

    def test_close_then_reopen(self, database):
        database.insert([Note(body="a")])
        database.close()

        assert database.get_value("notes", count_all()) == 1


class TestErrors:
    """Engine failures surface as typed errors."""

    def test_missing_table_raises_database_error(self, database):
        with pytest.raises(DatabaseError) as excinfo:
            database.get_objects(Note)

        assert isinstance(excinfo.value.__cause__, sqlite3.OperationalError)

    def test_unknown_column_raises_schema_error(self, database):
        with pytest.raises(SchemaError):
            database.get_objects(Note, columns=["nope"])

    def test_mixed_models_raise_schema_error(self, database):
        with pytest.raises(SchemaError):
            database.insert([Note(body="a"), NoteV1(body="b")])

    def test_constraint_violation_raises_database_error(self, database):
        database.insert([Note(identifier=1, body="a")])

        with pytest.raises(DatabaseError):
            database.insert([Note(identifier=1, body="b")])

    def test_insert_empty_is_noop(self, database):
        assert database.insert([]) == 0
        assert database.table_exists("notes") is False

    def test_insert_empty_with_model_creates_table(self, database):
        assert database.insert([], model=Note) == 0
        assert database.table_exists("notes") is True


class TestTables:
    def test_create_and_drop(self, database):
        database.create_table(TableSchema.from_model(NoteV1, name="t"))
        assert database.table_exists("t")

        database.drop_table("t")
        database.drop_table("t")

        assert not database.table_exists("t")

    def test_new_fields_are_added_as_columns(self, database, caplog):
        """A model gaining a field migrates the existing table."""
        v1 = TableSchema.from_model(NoteV1, name="versioned")
        v2 = TableSchema.from_model(NoteV2, name="versioned")
        database.create_table(v1)
        database._execute('INSERT INTO "versioned" ("body") VALUES (?)', ("kept",))
        caplog.set_level("INFO", logger="keepsake.storage.db")

        database.create_table(v2)

        assert "Adding column pinned" in caplog.text
        columns = {
            row["name"] for row in database._fetch('PRAGMA table_info("versioned")')
        }
        assert columns == {"body", "pinned"}
        kept = database.get_objects(NoteV2, table_name="versioned")
        assert [(n.body, n.pinned) for n in kept] == [("kept", False)]

    def test_autoincrement_assigns_keys(self, database):
        database.insert([Note(body="a"), Note(body="b")])

        notes = database.get_objects(Note, order_by="identifier")

        assert [n.identifier for n in notes] == [1, 2]


class TestRowCounts:
    def test_delete_and_update_return_counts(self, database):
        database.insert([Note(body=str(i)) for i in range(5)])

        assert database.update("notes", Note(body="x"), columns=["body"], limit=2) == 2
        assert database.delete("notes", where=Column("body") == "x") == 2
        assert database.delete("notes") == 3

    def test_insert_returns_count(self, database):
        assert database.insert([Note(body="a"), Note(body="b")]) == 2


class TestTransactions:
    def test_exception_rolls_back_and_propagates(self, database):
        database.insert([Note(body="keep")])

        with pytest.raises(RuntimeError):
            with database.transaction():
                database.delete("notes")
                raise RuntimeError("boom")

        assert database.get_value("notes", count_all()) == 1

    def test_nested_failure_rolls_back_only_inner_block(self, database):
        with database.transaction():
            database.insert([Note(body="outer")])
            with pytest.raises(ValueError):
                with database.transaction():
                    database.insert([Note(body="inner")])
                    raise ValueError("inner")

        assert [n.body for n in database.get_objects(Note)] == ["outer"]

    def test_run_returns_body_result(self, database):
        result = database.run(lambda db: db.insert([Note(body="a")]))

        assert result == 1

    def test_handle_usable_after_rollback(self, database):
        def body(db):
            db.insert([Note(body="a")])
            raise RuntimeError("body failed")

        with pytest.raises(RuntimeError):
            database.run(body)

        database.insert([Note(body="b")])
        assert database.get_value("notes", "body") == "b"

    def test_failed_commit_rolls_back(self, tmp_path):
        """A COMMIT blocked by another reader leaves no open transaction."""
        database = Database(tmp_path / "App" / "notes.db", timeout=0.1)
        database.insert([Note(body="a")])
        reader = sqlite3.connect(database.path, isolation_level=None)
        try:
            reader.execute("BEGIN")
            reader.execute('SELECT * FROM "notes"').fetchall()

            with pytest.raises(DatabaseError, match="COMMIT"):
                database.insert([Note(body="b")])
        finally:
            reader.execute("ROLLBACK")
            reader.close()

        database.insert([Note(body="c")])
        notes = database.get_objects(Note, order_by="identifier")
        assert [n.body for n in notes] == ["a", "c"]
        database.close()


class TestCipherKeys:
    """Cipher key validation does not need SQLCipher installed."""

    def test_passphrase_and_raw_key_accepted(self):
        assert normalize_cipher_key("secret") == "secret"
        assert normalize_cipher_key(bytearray(32)) == bytes(32)
        assert normalize_cipher_key(None) is None

    def test_short_bytes_are_a_passphrase(self):
        assert normalize_cipher_key(b"secret") == "secret"

    @pytest.mark.parametrize("key", ["", b"", b"\xff\xfe", b"a\x00b", 42])
    def test_invalid_keys_rejected(self, key):
        with pytest.raises(CipherError):
            normalize_cipher_key(key)

    def test_rejected_key_blocks_plaintext_open(self, database):
        with pytest.raises(CipherError):
            database.set_cipher(b"\xff\xfe")

        with pytest.raises(CipherError, match="Cipher not set"):
            database.table_exists("notes")
        assert not database.path.exists()

        database.set_cipher(None)
        assert database.table_exists("notes") is False

    def test_set_cipher_marks_encrypted(self, database):
        database.set_cipher("secret")
        assert database.is_encrypted

        database.set_cipher(None)
        assert not database.is_encrypted

    def test_missing_sqlcipher_raises_cipher_error(self, database, monkeypatch):
        monkeypatch.setitem(sys.modules, "sqlcipher3", None)
        database.set_cipher("secret")

        with pytest.raises(CipherError, match="SQLCipher"):
            database.table_exists("notes")
