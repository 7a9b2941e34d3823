"""Tests for keepsake.storage.files module."""

import logging

import pytest
from PIL import Image

from keepsake.core.errors import FileStoreError, UnsupportedValueError
from keepsake.storage.files import (
    BinaryFile,
    FileStore,
    ImageFile,
    StructuredFile,
    TextFile,
    as_file_value,
)

PNG_SIGNATURE = b"\x89PNG\r\n\x1a\n"


class TestWrite:
    """Tests for write-once semantics."""

    def test_existing_file_is_never_overwritten(self, file_store, caplog):
        caplog.set_level(logging.WARNING, logger="keepsake.storage.files")

        assert file_store.write("a.txt", "hello") is True
        assert file_store.write("a.txt", "world") is False

        assert file_store.read_text("a.txt") == "hello"
        assert "already exists" in caplog.text

    def test_files_live_under_namespace_folder(self, file_store, context):
        file_store.write("note", b"x")

        assert (context.documents_dir / "TestApp" / "fileManager" / "note").exists()

    def test_name_is_used_verbatim(self, file_store):
        file_store.write("plain", "text")

        assert file_store.exists("plain")
        assert not file_store.exists("plain.txt")

    def test_unsupported_value_writes_nothing(self, file_store, caplog):
        caplog.set_level(logging.WARNING, logger="keepsake.storage.files")

        assert file_store.write("n", 42) is False

        assert not file_store.exists("n")
        assert "Cannot store int" in caplog.text

    def test_encode_failure_leaves_placeholder(self, file_store):
        """The zero-byte placeholder stays when encoding fails."""
        assert file_store.write("bad.plist", {"key": object()}) is False

        assert file_store.exists("bad.plist")
        assert file_store.get_file_size("bad.plist") == 0


class TestSave:
    """Tests for the raising counterpart of write."""

    def test_save_returns_path(self, file_store):
        path = file_store.save("b.bin", b"data")

        assert path == file_store.path_for("b.bin")
        assert path.read_bytes() == b"data"

    def test_save_existing_raises(self, file_store):
        file_store.save("b.bin", b"data")

        with pytest.raises(FileExistsError):
            file_store.save("b.bin", b"other")

    def test_save_unsupported_raises(self, file_store):
        with pytest.raises(UnsupportedValueError):
            file_store.save("x", 1.5)

    def test_save_encode_failure_raises(self, file_store):
        with pytest.raises(FileStoreError):
            file_store.save("bad.plist", [object()])


class TestVariants:
    """Tests for value kinds and their encodings."""

    @pytest.mark.parametrize(
        "value,suffix",
        [
            (b"raw", ""),
            ("text", ".txt"),
            ([1, 2], ".plist"),
            ({"a": 1}, ".plist"),
            (Image.new("RGB", (1, 1)), ".jpg"),
            (42, None),
            (None, None),
        ],
    )
    def test_suffix_for(self, value, suffix):
        assert FileStore.suffix_for(value) == suffix

    def test_tagged_values_pass_through(self):
        value = TextFile("x")

        assert as_file_value(value) is value
        assert isinstance(as_file_value(bytearray(b"x")), BinaryFile)

    def test_text_is_utf8(self, file_store):
        file_store.write("t.txt", TextFile("grüße"))

        assert file_store.read("t.txt") == "grüße".encode("utf-8")

    def test_structured_is_xml_plist(self, file_store):
        file_store.write("s.plist", StructuredFile({"a": [1, 2]}))

        assert file_store.read("s.plist").startswith(b"<?xml")
        assert file_store.read_dictionary("s.plist") == {"a": [1, 2]}

    def test_image_is_always_png(self, file_store):
        image = Image.new("RGB", (4, 3), color=(255, 0, 0))

        assert file_store.write("photo.jpg", ImageFile(image)) is True

        assert file_store.read("photo.jpg").startswith(PNG_SIGNATURE)
        loaded = file_store.read_image("photo.jpg")
        assert loaded.size == (4, 3)
        assert loaded.getpixel((0, 0)) == (255, 0, 0)


class TestRead:
    def test_read_missing_is_none(self, file_store):
        assert file_store.read("missing") is None
        assert file_store.read_text("missing") is None
        assert file_store.read_image("missing") is None
        assert file_store.read_array("missing") is None
        assert file_store.read_dictionary("missing") is None

    def test_read_array_and_dictionary_check_shape(self, file_store):
        file_store.write("list.plist", ["a", "b"])
        file_store.write("dict.plist", {"k": "v"})

        assert file_store.read_array("list.plist") == ["a", "b"]
        assert file_store.read_dictionary("list.plist") is None
        assert file_store.read_dictionary("dict.plist") == {"k": "v"}
        assert file_store.read_array("dict.plist") is None

    def test_non_plist_reads_as_none(self, file_store):
        file_store.write("raw", b"\x00\x01 not a plist")

        assert file_store.read_array("raw") is None
        assert file_store.read_dictionary("raw") is None

    def test_non_image_reads_as_none(self, file_store):
        file_store.write("fake.jpg", b"not an image")

        assert file_store.read_image("fake.jpg") is None


class TestRemoveAndSize:
    def test_remove_existing(self, file_store):
        file_store.write("gone", b"x")

        assert file_store.remove("gone") is True
        assert not file_store.exists("gone")

    def test_remove_missing(self, file_store):
        assert file_store.remove("never") is False

    def test_size_in_kilobytes(self, file_store):
        file_store.write("big", b"\x00" * 2048)

        assert file_store.get_file_size("big") == 2.0

    def test_size_of_missing_file_is_zero(self, file_store):
        assert file_store.get_file_size("missing") == 0

    def test_remove_then_write_again(self, file_store):
        file_store.write("cycle", "one")
        file_store.remove("cycle")

        assert file_store.write("cycle", "two") is True
        assert file_store.read_text("cycle") == "two"
