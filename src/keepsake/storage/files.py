"""Named file storage under ``<documents>/<namespace>/fileManager/``.

Values are one of four kinds, each with its conventional suffix:

========================  ==========  ======================
kind                      suffix      on disk
========================  ==========  ======================
``BinaryFile`` (bytes)    ``""``      raw bytes
``TextFile`` (str)        ``.txt``    UTF-8 text
``StructuredFile``        ``.plist``  XML property list
``ImageFile``             ``.jpg``    PNG data (always)
========================  ==========  ======================

The suffix is informational; files are stored under the exact name the
caller gives. Existing files are never overwritten.
"""

from __future__ import annotations

import io
import logging
import plistlib
from dataclasses import dataclass
from pathlib import Path
from typing import Any, ClassVar
from xml.parsers.expat import ExpatError

from PIL import Image, UnidentifiedImageError

from keepsake.core.context import PersistenceContext
from keepsake.core.errors import FileStoreError, UnsupportedValueError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class BinaryFile:
    data: bytes
    suffix: ClassVar[str] = ""

    def encode(self) -> bytes:
        return bytes(self.data)


@dataclass(frozen=True)
class TextFile:
    text: str
    suffix: ClassVar[str] = ".txt"

    def encode(self) -> bytes:
        return self.text.encode("utf-8")


@dataclass(frozen=True)
class StructuredFile:
    value: list | dict
    suffix: ClassVar[str] = ".plist"

    def encode(self) -> bytes:
        return plistlib.dumps(self.value, fmt=plistlib.FMT_XML)


@dataclass(frozen=True)
class ImageFile:
    image: Image.Image
    suffix: ClassVar[str] = ".jpg"

    def encode(self) -> bytes:
        buffer = io.BytesIO()
        self.image.save(buffer, format="PNG")
        return buffer.getvalue()


FileValue = BinaryFile | TextFile | StructuredFile | ImageFile


def as_file_value(value: Any) -> FileValue | None:
    """Wrap a raw value in its file kind, or None if unsupported."""
    if isinstance(value, (BinaryFile, TextFile, StructuredFile, ImageFile)):
        return value
    if isinstance(value, (list, dict)):
        return StructuredFile(value)
    if isinstance(value, str):
        return TextFile(value)
    if isinstance(value, Image.Image):
        return ImageFile(value)
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BinaryFile(bytes(value))
    return None


class FileStore:
    """Write-once named files in the application's file folder."""

    def __init__(self, context: PersistenceContext):
        """
        Initialize file store.

        Args:
            context: Persistence context providing the storage directory
        """
        self.context = context

    @property
    def directory(self) -> Path:
        return self.context.file_store_dir

    def path_for(self, file_name: str) -> Path:
        return self.directory / file_name

    def exists(self, file_name: str) -> bool:
        return self.path_for(file_name).exists()

    @staticmethod
    def suffix_for(value: Any) -> str | None:
        """Suffix matching the kind of ``value``; None if unsupported."""
        file_value = as_file_value(value)
        return file_value.suffix if file_value is not None else None

    def save(self, file_name: str, value: Any) -> Path:
        """Write ``value`` to a new file, raising on any failure.

        Raises:
            UnsupportedValueError: value is not one of the supported kinds
            FileExistsError: a file already exists under ``file_name``
            FileStoreError: the value could not be encoded or written
        """
        file_value = as_file_value(value)
        if file_value is None:
            raise UnsupportedValueError(
                f"Cannot store {type(value).__name__} in the file store"
            )

        path = self.path_for(file_name)
        if path.exists():
            raise FileExistsError(f"File already exists: {path}")

        path.parent.mkdir(parents=True, exist_ok=True)
        path.touch()
        try:
            payload = file_value.encode()
            path.write_bytes(payload)
        except (TypeError, ValueError, OverflowError, OSError) as exc:
            raise FileStoreError(f"Failed to write {file_name}: {exc}") from exc
        logger.debug("Wrote %s (%s bytes)", path, len(payload))
        return path

    def write(self, file_name: str, value: Any) -> bool:
        """Write ``value`` to a new file; False if it exists or cannot be stored."""
        try:
            self.save(file_name, value)
        except UnsupportedValueError as exc:
            logger.warning("%s", exc)
            return False
        except FileExistsError:
            logger.warning("File already exists: %s", file_name)
            return False
        except (FileStoreError, OSError) as exc:
            logger.error("%s", exc)
            return False
        return True

    def read(self, file_name: str) -> bytes | None:
        """Raw contents, or None if the file is absent."""
        path = self.path_for(file_name)
        if not path.exists():
            return None
        try:
            return path.read_bytes()
        except OSError as exc:
            logger.error("Failed to read %s: %s", path, exc)
            return None

    def read_text(self, file_name: str) -> str | None:
        data = self.read(file_name)
        if data is None:
            return None
        try:
            return data.decode("utf-8")
        except UnicodeDecodeError:
            logger.error("%s is not UTF-8 text", file_name)
            return None

    def read_image(self, file_name: str) -> Image.Image | None:
        data = self.read(file_name)
        if data is None:
            return None
        try:
            image = Image.open(io.BytesIO(data))
            image.load()
        except (UnidentifiedImageError, OSError) as exc:
            logger.error("%s is not an image: %s", file_name, exc)
            return None
        return image

    def _read_structured(self, file_name: str) -> Any:
        data = self.read(file_name)
        if data is None:
            return None
        try:
            return plistlib.loads(data)
        except (plistlib.InvalidFileException, ExpatError, ValueError) as exc:
            logger.debug("%s is not a property list: %s", file_name, exc)
            return None

    def read_array(self, file_name: str) -> list | None:
        """Decode a stored list, None if absent or not a list."""
        value = self._read_structured(file_name)
        return value if isinstance(value, list) else None

    def read_dictionary(self, file_name: str) -> dict | None:
        """Decode a stored dictionary, None if absent or not a dictionary."""
        value = self._read_structured(file_name)
        return value if isinstance(value, dict) else None

    def remove(self, file_name: str) -> bool:
        """Delete the file if present; removal errors are only logged."""
        path = self.path_for(file_name)
        if not path.exists():
            return False
        try:
            path.unlink()
        except OSError as exc:
            logger.error("Failed to remove %s: %s", path, exc)
        return True

    def get_file_size(self, file_name: str) -> float:
        """Size in kilobytes, 0 if the file is absent or unreadable."""
        path = self.path_for(file_name)
        if not path.exists():
            return 0.0
        try:
            size = path.stat().st_size
        except OSError:
            return 0.0
        return size / 1024
