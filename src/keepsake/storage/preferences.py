"""Application preferences stored in a property-list file.

Every read loads the file again and every write rewrites it, so the store
holds no cached values. Assigning ``None`` removes a key.
"""

from __future__ import annotations

import logging
import os
import plistlib
import tempfile
import threading
from pathlib import Path
from typing import Any
from xml.parsers.expat import ExpatError

from keepsake.core.context import PersistenceContext
from keepsake.storage.keys import StoreKey, raw_key

logger = logging.getLogger(__name__)


class PreferencesStore:
    """Subscriptable preferences: ``prefs[Key.THEME] = "dark"``."""

    def __init__(self, context: PersistenceContext, path: Path | str | None = None):
        """
        Initialize preferences store.

        Args:
            context: Persistence context providing namespace and default path
            path: Preferences file (defaults to the context's preferences path)
        """
        self.context = context
        self.path = Path(path) if path else context.preferences_path
        self._lock = threading.Lock()

    def unique_key(self, key: StoreKey) -> str:
        return self.context.unique_key(raw_key(key))

    def load(self) -> dict[str, Any]:
        """Load every stored preference."""
        if not self.path.exists():
            return {}
        try:
            with open(self.path, "rb") as f:
                data = plistlib.load(f)
        except (plistlib.InvalidFileException, ExpatError, ValueError, OSError) as exc:
            logger.error("Failed to load preferences from %s: %s", self.path, exc)
            return {}
        if not isinstance(data, dict):
            logger.error("Preferences file %s does not hold a dictionary", self.path)
            return {}
        return data

    def _save(self, data: dict[str, Any]) -> None:
        # Serialize first so an unsupported value leaves the file untouched
        payload = plistlib.dumps(data, fmt=plistlib.FMT_BINARY)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".preferences-")
        try:
            with os.fdopen(fd, "wb") as f:
                f.write(payload)
            os.replace(temp_path, self.path)
        except Exception:
            if os.path.exists(temp_path):
                os.unlink(temp_path)
            raise

    def __getitem__(self, key: StoreKey) -> Any:
        return self.load().get(self.unique_key(key))

    def __setitem__(self, key: StoreKey, value: Any) -> None:
        unique = self.unique_key(key)
        with self._lock:
            data = self.load()
            if value is None:
                if data.pop(unique, None) is None:
                    return
            else:
                data[unique] = value
            self._save(data)

    def __delitem__(self, key: StoreKey) -> None:
        self[key] = None

    def __contains__(self, key: StoreKey) -> bool:
        return self.unique_key(key) in self.load()

    def remove(self, key: StoreKey) -> bool:
        """Delete ``key``; False if it was not set."""
        if key not in self:
            return False
        del self[key]
        return True
