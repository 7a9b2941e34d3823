"""Process-wide persistence context.

One ``PersistenceContext`` is built at startup and handed to every store.
It carries the documents directory and the namespace and derives all of the
on-disk locations from them:

- databases: ``<documents>/<namespace>/<name>.db``
- file store: ``<documents>/<namespace>/fileManager/``
- preferences: ``<documents>/<namespace>/preferences.plist``
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from keepsake.core import config


@dataclass(frozen=True)
class PersistenceContext:
    """Namespace and root directory shared by all stores."""

    documents_dir: Path
    namespace: str
    preferences_file: Path | None = None
    keyring_service: str | None = None

    def __post_init__(self) -> None:
        if not self.namespace:
            raise ValueError("namespace must not be empty")
        object.__setattr__(self, "documents_dir", Path(self.documents_dir))
        if self.preferences_file is not None:
            object.__setattr__(self, "preferences_file", Path(self.preferences_file))

    @classmethod
    def from_env(cls) -> PersistenceContext:
        """Build a context from environment configuration."""
        return cls(
            documents_dir=config.DOCUMENTS_DIR,
            namespace=config.NAMESPACE,
            preferences_file=(
                Path(config.PREFERENCES_FILE) if config.PREFERENCES_FILE else None
            ),
            keyring_service=config.KEYRING_SERVICE,
        )

    @property
    def root(self) -> Path:
        """Namespace folder under the documents directory."""
        return self.documents_dir / self.namespace

    def database_path(self, name: str) -> Path:
        """Path of the database file called ``name``."""
        return self.root / f"{name}{config.DATABASE_SUFFIX}"

    @property
    def file_store_dir(self) -> Path:
        return self.root / config.FILE_STORE_DIRNAME

    @property
    def preferences_path(self) -> Path:
        if self.preferences_file is not None:
            return self.preferences_file
        return self.root / "preferences.plist"

    @property
    def service_name(self) -> str:
        """Keyring service the secure store files entries under."""
        return self.keyring_service or self.namespace

    def unique_key(self, raw_key: str) -> str:
        """Namespaced form of a store key."""
        return f"{self.namespace}.{raw_key}"
