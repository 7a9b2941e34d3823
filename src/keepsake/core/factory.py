"""Factory for building the stores with one shared context.

Applications should call build_stores() once at startup and pass the result
(or its members) to the code that needs persistence.
"""

from dataclasses import dataclass
from pathlib import Path

from keyring.backend import KeyringBackend

from keepsake.core.context import PersistenceContext
from keepsake.storage.files import FileStore
from keepsake.storage.keychain import SecureStore
from keepsake.storage.preferences import PreferencesStore
from keepsake.storage.relational import RelationalStore


@dataclass(frozen=True)
class Stores:
    """One instance of each store, sharing a context."""

    context: PersistenceContext
    database: RelationalStore
    keychain: SecureStore
    preferences: PreferencesStore
    files: FileStore

    def close(self) -> None:
        self.database.close()


def build_stores(
    context: PersistenceContext | None = None,
    documents_dir: Path | str | None = None,
    namespace: str | None = None,
    keyring_backend: KeyringBackend | None = None,
) -> Stores:
    """
    Build every store from a single context.

    Args:
        context: Persistence context (defaults to one built from environment)
        documents_dir: Override for the documents directory
        namespace: Override for the namespace
        keyring_backend: Keyring backend for the secure store (defaults to platform)

    Returns:
        Fully wired Stores bundle
    """
    if context is None:
        context = PersistenceContext.from_env()
    if documents_dir is not None or namespace is not None:
        context = PersistenceContext(
            documents_dir=Path(documents_dir) if documents_dir else context.documents_dir,
            namespace=namespace or context.namespace,
            preferences_file=context.preferences_file,
            keyring_service=context.keyring_service,
        )

    return Stores(
        context=context,
        database=RelationalStore(context),
        keychain=SecureStore(context, backend=keyring_backend),
        preferences=PreferencesStore(context),
        files=FileStore(context),
    )
