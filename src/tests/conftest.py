"""Shared test fixtures and configuration."""

from __future__ import annotations

import pytest
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from keepsake.core.context import PersistenceContext
from keepsake.storage.files import FileStore
from keepsake.storage.keychain import SecureStore
from keepsake.storage.preferences import PreferencesStore
from keepsake.storage.relational import RelationalStore

TEST_NAMESPACE = "TestApp"


class MemoryKeyring(KeyringBackend):
    """Keyring backend keeping passwords in a dict."""

    priority = 1

    def __init__(self):
        super().__init__()
        self.entries: dict[tuple[str, str], str] = {}

    def get_password(self, service, username):
        return self.entries.get((service, username))

    def set_password(self, service, username, password):
        self.entries[(service, username)] = password

    def delete_password(self, service, username):
        try:
            del self.entries[(service, username)]
        except KeyError:
            raise PasswordDeleteError(f"{service}/{username} not found") from None


class FailingKeyring(KeyringBackend):
    """Keyring backend whose every call fails."""

    priority = 1

    def get_password(self, service, username):
        raise KeyringError("locked")

    def set_password(self, service, username, password):
        raise KeyringError("locked")

    def delete_password(self, service, username):
        raise KeyringError("locked")


@pytest.fixture
def mock_env(monkeypatch, tmp_path):
    """Set up mock environment variables."""
    env_vars = {
        "KEEPSAKE_DOCUMENTS_DIR": str(tmp_path / "Documents"),
        "KEEPSAKE_NAMESPACE": TEST_NAMESPACE,
        "LOG_LEVEL": "DEBUG",
    }
    for key, value in env_vars.items():
        monkeypatch.setenv(key, value)
    return env_vars


@pytest.fixture
def context(tmp_path):
    """Persistence context rooted in a temp documents directory."""
    return PersistenceContext(documents_dir=tmp_path / "Documents", namespace=TEST_NAMESPACE)


@pytest.fixture
def relational_store(context):
    """RelationalStore whose handles are closed after the test."""
    store = RelationalStore(context)
    yield store
    store.close()


@pytest.fixture
def memory_keyring():
    return MemoryKeyring()


@pytest.fixture
def secure_store(context, memory_keyring):
    return SecureStore(context, backend=memory_keyring)


@pytest.fixture
def preferences(context):
    return PreferencesStore(context)


@pytest.fixture
def file_store(context):
    return FileStore(context)


@pytest.fixture
def failing_keyring():
    return FailingKeyring()
