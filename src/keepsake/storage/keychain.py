"""Secure store backed by the OS keyring.

Values are kept as keyring passwords under the service named after the
namespace, one entry per namespaced key. Only ``str``, ``bool`` and
``bytes`` can be stored:

- strings are stored verbatim,
- booleans as the single characters ``"\\x01"`` / ``"\\x00"``,
- bytes as base64 behind a marker prefix.

Reading tries string, then bool, then bytes. Because booleans share the
string channel, the empty string and the two boolean characters are never
returned as strings.
"""

from __future__ import annotations

import base64
import binascii
import logging
from typing import Any

import keyring
from keyring.backend import KeyringBackend
from keyring.errors import KeyringError, PasswordDeleteError

from keepsake.core.context import PersistenceContext
from keepsake.core.errors import UnsupportedValueError
from keepsake.storage.keys import StoreKey, raw_key

logger = logging.getLogger(__name__)

TRUE_VALUE = "\x01"
FALSE_VALUE = "\x00"
BINARY_PREFIX = "\x1bkeepsake-b64:"

# Stored strings that never read back as strings
ABSENT_SENTINELS = frozenset({"", TRUE_VALUE, FALSE_VALUE})


def encode_value(value: Any) -> str:
    """Encode a supported value into its keyring string form."""
    if isinstance(value, bool):
        return TRUE_VALUE if value else FALSE_VALUE
    if isinstance(value, str):
        return value
    if isinstance(value, (bytes, bytearray, memoryview)):
        return BINARY_PREFIX + base64.b64encode(bytes(value)).decode("ascii")
    raise UnsupportedValueError(
        f"Secure store only accepts str, bool or bytes, got {type(value).__name__}"
    )


def _as_string(stored: str) -> str | None:
    if stored in ABSENT_SENTINELS or stored.startswith(BINARY_PREFIX):
        return None
    return stored


def _as_bool(stored: str) -> bool | None:
    if stored == TRUE_VALUE:
        return True
    if stored == FALSE_VALUE:
        return False
    return None


def _as_bytes(stored: str) -> bytes | None:
    if not stored.startswith(BINARY_PREFIX):
        return None
    try:
        return base64.b64decode(stored[len(BINARY_PREFIX) :], validate=True)
    except (binascii.Error, ValueError):
        logger.warning("Ignoring malformed binary entry in secure store")
        return None


class SecureStore:
    """Subscriptable credential store: ``store[Key.TOKEN] = "secret"``."""

    def __init__(
        self,
        context: PersistenceContext,
        backend: KeyringBackend | None = None,
    ):
        """
        Initialize secure store.

        Args:
            context: Persistence context providing namespace and service name
            backend: Keyring backend (defaults to the platform keyring)
        """
        self.context = context
        self._backend = backend

    @property
    def backend(self) -> KeyringBackend:
        """Get keyring backend, resolving the platform default on first use."""
        if self._backend is None:
            self._backend = keyring.get_keyring()
        return self._backend

    def unique_key(self, key: StoreKey) -> str:
        return self.context.unique_key(raw_key(key))

    def _get_stored(self, key: StoreKey) -> str | None:
        try:
            return self.backend.get_password(self.context.service_name, self.unique_key(key))
        except KeyringError as exc:
            logger.error("Keyring read of %s failed: %s", raw_key(key), exc)
            return None

    def get_string(self, key: StoreKey) -> str | None:
        stored = self._get_stored(key)
        return _as_string(stored) if stored is not None else None

    def get_bool(self, key: StoreKey) -> bool | None:
        stored = self._get_stored(key)
        return _as_bool(stored) if stored is not None else None

    def get_data(self, key: StoreKey) -> bytes | None:
        stored = self._get_stored(key)
        return _as_bytes(stored) if stored is not None else None

    def __getitem__(self, key: StoreKey) -> str | bool | bytes | None:
        stored = self._get_stored(key)
        if stored is None:
            return None
        for decode in (_as_string, _as_bool, _as_bytes):
            value = decode(stored)
            if value is not None:
                return value
        return None

    def __setitem__(self, key: StoreKey, value: str | bool | bytes) -> None:
        encoded = encode_value(value)
        try:
            self.backend.set_password(
                self.context.service_name, self.unique_key(key), encoded
            )
        except KeyringError as exc:
            logger.error("Keyring write of %s failed: %s", raw_key(key), exc)

    def __delitem__(self, key: StoreKey) -> None:
        self.remove(key)

    def __contains__(self, key: StoreKey) -> bool:
        return self[key] is not None

    def remove(self, key: StoreKey) -> bool:
        """Delete the entry for ``key``; False if there was none."""
        try:
            self.backend.delete_password(self.context.service_name, self.unique_key(key))
        except PasswordDeleteError:
            return False
        except KeyringError as exc:
            logger.error("Keyring delete of %s failed: %s", raw_key(key), exc)
            return False
        return True
