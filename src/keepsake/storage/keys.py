"""Store keys for the secure store and preferences.

A key is either a plain string or an ``Enum`` member with a string value,
typically a ``StrEnum`` declared by the application::

    class Key(StrEnum):
        TOKEN = "token"

The stored form is ``"<namespace>.<value>"``. Uniqueness comes only from the
namespace; nothing checks for collisions.
"""

from enum import Enum
from typing import TypeAlias

StoreKey: TypeAlias = str | Enum


def raw_key(key: StoreKey) -> str:
    """Return the un-namespaced string value of a key."""
    if isinstance(key, Enum):
        value = key.value
        if not isinstance(value, str):
            raise TypeError(f"Enum key {key!r} must have a string value")
        return value
    if isinstance(key, str):
        return key
    raise TypeError(f"Unsupported key type: {type(key).__name__}")
