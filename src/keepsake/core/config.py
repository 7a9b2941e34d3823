"""Configuration management for keepsake."""

import logging
import os
import sys
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

logger = logging.getLogger(__name__)


def get_env(key: str, default: str | None = None) -> str | None:
    """Get environment variable with optional default."""
    return os.getenv(key, default)


def get_env_int(key: str, default: int) -> int:
    """Get environment variable as integer."""
    value = os.getenv(key)
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(
            "%s=%r is not a valid integer, falling back to %s", key, value, default
        )
        return default


def get_env_bool(key: str, default: bool = False) -> bool:
    """Get environment variable as boolean."""
    value = os.getenv(key, "").lower()
    if value in ("true", "1", "yes"):
        return True
    if value in ("false", "0", "no"):
        return False
    if value:
        logger.warning(
            "%s=%r is not a valid boolean, falling back to %s", key, value, default
        )
    return default


def default_namespace() -> str:
    """Derive the application namespace from the running executable name."""
    executable = Path(sys.argv[0]).stem if sys.argv and sys.argv[0] else ""
    return executable or "keepsake"


# Root directory all stores live under (the application's documents directory)
DOCUMENTS_DIR = Path(
    get_env("KEEPSAKE_DOCUMENTS_DIR", os.path.expanduser("~/Documents"))
    or os.path.expanduser("~/Documents")
)

# Per-application prefix for database folders, keys and the file store
NAMESPACE = get_env("KEEPSAKE_NAMESPACE") or default_namespace()

# Optional overrides, resolved against the namespace when unset
PREFERENCES_FILE = get_env("KEEPSAKE_PREFERENCES_FILE")
KEYRING_SERVICE = get_env("KEEPSAKE_KEYRING_SERVICE")

# Directory name used by FileStore under the namespace folder
FILE_STORE_DIRNAME = "fileManager"

# Database file suffix
DATABASE_SUFFIX = ".db"

# Logging
LOG_LEVEL = get_env("LOG_LEVEL", "INFO")


def setup_logging() -> logging.Logger:
    """Configure and return logger."""
    logging.basicConfig(
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        level=getattr(logging, (LOG_LEVEL or "INFO").upper(), logging.INFO),
    )
    return logging.getLogger("keepsake")


def validate_environment() -> tuple[bool, str]:
    """
    Validate storage configuration.

    Returns:
        (is_valid, message) tuple
    """
    namespace = get_env("KEEPSAKE_NAMESPACE") or default_namespace()
    if namespace in (".", "..") or "/" in namespace or "\\" in namespace:
        return False, f"KEEPSAKE_NAMESPACE must be a plain folder name, got {namespace!r}"

    documents_dir = get_env("KEEPSAKE_DOCUMENTS_DIR")
    if documents_dir and Path(documents_dir).exists() and not Path(documents_dir).is_dir():
        return False, f"KEEPSAKE_DOCUMENTS_DIR is not a directory: {documents_dir}"

    return True, ""
