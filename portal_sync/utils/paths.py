"""
Path utilities for configuration directory resolution.

Provides consistent path resolution for the portal-sync configuration
directory across all modules.
"""

from __future__ import annotations

import os
from pathlib import Path

# Default configuration directory
DEFAULT_CONFIG_DIR = Path.home() / ".portal-sync"

# Environment variable for overriding config directory
CONFIG_DIR_ENV_VAR = "PORTAL_SYNC_CONFIG_DIR"

# Default database file name inside the configuration directory
DEFAULT_DATABASE_FILE = "portal_sync.db"


def resolve_config_dir(config_dir: Path | str | None = None) -> Path:
    """
    Resolve the configuration directory path.

    Priority:
        1. Explicit config_dir parameter (if provided)
        2. PORTAL_SYNC_CONFIG_DIR environment variable
        3. Default directory (~/.portal-sync)

    Args:
        config_dir: Optional explicit configuration directory path.

    Returns:
        Resolved Path to the configuration directory
    """
    if config_dir is not None:
        return Path(config_dir).expanduser().resolve()

    env_dir = os.environ.get(CONFIG_DIR_ENV_VAR)
    if env_dir:
        return Path(env_dir).expanduser().resolve()

    return DEFAULT_CONFIG_DIR.expanduser().resolve()


def default_database_path(config_dir: Path | str | None = None) -> Path:
    """Return the default SQLite database path inside the config directory."""
    return resolve_config_dir(config_dir) / DEFAULT_DATABASE_FILE
