"""
Typed runtime settings for the portal/password sync service.

Settings are built from the YAML configuration dictionary returned by
ConfigLoader. The encryption key may be given directly in the file or,
preferably, through the environment variable named by
``encryption_key_env``.
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any

from portal_sync.config.loader import ConfigError, ConfigLoader
from portal_sync.utils.paths import default_database_path, resolve_config_dir

logger = logging.getLogger(__name__)

# Default environment variable holding the Fernet key
DEFAULT_ENCRYPTION_KEY_ENV = "PORTAL_SYNC_ENCRYPTION_KEY"

# Default number of daily log files to keep
DEFAULT_LOG_RETENTION_COUNT = 10


@dataclass
class ServiceSettings:
    """
    Runtime settings for PortalPasswordSync and the CLI.

    Attributes:
        database_path: SQLite database file (or ':memory:')
        encryption_key: Fernet key given directly in the config file
        encryption_key_env: Environment variable consulted for the key
        verbose: Enable DEBUG logging
        log_dir: Directory for daily log files, None for the project default
        log_retention_count: Number of log files to keep (0 disables cleanup)
        audit_enabled: Write activity-log rows for sync calls
        audit_async: Dispatch activity-log writes on a background thread
        strict_domain_match: Require hostname equality in fuzzy password match
        default_source_page: Source page used when a request gives none

    Usage:
        settings = ServiceSettings.from_dict(loader.load_and_validate())
        settings.require_runtime()
        key = settings.resolve_encryption_key()
    """

    database_path: str | None = None
    encryption_key: str | None = None
    encryption_key_env: str = DEFAULT_ENCRYPTION_KEY_ENV
    verbose: bool = False
    log_dir: str | None = None
    log_retention_count: int = DEFAULT_LOG_RETENTION_COUNT
    audit_enabled: bool = True
    audit_async: bool = True
    strict_domain_match: bool = False
    default_source_page: str | None = None

    @classmethod
    def from_dict(
        cls, data: dict[str, Any] | None, config_dir: Path | str | None = None
    ) -> ServiceSettings:
        """
        Create settings from a configuration dictionary.

        A missing ``database_path`` defaults to ``portal_sync.db`` inside the
        configuration directory.

        Args:
            data: Validated configuration dictionary, or None
            config_dir: Configuration directory used for the default database

        Returns:
            ServiceSettings instance

        Raises:
            ConfigError: If the dictionary is not valid
        """
        data = dict(data or {})
        ConfigLoader(config_dir=resolve_config_dir(config_dir)).validate(data)

        database_path = data.get("database_path")
        if database_path is None:
            database_path = str(default_database_path(config_dir))

        return cls(
            database_path=database_path,
            encryption_key=data.get("encryption_key"),
            encryption_key_env=data.get(
                "encryption_key_env", DEFAULT_ENCRYPTION_KEY_ENV
            ),
            verbose=data.get("verbose", False),
            log_dir=data.get("log_dir"),
            log_retention_count=data.get(
                "log_retention_count", DEFAULT_LOG_RETENTION_COUNT
            ),
            audit_enabled=data.get("audit_enabled", True),
            audit_async=data.get("audit_async", True),
            strict_domain_match=data.get("strict_domain_match", False),
            default_source_page=data.get("default_source_page"),
        )

    def resolve_encryption_key(self) -> str | None:
        """
        Return the encryption key, preferring the environment variable.

        Returns:
            The key string, or None if neither source provides one
        """
        env_value = os.environ.get(self.encryption_key_env, "").strip()
        if env_value:
            return env_value
        if self.encryption_key and self.encryption_key.strip():
            return self.encryption_key.strip()
        return None

    def require_runtime(self) -> str:
        """
        Check that the settings can construct a working service.

        Returns:
            The resolved encryption key

        Raises:
            ConfigError: If the database path or encryption key is missing
        """
        if not self.database_path or not self.database_path.strip():
            raise ConfigError("database_path is not configured")

        key = self.resolve_encryption_key()
        if key is None:
            raise ConfigError(
                f"No encryption key configured. Set ${self.encryption_key_env} "
                "or 'encryption_key' in the configuration file "
                "(generate one with 'portal-sync generate-key')."
            )
        return key

    @property
    def log_path(self) -> Path | None:
        """Log directory as a Path, or None for the default."""
        return Path(self.log_dir).expanduser() if self.log_dir else None

    def to_dict(self) -> dict[str, Any]:
        """
        Convert to dictionary format with the encryption key masked.

        Returns:
            Dictionary representation safe to print
        """
        return {
            "database_path": self.database_path,
            "encryption_key": "[REDACTED]" if self.encryption_key else None,
            "encryption_key_env": self.encryption_key_env,
            "verbose": self.verbose,
            "log_dir": self.log_dir,
            "log_retention_count": self.log_retention_count,
            "audit_enabled": self.audit_enabled,
            "audit_async": self.audit_async,
            "strict_domain_match": self.strict_domain_match,
            "default_source_page": self.default_source_page,
        }


def load_settings(
    config_dir: Path | str | None = None, config_file: Path | str | None = None
) -> ServiceSettings:
    """
    Load and validate settings from the YAML configuration file.

    Args:
        config_dir: Configuration directory (defaults to ~/.portal-sync)
        config_file: Explicit configuration file path, overriding config_dir

    Returns:
        ServiceSettings instance (defaults when no file exists)

    Raises:
        ConfigError: If the file cannot be parsed or is invalid
    """
    loader = ConfigLoader(config_dir=Path(config_dir) if config_dir else None)
    if config_file:
        data = loader.load_from_file(config_file)
        if data:
            loader.validate(data)
    else:
        data = loader.load_and_validate()

    settings = ServiceSettings.from_dict(data, config_dir=loader.config_dir)
    logger.debug(f"Using database: {settings.database_path}")
    return settings
