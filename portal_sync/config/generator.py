"""
Configuration file generator for portal/password synchronization.

Generates a default, commented configuration file for all options.
"""

import logging
from pathlib import Path

logger = logging.getLogger(__name__)


def generate_default_config() -> str:
    """
    Generate default YAML configuration with all options documented.

    Returns:
        String containing YAML configuration with comments
    """
    return """# Portal Password Sync Configuration
# ==================================
#
# Default options for portal-sync. CLI arguments override these values.
#
# To use this configuration:
#   1. Save as ~/.portal-sync/config.yaml (or custom location)
#   2. Uncomment and modify options as needed

# Storage
# -------

# SQLite database holding portals, passwords and activity logs
# Default: ~/.portal-sync/portal_sync.db
# database_path: /path/to/portal_sync.db


# Encryption
# ----------

# Environment variable holding the Fernet key (recommended)
# Generate a key with: portal-sync generate-key
# Default: PORTAL_SYNC_ENCRYPTION_KEY
# encryption_key_env: PORTAL_SYNC_ENCRYPTION_KEY

# Fernet key stored directly in this file (keep the file private)
# encryption_key: <base64 key>


# Logging
# -------

# Enable verbose output with detailed logging
# Default: false
# verbose: false

# Directory for daily log files
# Default: <project>/logs
# log_dir: ~/.portal-sync/logs

# Number of log files to keep (0 disables cleanup)
# Default: 10
# log_retention_count: 10


# Activity Log
# ------------

# Record one activity-log entry per sync call
# Default: true
# audit_enabled: true

# Write activity-log entries on a background thread
# Default: true
# audit_async: true


# Matching
# --------

# Require the stored password URL hostname to equal the portal hostname
# instead of merely containing it
# Default: false
# strict_domain_match: false

# Source page recorded on passwords when a request gives none
# default_source_page: health
"""


def save_config_file(
    config_path: Path, overwrite: bool = False
) -> tuple[bool, str | None]:
    """
    Save the default configuration file to a path.

    Creates parent directories and writes the file readable by the owner only.

    Args:
        config_path: Path where the config file should be saved
        overwrite: If True, overwrite an existing file

    Returns:
        Tuple of (success, error_message)
    """
    try:
        config_path = config_path.expanduser().resolve()

        if config_path.exists() and not overwrite:
            return (
                False,
                f"Configuration file already exists: {config_path}\n"
                "Use --force to overwrite.",
            )

        config_path.parent.mkdir(parents=True, mode=0o700, exist_ok=True)
        config_path.write_text(generate_default_config(), encoding="utf-8")
        config_path.chmod(0o600)

        logger.info(f"Created configuration file: {config_path}")
        return (True, None)

    except OSError as e:
        error_msg = f"Failed to create configuration file: {e}"
        logger.error(error_msg)
        return (False, error_msg)
