"""
portal_sync.config - Configuration management module

Contains configuration loading, validation, and default settings.
"""

from portal_sync.config.generator import generate_default_config, save_config_file
from portal_sync.config.loader import ConfigError, ConfigLoader
from portal_sync.config.settings import ServiceSettings, load_settings

__all__ = [
    "ConfigError",
    "ConfigLoader",
    "ServiceSettings",
    "generate_default_config",
    "load_settings",
    "save_config_file",
]
