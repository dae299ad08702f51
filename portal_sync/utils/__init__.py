"""
portal_sync.utils - Utility module

Common utilities including URL normalization and path resolution.
"""

from portal_sync.utils.normalization import (
    extract_domain,
    merge_family_tags,
    normalize_provider_key,
    normalize_url,
    unique_ids,
)
from portal_sync.utils.paths import DEFAULT_CONFIG_DIR, resolve_config_dir

__all__ = [
    "DEFAULT_CONFIG_DIR",
    "extract_domain",
    "merge_family_tags",
    "normalize_provider_key",
    "normalize_url",
    "resolve_config_dir",
    "unique_ids",
]
