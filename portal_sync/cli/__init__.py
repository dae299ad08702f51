"""CLI package for portal_sync."""

from portal_sync.cli.formatters import (
    show_delete_result,
    show_portal_list,
    show_sync_outcome,
)
from portal_sync.cli.main import build_service, cli, get_config_dir

__all__ = [
    "build_service",
    "cli",
    "get_config_dir",
    "show_delete_result",
    "show_portal_list",
    "show_sync_outcome",
]
