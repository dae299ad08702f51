"""
Entry point for running portal_sync as a module.

Usage:
    python -m portal_sync --help
    python -m portal_sync status
    python -m portal_sync delete-portal <portal-id>
"""

from portal_sync.cli import cli

if __name__ == "__main__":
    cli()
