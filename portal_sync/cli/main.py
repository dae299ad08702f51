"""
Command-line interface for portal_sync.

Provides operator commands for syncing portal credentials into the
password vault, deleting portals with their vault entries, and running
maintenance (resync, legacy doctor migration, status).

Usage:
    # Show help
    portal-sync --help

    # Sync one portal
    portal-sync sync --type medical --provider-name "Dr. Lee" \\
        --url portal.clinic.com --username lee --password secret --owner U1

    # Delete every portal of a provider
    portal-sync delete --type medical --provider-id D1

    # Re-run sync for all stored portals
    portal-sync resync
"""

import sys
from pathlib import Path
from typing import Optional

import click

from portal_sync import __version__
from portal_sync.cli.formatters import (
    show_delete_result,
    show_migration_report,
    show_portal_list,
    show_resync_report,
    show_sync_outcome,
)
from portal_sync.config.generator import save_config_file
from portal_sync.config.loader import DEFAULT_CONFIG_FILE, ConfigError, ConfigLoader
from portal_sync.config.settings import ServiceSettings
from portal_sync.crypto.encryption import EncryptionService
from portal_sync.storage.db import PortalDatabase, StorageError
from portal_sync.sync.models import PORTAL_TYPES, UNSET, Portal
from portal_sync.sync.request import SyncRequest
from portal_sync.sync.service import PortalPasswordSync
from portal_sync.utils.logging import cleanup_old_logs, get_logger, setup_logging
from portal_sync.utils.paths import resolve_config_dir


def get_config_dir(config_dir: Optional[str]) -> Path:
    """Get the configuration directory path."""
    return resolve_config_dir(config_dir)


def get_config_file(config_dir: Path, config_file: Optional[str]) -> Path:
    """Get the configuration file path."""
    if config_file:
        return Path(config_file)
    return config_dir / DEFAULT_CONFIG_FILE


def build_service(ctx: click.Context) -> PortalPasswordSync:
    """
    Construct the sync service from the loaded settings.

    Exits with status 1 when the configuration cannot produce a service.
    """
    logger = get_logger(__name__)
    settings: ServiceSettings = ctx.obj["settings"]
    try:
        return PortalPasswordSync.from_settings(settings)
    except (ConfigError, StorageError) as e:
        logger.error(f"Cannot start sync service: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)


@click.group()
@click.version_option(version=__version__, prog_name="portal-sync")
@click.option(
    "--verbose", "-v", is_flag=True, help="Enable verbose output with detailed logging."
)
@click.option(
    "--config-dir",
    "-c",
    type=click.Path(exists=False, file_okay=False, dir_okay=True),
    envvar="PORTAL_SYNC_CONFIG_DIR",
    help="Configuration directory path (default: ~/.portal-sync).",
)
@click.option(
    "--config-file",
    "-f",
    type=click.Path(exists=False, file_okay=True, dir_okay=False),
    envvar="PORTAL_SYNC_CONFIG_FILE",
    help="Configuration file path (default: ~/.portal-sync/config.yaml).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    config_dir: Optional[str],
    config_file: Optional[str],
) -> None:
    """
    Portal Password Sync.

    Keeps medical, pet and academic portal logins and the shared password
    vault consistent: every portal has exactly one linked vault entry.
    """
    ctx.ensure_object(dict)

    resolved_config_dir = get_config_dir(config_dir)
    resolved_config_file = get_config_file(resolved_config_dir, config_file)

    ctx.obj["config_dir"] = resolved_config_dir
    ctx.obj["config_file"] = resolved_config_file

    config = {}
    try:
        loader = ConfigLoader(config_dir=resolved_config_dir)
        config = loader.load_from_file(resolved_config_file)
        if config:
            loader.validate(config)
    except ConfigError as e:
        # Commands that need the service fail later with a precise message
        click.echo(
            click.style(f"Warning: Configuration error: {e}", fg="yellow"), err=True
        )
        config = {}

    ctx.obj["config"] = config
    ctx.obj["settings"] = ServiceSettings.from_dict(
        config, config_dir=resolved_config_dir
    )

    effective_verbose = verbose or config.get("verbose", False)
    ctx.obj["verbose"] = effective_verbose

    log_dir = Path(config["log_dir"]).expanduser() if config.get("log_dir") else None
    setup_logging(verbose=effective_verbose, log_dir=log_dir, enable_file_logging=True)

    log_retention = config.get("log_retention_count", 10)
    if log_retention > 0:
        cleanup_old_logs(log_dir=log_dir, keep_count=log_retention)


# =============================================================================
# Sync Command
# =============================================================================


@cli.command("sync")
@click.option(
    "--type",
    "provider_type",
    required=True,
    type=click.Choice(PORTAL_TYPES, case_sensitive=False),
    help="Provider type of the portal.",
)
@click.option("--provider-name", required=True, help="Provider display name.")
@click.option("--provider-id", default=None, help="External provider id.")
@click.option("--portal-name", default=None, help="Portal display name.")
@click.option("--portal-id", default=None, help="Update this portal by id.")
@click.option("--url", "portal_url", default="", help="Portal URL.")
@click.option("--username", "portal_username", default=None, help="Login username.")
@click.option(
    "--password",
    "portal_password",
    prompt=True,
    hide_input=True,
    default="",
    help="Login password (prompted when omitted).",
)
@click.option("--owner", "owner_id", default=None, help="Owning user id.")
@click.option(
    "--shared-with",
    multiple=True,
    help="User id to share the vault entry with (repeatable).",
)
@click.option("--created-by", default=None, help="Acting user id.")
@click.option(
    "--entity",
    "entity_ids",
    multiple=True,
    help="Associated person or pet id (repeatable).",
)
@click.option("--notes", default=None, help="Notes; omit to keep existing notes.")
@click.option("--clear-notes", is_flag=True, help="Clear existing notes.")
@click.option("--source", default=None, help="Vault source tag.")
@click.option("--source-page", default=None, help="Vault source page.")
@click.option("--json", "as_json", is_flag=True, help="Print the result as JSON.")
@click.pass_context
def sync_command(
    ctx: click.Context,
    provider_type: str,
    provider_name: str,
    provider_id: Optional[str],
    portal_name: Optional[str],
    portal_id: Optional[str],
    portal_url: str,
    portal_username: Optional[str],
    portal_password: str,
    owner_id: Optional[str],
    shared_with: tuple[str, ...],
    created_by: Optional[str],
    entity_ids: tuple[str, ...],
    notes: Optional[str],
    clear_notes: bool,
    source: Optional[str],
    source_page: Optional[str],
    as_json: bool,
) -> None:
    """
    Create or update a portal and its linked vault entry.

    Examples:

        # Sync a medical portal shared with a second user
        portal-sync sync --type medical --provider-name "Dr. Lee" \\
            --url portal.clinic.com --username lee --password s3cret \\
            --owner U1 --shared-with U2 --entity P1

        # Update an existing portal by id and clear its notes
        portal-sync sync --type pet --provider-name "Vet" --portal-id <id> \\
            --password s3cret --owner U1 --clear-notes
    """
    logger = get_logger(__name__)

    if notes is not None and clear_notes:
        raise click.UsageError("--notes and --clear-notes are mutually exclusive")

    request = SyncRequest(
        provider_type=provider_type.lower(),
        provider_name=provider_name,
        provider_id=provider_id if provider_id else UNSET,
        portal_name=portal_name,
        portal_id=portal_id,
        portal_url=portal_url,
        portal_username=portal_username,
        portal_password=portal_password,
        owner_id=owner_id,
        shared_with=list(shared_with),
        created_by=created_by,
        notes=None if clear_notes else (notes if notes is not None else UNSET),
        source=source,
        source_page=source_page,
        entity_ids=list(entity_ids),
    )

    service = build_service(ctx)
    try:
        outcome = service.sync(request)
    finally:
        service.close()

    show_sync_outcome(outcome, as_json=as_json)
    if not outcome.success:
        logger.error(f"Sync failed: {outcome.error}")
        sys.exit(1)


# =============================================================================
# Delete Commands
# =============================================================================


@cli.command("delete")
@click.option(
    "--type",
    "provider_type",
    required=True,
    type=click.Choice(PORTAL_TYPES, case_sensitive=False),
    help="Provider type of the portals to delete.",
)
@click.option("--provider-id", required=True, help="External provider id.")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def delete_command(
    ctx: click.Context, provider_type: str, provider_id: str, yes: bool
) -> None:
    """
    Delete every portal of a provider and its vault entries.

    Example:

        portal-sync delete --type medical --provider-id D1
    """
    if not yes:
        click.confirm(
            f"Delete all {provider_type} portals and passwords of provider "
            f"{provider_id}?",
            abort=True,
        )

    service = build_service(ctx)
    try:
        result = service.delete_portal_and_password(provider_type.lower(), provider_id)
    finally:
        service.close()

    show_delete_result(result)
    if not result.success:
        sys.exit(1)


@cli.command("delete-portal")
@click.argument("portal_id")
@click.option("--yes", "-y", is_flag=True, help="Skip confirmation prompt.")
@click.pass_context
def delete_portal_command(ctx: click.Context, portal_id: str, yes: bool) -> None:
    """
    Delete one portal and its vault entries.

    Example:

        portal-sync delete-portal 3f2b... --yes
    """
    if not yes:
        click.confirm(f"Delete portal {portal_id} and its passwords?", abort=True)

    service = build_service(ctx)
    try:
        result = service.delete_portal_by_id(portal_id)
    finally:
        service.close()

    show_delete_result(result)
    if not result.success:
        sys.exit(1)


@cli.command("unlink")
@click.argument("portal_id")
@click.pass_context
def unlink_command(ctx: click.Context, portal_id: str) -> None:
    """
    Remove a portal's link to its vault entry without deleting either.
    """
    service = build_service(ctx)
    try:
        unlinked = service.unlink_portal_password(portal_id)
    finally:
        service.close()

    if unlinked:
        click.echo(click.style(f"Unlinked password from portal {portal_id}.", fg="green"))
    else:
        click.echo(click.style(f"Portal {portal_id} not found.", fg="red"), err=True)
        sys.exit(1)


# =============================================================================
# Listing and Status
# =============================================================================


@cli.command("list-portals")
@click.option("--person", default=None, help="Only portals associated with this id.")
@click.option(
    "--type",
    "provider_type",
    default=None,
    type=click.Choice(PORTAL_TYPES, case_sensitive=False),
    help="Only portals of this type.",
)
@click.pass_context
def list_portals_command(
    ctx: click.Context, person: Optional[str], provider_type: Optional[str]
) -> None:
    """
    List stored portals.

    Examples:

        portal-sync list-portals
        portal-sync list-portals --person P1 --type medical
    """
    logger = get_logger(__name__)
    provider_type = provider_type.lower() if provider_type else None

    service = build_service(ctx)
    try:
        if person:
            portals = service.get_portals_for_person(person, provider_type)
        else:
            rows = service.db.list_portals([provider_type] if provider_type else None)
            portals = [Portal.from_row(row) for row in rows]
    except StorageError as e:
        logger.error(f"Failed to list portals: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)
    finally:
        service.close()

    show_portal_list(portals)


@cli.command("status")
@click.pass_context
def status_command(ctx: click.Context) -> None:
    """
    Show configuration and database status.

    Example:

        portal-sync status
    """
    logger = get_logger(__name__)
    settings: ServiceSettings = ctx.obj["settings"]

    click.echo("=== Portal Password Sync Status ===\n")
    click.echo(f"Configuration directory: {ctx.obj['config_dir']}")
    config_state = (
        "Found"
        if Path(ctx.obj["config_file"]).exists()
        else click.style("Not found (using defaults)", fg="yellow")
    )
    click.echo(f"Configuration file: {config_state}")

    key_state = (
        click.style("Configured", fg="green")
        if settings.resolve_encryption_key()
        else click.style("Missing", fg="red")
    )
    click.echo(f"Encryption key: {key_state}")
    click.echo(f"Database: {settings.database_path}")
    click.echo()

    db_path = settings.database_path or ""
    if db_path != ":memory:" and not Path(db_path).exists():
        click.echo("Database: Not initialized (no syncs performed yet)")
        return

    try:
        db = PortalDatabase(db_path)
        db.initialize()
        counts = db.counts()
    except StorageError as e:
        logger.error(f"Error reading database: {e}")
        click.echo(click.style(f"Error: {e}", fg="red"), err=True)
        sys.exit(1)

    click.echo(f"Portals: {counts['portals']}")
    click.echo(f"Linked portals: {counts['linked_portals']}")
    click.echo(f"Passwords: {counts['passwords']}")
    click.echo(f"Activity log entries: {counts['activity_logs']}")

    unlinked = counts["portals"] - counts["linked_portals"]
    if unlinked:
        click.echo(
            click.style(
                f"\n{unlinked} portal(s) have no linked password. "
                "Run 'portal-sync resync' to repair.",
                fg="yellow",
            )
        )


# =============================================================================
# Maintenance Commands
# =============================================================================


@cli.command("resync")
@click.option(
    "--type",
    "provider_types",
    multiple=True,
    type=click.Choice(PORTAL_TYPES, case_sensitive=False),
    help="Portal type to resync (repeatable, default: all).",
)
@click.pass_context
def resync_command(ctx: click.Context, provider_types: tuple[str, ...]) -> None:
    """
    Re-run sync for every stored portal with credentials.

    Repairs missing or stale vault entries, owners and sharing.
    """
    types = [t.lower() for t in provider_types] or list(PORTAL_TYPES)

    service = build_service(ctx)
    try:
        report = service.resync_all(types)
    finally:
        service.close()

    show_resync_report(report)
    if report.failed:
        sys.exit(1)


@cli.command("migrate-doctors")
@click.option("--user", "user_id", required=True, help="User performing the migration.")
@click.pass_context
def migrate_doctors_command(ctx: click.Context, user_id: str) -> None:
    """
    Move portal credentials held on legacy doctor records into portals.
    """
    service = build_service(ctx)
    try:
        report = service.sync_existing_doctor_portals(user_id)
    finally:
        service.close()

    show_migration_report(report)
    if report.failed:
        sys.exit(1)


# =============================================================================
# Setup Commands
# =============================================================================


@cli.command("init-config")
@click.option(
    "--force",
    "-f",
    is_flag=True,
    help="Overwrite existing configuration file if it exists.",
)
@click.pass_context
def init_config_command(ctx: click.Context, force: bool) -> None:
    """
    Generate a default configuration file.

    Examples:

        portal-sync init-config
        portal-sync init-config --force
    """
    logger = get_logger(__name__)
    config_file = ctx.obj["config_file"]

    click.echo(f"Creating configuration file: {config_file}")

    success, error = save_config_file(config_file, overwrite=force)

    if success:
        click.echo(click.style("Configuration file created successfully!", fg="green"))
        click.echo(f"\nLocation: {config_file}")
        click.echo("\nNext steps:")
        click.echo("1. Run 'portal-sync generate-key' and export the key")
        click.echo("2. Edit the file to uncomment and configure desired options")
        logger.info(f"Created configuration file: {config_file}")
    else:
        click.echo(click.style(f"Error: {error}", fg="red"), err=True)
        logger.error(f"Failed to create configuration file: {error}")
        sys.exit(1)


@cli.command("generate-key")
def generate_key_command() -> None:
    """
    Print a new encryption key.

    Example:

        export PORTAL_SYNC_ENCRYPTION_KEY=$(portal-sync generate-key)
    """
    click.echo(EncryptionService.generate_key())


if __name__ == "__main__":
    cli()
