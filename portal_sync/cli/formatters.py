"""CLI output formatting functions.

Displays sync outcomes, portal listings and maintenance reports. Secret
fields are never echoed: they are shown as a redaction marker.
"""

import json
from typing import TYPE_CHECKING, Any

import click

from portal_sync.utils.logging import REDACTED, redact
from portal_sync.utils.normalization import friendly_domain

if TYPE_CHECKING:
    from portal_sync.sync.cascade import DeletePortalResult, DeleteProviderResult
    from portal_sync.sync.models import Portal
    from portal_sync.sync.service import MigrationReport, ResyncReport, SyncOutcome


def _mask(value: Any) -> str:
    if value is None:
        return "-"
    return REDACTED if value else '""'


def outcome_as_json(outcome: "SyncOutcome") -> str:
    """Serialize a sync outcome to JSON with secret fields redacted."""
    data = outcome.to_dict()
    for key in ("portal", "password"):
        if data[key] is not None:
            data[key] = redact(data[key])
    return json.dumps(data, indent=2)


def show_sync_outcome(outcome: "SyncOutcome", as_json: bool = False) -> None:
    """
    Display the result of a sync call.

    Args:
        outcome: SyncOutcome returned by the service
        as_json: Print a JSON document instead of text
    """
    if as_json:
        click.echo(outcome_as_json(outcome))
        return

    if not outcome.success:
        click.echo(
            click.style(
                f"Sync failed ({outcome.error_kind}): {outcome.error}", fg="red"
            ),
            err=True,
        )
        return

    portal = outcome.portal
    password = outcome.password
    assert portal is not None and password is not None

    portal_state = "created" if outcome.portal_created else "updated"
    password_state = "created" if outcome.password_created else "updated"

    click.echo(click.style("Sync complete!", fg="green"))
    click.echo(f"\nPortal ({portal_state}): {portal.id}")
    click.echo(f"  Type:     {portal.portal_type}")
    click.echo(f"  Provider: {portal.provider_name}")
    click.echo(f"  URL:      {portal.portal_url or '-'}")
    click.echo(f"  Username: {portal.username or '-'}")
    click.echo(f"  Password: {_mask(portal.password)}")
    click.echo(f"\nPassword ({password_state}): {password.id}")
    click.echo(f"  Category: {password.category}")
    click.echo(f"  Owner:    {password.owner_id}")
    shared = ", ".join(password.shared_with) if password.shared_with else "(not shared)"
    click.echo(f"  Shared:   {shared}")
    if password.tags:
        click.echo(f"  Tags:     {', '.join(password.tags)}")


def show_portal_list(portals: "list[Portal]") -> None:
    """Display portals as one line each."""
    if not portals:
        click.echo("No portals found.")
        return

    click.echo(f"Found {len(portals)} portal(s):\n")
    for portal in portals:
        link = (
            click.style("linked", fg="green")
            if portal.password_id
            else click.style("unlinked", fg="yellow")
        )
        domain = friendly_domain(portal.portal_url) or "-"
        click.echo(
            f"  [{portal.portal_type}] {portal.provider_name} "
            f"{domain} ({portal.username or '-'}) {link}"
        )
        click.echo(f"      id: {portal.id}")


def show_delete_result(
    result: "DeletePortalResult | DeleteProviderResult",
) -> None:
    """Display the counts of a deletion cascade."""
    if not result.success:
        click.echo(click.style(f"Delete failed: {result.error}", fg="red"), err=True)
        return

    deleted_portals = getattr(result, "deleted_portals", None)
    if deleted_portals is None:
        deleted_portals = 1 if getattr(result, "deleted_portal", False) else 0

    if deleted_portals == 0 and result.deleted_passwords == 0:
        click.echo("Nothing to delete.")
        return

    click.echo(
        click.style(
            f"Deleted {deleted_portals} portal(s) and "
            f"{result.deleted_passwords} password(s).",
            fg="green",
        )
    )


def show_resync_report(report: "ResyncReport") -> None:
    """Display a bulk resync summary."""
    click.echo("=== Resync Summary ===\n")
    click.echo(f"Portals examined: {report.total}")
    click.echo(f"Synced:           {report.synced}")
    click.echo(f"Skipped:          {report.skipped}")
    failed = str(report.failed)
    if report.failed:
        failed = click.style(failed, fg="red")
    click.echo(f"Failed:           {failed}")
    for error in report.errors[:10]:
        click.echo(f"  - {error}")
    if len(report.errors) > 10:
        click.echo(f"  ... and {len(report.errors) - 10} more")


def show_migration_report(report: "MigrationReport") -> None:
    """Display a doctor-migration summary."""
    click.echo(f"Migrated {report.synced} doctor portal(s), {report.failed} failed.")
    for error in report.errors:
        click.echo(click.style(f"  - {error}", fg="yellow"))
