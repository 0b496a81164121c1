"""Sync command for the permasync CLI.

Commands:
- sync: Synchronize mapped drives with the ledger
"""

from __future__ import annotations

import logging
import sys
import time
from typing import TYPE_CHECKING

import click

from permasync.client.cli.config import (
    account_secret,
    get_config_dir,
    get_state_db,
    load_config,
    service_config,
)

if TYPE_CHECKING:
    from permasync.client.sync.engine import DriveSession
    from permasync.client.sync.progress import ProgressEvent

POLL_INTERVAL = 0.5


def _is_idle(session: DriveSession) -> bool:
    status = session.downloads.get_queue_status()
    return status.queued == 0 and status.active == 0 and session.uploads.in_flight_count() == 0


def _wait_for_transfers(sessions: list[DriveSession]) -> None:
    """Block until no download is queued or running and no upload is submitting."""
    while not all(_is_idle(s) for s in sessions):
        time.sleep(POLL_INTERVAL)


def _on_progress(event: ProgressEvent) -> None:
    """Print completed and failed transfers while watching."""
    from permasync.client.sync.progress import ProgressKind
    from permasync.client.sync.types import ProgressStatus

    if event.kind == ProgressKind.UPLOAD_PROGRESS:
        record = event.payload
        if record.status == ProgressStatus.COMPLETED:
            click.echo(f"  ↑ upload {record.upload_id[:8]} completed")
        elif record.status == ProgressStatus.FAILED:
            message = f"  ✗ upload {record.upload_id[:8]}: {record.error}"
            click.echo(click.style(message, fg="red"))
    elif event.kind == ProgressKind.SNAPSHOT and event.payload.error:
        click.echo(click.style(f"  ! {event.payload.error}", fg="yellow"))


def _display_summary(session: DriveSession) -> None:
    """Display the state of one drive after the pass."""
    from permasync.client.sync.types import DownloadStatus, UploadStatus

    click.echo(click.style(f"\n{session.mapping.name}", bold=True))

    downloaded = session.downloads.recent_completed()
    for download in downloaded:
        click.echo(f"  ↓ {download.relative_path}")

    failed_downloads = [
        d for d in session.downloads.downloads() if d.status == DownloadStatus.FAILED
    ]
    for download in failed_downloads:
        click.echo(click.style(f"  ✗ {download.relative_path}: {download.error}", fg="red"))

    for upload_id in session.uploads.failed_ids():
        upload = session.uploads.get(upload_id)
        record = session.uploads.get_progress(upload_id)
        if upload is not None and record is not None:
            click.echo(click.style(f"  ✗ {upload.relative_path}: {record.error}", fg="red"))

    awaiting = [u for u in session.uploads.pending() if u.status == UploadStatus.AWAITING_APPROVAL]
    conflicts = [u for u in awaiting if u.has_conflict]
    for upload in conflicts:
        message = f"  ! {upload.relative_path}: {upload.conflict_detail}"
        click.echo(click.style(message, fg="yellow"))

    if awaiting:
        breakdown = session.uploads.cost_breakdown()
        click.echo(f"\n  {len(awaiting)} upload(s) awaiting approval ({len(conflicts)} conflicted)")
        click.echo(f"    free:         {breakdown.free.count}")
        click.echo(
            f"    credits:      {breakdown.credits.count} ({breakdown.credits.total:.6f} credits)"
        )
        click.echo(
            f"    native token: {breakdown.native_token.count} "
            f"({breakdown.native_token.total:.12f})"
        )
        click.echo("  Re-run with --auto-approve to upload conflict-free files.")
    elif not downloaded and not failed_downloads:
        click.echo("  Everything is up to date.")


@click.command()
@click.argument("drive_ids", nargs=-1)
@click.option("--auto-approve", is_flag=True, help="Upload conflict-free files without asking.")
@click.option(
    "--watch/--once",
    default=False,
    help="Keep watching for changes, or exit once transfers are done (default).",
)
def sync(drive_ids: tuple[str, ...], auto_approve: bool, watch: bool) -> None:
    """Synchronize mapped drives (all of them unless DRIVE_IDS are given).

    Downloads remote files missing locally and queues local changes for
    upload. Use --watch to keep monitoring the folders.
    """
    from permasync.client.api import CreditsClient, LedgerClient
    from permasync.client.state import LocalMetadataStore
    from permasync.client.sync.engine import SyncEngine
    from permasync.core.config import EngineConfig
    from permasync.core.logs import setup_logging

    values = load_config()
    level = getattr(logging, values.get("log_level", "INFO").upper(), logging.INFO)
    setup_logging(level, get_config_dir() / "permasync.log")
    services = service_config(values)
    secret = account_secret(values)

    store = LocalMetadataStore(get_state_db())
    mappings = store.list_mappings()
    if drive_ids:
        unknown = set(drive_ids) - {m.drive_id for m in mappings}
        if unknown:
            store.close()
            click.echo(f"Error: Drive(s) not mapped: {', '.join(sorted(unknown))}", err=True)
            sys.exit(1)
        mappings = [m for m in mappings if m.drive_id in drive_ids]
    if not mappings:
        store.close()
        click.echo("Error: No drives mapped. Run 'permasync drives add' first.", err=True)
        sys.exit(1)

    ledger = LedgerClient.from_config(services)
    credits = CreditsClient.from_config(services)
    engine = SyncEngine(ledger, credits, store, EngineConfig(auto_approve=auto_approve))
    engine.key_cache.set_account_secret(secret)

    try:
        started = []
        for mapping in mappings:
            if mapping.is_private:
                if secret is None:
                    click.echo(
                        click.style(
                            f"Skipping private drive {mapping.name}: account_secret not set",
                            fg="yellow",
                        )
                    )
                    continue
                password = click.prompt(f"Password for {mapping.name}", hide_input=True)
                if not engine.unlock_drive(mapping.drive_id, password):
                    click.echo(click.style(f"Could not unlock {mapping.name}", fg="red"))
                    continue

            click.echo(f"Syncing {mapping.name} with {mapping.folder_path}...")
            if engine.start(mapping.drive_id):
                session = engine.session(mapping.drive_id)
                if session is not None:
                    started.append(session)
            else:
                session = engine.session(mapping.drive_id)
                error = session.coordinator.state.error if session else None
                message = f"Error: {error or 'sync did not start'}"
                click.echo(click.style(message, fg="red"), err=True)

        if not started:
            sys.exit(1)

        if watch:
            engine.broadcaster.subscribe(_on_progress)
            click.echo("\nWatching for changes... (Ctrl+C to stop)\n")
            try:
                while True:
                    time.sleep(1.0)
            except KeyboardInterrupt:
                click.echo("\nStopping...")
        else:
            _wait_for_transfers(started)

        for session in started:
            _display_summary(session)
    finally:
        engine.close()
        ledger.close()
        credits.close()
        store.close()
