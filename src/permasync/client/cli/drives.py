"""Drive mapping commands.

Commands:
- drives list: Show mapped drives
- drives add: Map a drive to a local folder
- drives remove: Remove a mapping
- drives history: Show recent uploads of a drive
"""

from __future__ import annotations

from datetime import datetime
from pathlib import Path

import click

from permasync.client.cli.config import get_state_db
from permasync.client.state import LocalMetadataStore


def _open_store() -> LocalMetadataStore:
    return LocalMetadataStore(get_state_db())


@click.group()
def drives() -> None:
    """Manage drive mappings."""


@drives.command("list")
def list_drives() -> None:
    """List mapped drives."""
    store = _open_store()
    try:
        mappings = store.list_mappings()
    finally:
        store.close()

    if not mappings:
        click.echo("No drives mapped. Use 'permasync drives add'.")
        return
    for mapping in mappings:
        privacy = click.style(mapping.privacy.value, fg="yellow" if mapping.is_private else "green")
        click.echo(f"{mapping.name}  [{privacy}]  {mapping.drive_id}")
        click.echo(f"    -> {mapping.folder_path}")


@drives.command("add")
@click.argument("drive_id")
@click.argument("root_folder_id")
@click.argument("folder", type=click.Path(file_okay=False, path_type=Path))
@click.option("--name", "-n", help="Display name (defaults to the folder name).")
@click.option("--private", is_flag=True, help="The drive is private (needs a password to sync).")
def add(drive_id: str, root_folder_id: str, folder: Path, name: str | None, private: bool) -> None:
    """Map DRIVE_ID (root folder ROOT_FOLDER_ID) to FOLDER."""
    from permasync.client.sync.types import DriveMapping, Privacy

    folder = folder.expanduser().resolve()
    store = _open_store()
    try:
        if store.get_mapping(drive_id) is not None:
            raise click.ClickException(f"Drive {drive_id} is already mapped")
        for existing in store.list_mappings():
            if Path(existing.folder_path) == folder:
                raise click.ClickException(f"{folder} is already used by {existing.name}")
        store.add_mapping(
            DriveMapping(
                drive_id=drive_id,
                root_folder_id=root_folder_id,
                name=name or folder.name,
                folder_path=str(folder),
                privacy=Privacy.PRIVATE if private else Privacy.PUBLIC,
            )
        )
    finally:
        store.close()
    click.echo(f"Mapped {name or folder.name} to {folder}")


@drives.command("remove")
@click.argument("drive_id")
def remove(drive_id: str) -> None:
    """Remove the mapping of DRIVE_ID. Local files are left in place."""
    store = _open_store()
    try:
        removed = store.remove_mapping(drive_id)
    finally:
        store.close()
    if not removed:
        raise click.ClickException(f"Drive {drive_id} is not mapped")
    click.echo(f"Removed mapping of {drive_id}")


@drives.command("history")
@click.argument("drive_id")
@click.option("--limit", "-l", default=20, show_default=True, help="Number of uploads to show.")
def history(drive_id: str, limit: int) -> None:
    """Show the most recent uploads of DRIVE_ID."""
    store = _open_store()
    try:
        records = store.list_upload_history(drive_id, limit=limit)
    finally:
        store.close()
    if not records:
        click.echo("No uploads yet.")
        return
    for record in records:
        when = datetime.fromtimestamp(record.completed_at).strftime("%Y-%m-%d %H:%M")
        click.echo(f"{when}  {record.relative_path}  ({record.method.value}, {record.size} bytes)")
