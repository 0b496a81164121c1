"""Command-line interface for permasync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- config show|set: Service URLs, token and account secret
- drives list|add|remove|history: Drive to folder mappings
- sync: Synchronize mapped drives

There is no unlock command: drive keys only live for one sync session.
"""

from __future__ import annotations

import click

from permasync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_state_db,
    load_config,
    save_config,
)
from permasync.client.cli.config import config as config_group
from permasync.client.cli.drives import drives
from permasync.client.cli.sync import sync


@click.group()
@click.version_option(package_name="permasync")
def cli() -> None:
    """permasync - folder synchronization for permanent ledger storage."""


cli.add_command(config_group)
cli.add_command(drives)
cli.add_command(sync)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    "cli",
    "main",
    "get_config_dir",
    "get_config_file",
    "get_state_db",
    "load_config",
    "save_config",
]
