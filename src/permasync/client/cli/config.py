"""Configuration utilities and the config command group.

Commands:
- config show: Print the configuration (secrets redacted)
- config set: Set one configuration key
"""

from __future__ import annotations

import json
from pathlib import Path

import click

from permasync.core.config import ServiceConfig
from permasync.core.logs import REDACTED

CONFIG_KEYS = {
    "ledger_url": "Base URL of the ledger storage service",
    "credits_url": "Base URL of the credits service",
    "token": "API token used for both services",
    "account_secret": "Hex-encoded account secret used to derive private drive keys",
    "log_level": "Logging level (DEBUG, INFO, WARNING, ERROR)",
}
SECRET_KEYS = {"token", "account_secret"}


def get_config_dir() -> Path:
    """Get the configuration directory for permasync.

    Returns:
        Path to ~/.permasync.
    """
    return Path.home() / ".permasync"


def get_config_file() -> Path:
    """Get the path to the config file."""
    return get_config_dir() / "config.json"


def get_state_db() -> Path:
    """Get the path to the metadata database."""
    return get_config_dir() / "state.db"


def load_config() -> dict[str, str]:
    """Load configuration from config file."""
    config_file = get_config_file()
    if config_file.exists():
        return dict(json.loads(config_file.read_text()))
    return {}


def save_config(config: dict[str, str]) -> None:
    """Save configuration to config file."""
    config_file = get_config_file()
    config_file.parent.mkdir(parents=True, exist_ok=True)
    config_file.write_text(json.dumps(config, indent=2))


def service_config(config: dict[str, str]) -> ServiceConfig:
    """Build the service configuration.

    Raises:
        click.ClickException: If a service URL or the token is missing.
    """
    missing = [k for k in ("ledger_url", "credits_url", "token") if not config.get(k)]
    if missing:
        raise click.ClickException(
            f"Missing configuration: {', '.join(missing)}. "
            "Run 'permasync config set <key> <value>' first."
        )
    return ServiceConfig(
        ledger_url=config["ledger_url"],
        credits_url=config["credits_url"],
        token=config["token"],
    )


def account_secret(config: dict[str, str]) -> bytes | None:
    """Decode the configured account secret.

    Raises:
        click.ClickException: If the value is not valid hex.
    """
    value = config.get("account_secret")
    if not value:
        return None
    try:
        return bytes.fromhex(value)
    except ValueError as e:
        raise click.ClickException("account_secret must be hex-encoded") from e


@click.group()
def config() -> None:
    """Show or change the configuration."""


@config.command("show")
def show() -> None:
    """Print the configuration."""
    values = load_config()
    if not values:
        click.echo("No configuration yet.")
        return
    for key in sorted(values):
        value = REDACTED if key in SECRET_KEYS else values[key]
        click.echo(f"{key} = {value}")


@config.command("set")
@click.argument("key", type=click.Choice(sorted(CONFIG_KEYS)))
@click.argument("value")
def set_value(key: str, value: str) -> None:
    """Set KEY to VALUE."""
    values = load_config()
    values[key] = value
    save_config(values)
    shown = REDACTED if key in SECRET_KEYS else value
    click.echo(f"{key} = {shown}")
