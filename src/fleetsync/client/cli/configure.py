"""Configuration command for the fleetsync CLI.

Commands:
- configure: Store the document store server and probe endpoints
"""

from __future__ import annotations

import click

from fleetsync.client.cli.config import get_config_file, load_config, save_config


@click.command()
@click.option(
    "--server",
    required=True,
    help="Document store URL (e.g., https://fleet.example.com).",
)
@click.option(
    "--token",
    required=True,
    help="API token for the document store.",
)
@click.option(
    "--primary-url",
    default=None,
    help="Endpoint probed to test the primary service (default: the server URL).",
)
@click.option(
    "--generic-url",
    default=None,
    help="Endpoint probed to test generic internet access.",
)
def configure(
    server: str,
    token: str,
    primary_url: str | None,
    generic_url: str | None,
) -> None:
    """Configure the document store and connectivity probes."""
    config = load_config()
    config["server_url"] = server.rstrip("/")
    config["auth_token"] = token

    monitor = dict(config.get("monitor", {}))
    monitor["primary_url"] = primary_url or config["server_url"]
    if generic_url:
        monitor["generic_url"] = generic_url
    config["monitor"] = monitor

    save_config(config)
    click.echo(f"Configuration saved to {get_config_file()}")
