"""Command-line interface for fleetsync.

This module provides the main CLI entry point and assembles all commands.

Commands:
- configure: Configure the document store and probe endpoints
- status: Check connectivity now
- pending: List queued and abandoned operations
- sync: Replay queued operations against the document store
"""

from __future__ import annotations

import click

from fleetsync.client.cli.config import (
    get_config_dir,
    get_config_file,
    get_state_db,
    load_config,
    save_config,
    setup_logging,
)
from fleetsync.client.cli.configure import configure
from fleetsync.client.cli.status import pending, status
from fleetsync.client.cli.sync import sync


@click.group()
@click.version_option(package_name="fleetsync")
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
def cli(verbose: bool) -> None:
    """fleetsync - Offline-first document sync."""
    setup_logging(verbose)


cli.add_command(configure)
cli.add_command(status)
cli.add_command(pending)
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
