"""Sync command for the fleetsync CLI.

Commands:
- sync: Replay queued operations against the document store
"""

from __future__ import annotations

import asyncio
import sys

import click

from fleetsync.client.api import HTTPDocumentStore
from fleetsync.client.cache import LocalCache
from fleetsync.client.cli.config import get_state_db, load_client_config
from fleetsync.client.engine import SyncEngine
from fleetsync.client.errors import ErrorClassifier
from fleetsync.client.network import NetworkMonitor, platform_reports_online
from fleetsync.client.queue import DrainResult, OfflineQueue
from fleetsync.client.retry import RetryExecutor
from fleetsync.client.storage import SQLiteKeyValueStore
from fleetsync.core.config import ClientConfig, ServerConfig


async def _sync(config: ClientConfig, server: ServerConfig) -> DrainResult | None:
    """Check connectivity, then drain the queue if the server is reachable."""
    store = SQLiteKeyValueStore(get_state_db())
    try:
        queue = OfflineQueue(store, config.queue)
        monitor = NetworkMonitor(config.monitor, platform_online=platform_reports_online)
        classifier = ErrorClassifier()

        state = await monitor.check_connectivity(force=True)
        if not state.is_reachable:
            click.echo(
                f"Network is {state.status.value}: "
                f"{await queue.size()} operation(s) remain queued."
            )
            return None

        async with HTTPDocumentStore(server) as documents:
            engine = SyncEngine(
                documents,
                monitor,
                queue,
                LocalCache(store),
                classifier,
                retry=RetryExecutor(classifier, monitor, config.retry),
            )
            return await engine.sync_pending()
    finally:
        store.close()


@click.command()
def sync() -> None:
    """Replay operations queued while offline."""
    config = load_client_config()
    if config.server is None:
        click.echo("Error: No server configured. Run 'fleetsync configure' first.", err=True)
        sys.exit(1)

    result = asyncio.run(_sync(config, config.server))
    if result is None:
        return

    click.echo(
        f"Synced {result.success} operation(s), "
        f"{result.failed} failed, {result.abandoned} abandoned, "
        f"{result.deferred} deferred."
    )
    if result.failed or result.abandoned:
        sys.exit(1)
