"""Status commands for the fleetsync CLI.

Commands:
- status: Check connectivity now
- pending: List queued and abandoned operations
"""

from __future__ import annotations

import asyncio

import click

from fleetsync.client.cli.config import get_state_db, load_client_config
from fleetsync.client.network import NetworkMonitor, NetworkState, platform_reports_online
from fleetsync.client.queue import OfflineQueue, PendingOperation
from fleetsync.client.storage import SQLiteKeyValueStore


def format_state(state: NetworkState) -> str:
    """Render a NetworkState for the terminal."""
    latency = f"{state.latency_ms}ms" if state.latency_ms is not None else "n/a"
    return "\n".join([
        f"Status:   {state.status.value}",
        f"Quality:  {state.quality.value}",
        f"Latency:  {latency}",
        f"Primary:  {'reachable' if state.is_primary_reachable else 'unreachable'}",
        f"Internet: {'reachable' if state.is_generic_internet_reachable else 'unreachable'}",
    ])


async def _list_operations(
    queue: OfflineQueue,
) -> tuple[list[PendingOperation], list[PendingOperation]]:
    return await queue.pending(), await queue.dead_letters()


@click.command()
def status() -> None:
    """Probe the network and show connectivity status."""
    config = load_client_config()
    monitor = NetworkMonitor(config.monitor, platform_online=platform_reports_online)
    state = asyncio.run(monitor.check_connectivity(force=True))
    click.echo(format_state(state))


@click.command()
def pending() -> None:
    """List operations waiting to be synced."""
    config = load_client_config()
    store = SQLiteKeyValueStore(get_state_db())
    try:
        queue = OfflineQueue(store, config.queue)
        operations, dead = asyncio.run(_list_operations(queue))
    finally:
        store.close()

    if not operations:
        click.echo("No pending operations.")
    else:
        click.echo(f"{len(operations)} pending operation(s):")
        for op in operations:
            click.echo(
                f"  {op.enqueued_at:%Y-%m-%d %H:%M:%S}  {op.operation_type.value:<6} "
                f"{op.collection_path}/{op.document_id}  (attempts: {op.attempts})"
            )

    if dead:
        click.echo(f"{len(dead)} abandoned operation(s):")
        for op in dead:
            click.echo(
                f"  {op.operation_type.value:<6} {op.collection_path}/{op.document_id}"
                f"  last error: {op.last_error}"
            )
