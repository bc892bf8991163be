"""Offline-aware read/write path and queue replay.

This module provides:
- SyncEngine: save/get/delete against the remote document store with
  transparent fallback to the offline queue and local cache, plus
  automatic draining of the queue when connectivity comes back

Architecture:
    caller ─► SyncEngine ─(reachable)─► DocumentStore
                  │
                  └─(offline / failure)─► OfflineQueue + LocalCache

    NetworkMonitor ──(verified transition into online)──► SyncEngine.sync_pending()

Writes never fail because the device is offline: the mutation is queued
and the cache updated so the caller always observes its own write.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, TypeVar

from fleetsync.client.cache import make_cache_key
from fleetsync.client.queue import DrainResult, PendingOperation
from fleetsync.core.types import ErrorCategory, ErrorSeverity, NetworkStatus, OperationType

if TYPE_CHECKING:
    from fleetsync.client.api import DocumentStore
    from fleetsync.client.cache import LocalCache
    from fleetsync.client.errors import ErrorClassifier
    from fleetsync.client.network import NetworkMonitor, NetworkState
    from fleetsync.client.queue import OfflineQueue
    from fleetsync.client.retry import RetryExecutor

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SyncEngine:
    """Entry point for document mutations and reads.

    Usage:
        engine = SyncEngine(store, monitor, queue, cache, classifier)
        engine.attach()  # drain automatically when back online

        await engine.save("drivers", "d1", {"name": "A"})
        driver = await engine.get("drivers", "d1")

        await engine.close()
    """

    def __init__(
        self,
        store: DocumentStore,
        monitor: NetworkMonitor,
        queue: OfflineQueue,
        cache: LocalCache,
        classifier: ErrorClassifier,
        retry: RetryExecutor | None = None,
    ) -> None:
        """Initialize the engine.

        Args:
            store: Remote document store.
            monitor: Source of connectivity state.
            queue: Queue receiving mutations that could not be applied.
            cache: Local mirror used for offline reads.
            classifier: Shared error classifier.
            retry: Optional executor wrapping direct remote calls.
        """
        self._store = store
        self._monitor = monitor
        self._queue = queue
        self._cache = cache
        self._classifier = classifier
        self._retry = retry

        self._unsubscribe: Callable[[], None] | None = None
        self._last_settled: NetworkStatus | None = None
        self._sync_tasks: set[asyncio.Task[DrainResult | None]] = set()

    async def _remote(
        self,
        operation: Callable[[], Awaitable[T]],
        context: dict[str, Any],
    ) -> T:
        """Run a remote call, through the RetryExecutor when configured."""
        if self._retry is None:
            return await operation()
        return await self._retry.run(
            operation,
            context=context,
            # Retrying cannot fix a rejected document or missing rights
            retry_condition=lambda e: e.category not in (
                ErrorCategory.AUTHENTICATION,
                ErrorCategory.AUTHORIZATION,
                ErrorCategory.DATA_VALIDATION,
            ),
        )

    # === Document operations ===

    async def save(self, collection_path: str, document_id: str, data: Any) -> None:
        """Create or update a document, queueing it if the store is unreachable.

        Args:
            collection_path: Collection of the document.
            document_id: Document identifier.
            data: Document data.
        """
        key = make_cache_key(collection_path, document_id)
        context = {"operation": "save", "collection": collection_path, "document_id": document_id}

        if self._monitor.state.is_reachable:
            try:
                await self._remote(
                    lambda: self._store.update(collection_path, document_id, data),
                    context,
                )
            except Exception as e:
                self._classifier.log(
                    e,
                    context=context,
                    message=f"Saving {key} failed, queued for offline sync: {e}",
                    severity=ErrorSeverity.WARNING,
                )
            else:
                await self._cache.put(key, data)
                return

        await self._queue.enqueue(OperationType.UPDATE, collection_path, document_id, data)
        await self._cache.put(key, data)

    async def get(self, collection_path: str, document_id: str) -> Any | None:
        """Read a document, preferring the remote store when reachable.

        Args:
            collection_path: Collection of the document.
            document_id: Document identifier.

        Returns:
            Document data, or None if unknown.
        """
        key = make_cache_key(collection_path, document_id)
        cached = await self._cache.get(key)

        if not self._monitor.state.is_reachable:
            return cached

        context = {"operation": "get", "collection": collection_path, "document_id": document_id}
        try:
            data = await self._remote(
                lambda: self._store.get(collection_path, document_id),
                context,
            )
        except Exception as e:
            self._classifier.log(
                e,
                context=context,
                message=f"Reading {key} failed, using cached data: {e}",
                severity=ErrorSeverity.WARNING,
            )
            return cached

        if data is None:
            # Not on the server yet, but our own queued write is
            if await self._queue.has_pending(collection_path, document_id):
                return cached
            return None

        await self._cache.put(key, data)
        return data

    async def delete(self, collection_path: str, document_id: str) -> None:
        """Delete a document, queueing the delete if the store is unreachable.

        Args:
            collection_path: Collection of the document.
            document_id: Document identifier.
        """
        key = make_cache_key(collection_path, document_id)
        context = {"operation": "delete", "collection": collection_path, "document_id": document_id}

        if self._monitor.state.is_reachable:
            try:
                await self._remote(
                    lambda: self._store.delete(collection_path, document_id),
                    context,
                )
            except Exception as e:
                self._classifier.log(
                    e,
                    context=context,
                    message=f"Deleting {key} failed, queued for offline sync: {e}",
                    severity=ErrorSeverity.WARNING,
                )
            else:
                await self._cache.delete(key)
                return

        await self._queue.enqueue(OperationType.DELETE, collection_path, document_id)
        await self._cache.delete(key)

    # === Replay ===

    async def _apply(self, operation: PendingOperation) -> None:
        """Apply one queued operation to the remote store."""
        try:
            if operation.operation_type == OperationType.CREATE:
                await self._store.create(
                    operation.collection_path, operation.document_id, operation.payload
                )
            elif operation.operation_type == OperationType.UPDATE:
                await self._store.update(
                    operation.collection_path, operation.document_id, operation.payload
                )
            else:
                await self._store.delete(operation.collection_path, operation.document_id)
        except Exception as e:
            self._classifier.log(
                e,
                context={
                    "operation": operation.operation_type.value,
                    "collection": operation.collection_path,
                    "document_id": operation.document_id,
                    "attempts": operation.attempts + 1,
                },
                severity=ErrorSeverity.WARNING,
                retry_attempts=operation.attempts,
            )
            raise

    async def sync_pending(self) -> DrainResult:
        """Replay all queued operations against the remote store.

        Returns:
            Counts of applied, failed, abandoned and deferred operations.
        """
        result = await self._queue.drain(self._apply)
        if result.abandoned:
            self._classifier.log(
                f"{result.abandoned} queued operations abandoned after "
                f"{self._queue.max_attempts} failed attempts",
                category=ErrorCategory.DATABASE,
                severity=ErrorSeverity.ERROR,
                retryable=False,
            )
        return result

    # === Monitor integration ===

    def attach(self) -> None:
        """Drain the queue automatically whenever the connection comes back."""
        if self._unsubscribe is None:
            self._unsubscribe = self._monitor.subscribe(self._on_network_state)

    def detach(self) -> None:
        """Stop reacting to connectivity changes."""
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    def _on_network_state(self, state: NetworkState) -> None:
        """Schedule a drain on a verified transition into online."""
        # Ignore the transient "checking" state and the unverified startup state
        if state.status == NetworkStatus.CHECKING or state.last_checked_at is None:
            return

        previous, self._last_settled = self._last_settled, state.status
        if state.status != NetworkStatus.ONLINE or previous == NetworkStatus.ONLINE:
            return

        logger.info("Connection restored, syncing pending operations")
        task = asyncio.get_running_loop().create_task(self._background_sync())
        self._sync_tasks.add(task)
        task.add_done_callback(self._sync_tasks.discard)

    async def _background_sync(self) -> DrainResult | None:
        try:
            return await self.sync_pending()
        except Exception:
            logger.warning("Automatic sync of pending operations failed", exc_info=True)
            return None

    async def close(self) -> None:
        """Detach from the monitor and wait for running drains."""
        self.detach()
        tasks = list(self._sync_tasks)
        for task in tasks:
            with contextlib.suppress(asyncio.CancelledError):
                await task
