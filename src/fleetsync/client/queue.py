"""Durable queue of mutations awaiting remote application.

This module provides:
- PendingOperation: A queued create/update/delete
- DrainResult: Outcome counts of a drain
- OfflineQueue: Ordered, persistent queue with bounded replay attempts

Persistence:
    The whole queue is stored as one ordered list under a single key of the
    KeyValueStore, and rewritten on every change. Each change is a
    load-modify-save under an asyncio lock, so an enqueue issued while a
    drain is running is never lost.

    Operations for the same document are NOT coalesced: an update followed
    by a delete is replayed as an update then a delete. When an operation
    fails and stays queued, later operations for the same document are
    deferred to the next drain so they never overtake it.

Abandonment:
    An operation that fails max_attempts replays is removed from the queue
    and moved to a dead-letter list, where it stays until cleared. It is
    counted in DrainResult.abandoned rather than DrainResult.failed.
"""

from __future__ import annotations

import asyncio
import logging
import uuid
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from fleetsync.core.config import QueueConfig
from fleetsync.core.types import OperationType

if TYPE_CHECKING:
    from fleetsync.client.storage import KeyValueStore

logger = logging.getLogger(__name__)

QUEUE_KEY = "offline_queue:pending"
DEAD_LETTER_KEY = "offline_queue:dead_letter"


@dataclass
class PendingOperation:
    """A mutation that could not be confirmed against the remote store.

    Attributes:
        operation_type: create, update or delete.
        collection_path: Collection of the target document.
        document_id: Target document.
        payload: Document data (None for delete).
        attempts: Failed replays so far.
        enqueued_at: When the operation was queued (UTC).
        id: Unique identity of the queue entry.
        last_error: Message of the most recent replay failure.
    """

    operation_type: OperationType
    collection_path: str
    document_id: str
    payload: Any = None
    attempts: int = 0
    enqueued_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    id: str = field(default_factory=lambda: uuid.uuid4().hex)
    last_error: str | None = None

    def to_dict(self) -> dict[str, Any]:
        """Convert to a JSON-serializable dictionary."""
        return {
            "id": self.id,
            "operation_type": self.operation_type.value,
            "collection_path": self.collection_path,
            "document_id": self.document_id,
            "payload": self.payload,
            "attempts": self.attempts,
            "enqueued_at": self.enqueued_at.isoformat(),
            "last_error": self.last_error,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> PendingOperation:
        """Create from a stored dictionary."""
        return cls(
            id=data["id"],
            operation_type=OperationType(data["operation_type"]),
            collection_path=data["collection_path"],
            document_id=data["document_id"],
            payload=data.get("payload"),
            attempts=data.get("attempts", 0),
            enqueued_at=datetime.fromisoformat(data["enqueued_at"]),
            last_error=data.get("last_error"),
        )

    def __repr__(self) -> str:
        return (
            f"PendingOperation({self.operation_type.value} "
            f"{self.collection_path}/{self.document_id}, attempts={self.attempts})"
        )


@dataclass
class DrainResult:
    """Outcome of OfflineQueue.drain().

    Attributes:
        success: Operations applied and removed.
        failed: Operations that failed and remain queued.
        abandoned: Operations that exhausted their attempts and were dead-lettered.
        deferred: Operations skipped because an earlier operation on the same
            document failed in this drain.
    """

    success: int = 0
    failed: int = 0
    abandoned: int = 0
    deferred: int = 0

    def as_dict(self) -> dict[str, int]:
        return {
            "success": self.success,
            "failed": self.failed,
            "abandoned": self.abandoned,
            "deferred": self.deferred,
        }


class OfflineQueue:
    """Durable FIFO of pending mutations.

    Usage:
        queue = OfflineQueue(SQLiteKeyValueStore(path))
        await queue.enqueue(OperationType.UPDATE, "drivers", "d1", {"name": "A"})

        result = await queue.drain(apply_to_remote)
        print(result.success, result.failed, result.abandoned)
    """

    def __init__(self, store: KeyValueStore, config: QueueConfig | None = None) -> None:
        """Initialize the queue.

        Args:
            store: Persistent key-value store holding the queue.
            config: Queue settings (max replay attempts).
        """
        self._store = store
        self._config = config or QueueConfig()
        self._lock = asyncio.Lock()
        self._drain_lock = asyncio.Lock()

    @property
    def max_attempts(self) -> int:
        return self._config.max_attempts

    async def _load(self, key: str = QUEUE_KEY) -> list[PendingOperation]:
        raw = await self._store.get(key)
        return [PendingOperation.from_dict(item) for item in raw or []]

    async def _save(self, operations: list[PendingOperation], key: str = QUEUE_KEY) -> None:
        await self._store.set(key, [op.to_dict() for op in operations])

    async def enqueue(
        self,
        operation_type: OperationType | str,
        collection_path: str,
        document_id: str,
        payload: Any = None,
    ) -> PendingOperation:
        """Append an operation to the queue.

        Args:
            operation_type: create, update or delete.
            collection_path: Collection of the target document.
            document_id: Target document.
            payload: Document data (ignored for delete).

        Returns:
            The queued operation.
        """
        operation_type = OperationType(operation_type)
        operation = PendingOperation(
            operation_type=operation_type,
            collection_path=collection_path,
            document_id=document_id,
            payload=None if operation_type == OperationType.DELETE else payload,
        )

        async with self._lock:
            operations = await self._load()
            operations.append(operation)
            await self._save(operations)

        logger.info("Queued %r for offline sync (queue size: %d)", operation, len(operations))
        return operation

    async def drain(
        self,
        apply_fn: Callable[[PendingOperation], Awaitable[Any]],
    ) -> DrainResult:
        """Replay queued operations in enqueue order.

        Operations are applied one at a time. An operation is removed when
        apply_fn returns; when it raises, its attempt count is incremented
        and it stays queued until max_attempts is reached. Later operations
        for a document whose operation failed and stays queued are deferred
        to the next drain, without counting an attempt.

        Operations enqueued while the drain is running wait for the next
        drain. Concurrent drains run one after the other.

        Args:
            apply_fn: Coroutine function applying one operation remotely.

        Returns:
            Counts of applied, failed, abandoned and deferred operations.
        """
        result = DrainResult()

        async with self._drain_lock:
            snapshot = await self._load()
            if not snapshot:
                return result

            logger.info("Draining %d pending operations", len(snapshot))
            blocked: set[tuple[str, str]] = set()
            for operation in snapshot:
                document = (operation.collection_path, operation.document_id)
                if document in blocked:
                    result.deferred += 1
                    logger.debug("Deferred %r behind a failed operation", operation)
                    continue

                try:
                    await apply_fn(operation)
                except Exception as e:
                    operation.attempts += 1
                    operation.last_error = str(e)
                    if operation.attempts >= self._config.max_attempts:
                        await self._abandon(operation)
                        result.abandoned += 1
                    else:
                        await self._replace(operation)
                        blocked.add(document)
                        result.failed += 1
                        logger.debug(
                            "Replay of %r failed (attempt %d/%d): %s",
                            operation,
                            operation.attempts,
                            self._config.max_attempts,
                            e,
                        )
                else:
                    await self._remove(operation.id)
                    result.success += 1

        logger.info(
            "Drain complete: %d succeeded, %d failed, %d abandoned, %d deferred",
            result.success,
            result.failed,
            result.abandoned,
            result.deferred,
        )
        return result

    async def _remove(self, operation_id: str) -> None:
        async with self._lock:
            operations = await self._load()
            await self._save([op for op in operations if op.id != operation_id])

    async def _replace(self, operation: PendingOperation) -> None:
        async with self._lock:
            operations = await self._load()
            await self._save([operation if op.id == operation.id else op for op in operations])

    async def _abandon(self, operation: PendingOperation) -> None:
        """Move an operation to the dead-letter list."""
        async with self._lock:
            operations = await self._load()
            await self._save([op for op in operations if op.id != operation.id])
            dead = await self._load(DEAD_LETTER_KEY)
            dead.append(operation)
            await self._save(dead, DEAD_LETTER_KEY)

        logger.warning(
            "Abandoned %r after %d failed attempts: %s",
            operation,
            operation.attempts,
            operation.last_error,
        )

    async def pending(self) -> list[PendingOperation]:
        """List queued operations in enqueue order."""
        return await self._load()

    async def size(self) -> int:
        """Number of queued operations."""
        return len(await self._load())

    async def has_pending(self, collection_path: str, document_id: str) -> bool:
        """Check whether a document has a queued operation."""
        return any(
            op.collection_path == collection_path and op.document_id == document_id
            for op in await self._load()
        )

    async def dead_letters(self) -> list[PendingOperation]:
        """List abandoned operations, oldest first."""
        return await self._load(DEAD_LETTER_KEY)

    async def clear_dead_letters(self) -> int:
        """Forget abandoned operations.

        Returns:
            Number of operations removed.
        """
        async with self._lock:
            count = len(await self._load(DEAD_LETTER_KEY))
            await self._store.delete(DEAD_LETTER_KEY)
        return count

    async def clear(self) -> int:
        """Remove all queued operations.

        Returns:
            Number of operations removed.
        """
        async with self._lock:
            count = len(await self._load())
            await self._store.delete(QUEUE_KEY)
        logger.info("Cleared %d operations from queue", count)
        return count

    async def stats(self) -> dict[str, int]:
        """Get queue statistics.

        Returns:
            Dictionary with operation counts by type, plus dead letters.
        """
        stats: dict[str, int] = {
            "total": 0,
            "create": 0,
            "update": 0,
            "delete": 0,
            "dead_letter": len(await self.dead_letters()),
        }
        for op in await self._load():
            stats["total"] += 1
            stats[op.operation_type.value] += 1
        return stats
