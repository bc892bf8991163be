"""Latest-value mirror of remote documents for offline reads."""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from fleetsync.client.storage import KeyValueStore

logger = logging.getLogger(__name__)

CACHE_PREFIX = "cache:"


def make_cache_key(
    collection_path: str,
    document_id: str,
    sub_key: str | dict[str, Any] | None = None,
) -> str:
    """Build the cache key of a document.

    Dict sub-keys are serialized with sorted keys so parameter order does
    not matter.
    """
    key = f"{collection_path}/{document_id}"
    if sub_key is None:
        return key
    if isinstance(sub_key, dict):
        sub_key = json.dumps(sub_key, sort_keys=True, default=str)
    return f"{key}?{sub_key}"


@dataclass
class CacheEntry:
    """A cached value and when it was stored."""

    key: str
    value: Any
    timestamp: datetime


class LocalCache:
    """Best-effort mirror of the latest known value per key.

    No expiry and no versioning: a later put silently overwrites.
    """

    def __init__(self, store: KeyValueStore) -> None:
        self._store = store

    async def put(self, key: str, value: Any) -> None:
        await self._store.set(CACHE_PREFIX + key, {
            "value": value,
            "timestamp": datetime.now(timezone.utc).isoformat(),
        })
        logger.debug("Cached %s", key)

    async def get(self, key: str) -> Any | None:
        entry = await self.get_entry(key)
        return entry.value if entry else None

    async def get_entry(self, key: str) -> CacheEntry | None:
        raw = await self._store.get(CACHE_PREFIX + key)
        if raw is None:
            return None
        return CacheEntry(
            key=key,
            value=raw["value"],
            timestamp=datetime.fromisoformat(raw["timestamp"]),
        )

    async def delete(self, key: str) -> None:
        await self._store.delete(CACHE_PREFIX + key)
