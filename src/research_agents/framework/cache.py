"""Content-addressable cache of successful task results."""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
from collections.abc import Callable, Mapping
from dataclasses import dataclass, fields, is_dataclass
from datetime import datetime, timedelta
from enum import Enum
from pathlib import PurePath
from typing import Any, TypeVar

from research_agents.framework.errors import CacheError
from research_agents.framework.models import TaskConfig, TaskResult
from research_agents.framework.storage import CacheRecord, CacheStore, utc_now

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = 24 * 60 * 60
DEFAULT_MAX_ENTRIES = 100

T = TypeVar("T")


def sha256_bytes(data: bytes) -> str:
    return hashlib.sha256(data).hexdigest()


def canonicalize(value: Any) -> Any:
    """Reduce ``value`` to JSON-compatible data with a stable layout.

    Mappings are emitted with sorted string keys by ``json.dumps``; binary
    payloads are replaced by their digest so large file contents never reach
    the key material.
    """

    if value is None or isinstance(value, bool | int | float | str):
        return value
    if isinstance(value, Enum):
        return canonicalize(value.value)
    if isinstance(value, bytes | bytearray | memoryview):
        return {"sha256": sha256_bytes(bytes(value))}
    if isinstance(value, PurePath):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if is_dataclass(value) and not isinstance(value, type):
        return canonicalize({item.name: getattr(value, item.name) for item in fields(value)})
    if isinstance(value, Mapping):
        return {str(key): canonicalize(item) for key, item in value.items()}
    if isinstance(value, set | frozenset):
        items = [canonicalize(item) for item in value]
        return sorted(items, key=lambda item: json.dumps(item, sort_keys=True))
    if isinstance(value, list | tuple):
        return [canonicalize(item) for item in value]
    raise TypeError(f"Cannot build a cache key from {type(value).__name__}")


def create_key(config: TaskConfig, inputs: Mapping[str, Any]) -> str:
    """Deterministic digest of task id, task version and canonical inputs."""

    payload = {"id": config.id, "version": config.version, "inputs": canonicalize(dict(inputs))}
    data = json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False)
    return sha256_bytes(data.encode("utf-8"))


@dataclass(slots=True)
class CacheStats:
    total: int
    expired: int


class ResultCache:
    """Serves previously computed successful results.

    Store failures never fail a run: reads degrade to a miss and writes are
    skipped, both with a warning. There is no locking or request coalescing
    here; see ``TaskRunner(single_flight=True)`` for deduplication.
    """

    def __init__(
        self,
        store: CacheStore,
        *,
        ttl_seconds: int = DEFAULT_TTL_SECONDS,
        max_entries: int = DEFAULT_MAX_ENTRIES,
        clock: Callable[[], datetime] = utc_now,
    ) -> None:
        self.store = store
        self.ttl = timedelta(seconds=ttl_seconds)
        self.max_entries = max_entries
        self._clock = clock

    create_key = staticmethod(create_key)

    async def get(self, cache_key: str) -> TaskResult | None:
        try:
            record = await self._call(self.store.get, cache_key)
            if record is None:
                return None
            if record.expires_at <= self._clock():
                logger.debug("Cache entry %s expired", cache_key[:12])
                await self._call(self.store.delete, cache_key)
                return None
            result = TaskResult.from_dict(record.payload)
        except CacheError as exc:
            logger.warning("Cache read failed, treating as miss: %s", exc)
            return None
        except (KeyError, TypeError, ValueError) as exc:
            logger.warning("Unreadable cache entry %s, treating as miss: %s", cache_key[:12], exc)
            return None
        result.metadata.cache_hit = True
        return result

    async def set(self, task_id: str, cache_key: str, result: TaskResult) -> bool:
        """Store ``result`` when it is successful; return whether it was written."""

        if not result.success:
            return False
        now = self._clock()
        payload = result.to_dict()
        payload["metadata"]["cache_hit"] = False
        record = CacheRecord(
            cache_key=cache_key,
            task_id=task_id,
            payload=payload,
            created_at=now,
            expires_at=now + self.ttl,
        )
        try:
            await self._call(self.store.put, record)
            evicted = await self._call(self.store.prune, self.max_entries)
        except CacheError as exc:
            logger.warning("Cache write for %s skipped: %s", task_id, exc)
            return False
        if evicted:
            logger.debug("Evicted %d cache entries over the %d limit", evicted, self.max_entries)
        return True

    async def clear(self, task_id: str) -> int:
        return await self._call(self.store.delete_task, task_id)

    async def clear_all(self) -> int:
        return await self._call(self.store.clear)

    async def stats(self) -> CacheStats:
        total = await self._call(self.store.count)
        expired = await self._call(lambda: self.store.count(expired_before=self._clock()))
        return CacheStats(total=total, expired=expired)

    @staticmethod
    async def _call(fn: Callable[..., T], *args: Any) -> T:
        try:
            return await asyncio.to_thread(fn, *args)
        except Exception as exc:
            raise CacheError(f"{type(exc).__name__}: {exc}") from exc
