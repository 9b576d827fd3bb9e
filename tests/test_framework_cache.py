from __future__ import annotations

import asyncio
from dataclasses import dataclass, replace
from datetime import UTC, datetime, timedelta
from pathlib import Path

import allure
import pytest

from research_agents.framework.cache import ResultCache, canonicalize, create_key
from research_agents.framework.errors import ErrorDetail, ErrorKind
from research_agents.framework.models import TaskConfig, TaskResult
from research_agents.framework.storage import MemoryCacheStore, SqlCacheStore

pytestmark = [
    allure.epic("Task Framework"),
    allure.feature("Result Cache"),
]

CONFIG = TaskConfig(id="cached", name="Cached", description="", version="1.0.0")


class FakeClock:
    def __init__(self) -> None:
        self.now = datetime(2026, 1, 1, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: int) -> None:
        self.now += timedelta(seconds=seconds)


class BrokenStore(MemoryCacheStore):
    def get(self, cache_key: str):
        raise OSError("disk unavailable")

    def put(self, record) -> None:
        raise OSError("disk unavailable")


@dataclass
class Upload:
    name: str
    content: bytes


def _ok(value: str) -> TaskResult:
    return TaskResult(success=True, data={"value": value})


def test_key_is_stable_under_input_reordering() -> None:
    first = create_key(CONFIG, {"a": 1, "b": {"x": [1, 2], "y": "z"}})
    second = create_key(CONFIG, {"b": {"y": "z", "x": [1, 2]}, "a": 1})

    assert first == second
    assert len(first) == 64


def test_key_changes_with_version_and_inputs() -> None:
    base = create_key(CONFIG, {"a": 1})

    assert create_key(replace(CONFIG, version="1.0.1"), {"a": 1}) != base
    assert create_key(replace(CONFIG, id="other"), {"a": 1}) != base
    assert create_key(CONFIG, {"a": 2}) != base


def test_tuples_and_lists_canonicalize_alike_and_bytes_are_hashed() -> None:
    assert create_key(CONFIG, {"a": (1, 2)}) == create_key(CONFIG, {"a": [1, 2]})

    canonical = canonicalize(Upload(name="paper.pdf", content=b"%PDF-1.4"))

    assert canonical["name"] == "paper.pdf"
    assert set(canonical["content"]) == {"sha256"}


def test_uncanonicalizable_input_raises_type_error() -> None:
    with pytest.raises(TypeError):
        create_key(CONFIG, {"a": object()})


def test_hit_returns_fresh_copy_flagged_as_cache_hit() -> None:
    cache = ResultCache(MemoryCacheStore())

    async def scenario():
        assert await cache.set(CONFIG.id, "k", _ok("v"))
        first = await cache.get("k")
        first.data["value"] = "mutated"
        return first, await cache.get("k")

    first, second = asyncio.run(scenario())

    assert first.metadata.cache_hit
    assert second.metadata.cache_hit
    assert second.data == {"value": "v"}


def test_failed_results_are_not_stored() -> None:
    cache = ResultCache(MemoryCacheStore())
    failed = TaskResult(
        success=False,
        errors=[ErrorDetail(kind=ErrorKind.STEP_EXECUTION, message="nope")],
    )

    async def scenario():
        stored = await cache.set(CONFIG.id, "k", failed)
        return stored, await cache.get("k")

    stored, cached = asyncio.run(scenario())

    assert stored is False
    assert cached is None


def test_expired_entries_are_misses_and_deleted() -> None:
    clock = FakeClock()
    store = MemoryCacheStore()
    cache = ResultCache(store, ttl_seconds=60, clock=clock)

    async def scenario():
        await cache.set(CONFIG.id, "k", _ok("v"))
        clock.advance(30)
        fresh = await cache.get("k")
        clock.advance(31)
        return fresh, await cache.get("k")

    fresh, expired = asyncio.run(scenario())

    assert fresh is not None
    assert expired is None
    assert store.count() == 0


def test_oldest_entries_are_evicted_over_max_entries() -> None:
    clock = FakeClock()
    cache = ResultCache(MemoryCacheStore(), max_entries=2, clock=clock)

    async def scenario():
        for key in ("k1", "k2", "k3"):
            await cache.set(CONFIG.id, key, _ok(key))
            clock.advance(1)
        return [await cache.get(key) for key in ("k1", "k2", "k3")]

    k1, k2, k3 = asyncio.run(scenario())

    assert k1 is None
    assert k2 is not None
    assert k3 is not None


def test_store_failures_degrade_to_miss() -> None:
    cache = ResultCache(BrokenStore())

    async def scenario():
        return await cache.set(CONFIG.id, "k", _ok("v")), await cache.get("k")

    stored, cached = asyncio.run(scenario())

    assert stored is False
    assert cached is None


def test_clear_by_task_and_stats() -> None:
    clock = FakeClock()
    cache = ResultCache(MemoryCacheStore(), ttl_seconds=10, clock=clock)

    async def scenario():
        await cache.set("a", "k1", _ok("1"))
        await cache.set("b", "k2", _ok("2"))
        clock.advance(20)
        stats = await cache.stats()
        removed = await cache.clear("a")
        return stats, removed, await cache.stats()

    stats, removed, after = asyncio.run(scenario())

    assert (stats.total, stats.expired) == (2, 2)
    assert removed == 1
    assert after.total == 1


def test_sql_store_persists_across_instances(tmp_path: Path) -> None:
    db_path = tmp_path / "nested" / "cache.db"
    store = SqlCacheStore(db_path)
    cache = ResultCache(store)
    asyncio.run(cache.set(CONFIG.id, "k", _ok("durable")))
    store.close()

    reopened = SqlCacheStore(db_path)
    try:
        cached = asyncio.run(ResultCache(reopened).get("k"))
        assert cached is not None
        assert cached.data == {"value": "durable"}
        assert cached.metadata.cache_hit
        assert reopened.count() == 1
        assert reopened.delete_task(CONFIG.id) == 1
        assert reopened.count() == 0
    finally:
        reopened.close()


def test_sql_store_prunes_oldest(tmp_path: Path) -> None:
    clock = FakeClock()
    store = SqlCacheStore(tmp_path / "cache.db")
    cache = ResultCache(store, max_entries=1, clock=clock)
    try:

        async def scenario():
            await cache.set(CONFIG.id, "old", _ok("old"))
            clock.advance(5)
            await cache.set(CONFIG.id, "new", _ok("new"))
            return await cache.get("old"), await cache.get("new")

        old, new = asyncio.run(scenario())
        assert old is None
        assert new.data == {"value": "new"}
    finally:
        store.close()
