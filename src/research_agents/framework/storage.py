"""Backing stores for the task result cache."""

from __future__ import annotations

import copy
import json
import sqlite3
import threading
from dataclasses import dataclass
from datetime import UTC, datetime
from pathlib import Path
from typing import Any, Protocol

from sqlalchemy import Column, DateTime, Text, event
from sqlalchemy import delete as sa_delete
from sqlalchemy.engine import Engine
from sqlalchemy.pool import NullPool
from sqlmodel import Field, Session, SQLModel, col, create_engine, func, select


def utc_now() -> datetime:
    """Current UTC timestamp."""

    return datetime.now(tz=UTC)


def as_utc(value: datetime) -> datetime:
    """SQLite drops tzinfo; stored values are always UTC."""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value


@dataclass(slots=True)
class CacheRecord:
    """One stored task result."""

    cache_key: str
    task_id: str
    payload: dict[str, Any]
    created_at: datetime
    expires_at: datetime


class CacheStore(Protocol):
    """Key-value persistence used by ``ResultCache``."""

    def get(self, cache_key: str) -> CacheRecord | None: ...

    def put(self, record: CacheRecord) -> None: ...

    def delete(self, cache_key: str) -> None: ...

    def delete_task(self, task_id: str) -> int: ...

    def clear(self) -> int: ...

    def count(self, *, expired_before: datetime | None = None) -> int: ...

    def prune(self, max_entries: int) -> int: ...


class CachedResult(SQLModel, table=True):
    __tablename__ = "task_result_cache"  # type: ignore[bad-override]

    cache_key: str = Field(primary_key=True)
    task_id: str = Field(index=True)
    payload: str = Field(sa_column=Column(Text, nullable=False))
    created_at: datetime = Field(sa_column=Column(DateTime(timezone=True), nullable=False))
    expires_at: datetime = Field(
        sa_column=Column(DateTime(timezone=True), nullable=False, index=True),
    )


def build_sqlite_engine(*, db_path: Path, busy_timeout_ms: int) -> Engine:
    """Build SQLAlchemy engine with consistent SQLite policy."""

    db_url = f"sqlite:///{db_path}"
    engine = create_engine(
        db_url,
        connect_args={
            "check_same_thread": False,
            "timeout": max(1.0, busy_timeout_ms / 1000.0),
        },
        poolclass=NullPool,
    )
    event.listen(
        engine,
        "connect",
        lambda dbapi_connection, _: _apply_sqlite_pragmas(
            dbapi_connection,
            busy_timeout_ms=busy_timeout_ms,
        ),
    )
    return engine


def _apply_sqlite_pragmas(dbapi_connection: sqlite3.Connection, *, busy_timeout_ms: int) -> None:
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA journal_mode = WAL")
    cursor.execute(f"PRAGMA busy_timeout = {max(1, busy_timeout_ms)}")
    cursor.close()


class SqlCacheStore:
    """Durable cache store backed by SQLModel + SQLite."""

    def __init__(self, db_path: Path, *, busy_timeout_ms: int = 5_000) -> None:
        self.db_path = db_path
        db_path.parent.mkdir(parents=True, exist_ok=True)
        self.engine = build_sqlite_engine(db_path=db_path, busy_timeout_ms=busy_timeout_ms)
        table = CachedResult.__table__  # type: ignore[attr-defined]
        SQLModel.metadata.create_all(self.engine, tables=[table])

    def close(self) -> None:
        self.engine.dispose()

    def get(self, cache_key: str) -> CacheRecord | None:
        with Session(self.engine) as session:
            row = session.get(CachedResult, cache_key)
            if row is None:
                return None
            return CacheRecord(
                cache_key=row.cache_key,
                task_id=row.task_id,
                payload=json.loads(row.payload),
                created_at=as_utc(row.created_at),
                expires_at=as_utc(row.expires_at),
            )

    def put(self, record: CacheRecord) -> None:
        with Session(self.engine) as session:
            session.merge(
                CachedResult(
                    cache_key=record.cache_key,
                    task_id=record.task_id,
                    payload=json.dumps(record.payload, ensure_ascii=False),
                    created_at=record.created_at,
                    expires_at=record.expires_at,
                ),
            )
            session.commit()

    def delete(self, cache_key: str) -> None:
        with Session(self.engine) as session:
            statement = sa_delete(CachedResult).where(col(CachedResult.cache_key) == cache_key)
            session.exec(statement)  # type: ignore[call-overload]
            session.commit()

    def delete_task(self, task_id: str) -> int:
        with Session(self.engine) as session:
            statement = sa_delete(CachedResult).where(col(CachedResult.task_id) == task_id)
            result = session.exec(statement)  # type: ignore[call-overload]
            session.commit()
            return int(result.rowcount or 0)

    def clear(self) -> int:
        with Session(self.engine) as session:
            result = session.exec(sa_delete(CachedResult))  # type: ignore[call-overload]
            session.commit()
            return int(result.rowcount or 0)

    def count(self, *, expired_before: datetime | None = None) -> int:
        statement = select(func.count()).select_from(CachedResult)
        if expired_before is not None:
            statement = statement.where(col(CachedResult.expires_at) <= expired_before)
        with Session(self.engine) as session:
            return int(session.exec(statement).one())

    def prune(self, max_entries: int) -> int:
        with Session(self.engine) as session:
            stale_keys = session.exec(
                select(CachedResult.cache_key)
                .order_by(col(CachedResult.created_at).desc())
                .offset(max_entries),
            ).all()
            if not stale_keys:
                return 0
            statement = sa_delete(CachedResult).where(col(CachedResult.cache_key).in_(stale_keys))
            session.exec(statement)  # type: ignore[call-overload]
            session.commit()
            return len(stale_keys)


class MemoryCacheStore:
    """Process-local store; reads return deep copies of stored payloads."""

    def __init__(self) -> None:
        self._records: dict[str, CacheRecord] = {}
        self._lock = threading.Lock()

    def get(self, cache_key: str) -> CacheRecord | None:
        with self._lock:
            record = self._records.get(cache_key)
            return copy.deepcopy(record) if record is not None else None

    def put(self, record: CacheRecord) -> None:
        with self._lock:
            self._records[record.cache_key] = copy.deepcopy(record)

    def delete(self, cache_key: str) -> None:
        with self._lock:
            self._records.pop(cache_key, None)

    def delete_task(self, task_id: str) -> int:
        with self._lock:
            keys = [key for key, record in self._records.items() if record.task_id == task_id]
            for key in keys:
                del self._records[key]
            return len(keys)

    def clear(self) -> int:
        with self._lock:
            removed = len(self._records)
            self._records.clear()
            return removed

    def count(self, *, expired_before: datetime | None = None) -> int:
        with self._lock:
            if expired_before is None:
                return len(self._records)
            return sum(1 for r in self._records.values() if r.expires_at <= expired_before)

    def prune(self, max_entries: int) -> int:
        with self._lock:
            ordered = sorted(self._records.values(), key=lambda r: r.created_at, reverse=True)
            stale = ordered[max_entries:]
            for record in stale:
                del self._records[record.cache_key]
            return len(stale)
