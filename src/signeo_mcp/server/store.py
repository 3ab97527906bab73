"""ToolStore - persistence for editable tool descriptions.

The store is the source of truth for tool description text. The registry
mirrors it and listens for change events so edits made through the admin
routes reach live sessions without a restart.
"""

from __future__ import annotations

import sqlite3
from abc import ABC, abstractmethod
from collections.abc import Callable, Iterator
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Literal

import anyio.to_thread
from pydantic import BaseModel, Field

from signeo_mcp.server.utilities.logging import get_logger

logger = get_logger(__name__)


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ToolRecord(BaseModel):
    """A stored tool description."""

    name: str
    description: str
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)


@dataclass(frozen=True)
class ToolChangeEvent:
    kind: Literal["upserted", "deleted"]
    record: ToolRecord


ToolChangeListener = Callable[[ToolChangeEvent], None]


class ToolStore(ABC):
    """Abstract interface for tool description storage.

    All data methods are async to support various backends. Listeners are
    plain callables invoked after a change has been committed; they must not
    block.
    """

    def __init__(self) -> None:
        self._listeners: list[ToolChangeListener] = []

    @abstractmethod
    async def list_all(self) -> list[ToolRecord]:
        """Return every stored tool, sorted by name."""

    @abstractmethod
    async def get(self, name: str) -> ToolRecord | None:
        """Return one tool, or None when it is not stored."""

    @abstractmethod
    async def _write(self, name: str, description: str) -> ToolRecord: ...

    @abstractmethod
    async def _remove(self, name: str) -> ToolRecord | None: ...

    async def upsert(self, name: str, description: str) -> ToolRecord:
        """Create or replace the description of ``name`` and notify listeners."""
        record = await self._write(name, description)
        self._notify(ToolChangeEvent("upserted", record))
        return record

    async def delete(self, name: str) -> bool:
        """Delete ``name``. Returns False when nothing was stored under it."""
        record = await self._remove(name)
        if record is None:
            return False
        self._notify(ToolChangeEvent("deleted", record))
        return True

    def subscribe(self, listener: ToolChangeListener) -> Callable[[], None]:
        """Register ``listener`` for change events and return an unsubscribe callable."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: ToolChangeEvent) -> None:
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Tool change listener failed for %s", event.record.name)


class InMemoryToolStore(ToolStore):
    """Keeps tool descriptions in a dict. Used when no database is configured and in tests."""

    def __init__(self, records: dict[str, str] | None = None) -> None:
        super().__init__()
        self._records: dict[str, ToolRecord] = {
            name: ToolRecord(name=name, description=description) for name, description in (records or {}).items()
        }

    async def list_all(self) -> list[ToolRecord]:
        return sorted(self._records.values(), key=lambda record: record.name)

    async def get(self, name: str) -> ToolRecord | None:
        return self._records.get(name)

    async def _write(self, name: str, description: str) -> ToolRecord:
        existing = self._records.get(name)
        now = _utcnow()
        record = ToolRecord(
            name=name,
            description=description,
            created_at=existing.created_at if existing else now,
            updated_at=now,
        )
        self._records[name] = record
        return record

    async def _remove(self, name: str) -> ToolRecord | None:
        return self._records.pop(name, None)


class SQLiteToolStore(ToolStore):
    """SQLite-based implementation of ToolStore.

    Queries run in a worker thread so the event loop is never blocked on disk.
    """

    def __init__(self, db_path: str = "tools.db") -> None:
        super().__init__()
        self.db_path = db_path
        self._init_db()

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()

    def _init_db(self) -> None:
        with self._connect() as conn:
            conn.execute("""
                CREATE TABLE IF NOT EXISTS tools (
                    name TEXT PRIMARY KEY,
                    description TEXT NOT NULL,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                )
            """)

    @staticmethod
    def _to_record(row: sqlite3.Row) -> ToolRecord:
        return ToolRecord(
            name=row["name"],
            description=row["description"],
            created_at=datetime.fromisoformat(row["created_at"]),
            updated_at=datetime.fromisoformat(row["updated_at"]),
        )

    def _list_all_sync(self) -> list[ToolRecord]:
        with self._connect() as conn:
            rows = conn.execute("SELECT * FROM tools ORDER BY name").fetchall()
        return [self._to_record(row) for row in rows]

    def _get_sync(self, name: str) -> ToolRecord | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tools WHERE name = ?", (name,)).fetchone()
        return self._to_record(row) if row else None

    def _write_sync(self, name: str, description: str) -> ToolRecord:
        now = _utcnow().isoformat()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO tools (name, description, created_at, updated_at)
                VALUES (?, ?, ?, ?)
                ON CONFLICT(name) DO UPDATE SET
                    description = excluded.description,
                    updated_at = excluded.updated_at
                """,
                (name, description, now, now),
            )
            row = conn.execute("SELECT * FROM tools WHERE name = ?", (name,)).fetchone()
        return self._to_record(row)

    def _remove_sync(self, name: str) -> ToolRecord | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM tools WHERE name = ?", (name,)).fetchone()
            if row is None:
                return None
            conn.execute("DELETE FROM tools WHERE name = ?", (name,))
        return self._to_record(row)

    async def list_all(self) -> list[ToolRecord]:
        return await anyio.to_thread.run_sync(self._list_all_sync)

    async def get(self, name: str) -> ToolRecord | None:
        return await anyio.to_thread.run_sync(self._get_sync, name)

    async def _write(self, name: str, description: str) -> ToolRecord:
        return await anyio.to_thread.run_sync(self._write_sync, name, description)

    async def _remove(self, name: str) -> ToolRecord | None:
        return await anyio.to_thread.run_sync(self._remove_sync, name)
