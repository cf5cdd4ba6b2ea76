"""
Database infrastructure with SQLite and async support.
"""

import logging
from pathlib import Path
from typing import Any, Iterable, List, Optional, Tuple

import aiosqlite


logger = logging.getLogger(__name__)


class Database:
    """Async SQLite database wrapper shared by all workers of one process."""

    def __init__(self, db_path: str = "events.db"):
        # Handle sqlite:///path and sqlite+aiosqlite:///path URLs
        if db_path.startswith("sqlite"):
            if "///" in db_path:
                actual_path = db_path.split("///")[-1]
            else:
                actual_path = db_path.split("//")[-1]
            self.db_path = Path(actual_path)
        else:
            self.db_path = Path(db_path)
        self._connection: Optional[aiosqlite.Connection] = None

    async def connect(self) -> None:
        """Open the connection once; subsequent calls are no-ops."""
        if self._connection:
            return

        if self.db_path.parent and not self.db_path.parent.exists():
            self.db_path.parent.mkdir(parents=True, exist_ok=True)

        self._connection = await aiosqlite.connect(self.db_path, timeout=30)
        self._connection.row_factory = aiosqlite.Row
        # WAL lets readers (CLI, bot) look at status while workers write
        await self._connection.execute("PRAGMA journal_mode=WAL;")
        await self._connection.execute("PRAGMA busy_timeout=30000;")
        await self._connection.execute("PRAGMA foreign_keys=ON;")
        logger.debug(f"Connected to database {self.db_path}")

    async def close(self) -> None:
        if self._connection:
            await self._connection.close()
            self._connection = None

    async def __aenter__(self) -> "Database":
        await self.connect()
        return self

    async def __aexit__(self, *_) -> None:
        await self.close()

    async def _conn(self) -> aiosqlite.Connection:
        if not self._connection:
            await self.connect()
        return self._connection

    async def execute(self, sql: str, params: Tuple[Any, ...] = ()) -> aiosqlite.Cursor:
        """Execute a statement and commit it immediately."""
        conn = await self._conn()
        cursor = await conn.execute(sql, params)
        await conn.commit()
        return cursor

    async def insert(self, sql: str, params: Tuple[Any, ...] = ()) -> int:
        """Execute an INSERT and return the new row id."""
        cursor = await self.execute(sql, params)
        return cursor.lastrowid

    async def executescript(self, script: str) -> None:
        conn = await self._conn()
        await conn.executescript(script)
        await conn.commit()

    async def fetch_one(self, sql: str, params: Tuple[Any, ...] = ()) -> Optional[aiosqlite.Row]:
        conn = await self._conn()
        async with conn.execute(sql, params) as cursor:
            return await cursor.fetchone()

    async def fetch_all(self, sql: str, params: Tuple[Any, ...] = ()) -> List[aiosqlite.Row]:
        conn = await self._conn()
        async with conn.execute(sql, params) as cursor:
            return list(await cursor.fetchall())

    async def ensure_tables(self, ddl: Iterable[str]) -> None:
        """Create tables/indexes; each statement must be idempotent."""
        for statement in ddl:
            await self.executescript(statement)
