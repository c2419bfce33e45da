"""SQLite backend. One short-lived connection per operation, WAL journal."""

from __future__ import annotations

import asyncio
import sqlite3
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, List, Optional, Sequence, TypeVar

from ..logging_setup import get_logger
from ..types import Post
from .base import SCHEMA_STATEMENTS, UPSERT_CURSOR_SQL, Database, PostQuery

logger = get_logger(__name__)

T = TypeVar("T")


class SqliteDatabase(Database):
    paramstyle = "qmark"

    def __init__(self, location: str, busy_timeout_ms: int = 5000) -> None:
        # every operation opens its own connection, so an in-memory database
        # would lose its tables between calls
        if location == ":memory:" or location.startswith("file::memory:"):
            raise ValueError("SQLite store needs a file path, in-memory databases are not supported")
        self.location = location
        self.busy_timeout_ms = busy_timeout_ms

    @contextmanager
    def _get_connection(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(
            self.location,
            timeout=self.busy_timeout_ms / 1000.0,
            isolation_level=None,  # autocommit; each statement is its own transaction
        )
        conn.row_factory = sqlite3.Row
        try:
            conn.execute(f"PRAGMA busy_timeout = {self.busy_timeout_ms}")
            conn.execute("PRAGMA journal_mode = WAL")
            conn.execute("PRAGMA synchronous = NORMAL")
            yield conn
        finally:
            conn.close()

    async def _run(self, fn: Callable[[sqlite3.Connection], T]) -> T:
        def call() -> T:
            with self._get_connection() as conn:
                return fn(conn)
        return await asyncio.get_running_loop().run_in_executor(None, call)

    async def connect(self) -> None:
        Path(self.location).parent.mkdir(parents=True, exist_ok=True)
        logger.info("sqlite_database_opened", location=self.location)

    async def close(self) -> None:
        logger.info("sqlite_database_closed", location=self.location)

    async def migrate(self) -> None:
        def create(conn: sqlite3.Connection) -> None:
            for statement in SCHEMA_STATEMENTS:
                conn.execute(statement)
        await self._run(create)
        logger.info("database_migrated", backend="sqlite")

    async def insert_posts(self, posts: Sequence[Post]) -> int:
        if not posts:
            return 0
        rows = ", ".join("(?, ?, ?, ?)" for _ in posts)
        sql = (
            f'INSERT INTO post (uri, cid, creator, "indexedAt") VALUES {rows} '
            "ON CONFLICT (uri) DO NOTHING"
        )
        args: List[Any] = []
        for post in posts:
            args.extend([post["uri"], post["cid"], post["creator"], post["indexedAt"]])
        return await self._run(lambda conn: conn.execute(sql, args).rowcount)

    async def delete_posts(self, uris: Sequence[str]) -> int:
        if not uris:
            return 0
        sql = f"DELETE FROM post WHERE uri IN ({', '.join('?' for _ in uris)})"
        return await self._run(lambda conn: conn.execute(sql, list(uris)).rowcount)

    async def get_cursor(self, service: str) -> Optional[int]:
        def fetch(conn: sqlite3.Connection) -> Optional[int]:
            row = conn.execute(
                "SELECT cursor FROM sub_state WHERE service = ?", (service,)
            ).fetchone()
            return int(row["cursor"]) if row is not None else None
        return await self._run(fetch)

    async def update_cursor(self, service: str, cursor: int) -> None:
        sql = UPSERT_CURSOR_SQL.format(service="?", cursor="?")
        await self._run(lambda conn: conn.execute(sql, (service, cursor)))

    async def select_posts(self, query: PostQuery) -> List[Post]:
        sql, args = self.build_select(query)

        def fetch(conn: sqlite3.Connection) -> List[Post]:
            return [
                Post(uri=row["uri"], cid=row["cid"], creator=row["creator"], indexedAt=row["indexedAt"])
                for row in conn.execute(sql, args).fetchall()
            ]
        return await self._run(fetch)

    async def count_posts(self) -> int:
        return await self._run(lambda conn: conn.execute("SELECT COUNT(*) FROM post").fetchone()[0])
