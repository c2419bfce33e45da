"""PostgreSQL backend on an asyncpg connection pool."""

from __future__ import annotations

from typing import List, Optional, Sequence

import asyncpg

from ..logging_setup import get_logger
from ..types import Post
from .base import SCHEMA_STATEMENTS, UPSERT_CURSOR_SQL, Database, PostQuery

logger = get_logger(__name__)


def _affected_rows(status: str) -> int:
    # asyncpg returns the command tag, e.g. "INSERT 0 3" or "DELETE 2"
    try:
        return int(status.split()[-1])
    except (ValueError, IndexError):
        return 0


class PostgresDatabase(Database):
    paramstyle = "numeric"

    def __init__(self, dsn: str, min_size: int = 1, max_size: int = 10) -> None:
        self.dsn = dsn
        self.min_size = min_size
        self.max_size = max_size
        self.pool: Optional[asyncpg.Pool] = None

    def _require_pool(self) -> asyncpg.Pool:
        if self.pool is None:
            raise RuntimeError("PostgreSQL pool is not connected")
        return self.pool

    async def connect(self) -> None:
        self.pool = await asyncpg.create_pool(
            dsn=self.dsn,
            min_size=self.min_size,
            max_size=self.max_size,
            max_inactive_connection_lifetime=30.0,
            command_timeout=60,
        )
        # Only log the host part of the DSN
        logger.info("postgres_pool_created", connection=self.dsn.rsplit("@", 1)[-1])

    async def close(self) -> None:
        if self.pool is not None:
            await self.pool.close()
            self.pool = None
            logger.info("postgres_pool_closed")

    async def migrate(self) -> None:
        pool = self._require_pool()
        async with pool.acquire() as conn:
            for statement in SCHEMA_STATEMENTS:
                await conn.execute(statement)
        logger.info("database_migrated", backend="postgres")

    async def insert_posts(self, posts: Sequence[Post]) -> int:
        if not posts:
            return 0
        status = await self._require_pool().execute(
            """
            INSERT INTO post (uri, cid, creator, "indexedAt")
            SELECT * FROM unnest($1::text[], $2::text[], $3::text[], $4::text[])
            ON CONFLICT (uri) DO NOTHING
            """,
            [p["uri"] for p in posts],
            [p["cid"] for p in posts],
            [p["creator"] for p in posts],
            [p["indexedAt"] for p in posts],
        )
        return _affected_rows(status)

    async def delete_posts(self, uris: Sequence[str]) -> int:
        if not uris:
            return 0
        status = await self._require_pool().execute(
            "DELETE FROM post WHERE uri = ANY($1::text[])", list(uris)
        )
        return _affected_rows(status)

    async def get_cursor(self, service: str) -> Optional[int]:
        value = await self._require_pool().fetchval(
            "SELECT cursor FROM sub_state WHERE service = $1", service
        )
        return int(value) if value is not None else None

    async def update_cursor(self, service: str, cursor: int) -> None:
        await self._require_pool().execute(
            UPSERT_CURSOR_SQL.format(service="$1", cursor="$2"), service, cursor
        )

    async def select_posts(self, query: PostQuery) -> List[Post]:
        sql, args = self.build_select(query)
        rows = await self._require_pool().fetch(sql, *args)
        return [
            Post(uri=row["uri"], cid=row["cid"], creator=row["creator"], indexedAt=row["indexedAt"])
            for row in rows
        ]

    async def count_posts(self) -> int:
        return await self._require_pool().fetchval("SELECT COUNT(*) FROM post")
