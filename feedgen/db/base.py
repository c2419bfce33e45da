"""
Storage interface for the feed generator.

Two relations back the service:

    post:
        - uri TEXT PRIMARY KEY
        - cid TEXT
        - creator TEXT (author DID)
        - "indexedAt" TEXT (ISO 8601, see feedgen.timeutil)
        - INDEX on ("indexedAt", cid)
        - INDEX on (creator)

    sub_state:
        - service TEXT PRIMARY KEY
        - cursor INTEGER

Invariants:
    - Every insert and every delete is one statement, so readers never see
      half of an event applied
    - Inserting an existing uri and deleting a missing uri are no-ops
    - Feed pages are ordered by ("indexedAt" DESC, cid DESC)

Backends only differ in parameter style and in how a list of values is bound;
the query text itself is assembled here.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any, FrozenSet, List, Optional, Sequence, Tuple

from ..pagination import FeedCursor
from ..types import Post


@dataclass(frozen=True)
class PostQuery:
    """One page of the post table.

    Attributes:
        limit: Maximum number of rows
        creators: Restrict to these authors; None means every author
        cursor: Only rows strictly after this sort key
        since: Only rows indexed at or after this ISO timestamp
    """
    limit: int
    creators: Optional[FrozenSet[str]] = None
    cursor: Optional[FeedCursor] = None
    since: Optional[str] = None


class Database(ABC):
    """Backend-agnostic access to the post and sub_state relations."""

    paramstyle = "qmark"

    @abstractmethod
    async def connect(self) -> None: ...

    @abstractmethod
    async def close(self) -> None: ...

    @abstractmethod
    async def migrate(self) -> None:
        """Create tables and indexes if they don't exist."""

    @abstractmethod
    async def insert_posts(self, posts: Sequence[Post]) -> int:
        """Insert rows, ignoring uris that are already stored. Returns rows added."""

    @abstractmethod
    async def delete_posts(self, uris: Sequence[str]) -> int:
        """Delete rows by uri. Returns rows removed."""

    @abstractmethod
    async def get_cursor(self, service: str) -> Optional[int]: ...

    @abstractmethod
    async def update_cursor(self, service: str, cursor: int) -> None: ...

    @abstractmethod
    async def select_posts(self, query: PostQuery) -> List[Post]: ...

    @abstractmethod
    async def count_posts(self) -> int: ...

    def _placeholder(self, position: int) -> str:
        if self.paramstyle == "numeric":
            return f"${position}"
        return "?"

    def build_select(self, query: PostQuery) -> Tuple[str, List[Any]]:
        args: List[Any] = []

        def param(value: Any) -> str:
            args.append(value)
            return self._placeholder(len(args))

        clauses: List[str] = []
        if query.creators is not None:
            creators = sorted(query.creators)
            if self.paramstyle == "numeric":
                clauses.append(f"creator = ANY({param(creators)}::text[])")
            else:
                clauses.append(f"creator IN ({', '.join(param(c) for c in creators)})")
        if query.since is not None:
            clauses.append(f'"indexedAt" >= {param(query.since)}')
        if query.cursor is not None:
            before = param(query.cursor.indexed_at)
            same = param(query.cursor.indexed_at)
            cid = param(query.cursor.cid)
            clauses.append(f'("indexedAt" < {before} OR ("indexedAt" = {same} AND cid < {cid}))')

        sql = 'SELECT uri, cid, creator, "indexedAt" FROM post'
        if clauses:
            sql += " WHERE " + " AND ".join(clauses)
        sql += f' ORDER BY "indexedAt" DESC, cid DESC LIMIT {param(query.limit)}'
        return sql, args


SCHEMA_STATEMENTS = [
    """
    CREATE TABLE IF NOT EXISTS post (
        uri TEXT PRIMARY KEY,
        cid TEXT NOT NULL,
        creator TEXT NOT NULL,
        "indexedAt" TEXT NOT NULL
    )
    """,
    'CREATE INDEX IF NOT EXISTS post_indexed_at_cid_idx ON post ("indexedAt", cid)',
    "CREATE INDEX IF NOT EXISTS post_creator_idx ON post (creator)",
    """
    CREATE TABLE IF NOT EXISTS sub_state (
        service TEXT PRIMARY KEY,
        cursor BIGINT NOT NULL
    )
    """,
]

UPSERT_CURSOR_SQL = (
    "INSERT INTO sub_state (service, cursor) VALUES ({service}, {cursor}) "
    "ON CONFLICT (service) DO UPDATE SET cursor = excluded.cursor"
)
