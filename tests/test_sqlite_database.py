"""
Integration tests for the SQLite post store.

Tests cover:
- Idempotent inserts and deletes
- sub_state cursor upsert
- Feed ordering and the creator/since/cursor predicates
"""

import pytest

from feedgen.db import PostQuery, PostgresDatabase, SqliteDatabase, create_database
from feedgen.pagination import FeedCursor

from tests.helpers import make_post, uris

ALICE = "did:plc:alice"
BOB = "did:plc:bob"


class TestPostWrites:

    @pytest.mark.asyncio
    async def test_insert_is_idempotent(self, db):
        post = make_post("a1", ALICE, "2025-03-15T00:00:01.000Z")

        assert await db.insert_posts([post]) == 1
        assert await db.insert_posts([post]) == 0
        assert await db.count_posts() == 1

    @pytest.mark.asyncio
    async def test_duplicate_uri_keeps_first_row(self, db):
        await db.insert_posts([make_post("a1", ALICE, "2025-03-15T00:00:01.000Z", cid="first")])
        await db.insert_posts([make_post("a1", ALICE, "2025-03-15T00:00:09.000Z", cid="second")])

        [row] = await db.select_posts(PostQuery(limit=10))

        assert row["cid"] == "first"

    @pytest.mark.asyncio
    async def test_delete_missing_uri_is_noop(self, db):
        assert await db.delete_posts(["at://did:plc:alice/app.bsky.feed.post/nope"]) == 0

    @pytest.mark.asyncio
    async def test_delete_removes_rows(self, db):
        posts = [
            make_post("a1", ALICE, "2025-03-15T00:00:01.000Z"),
            make_post("a2", ALICE, "2025-03-15T00:00:02.000Z"),
        ]
        await db.insert_posts(posts)

        assert await db.delete_posts([posts[0]["uri"]]) == 1
        assert uris(await db.select_posts(PostQuery(limit=10))) == [posts[1]["uri"]]

    @pytest.mark.asyncio
    async def test_empty_batches(self, db):
        assert await db.insert_posts([]) == 0
        assert await db.delete_posts([]) == 0


class TestSubState:

    @pytest.mark.asyncio
    async def test_missing_cursor(self, db):
        assert await db.get_cursor("wss://bsky.network") is None

    @pytest.mark.asyncio
    async def test_cursor_upsert(self, db):
        await db.update_cursor("wss://bsky.network", 100)
        await db.update_cursor("wss://bsky.network", 250)
        await db.update_cursor("wss://other.relay", 7)

        assert await db.get_cursor("wss://bsky.network") == 250
        assert await db.get_cursor("wss://other.relay") == 7

    @pytest.mark.asyncio
    async def test_cursor_survives_reopen(self, db_path):
        first = SqliteDatabase(db_path)
        await first.connect()
        await first.migrate()
        await first.update_cursor("wss://bsky.network", 42)
        await first.close()

        second = SqliteDatabase(db_path)
        await second.connect()
        await second.migrate()

        assert await second.get_cursor("wss://bsky.network") == 42


class TestSelectPosts:

    @pytest.mark.asyncio
    async def test_newest_first_with_cid_tiebreak(self, db):
        same = "2025-03-15T00:00:05.000Z"
        await db.insert_posts([
            make_post("old", ALICE, "2025-03-15T00:00:01.000Z"),
            make_post("x", ALICE, same, cid="bafyaaa"),
            make_post("y", ALICE, same, cid="bafyzzz"),
        ])

        rows = await db.select_posts(PostQuery(limit=10))

        assert [row["cid"] for row in rows] == ["bafyzzz", "bafyaaa", "cidold"]

    @pytest.mark.asyncio
    async def test_creators_filter(self, db):
        await db.insert_posts([
            make_post("a1", ALICE, "2025-03-15T00:00:01.000Z"),
            make_post("b1", BOB, "2025-03-15T00:00:02.000Z"),
        ])

        rows = await db.select_posts(PostQuery(limit=10, creators=frozenset({ALICE})))

        assert [row["creator"] for row in rows] == [ALICE]

    @pytest.mark.asyncio
    async def test_since_filter(self, db):
        await db.insert_posts([
            make_post("old", ALICE, "2025-03-01T00:00:00.000Z"),
            make_post("new", ALICE, "2025-03-15T00:00:00.000Z"),
        ])

        rows = await db.select_posts(PostQuery(limit=10, since="2025-03-10T00:00:00.000Z"))

        assert [row["cid"] for row in rows] == ["cidnew"]

    @pytest.mark.asyncio
    async def test_cursor_is_exclusive(self, db):
        same = "2025-03-15T00:00:05.000Z"
        await db.insert_posts([
            make_post("old", ALICE, "2025-03-15T00:00:01.000Z"),
            make_post("x", ALICE, same, cid="bafyaaa"),
            make_post("y", ALICE, same, cid="bafyzzz"),
        ])

        rows = await db.select_posts(
            PostQuery(limit=10, cursor=FeedCursor(indexed_at=same, cid="bafyzzz"))
        )

        assert [row["cid"] for row in rows] == ["bafyaaa", "cidold"]

    @pytest.mark.asyncio
    async def test_limit(self, db):
        await db.insert_posts(
            [make_post(str(i), ALICE, f"2025-03-15T00:00:0{i}.000Z") for i in range(5)]
        )

        rows = await db.select_posts(PostQuery(limit=2))

        assert [row["cid"] for row in rows] == ["cid4", "cid3"]


class TestBackendSelection:

    def test_sqlite_path(self):
        database = create_database("data/feed.db")

        assert isinstance(database, SqliteDatabase)
        assert database.location == "data/feed.db"

    def test_sqlite_prefix_stripped(self):
        database = create_database("sqlite:data/feed.db")

        assert isinstance(database, SqliteDatabase)
        assert database.location == "data/feed.db"

    @pytest.mark.parametrize("dsn", ["postgres://u:p@db/feed", "postgresql://u:p@db/feed"])
    def test_postgres_url(self, dsn):
        assert isinstance(create_database(dsn), PostgresDatabase)

    def test_postgres_query_uses_numbered_params(self):
        database = PostgresDatabase("postgres://u:p@db/feed")

        sql, args = database.build_select(
            PostQuery(
                limit=5,
                creators=frozenset({ALICE}),
                cursor=FeedCursor(indexed_at="2025-03-15T00:00:00.000Z", cid="bafy1"),
            )
        )

        assert "creator = ANY($1::text[])" in sql
        assert "LIMIT $5" in sql
        assert "?" not in sql
        assert args == [[ALICE], "2025-03-15T00:00:00.000Z", "2025-03-15T00:00:00.000Z", "bafy1", 5]

    @pytest.mark.parametrize("location", [":memory:", "sqlite::memory:"])
    def test_in_memory_location_rejected(self, location):
        with pytest.raises(ValueError, match="in-memory"):
            create_database(location)
