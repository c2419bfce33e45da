"""
HTTP tests for the XRPC endpoints, did.json and health checks.
"""

import asyncio

import pytest
from fastapi.testclient import TestClient

from feedgen.config import AppContext, Settings
from feedgen.db import SqliteDatabase
from feedgen.server import create_app, feed_uri

from tests.conftest import ALICE, BOB, PUBLISHER
from tests.helpers import make_post

T1 = "2025-03-15T00:00:01.000Z"
T2 = "2025-03-15T00:00:02.000Z"
T3 = "2025-03-15T00:00:03.000Z"

COMMUNITY_FEED = f"at://{PUBLISHER}/app.bsky.feed.generator/swarm-community"


async def _prepare(db):
    await db.connect()
    await db.migrate()
    await db.insert_posts([
        make_post("T1", ALICE, T1),
        make_post("T2", ALICE, T2),
        make_post("T3", ALICE, T3),
        make_post("B1", BOB, T3),
    ])


@pytest.fixture
def seeded_db(db_path):
    database = SqliteDatabase(db_path)
    asyncio.run(_prepare(database))
    return database


@pytest.fixture
def client(seeded_db, settings):
    ctx = AppContext(db=seeded_db, members=settings.members(), settings=settings)
    with TestClient(create_app(ctx)) as test_client:
        yield test_client


class TestGetFeedSkeleton:

    def test_first_page(self, client):
        response = client.get(
            "/xrpc/app.bsky.feed.getFeedSkeleton", params={"feed": COMMUNITY_FEED, "limit": 2}
        )

        assert response.status_code == 200
        body = response.json()
        assert body["feed"] == [
            {"post": f"at://{ALICE}/app.bsky.feed.post/T3"},
            {"post": f"at://{ALICE}/app.bsky.feed.post/T2"},
        ]
        assert body["cursor"] == f"{T2}::cidT2"

    def test_follow_cursor(self, client):
        response = client.get(
            "/xrpc/app.bsky.feed.getFeedSkeleton",
            params={"feed": COMMUNITY_FEED, "limit": 2, "cursor": f"{T2}::cidT2"},
        )

        body = response.json()
        assert body["feed"] == [{"post": f"at://{ALICE}/app.bsky.feed.post/T1"}]
        assert "cursor" not in body

    def test_limit_clamped(self, client):
        response = client.get(
            "/xrpc/app.bsky.feed.getFeedSkeleton", params={"feed": COMMUNITY_FEED, "limit": 1000}
        )

        assert response.status_code == 200
        assert len(response.json()["feed"]) == 3

    def test_trending_feed(self, client):
        feed = f"at://{PUBLISHER}/app.bsky.feed.generator/swarm-trending"

        response = client.get("/xrpc/app.bsky.feed.getFeedSkeleton", params={"feed": feed})

        assert response.status_code == 200
        assert len(response.json()["feed"]) == 3

    @pytest.mark.parametrize(
        "feed",
        [
            f"at://{PUBLISHER}/app.bsky.feed.generator/whats-hot",
            "at://did:plc:someoneelse/app.bsky.feed.generator/swarm-community",
            f"at://{PUBLISHER}/app.bsky.feed.post/swarm-community",
        ],
    )
    def test_unsupported_algorithm(self, client, feed):
        response = client.get("/xrpc/app.bsky.feed.getFeedSkeleton", params={"feed": feed})

        assert response.status_code == 400
        assert response.json()["error"] == "UnsupportedAlgorithm"

    def test_malformed_cursor(self, client):
        response = client.get(
            "/xrpc/app.bsky.feed.getFeedSkeleton",
            params={"feed": COMMUNITY_FEED, "cursor": "garbage"},
        )

        assert response.status_code == 400
        assert response.json() == {"error": "InvalidRequest", "message": "Invalid cursor"}

    def test_missing_feed_param(self, client):
        response = client.get("/xrpc/app.bsky.feed.getFeedSkeleton")

        assert response.status_code == 400
        assert response.json()["error"] == "InvalidRequest"


class TestDescribeAndIdentity:

    def test_describe_feed_generator(self, client):
        response = client.get("/xrpc/app.bsky.feed.describeFeedGenerator")

        assert response.json() == {
            "did": "did:web:feed.example.com",
            "feeds": [
                {"uri": feed_uri(PUBLISHER, "swarm-community")},
                {"uri": feed_uri(PUBLISHER, "swarm-trending")},
            ],
        }

    def test_did_document(self, client):
        response = client.get("/.well-known/did.json")

        assert response.status_code == 200
        document = response.json()
        assert document["id"] == "did:web:feed.example.com"
        [feed_service] = [s for s in document["service"] if s["id"] == "#atproto_feed_generator"]
        assert feed_service["serviceEndpoint"] == "https://feed.example.com"

    def test_did_document_for_foreign_did(self, seeded_db):
        settings = Settings(hostname="feed.example.com", service_did="did:plc:notweb")
        ctx = AppContext(db=seeded_db, members=settings.members(), settings=settings)

        with TestClient(create_app(ctx)) as test_client:
            assert test_client.get("/.well-known/did.json").status_code == 404


class TestHealth:

    def test_health(self, client):
        response = client.get("/health")

        assert response.json() == {"status": "healthy", "service": "did:web:feed.example.com"}

    def test_detailed_health(self, client):
        body = client.get("/health/detailed").json()

        assert body["posts"] == 4
        assert body["community_members"] == 1
        assert body["firehose"] is None

    def test_metrics(self, client):
        response = client.get("/metrics")

        assert response.status_code == 200
        assert "feed_requests_total" in response.text

    def test_metrics_disabled(self, seeded_db):
        settings = Settings(hostname="feed.example.com", metrics_enabled=False)
        ctx = AppContext(db=seeded_db, members=settings.members(), settings=settings)

        with TestClient(create_app(ctx)) as test_client:
            assert test_client.get("/metrics").status_code == 404
