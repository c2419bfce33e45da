"""
Pytest fixtures for the feed generator tests.
"""

import pytest
import pytest_asyncio

from feedgen.config import AppContext, Settings
from feedgen.db import SqliteDatabase

ALICE = "did:plc:alice"
BOB = "did:plc:bob"
PUBLISHER = "did:plc:publisher"


@pytest.fixture
def db_path(tmp_path):
    return str(tmp_path / "feed.db")


@pytest_asyncio.fixture
async def db(db_path):
    """Migrated SQLite store in a temporary directory."""
    database = SqliteDatabase(db_path)
    await database.connect()
    await database.migrate()
    yield database
    await database.close()


@pytest.fixture
def settings():
    return Settings(
        hostname="feed.example.com",
        publisher_did=PUBLISHER,
        community_members=[ALICE],
        feed_default_limit=50,
        feed_max_limit=100,
    )


@pytest.fixture
def ctx(db, settings):
    return AppContext(db=db, members=settings.members(), settings=settings)
