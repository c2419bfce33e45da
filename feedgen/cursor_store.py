"""Durable firehose cursor kept in the sub_state table."""

import time
from typing import Optional

from .db import Database
from .logging_setup import get_logger
from .metrics import checkpoint_errors_total, firehose_cursor

logger = get_logger(__name__)


class SubscriptionStateStore:
    """Reads and writes the sub_state row of one upstream service."""

    def __init__(self, db: Database, service: str):
        self.db = db
        self.service = service

    async def save_cursor(self, cursor: int) -> bool:
        """Persist the cursor. Failures are logged and reported as False."""
        try:
            await self.db.update_cursor(self.service, cursor)
            logger.debug("cursor_saved", cursor=cursor, service=self.service)
            return True
        except Exception as e:
            checkpoint_errors_total.inc()
            logger.error("cursor_save_failed", cursor=cursor, service=self.service, error=str(e))
            return False

    async def load_cursor(self) -> Optional[int]:
        cursor = await self.db.get_cursor(self.service)
        if cursor is None:
            logger.info("no_saved_cursor", service=self.service)
        else:
            logger.info("cursor_loaded", cursor=cursor, service=self.service)
        return cursor


class PersistentCursorState:
    """Cursor position with batched checkpoints.

    Every ``save_interval``-th call to ``update_cursor`` writes through to the
    store. On a crash at most ``save_interval - 1`` commits are replayed, which
    the idempotent post writes absorb.
    """

    def __init__(self, store: SubscriptionStateStore, save_interval: int = 20):
        self.store = store
        self.save_interval = max(1, save_interval)
        self.cursor: Optional[int] = None
        self.saved_cursor: Optional[int] = None
        self.events_since_save = 0
        self.last_updated = 0.0
        self.last_saved = 0.0

    async def initialize(self) -> Optional[int]:
        """Load the checkpoint; None means start from the stream head."""
        saved = await self.store.load_cursor()
        if saved is not None:
            self.cursor = saved
            self.saved_cursor = saved
            firehose_cursor.set(saved)
        return saved

    async def update_cursor(self, new_cursor: int) -> None:
        """Record an applied commit and checkpoint once per batch."""
        self.cursor = new_cursor
        self.last_updated = time.time()
        firehose_cursor.set(new_cursor)

        self.events_since_save += 1
        if self.events_since_save >= self.save_interval:
            self.events_since_save = 0
            await self._save()

    async def _save(self) -> bool:
        if self.cursor is None:
            return False
        success = await self.store.save_cursor(self.cursor)
        if success:
            self.saved_cursor = self.cursor
            self.last_saved = time.time()
        return success

    async def force_save(self) -> bool:
        """Write the current cursor now if it hasn't been saved yet."""
        if self.cursor is None or self.cursor == self.saved_cursor:
            return False
        return await self._save()

    def get_cursor(self) -> Optional[int]:
        return self.cursor

    def get_cursor_status(self) -> dict:
        return {
            "current_cursor": self.cursor,
            "saved_cursor": self.saved_cursor,
            "events_since_save": self.events_since_save,
            "last_updated": self.last_updated,
            "last_saved": self.last_saved,
        }
