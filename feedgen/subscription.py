import asyncio
from datetime import datetime, timezone
from enum import Enum
from typing import Any, AsyncContextManager, AsyncIterator, Callable, FrozenSet, Optional

from .classifier import classify
from .cursor_store import PersistentCursorState, SubscriptionStateStore
from .db import Database
from .errors import StreamError
from .filters import CommunityFilter
from .firehose import decode_commit, is_commit
from .logging_setup import get_logger
from .metrics import (
    commits_processed_total,
    firehose_connected,
    handler_errors_total,
    posts_deleted_total,
    posts_indexed_total,
    reconnects_total,
)
from .types import OpsByType

log = get_logger(__name__)

StreamFactory = Callable[[Optional[int]], AsyncContextManager[AsyncIterator[Any]]]


class SubscriptionStatus(str, Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    STREAMING = "streaming"
    RECONNECTING = "reconnecting"


class FirehoseSubscription:
    """Long-running consumer of one firehose service.

    Messages are applied strictly one after another. A failure while applying
    a single event is logged and the loop moves on; a failure of the stream
    itself sends the subscription through ``RECONNECTING`` and it resumes from
    the latest applied cursor after ``reconnect_delay`` seconds. There is no
    retry limit.
    """

    def __init__(
            self,
            db: Database,
            service: str,
            open_stream: StreamFactory,
            members: FrozenSet[str],
            reconnect_delay: float = 3.0,
            cursor_save_interval: int = 20,
        ):
        self.db = db
        self.service = service
        self.open_stream = open_stream
        self.reconnect_delay = reconnect_delay
        self.community_filter = CommunityFilter(members)
        self.cursor_state = PersistentCursorState(
            SubscriptionStateStore(db, service), save_interval=cursor_save_interval
        )

        self.status = SubscriptionStatus.DISCONNECTED
        self._stop_event = asyncio.Event()
        self._cursor_loaded = False

        # Statistics
        self.connection_start_time: Optional[datetime] = None
        self.last_event_time: Optional[datetime] = None
        self.event_count = 0
        self.reconnect_count = 0

    @property
    def connected(self) -> bool:
        return self.status is SubscriptionStatus.STREAMING

    def stop(self) -> None:
        self._stop_event.set()

    async def apply_ops(self, ops: OpsByType) -> None:
        """Write one commit's post operations to the store."""
        posts_to_delete = [delete.uri for delete in ops.posts.deletes]
        posts_to_create = self.community_filter.posts_to_create(ops.posts.creates)

        if posts_to_delete:
            deleted = await self.db.delete_posts(posts_to_delete)
            posts_deleted_total.inc(deleted)
            log.info("posts_deleted", requested=len(posts_to_delete), deleted=deleted)
        if posts_to_create:
            inserted = await self.db.insert_posts(posts_to_create)
            posts_indexed_total.inc(inserted)
            log.info("posts_inserted", accepted=len(posts_to_create), inserted=inserted)

    async def handle_event(self, message: Any) -> None:
        if not is_commit(message):
            return
        ops = classify(decode_commit(message))
        log.debug(
            "firehose_commit",
            repo=message.repo,
            seq=message.seq,
            posts=len(ops.posts.creates),
            likes=len(ops.likes.creates),
            reposts=len(ops.reposts.creates),
            follows=len(ops.follows.creates),
        )
        await self.apply_ops(ops)

    async def process_message(self, message: Any) -> None:
        """Apply one message, then advance the cursor if it was a commit."""
        self.last_event_time = datetime.now(timezone.utc)
        self.event_count += 1

        try:
            await self.handle_event(message)
        except Exception as e:
            handler_errors_total.inc()
            log.error(
                "handle_event_failed",
                error=str(e),
                event_count=self.event_count,
                seq=getattr(message, "seq", None),
            )

        if is_commit(message):
            commits_processed_total.inc()
            await self.cursor_state.update_cursor(message.seq)

    async def _resume_cursor(self) -> Optional[int]:
        if not self._cursor_loaded:
            await self.cursor_state.initialize()
            self._cursor_loaded = True
        return self.cursor_state.get_cursor()

    async def _wait_reconnect_delay(self) -> None:
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=self.reconnect_delay)
        except asyncio.TimeoutError:
            pass

    async def _stream_once(self) -> None:
        self.status = SubscriptionStatus.CONNECTING
        cursor = await self._resume_cursor()
        log.info("firehose_connecting", service=self.service, cursor=cursor)

        async with self.open_stream(cursor) as stream:
            self.status = SubscriptionStatus.STREAMING
            self.connection_start_time = datetime.now(timezone.utc)
            self.event_count = 0
            firehose_connected.set(1)
            log.info("firehose_subscription_started", service=self.service, cursor=cursor)

            async for message in stream:
                await self.process_message(message)
                if self._stop_event.is_set():
                    return

        log.warning("firehose_stream_ended", service=self.service)

    async def run(self) -> None:
        """Consume the firehose until ``stop()`` is called."""
        try:
            while not self._stop_event.is_set():
                try:
                    await self._stream_once()
                except StreamError as e:
                    log.warning("firehose_stream_error", error=str(e), event_count=self.event_count)
                except Exception as e:
                    log.error(
                        "firehose_subscription_error",
                        error=str(e),
                        event_count=self.event_count,
                        exc_info=True,
                    )
                finally:
                    firehose_connected.set(0)

                if self._stop_event.is_set():
                    break

                self.status = SubscriptionStatus.RECONNECTING
                self.reconnect_count += 1
                reconnects_total.inc()
                log.info("firehose_reconnecting", delay=self.reconnect_delay, attempt=self.reconnect_count)
                await self._wait_reconnect_delay()
        finally:
            self.status = SubscriptionStatus.DISCONNECTED
            await self.cursor_state.force_save()
            log.info("firehose_subscription_stopped", service=self.service, cursor=self.cursor_state.get_cursor())

    def get_connection_stats(self) -> dict:
        connection_age = None
        if self.connection_start_time is not None and self.connected:
            connection_age = (datetime.now(timezone.utc) - self.connection_start_time).total_seconds()
        return {
            "status": self.status.value,
            "connected": self.connected,
            "connection_start_time": self.connection_start_time.isoformat() if self.connection_start_time else None,
            "last_event_time": self.last_event_time.isoformat() if self.last_event_time else None,
            "connection_age_seconds": connection_age,
            "event_count": self.event_count,
            "reconnect_count": self.reconnect_count,
            "cursor": self.cursor_state.get_cursor_status(),
            "filter": self.community_filter.get_stats(),
        }
