import asyncio
from typing import Any, Callable, List, Mapping, Optional, Sequence, Union

from atproto import (
    AsyncFirehoseSubscribeReposClient,
    AtUri,
    CAR,
    firehose_models,
    models,
    parse_subscribe_repos_message,
)

from .errors import MalformedMessageError, StreamClosedError, StreamStalledError
from .logging_setup import get_logger
from .types import CreateOp, DeleteOp, RecordKind

log = get_logger(__name__)

DecodedOp = Union[CreateOp, DeleteOp]

_RECORD_MODELS = {
    RecordKind.POST: models.AppBskyFeedPost.Record,
    RecordKind.REPOST: models.AppBskyFeedRepost.Record,
    RecordKind.LIKE: models.AppBskyFeedLike.Record,
    RecordKind.FOLLOW: models.AppBskyGraphFollow.Record,
}


def is_commit(message: Any) -> bool:
    return isinstance(message, models.ComAtprotoSyncSubscribeRepos.Commit)


def _validate_record(kind: RecordKind, raw: Any) -> Optional[Any]:
    """Build the lexicon model for ``kind`` or return None when the block doesn't fit it."""
    model = _RECORD_MODELS[kind]
    try:
        record = models.get_or_create(raw, model, strict=True)
    except Exception as e:
        log.debug("record_validation_failed", collection=kind.value, error=str(e))
        return None
    if not isinstance(record, model):
        return None
    return record


def _read_blocks(data: Optional[bytes]) -> Mapping:
    if not data:
        return {}
    try:
        return CAR.from_bytes(data).blocks
    except Exception as e:
        log.warning("car_decode_failed", error=str(e))
        return {}


def decode_ops(repo: str, ops: Sequence[Any], blocks: Mapping) -> List[DecodedOp]:
    """Turn the repo ops of one commit into typed create/delete operations.

    Updates are skipped. A create whose block is missing or fails validation is
    dropped on its own; the remaining ops are still decoded.
    """
    decoded: List[DecodedOp] = []
    for op in ops:
        if op.action == "update":
            continue

        try:
            uri = AtUri.from_str(f"at://{repo}/{op.path}")
        except Exception as e:
            log.debug("op_path_invalid", repo=repo, path=op.path, error=str(e))
            continue

        kind = RecordKind.from_collection(uri.collection)
        if kind is None:
            continue

        if op.action == "delete":
            decoded.append(DeleteOp(uri=str(uri), author=repo, kind=kind))
            continue

        if op.action == "create" and op.cid:
            record_raw_data = blocks.get(op.cid)
            if not record_raw_data:
                log.debug("create_block_missing", uri=str(uri), cid=str(op.cid))
                continue
            record = _validate_record(kind, record_raw_data)
            if record is None:
                continue
            decoded.append(
                CreateOp(uri=str(uri), cid=str(op.cid), author=repo, kind=kind, record=record)
            )
    return decoded


def decode_commit(commit: models.ComAtprotoSyncSubscribeRepos.Commit) -> List[DecodedOp]:
    return decode_ops(commit.repo, commit.ops, _read_blocks(commit.blocks))


class _Closed:
    def __init__(self, error: Optional[BaseException]):
        self.error = error


def _xrpc_base_uri(endpoint: str) -> str:
    endpoint = endpoint.rstrip("/")
    if endpoint.endswith("/xrpc"):
        return endpoint
    return f"{endpoint}/xrpc"


class FirehoseStream:
    """One firehose connection exposed as an async iterator of parsed messages.

    Frames are handed over through a bounded queue, so a slow consumer slows
    the websocket reader down instead of buffering without limit. Iteration
    raises a ``StreamError`` when the connection ends, when no frame arrives
    within ``idle_timeout`` seconds, or when a frame can't be parsed.
    """

    def __init__(
            self,
            endpoint: str,
            cursor: Optional[int] = None,
            idle_timeout: Optional[float] = 60.0,
            max_queue: int = 1000,
        ):
        params = None
        if cursor is not None:
            params = models.ComAtprotoSyncSubscribeRepos.Params(cursor=cursor)
        self.endpoint = endpoint
        self.idle_timeout = idle_timeout
        self.client = AsyncFirehoseSubscribeReposClient(params, base_uri=_xrpc_base_uri(endpoint))
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max_queue)
        self._task: Optional[asyncio.Task] = None

    async def __aenter__(self) -> "FirehoseStream":
        self._task = asyncio.create_task(self._run())
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    async def _on_message(self, message: firehose_models.MessageFrame) -> None:
        await self._queue.put(message)

    async def _run(self) -> None:
        error: Optional[BaseException] = None
        try:
            await self.client.start(self._on_message)
        except Exception as e:
            error = e
        await self._queue.put(_Closed(error))

    def __aiter__(self) -> "FirehoseStream":
        return self

    async def __anext__(self) -> Any:
        try:
            item = await asyncio.wait_for(self._queue.get(), timeout=self.idle_timeout)
        except asyncio.TimeoutError:
            raise StreamStalledError(f"no firehose frame within {self.idle_timeout}s") from None

        if isinstance(item, _Closed):
            if item.error is not None:
                raise StreamClosedError(f"firehose connection failed: {item.error}") from item.error
            raise StreamClosedError("firehose connection closed")

        try:
            message = parse_subscribe_repos_message(item)
        except Exception as e:
            raise MalformedMessageError(f"unparseable firehose frame: {e}") from e

        # The client reconnects on its own after network errors; keep it
        # resuming from the latest frame instead of the initial cursor.
        seq = getattr(message, "seq", None)
        if isinstance(seq, int):
            self.client.update_params(models.ComAtprotoSyncSubscribeRepos.Params(cursor=seq))
        return message

    async def close(self) -> None:
        try:
            await self.client.stop()
        except Exception as e:
            log.warning("firehose_stop_failed", error=str(e))
        if self._task is not None and not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        self._task = None


def firehose_stream_factory(endpoint: str, idle_timeout: Optional[float]) -> Callable[[Optional[int]], FirehoseStream]:
    def open_stream(cursor: Optional[int]) -> FirehoseStream:
        return FirehoseStream(endpoint, cursor=cursor, idle_timeout=idle_timeout)
    return open_stream
