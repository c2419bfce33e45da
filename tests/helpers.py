"""Builders shared by the test modules."""

from typing import Iterable, List, Optional

from feedgen.types import CreateOp, DeleteOp, Post, RecordKind


def make_post(rkey: str, creator: str, indexed_at: str, cid: Optional[str] = None) -> Post:
    return Post(
        uri=f"at://{creator}/app.bsky.feed.post/{rkey}",
        cid=cid or f"cid{rkey}",
        creator=creator,
        indexedAt=indexed_at,
    )


def post_create(author: str, rkey: str) -> CreateOp:
    return CreateOp(
        uri=f"at://{author}/app.bsky.feed.post/{rkey}",
        cid=f"bafy{rkey}",
        author=author,
        kind=RecordKind.POST,
        record={"text": f"post {rkey}"},
    )


def post_delete(author: str, rkey: str) -> DeleteOp:
    return DeleteOp(uri=f"at://{author}/app.bsky.feed.post/{rkey}", author=author, kind=RecordKind.POST)


def uris(rows: Iterable[Post]) -> List[str]:
    return [row["uri"] for row in rows]
