"""Type definitions for the feed generator."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, List, Optional, TypedDict


class RecordKind(str, Enum):
    """Closed set of record collections the firehose decoder understands."""
    POST = "app.bsky.feed.post"
    REPOST = "app.bsky.feed.repost"
    LIKE = "app.bsky.feed.like"
    FOLLOW = "app.bsky.graph.follow"

    @classmethod
    def from_collection(cls, collection: str) -> Optional["RecordKind"]:
        try:
            return cls(collection)
        except ValueError:
            return None


@dataclass(frozen=True)
class CreateOp:
    uri: str
    cid: str
    author: str  # DID of the repo owner
    kind: RecordKind
    record: Any  # validated atproto record model


@dataclass(frozen=True)
class DeleteOp:
    uri: str
    author: str
    kind: RecordKind


@dataclass
class Operations:
    creates: List[CreateOp] = field(default_factory=list)
    deletes: List[DeleteOp] = field(default_factory=list)


@dataclass
class OpsByType:
    posts: Operations = field(default_factory=Operations)
    reposts: Operations = field(default_factory=Operations)
    likes: Operations = field(default_factory=Operations)
    follows: Operations = field(default_factory=Operations)


class Post(TypedDict):
    """Row of the post table."""
    uri: str
    cid: str
    creator: str  # DID of the author
    indexedAt: str  # ISO 8601 timestamp


class FeedItem(TypedDict):
    post: str


class FeedSkeleton(TypedDict, total=False):
    cursor: str
    feed: List[FeedItem]
