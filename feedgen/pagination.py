"""Opaque feed cursor and page assembly shared by every feed algorithm."""

from dataclasses import dataclass
from typing import Optional, Sequence

from .errors import InvalidRequestError
from .types import FeedSkeleton, Post

CURSOR_SEPARATOR = "::"


@dataclass(frozen=True)
class FeedCursor:
    """Sort key of the last row a caller has seen: ``<indexedAt>::<cid>``."""
    indexed_at: str
    cid: str

    def encode(self) -> str:
        return f"{self.indexed_at}{CURSOR_SEPARATOR}{self.cid}"

    @classmethod
    def decode(cls, value: str) -> "FeedCursor":
        parts = value.split(CURSOR_SEPARATOR)
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise InvalidRequestError("Invalid cursor")
        return cls(indexed_at=parts[0], cid=parts[1])

    @classmethod
    def from_post(cls, post: Post) -> "FeedCursor":
        return cls(indexed_at=post["indexedAt"], cid=post["cid"])


def parse_cursor(value: Optional[str]) -> Optional[FeedCursor]:
    if value is None:
        return None
    return FeedCursor.decode(value)


def clamp_limit(limit: Optional[int], default: int, maximum: int) -> int:
    if limit is None:
        limit = default
    return max(1, min(limit, maximum))


def build_skeleton(rows: Sequence[Post], limit: int) -> FeedSkeleton:
    """Feed page of post URIs; a cursor is only handed out for a full page."""
    skeleton: FeedSkeleton = {"feed": [{"post": row["uri"]} for row in rows]}
    if rows and len(rows) >= limit:
        skeleton["cursor"] = FeedCursor.from_post(rows[-1]).encode()
    return skeleton
