"""Community membership filtering for firehose posts."""

from typing import FrozenSet, Iterable, List

from .logging_setup import get_logger
from .timeutil import iso_timestamp
from .types import CreateOp, Post

logger = get_logger(__name__)


class CommunityFilter:
    """Decides which post creates belong in the community feed.

    With an empty member set the filter runs in open mode and accepts every
    author, which is what a fresh deployment uses to bootstrap.
    """

    def __init__(self, members: FrozenSet[str]):
        self.members = frozenset(members)

        # Statistics
        self.total_posts_processed = 0
        self.posts_accepted = 0
        self.posts_rejected = 0

    @property
    def open_mode(self) -> bool:
        return not self.members

    def is_member(self, did: str) -> bool:
        return self.open_mode or did in self.members

    def should_include_post(self, create: CreateOp) -> bool:
        self.total_posts_processed += 1
        if self.is_member(create.author):
            self.posts_accepted += 1
            return True
        self.posts_rejected += 1
        return False

    def posts_to_create(self, creates: Iterable[CreateOp]) -> List[Post]:
        """Map accepted creates to post rows stamped with the current time."""
        rows: List[Post] = []
        for create in creates:
            if not self.should_include_post(create):
                continue
            logger.info("community_post_found", author=create.author, uri=create.uri)
            rows.append(
                Post(
                    uri=create.uri,
                    cid=create.cid,
                    creator=create.author,
                    indexedAt=iso_timestamp(),
                )
            )
        return rows

    def get_stats(self) -> dict:
        acceptance_rate = (
            self.posts_accepted / self.total_posts_processed
            if self.total_posts_processed > 0 else 0
        )
        return {
            "total_processed": self.total_posts_processed,
            "accepted": self.posts_accepted,
            "rejected": self.posts_rejected,
            "acceptance_rate": acceptance_rate,
            "open_mode": self.open_mode,
            "members": len(self.members),
        }
