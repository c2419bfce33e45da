from typing import Optional

from ..config import AppContext
from ..db import PostQuery
from ..logging_setup import get_logger
from ..pagination import build_skeleton, parse_cursor
from ..types import FeedSkeleton

logger = get_logger(__name__)

# max 15 chars
shortname = "swarm-community"


async def handler(ctx: AppContext, limit: int, cursor: Optional[str]) -> FeedSkeleton:
    """Newest posts from community members, all authors when the member set is empty."""
    query = PostQuery(
        limit=limit,
        creators=ctx.members or None,
        cursor=parse_cursor(cursor),
    )
    rows = await ctx.db.select_posts(query)
    logger.info("feed_query", algo=shortname, limit=limit, cursor=cursor, count=len(rows))
    return build_skeleton(rows, limit)
