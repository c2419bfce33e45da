from datetime import datetime, timedelta, timezone
from typing import Optional

from ..config import AppContext
from ..db import PostQuery
from ..logging_setup import get_logger
from ..pagination import build_skeleton, parse_cursor
from ..timeutil import iso_timestamp
from ..types import FeedSkeleton

logger = get_logger(__name__)

# max 15 chars
shortname = "swarm-trending"


async def handler(ctx: AppContext, limit: int, cursor: Optional[str]) -> FeedSkeleton:
    """Community posts from the trending window, newest first.

    Ranking is recency only for now. When the window is empty the query is
    repeated without it, so a quiet week still returns older member posts.
    """
    feed_cursor = parse_cursor(cursor)
    creators = ctx.members or None
    window_start = datetime.now(timezone.utc) - timedelta(days=ctx.settings.trending_window_days)

    rows = await ctx.db.select_posts(
        PostQuery(limit=limit, creators=creators, cursor=feed_cursor, since=iso_timestamp(window_start))
    )
    logger.info("feed_query", algo=shortname, limit=limit, cursor=cursor, count=len(rows))

    if not rows:
        logger.info("trending_window_empty", algo=shortname, window_days=ctx.settings.trending_window_days)
        rows = await ctx.db.select_posts(
            PostQuery(limit=limit, creators=creators, cursor=feed_cursor)
        )
        logger.info("trending_fallback_query", algo=shortname, count=len(rows))

    return build_skeleton(rows, limit)
