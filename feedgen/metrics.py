from __future__ import annotations

from prometheus_client import Counter, Gauge


commits_processed_total = Counter(
    "feedgen_commits_processed_total",
    "Commit messages handled by the firehose subscription",
)

posts_indexed_total = Counter(
    "feedgen_posts_indexed_total",
    "Post rows inserted into the feed store",
)

posts_deleted_total = Counter(
    "feedgen_posts_deleted_total",
    "Post rows removed from the feed store",
)

handler_errors_total = Counter(
    "feedgen_handler_errors_total",
    "Firehose events that failed to apply",
)

reconnects_total = Counter(
    "feedgen_firehose_reconnects_total",
    "Firehose reconnect attempts",
)

checkpoint_errors_total = Counter(
    "feedgen_checkpoint_errors_total",
    "Failed cursor checkpoint writes",
)

feed_requests_total = Counter(
    "feedgen_feed_requests_total",
    "Feed skeleton requests served",
    ["algo"],
)

firehose_cursor = Gauge(
    "feedgen_firehose_cursor",
    "Latest applied firehose sequence",
)

firehose_connected = Gauge(
    "feedgen_firehose_connected",
    "Firehose connection status (1=connected, 0=disconnected)",
)
