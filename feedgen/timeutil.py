from datetime import datetime, timezone
from typing import Optional


def iso_timestamp(dt: Optional[datetime] = None) -> str:
    """UTC timestamp with millisecond precision and a Z suffix.

    Rows compare lexicographically on this string, so every writer must use it.
    """
    if dt is None:
        dt = datetime.now(timezone.utc)
    return dt.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")
