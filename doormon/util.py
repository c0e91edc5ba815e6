from __future__ import annotations

import time
from datetime import datetime, timezone


def now_s() -> float:
    """Monotonic clock in seconds."""
    return time.monotonic()


def utc_timestamp(dt: datetime | None = None) -> str:
    """ISO8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    if dt is None:
        dt = datetime.now(timezone.utc)
    dt = dt.astimezone(timezone.utc)
    return dt.isoformat(timespec="milliseconds").replace("+00:00", "Z")
