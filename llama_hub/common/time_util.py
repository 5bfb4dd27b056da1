from __future__ import annotations

import time
from datetime import datetime, timezone


def utc_now_iso() -> str:
    """UTC time as an ISO-8601 string with a Z suffix."""
    return datetime.now(timezone.utc).replace(microsecond=0).isoformat().replace("+00:00", "Z")


def unix_now() -> int:
    return int(time.time())
