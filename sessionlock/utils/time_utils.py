"""Clock helpers shared by the lock package."""

from __future__ import annotations

import datetime as dt
import time


UTC = dt.timezone.utc


def now_utc() -> dt.datetime:
    """Return the current time as an aware ``datetime`` in UTC."""

    return dt.datetime.now(UTC)


def monotonic() -> float:
    return time.monotonic()
