"""Randomised retry delays for advisory lock acquisition."""

from __future__ import annotations

import random
from typing import Optional

DEFAULT_MAX_ATTEMPT_DELAY_MS = 5000


def exponential_backoff(
    attempt: int,
    *,
    max_delay_ms: int = DEFAULT_MAX_ATTEMPT_DELAY_MS,
    rng: Optional[random.Random] = None,
) -> float:
    """Return the delay in seconds to wait before attempt ``attempt + 1``.

    The delay is drawn uniformly from ``[attempt**2, (attempt + 1)**2]``
    milliseconds and capped at ``max_delay_ms``, so competing owners spread
    their retries out instead of hitting the server in lockstep.

    Args:
        attempt: 1-based number of the attempt that was just denied.
        max_delay_ms: Ceiling for a single delay.
        rng: Optional random source, mainly for tests.

    Returns:
        Delay in seconds.
    """

    if attempt < 1:
        raise ValueError("attempt numbers start at 1")

    source = rng or random
    next_try = source.randint(attempt ** 2, (attempt + 1) ** 2)
    return min(next_try, max_delay_ms) / 1000.0
