"""Reconnect backoff for the WebSocket session."""

from __future__ import annotations

import random
from collections.abc import Callable

# Step below 10 s, step of 10 s below 60 s, then random in [60, 600).
FINE_LIMIT = 10
COARSE_LIMIT = 60
COARSE_STEP = 10
RANDOM_SPAN = 540


def next_reconnect_delay(
    previous: int,
    rand_fn: Callable[[int], int] = random.randrange,
) -> int:
    """Delay in seconds that follows ``previous``.

    Args:
        previous: Last delay used, 0 when none was used yet.
        rand_fn: Returns an int in ``[0, n)``; injectable for tests.

    Returns:
        ``previous + 1`` below 10, ``previous + 10`` below 60, else
        ``60 + rand_fn(540)``.
    """
    if previous < FINE_LIMIT:
        return previous + 1
    if previous < COARSE_LIMIT:
        return previous + COARSE_STEP
    return COARSE_LIMIT + rand_fn(RANDOM_SPAN)
