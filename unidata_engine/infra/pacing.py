"""Delay helpers shared by the fetcher and the job queue."""

from __future__ import annotations

import random
import time
from typing import Callable

Sleeper = Callable[[float], None]

JITTER_RATIO = 0.2


def jittered_delay(base: float, ratio: float = JITTER_RATIO, rng: Callable[[float, float], float] = random.uniform) -> float:
    """Return ``base`` shifted by up to ``ratio`` in either direction."""

    if base <= 0:
        return 0.0
    return max(0.0, base + rng(-base * ratio, base * ratio))


def backoff_delay(attempt: int, base: float, multiplier: float) -> float:
    """Delay before retry number ``attempt`` (1-based): ``base * multiplier^(attempt-1)``."""

    if attempt < 1:
        raise ValueError("attempt is 1-based")
    return base * multiplier ** (attempt - 1)


def real_sleep(seconds: float) -> None:
    if seconds > 0:
        time.sleep(seconds)


__all__ = ["JITTER_RATIO", "Sleeper", "backoff_delay", "jittered_delay", "real_sleep"]
