"""Monotonic time source for scheduling arithmetic."""

from __future__ import annotations

import time
from typing import Protocol


class Clock(Protocol):
    def now(self) -> int:
        """Current monotonic time in milliseconds."""
        ...


class MonotonicClock:
    """Elapsed-time clock immune to wall-clock adjustment."""

    def now(self) -> int:
        # 0 means "never checked" to the registry
        return max(time.monotonic_ns() // 1_000_000, 1)
