"""Recovery wake for checks that never report completion."""

from __future__ import annotations

import logging

from mail_poller.core.clock import Clock
from mail_poller.core.models import WakeSnapshot
from mail_poller.core.ports import WakeTimer
from mail_poller.core.snapshot import encode_snapshot

logger = logging.getLogger(__name__)

WATCHDOG_DELAY_MS = 10 * 60 * 1000


class WatchdogTimer:
    """Arms a fixed-delay wake each time a check is about to start.

    The watchdog shares the scheduler's wake-timer slot, so it is never
    cancelled explicitly: a normal completion calls ``Scheduler.rearm()``,
    which replaces it, and arming again for the same account replaces the
    previous watchdog instead of stacking.
    """

    def __init__(self, timer: WakeTimer, clock: Clock, delay_ms: int = WATCHDOG_DELAY_MS) -> None:
        self._timer = timer
        self._clock = clock
        self._delay_ms = delay_ms

    @property
    def delay_ms(self) -> int:
        return self._delay_ms

    def arm(self, account_id: int) -> int:
        """Arm the watchdog for ``account_id`` and return its deadline."""
        deadline = self._clock.now() + self._delay_ms
        payload = encode_snapshot(WakeSnapshot(account_id=account_id, watchdog=True))
        self._timer.arm(deadline, payload)
        logger.debug("Watchdog armed for account %d at %d", account_id, deadline)
        return deadline
