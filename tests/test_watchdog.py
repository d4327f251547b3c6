"""Tests for WatchdogTimer."""

from __future__ import annotations

from mail_poller.core.snapshot import decode_snapshot
from mail_poller.scheduling.watchdog import WATCHDOG_DELAY_MS, WatchdogTimer


class TestArm:
    """arm() schedules a recovery wake a fixed delay out."""

    def test_default_delay_is_ten_minutes(self) -> None:
        assert WATCHDOG_DELAY_MS == 600_000

    def test_arms_at_now_plus_delay(self, timer, clock) -> None:
        deadline = WatchdogTimer(timer, clock).arm(4)
        assert deadline == clock.now() + WATCHDOG_DELAY_MS
        assert timer.armed_at == deadline

    def test_payload_carries_only_account(self, timer, clock) -> None:
        WatchdogTimer(timer, clock).arm(4)
        snapshot = decode_snapshot(timer.payload)
        assert snapshot.account_id == 4
        assert snapshot.watchdog is True
        assert snapshot.prev_sync_times == ()

    def test_rearming_replaces_pending_watchdog(self, timer, clock) -> None:
        watchdog = WatchdogTimer(timer, clock, delay_ms=1_000)
        watchdog.arm(4)
        clock.advance(500)
        watchdog.arm(4)
        assert timer.armed_at == clock.now() + 1_000
        assert len(timer.arm_calls) == 2

    def test_custom_delay(self, timer, clock) -> None:
        watchdog = WatchdogTimer(timer, clock, delay_ms=5)
        assert watchdog.delay_ms == 5
        assert watchdog.arm(1) == clock.now() + 5
