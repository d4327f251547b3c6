"""Tests for Scheduler - next-account selection and wake timer arming."""

from __future__ import annotations

import threading
from unittest.mock import MagicMock

import pytest

from mail_poller.core.models import CHECK_INTERVAL_NEVER, DUE_NOW, Selection
from mail_poller.core.snapshot import decode_snapshot
from mail_poller.scheduling.registry import SyncRegistry
from mail_poller.scheduling.scheduler import Scheduler

MINUTE = 60 * 1000


@pytest.fixture
def scheduler(registry: SyncRegistry, timer) -> Scheduler:
    registry.load()
    return Scheduler(registry, timer)


class TestPickNext:
    """pick_next() applies never-checked > overdue > soonest."""

    def test_never_checked_preempts_scheduled(self, scheduler, registry, clock) -> None:
        registry.update(2)
        with registry.locked() as reports:
            reports[2].next_sync_time = clock.now() + 5 * MINUTE

        assert scheduler.pick_next() == Selection(1, DUE_NOW)

    def test_never_checked_preempts_overdue(self, scheduler, registry, clock) -> None:
        registry.update(2)
        clock.advance_minutes(60)
        assert scheduler.pick_next() == Selection(1, DUE_NOW)

    def test_overdue_is_due_now(self, scheduler, registry, clock) -> None:
        registry.update(1)
        registry.update(2)
        clock.advance_minutes(20)
        assert scheduler.pick_next() == Selection(1, DUE_NOW)

    def test_soonest_next_sync_wins(self, scheduler, registry, clock) -> None:
        registry.update(2)
        registry.update(1)
        checked_at = clock.now()
        clock.advance_minutes(1)
        assert scheduler.pick_next() == Selection(1, checked_at + 15 * MINUTE)

    def test_skips_unscheduled_accounts(self, source, clock, timer, make_account) -> None:
        source.accounts.clear()
        source.add(make_account(5, interval=CHECK_INTERVAL_NEVER))
        source.add(make_account(6, interval=0))
        source.add(make_account(7, protocol="eas"))
        registry = SyncRegistry(source, clock)
        registry.load()
        assert Scheduler(registry, timer).pick_next() == Selection(None)

    def test_selection_always_has_positive_interval(
        self, scheduler, registry, source, make_account
    ) -> None:
        source.add(make_account(3, interval=CHECK_INTERVAL_NEVER))
        registry.refresh()
        for _ in range(3):
            selection = scheduler.pick_next()
            assert registry.get(selection.account_id).sync_interval > 0
            registry.update(selection.account_id)

    def test_empty_registry(self, source, clock, timer) -> None:
        source.accounts.clear()
        assert Scheduler(SyncRegistry(source, clock), timer).pick_next() == Selection(None)


class TestRearm:
    """rearm() arms or cancels the single wake timer."""

    def test_arms_timer_with_snapshot(self, scheduler, registry, timer, clock) -> None:
        registry.update(1)
        registry.update(2)
        selection = scheduler.rearm()

        assert selection == Selection(1, clock.now() + 15 * MINUTE)
        assert timer.armed_at == selection.wake_time
        snapshot = decode_snapshot(timer.payload)
        assert snapshot.account_id == 1
        assert snapshot.watchdog is False
        assert sorted(snapshot.prev_sync_times) == [(1, clock.now()), (2, clock.now())]

    def test_cancels_when_nothing_scheduled(self, source, clock, timer) -> None:
        source.accounts.clear()
        selection = Scheduler(SyncRegistry(source, clock), timer).rearm()
        assert selection.account_id is None
        assert timer.cancel_calls == 1
        assert timer.arm_calls == []

    def test_loads_registry_if_lost(self, registry, timer) -> None:
        registry.clear()
        selection = Scheduler(registry, timer).rearm()
        assert selection.account_id in (1, 2)
        assert len(registry) == 2

    def test_idempotent(self, scheduler, registry) -> None:
        registry.update(1)
        registry.update(2)
        assert scheduler.rearm() == scheduler.rearm()

    def test_follows_latest_update(self, scheduler, registry, clock) -> None:
        registry.update(1)
        registry.update(2)
        clock.advance_minutes(1)
        registry.update(1)
        assert scheduler.rearm().account_id == 1
        clock.advance_minutes(16)
        registry.update(1)
        # account 2 is due at +30, account 1 now at +32
        assert scheduler.rearm().account_id == 2

    def test_cancel(self, scheduler, timer) -> None:
        scheduler.cancel()
        assert timer.cancel_calls == 1


class TestRunOneIfDue:
    """run_one_if_due() only starts checks for enabled, scheduled accounts."""

    def test_starts_enabled_account(self, scheduler) -> None:
        start = MagicMock(return_value=True)
        assert scheduler.run_one_if_due(1, start) is True
        start.assert_called_once_with(1)

    def test_returns_start_result(self, scheduler) -> None:
        assert scheduler.run_one_if_due(1, MagicMock(return_value=False)) is False

    def test_skips_sync_disabled(self, source, clock, timer) -> None:
        source.sync_disabled.add("user1@example.com")
        registry = SyncRegistry(source, clock)
        registry.load()
        start = MagicMock(return_value=True)
        assert Scheduler(registry, timer).run_one_if_due(1, start) is False
        start.assert_not_called()

    def test_skips_unscheduled(self, scheduler, registry, source, make_account) -> None:
        source.add(make_account(3, interval=CHECK_INTERVAL_NEVER))
        registry.refresh()
        start = MagicMock(return_value=True)
        assert scheduler.run_one_if_due(3, start) is False
        start.assert_not_called()

    def test_unknown_account(self, scheduler) -> None:
        start = MagicMock(return_value=True)
        assert scheduler.run_one_if_due(99, start) is False
        start.assert_not_called()

    def test_start_runs_outside_registry_lock(self, scheduler, registry) -> None:
        acquired: list[bool] = []

        def start(account_id: int) -> bool:
            def probe() -> None:
                acquired.append(registry._lock.acquire(timeout=1))
                if acquired[-1]:
                    registry._lock.release()

            t = threading.Thread(target=probe)
            t.start()
            t.join()
            return True

        scheduler.run_one_if_due(1, start)
        assert acquired == [True]
