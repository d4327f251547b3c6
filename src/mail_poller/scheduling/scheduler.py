"""Next-account selection and the single wake timer."""

from __future__ import annotations

import logging
from collections.abc import Callable

from mail_poller.core.models import DUE_NOW, NEVER_CHECKED, LoadMode, Selection, WakeSnapshot
from mail_poller.core.ports import WakeTimer
from mail_poller.core.snapshot import encode_snapshot
from mail_poller.scheduling.registry import SyncRegistry

logger = logging.getLogger(__name__)


class Scheduler:
    """Keeps one wake timer pointed at the account that is due soonest.

    A single global timer bounds wake-ups to one pending alarm no matter how
    many accounts are configured; every completion or registry change calls
    ``rearm()`` so the timer always targets the true next-due account.
    """

    def __init__(self, registry: SyncRegistry, timer: WakeTimer) -> None:
        self._registry = registry
        self._timer = timer

    def pick_next(self) -> Selection:
        """Select the next account to check.

        Accounts without a positive interval are ignored. A never-checked
        account wins outright, then any overdue account, then the smallest
        next-sync time.
        """
        now = self._registry.clock.now()
        never_checked = None
        overdue = None
        soonest = None

        with self._registry.locked() as reports:
            for report in reports.values():
                if report.sync_interval <= 0:
                    continue
                if report.prev_sync_time == NEVER_CHECKED:
                    never_checked = report
                elif report.next_sync_time < now:
                    overdue = report
                elif soonest is None or report.next_sync_time < soonest.next_sync_time:
                    soonest = report

            if never_checked is not None:
                return Selection(never_checked.account_id, DUE_NOW)
            if overdue is not None:
                return Selection(overdue.account_id, DUE_NOW)
            if soonest is not None:
                return Selection(soonest.account_id, soonest.next_sync_time)
            return Selection(None)

    def snapshot(self, account_id: int | None = None) -> WakeSnapshot:
        """Collect (account id, prev-sync time) for every tracked account."""
        with self._registry.locked() as reports:
            pairs = tuple((report.account_id, report.prev_sync_time) for report in reports.values())
        return WakeSnapshot(account_id=account_id, prev_sync_times=pairs)

    def rearm(self) -> Selection:
        """Point the wake timer at the next due account, or cancel it if there is none.

        Selection and arming happen under the registry lock so the last
        rearm to finish always reflects the latest state.
        """
        # Restore the reports if they were lost
        self._registry.load(LoadMode.FILL_IF_EMPTY)

        with self._registry.locked():
            selection = self.pick_next()
            if selection.account_id is None:
                self._timer.cancel()
                logger.debug("Reschedule: alarm cancel - no account to check")
                return selection

            payload = encode_snapshot(self.snapshot(selection.account_id))
            self._timer.arm(selection.wake_time, payload)
            logger.debug(
                "Reschedule: alarm set at %d for account %d",
                selection.wake_time,
                selection.account_id,
            )
            return selection

    def cancel(self) -> None:
        self._timer.cancel()
        logger.debug("Wake timer cancelled")

    def run_one_if_due(self, account_id: int, start: Callable[[int], bool]) -> bool:
        """Start a check of ``account_id`` if it is scheduled and sync is enabled.

        ``start`` is called outside the registry lock and returns whether the
        check actually began.

        Returns:
            True if a check was started.
        """
        report = self._registry.get(account_id)
        if report is None:
            logger.info("No sync report for account %d; not checking", account_id)
            return False

        with self._registry.locked():
            runnable = report.sync_interval > 0 and report.sync_enabled
        if not runnable:
            logger.debug("Account %d is not due for automatic checks", account_id)
            return False

        return start(account_id)
