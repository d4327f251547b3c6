"""In-memory per-account sync state, rebuilt on demand from the account store."""

from __future__ import annotations

import logging
import threading
from collections.abc import Iterable, Iterator, Mapping
from contextlib import contextmanager
from types import MappingProxyType

from mail_poller.core.clock import Clock
from mail_poller.core.models import (
    CHECK_INTERVAL_NEVER,
    DUE_NOW,
    NEVER_CHECKED,
    NOT_SCHEDULED,
    AccountRow,
    LoadMode,
    LoadOne,
    SyncReport,
    WakeSnapshot,
)
from mail_poller.core.ports import AccountSource

logger = logging.getLogger(__name__)

DEFAULT_POLLED_PROTOCOLS = frozenset({"imap", "pop3"})


class SyncRegistry:
    """Thread-safe map of account id → SyncReport.

    Every read and write goes through one re-entrant lock over the whole map.
    Store queries run outside the lock; only publishing their results takes it,
    so two concurrent rebuilds may race and the last one to publish wins.
    """

    def __init__(
        self,
        source: AccountSource,
        clock: Clock,
        *,
        polled_protocols: Iterable[str] = DEFAULT_POLLED_PROTOCOLS,
        force_one_minute_refresh: bool = False,
    ) -> None:
        self._source = source
        self._clock = clock
        self._polled_protocols = frozenset(polled_protocols)
        self._force_one_minute_refresh = force_one_minute_refresh
        self._lock = threading.RLock()
        self._reports: dict[int, SyncReport] = {}

    @property
    def clock(self) -> Clock:
        return self._clock

    @contextmanager
    def locked(self) -> Iterator[Mapping[int, SyncReport]]:
        """Hold the registry lock and expose a read-only view of the map.

        Reports reached through the view may be mutated in place while the
        lock is held.
        """
        with self._lock:
            yield MappingProxyType(self._reports)

    def __len__(self) -> int:
        with self._lock:
            return len(self._reports)

    def __contains__(self, account_id: object) -> bool:
        with self._lock:
            return account_id in self._reports

    def get(self, account_id: int) -> SyncReport | None:
        with self._lock:
            return self._reports.get(account_id)

    def reports(self) -> list[SyncReport]:
        """Return a list of the tracked reports (the list is a copy, the reports are not)."""
        with self._lock:
            return list(self._reports.values())

    def clear(self) -> None:
        with self._lock:
            self._reports.clear()

    # ---------- loading ----------

    def load(self, mode: LoadMode | LoadOne = LoadMode.FILL_IF_EMPTY) -> None:
        """Populate the registry from the account store.

        Args:
            mode: FILL_IF_EMPTY loads everything only when nothing is tracked,
                FORCE_RESET discards all reports and reloads, LoadOne(id) adds
                a single account that is not tracked yet.
        """
        with self._lock:
            if mode is LoadMode.FILL_IF_EMPTY and self._reports:
                return
            if isinstance(mode, LoadOne) and mode.account_id in self._reports:
                return

        if isinstance(mode, LoadOne):
            row = self._source.get_account(mode.account_id)
            rows = [row] if row is not None else []
        else:
            rows = self._source.list_accounts()

        if self._force_one_minute_refresh:
            logger.warning("One-minute refresh enabled.")

        fresh: dict[int, SyncReport] = {}
        for row in rows:
            # Orphaned rows (e.g. left behind by a failed setup) are not live accounts
            if not row.is_well_formed:
                logger.debug("Skipping malformed account row id=%d", row.id)
                continue
            fresh[row.id] = self._build_report(row)

        with self._lock:
            if mode is LoadMode.FORCE_RESET:
                self._reports = fresh
            elif mode is LoadMode.FILL_IF_EMPTY:
                if not self._reports:
                    self._reports = fresh
            else:
                for account_id, report in fresh.items():
                    self._reports.setdefault(account_id, report)
            logger.debug(
                "Loaded %d account(s) (%s); tracking %d", len(fresh), mode, len(self._reports)
            )

    def _build_report(self, row: AccountRow) -> SyncReport:
        sync_interval = row.sync_interval_minutes
        # Accounts outside the polling pathway (push protocols) manage their own cadence
        if row.protocol not in self._polled_protocols:
            sync_interval = CHECK_INTERVAL_NEVER
        elif self._force_one_minute_refresh and sync_interval >= 0:
            sync_interval = 1

        return SyncReport(
            account_id=row.id,
            sync_interval=sync_interval,
            prev_sync_time=NEVER_CHECKED,
            next_sync_time=DUE_NOW if sync_interval > 0 else NOT_SCHEDULED,
            sync_enabled=self._source.is_sync_enabled(row.email_address),
            notify=row.notify,
        )

    def refresh(self) -> None:
        """Rebuild from the store, carrying prev-sync times forward for surviving accounts."""
        with self._lock:
            previous = dict(self._reports)

        self.load(LoadMode.FORCE_RESET)

        with self._lock:
            for report in self._reports.values():
                old = previous.get(report.account_id)
                if old is not None:
                    report.schedule_from(old.prev_sync_time)

    def restore_from_snapshot(self, snapshot: WakeSnapshot) -> None:
        """Fill in prev-sync times carried by a wake payload.

        Only reports that have not been checked in this process are touched.
        """
        self.load(LoadMode.FILL_IF_EMPTY)
        if not snapshot.prev_sync_times:
            logger.debug("No data in snapshot to restore")
            return

        with self._lock:
            for account_id, prev_sync_time in snapshot.prev_sync_times:
                report = self._reports.get(account_id)
                if report is not None and report.prev_sync_time == NEVER_CHECKED:
                    report.schedule_from(prev_sync_time)

    # ---------- updates ----------

    def update(self, account_id: int, unseen_count: int | None = None) -> SyncReport | None:
        """Record a check of ``account_id`` happening now.

        Args:
            account_id: The account that was checked.
            unseen_count: Latest unseen count, or None to leave it unchanged.

        Returns:
            The updated report, or None if the account no longer exists.
        """
        self.load(LoadOne(account_id))
        with self._lock:
            report = self._reports.get(account_id)
            if report is None:
                logger.info("No account to update for id=%d", account_id)
                return None

            report.schedule_from(self._clock.now())
            if unseen_count is not None:
                report.unseen_message_count = unseen_count
            logger.debug("Update account %s", report)
            return report
