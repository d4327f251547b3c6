"""Event-driven orchestrator: wake → check → completion → rearm."""

from __future__ import annotations

import logging
import queue
import threading
from collections.abc import Callable
from typing import Any

from mail_poller.config.settings import MailPollerSettings
from mail_poller.core.clock import Clock, MonotonicClock
from mail_poller.core.exceptions import MailPollerError, SnapshotDecodeError
from mail_poller.core.models import (
    CancelRequested,
    CheckComplete,
    CheckProgress,
    CheckRequested,
    DeleteProtocolRequested,
    DriverMessage,
    LoadMode,
    NotifyRequested,
    RescheduleRequested,
    SendPendingRequested,
    WakeSnapshot,
    WatchdogFired,
)
from mail_poller.core.ports import AccountSource, MailChecker, NotificationPresenter, WakeTimer
from mail_poller.core.snapshot import decode_snapshot
from mail_poller.scheduling.notifications import NotificationCoalescer
from mail_poller.scheduling.registry import SyncRegistry
from mail_poller.scheduling.scheduler import Scheduler
from mail_poller.scheduling.watchdog import WatchdogTimer

logger = logging.getLogger(__name__)


class SyncDriver:
    """Funnels every external event through one queue and one consumer.

    Entry points (``request_*``, ``on_wake``, ``on_check_*``) only enqueue a
    typed message and are safe to call from any thread. Messages are handled
    one at a time by ``drain()`` or by ``serve_forever()`` running in a
    worker thread, so handlers never re-enter each other.
    """

    def __init__(
        self,
        source: AccountSource,
        checker: MailChecker,
        timer: WakeTimer,
        presenter: NotificationPresenter,
        *,
        settings: MailPollerSettings | None = None,
        clock: Clock | None = None,
        reconciler: Callable[[], None] | None = None,
        background_data_enabled: Callable[[], bool] | None = None,
    ) -> None:
        self._settings = settings or MailPollerSettings()
        self._clock = clock or MonotonicClock()
        self._source = source
        self._checker = checker
        self._presenter = presenter
        self._reconciler = reconciler
        self._background_data_enabled = background_data_enabled or (
            lambda: self._settings.background_data_enabled
        )

        self.registry = SyncRegistry(
            source,
            self._clock,
            polled_protocols=self._settings.polled_protocols,
            force_one_minute_refresh=self._settings.force_one_minute_refresh,
        )
        self.scheduler = Scheduler(self.registry, timer)
        self.watchdog = WatchdogTimer(timer, self._clock, self._settings.watchdog_delay_ms)
        self.coalescer = NotificationCoalescer(self.registry, presenter, source)

        self._queue: queue.Queue[DriverMessage] = queue.Queue()
        self._closed = threading.Event()
        # Accounts whose check reported completion since their watchdog was armed
        self._completed: set[int] = set()
        # Unseen counts already announced by an inbox progress tick, awaiting completion
        self._announced: dict[int, int] = {}

        self._handlers: dict[type, Callable[[Any], None]] = {
            CheckRequested: self._handle_check,
            WatchdogFired: self._handle_watchdog,
            RescheduleRequested: self._handle_reschedule,
            CancelRequested: self._handle_cancel,
            NotifyRequested: self._handle_notify,
            SendPendingRequested: self._handle_send_pending,
            DeleteProtocolRequested: self._handle_delete_protocol,
            CheckProgress: self._handle_progress,
            CheckComplete: self._handle_complete,
        }

    # ---------- entry points ----------

    def request_check(
        self, account_id: int | None = None, snapshot: WakeSnapshot | None = None
    ) -> None:
        """Check ``account_id`` now, or whichever account is due when None."""
        self._submit(CheckRequested(account_id, snapshot))

    def on_wake(self, payload: bytes | None) -> None:
        """Handle the wake timer firing with the payload it was armed with."""
        try:
            snapshot = decode_snapshot(payload)
        except SnapshotDecodeError as e:
            logger.error("Ignoring undecodable wake payload: %s", e)
            snapshot = WakeSnapshot()

        if snapshot.watchdog and snapshot.account_id is not None:
            self._submit(WatchdogFired(snapshot.account_id))
        else:
            self._submit(CheckRequested(snapshot.account_id, snapshot))

    def request_reschedule(self) -> None:
        self._submit(RescheduleRequested())

    def request_cancel_all(self) -> None:
        self._submit(CancelRequested())

    def request_notify(self, account_id: int) -> None:
        self._submit(NotifyRequested(account_id))

    def request_send_pending(self, account_id: int) -> None:
        self._submit(SendPendingRequested(account_id))

    def request_delete_accounts_of_protocol(self, protocol: str) -> None:
        self._submit(DeleteProtocolRequested(protocol))

    def on_check_progress(
        self,
        account_id: int,
        mailbox_id: int,
        progress: int,
        error: Exception | None = None,
        new_message_count: int | None = None,
    ) -> None:
        self._submit(CheckProgress(account_id, mailbox_id, progress, error, new_message_count))

    def on_check_complete(
        self,
        account_id: int,
        new_message_count: int | None = None,
        error: Exception | None = None,
    ) -> None:
        self._submit(CheckComplete(account_id, new_message_count, error))

    def reset_new_message_count(self, account_id: int | None = None) -> None:
        """Clear unseen counts and notifications for one account, or all when None."""
        self.coalescer.reset(account_id)

    # ---------- event loop ----------

    def drain(self) -> int:
        """Process every queued message on the calling thread.

        Returns the number of messages processed.
        """
        processed = 0
        while True:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                return processed
            self._process(message)
            processed += 1

    def serve_forever(self, stop: threading.Event, poll_interval: float = 0.5) -> None:
        """Consume messages until ``stop`` is set or the driver is closed."""
        logger.info("Sync driver started")
        while not stop.is_set() and not self._closed.is_set():
            try:
                message = self._queue.get(timeout=poll_interval)
            except queue.Empty:
                continue
            self._process(message)
        logger.info("Sync driver stopped")

    def close(self) -> None:
        """Stop accepting work and drop all in-memory state."""
        self._closed.set()
        self.registry.clear()
        self._completed.clear()

    def _submit(self, message: DriverMessage) -> None:
        if self._closed.is_set():
            logger.warning("Driver closed; dropping %s", message)
            return
        self._queue.put(message)

    def _process(self, message: DriverMessage) -> None:
        if self._reconciler is not None:
            try:
                self._reconciler()
            except Exception as e:
                logger.error("Account reconciliation failed: %s", e)

        handler = self._handlers[type(message)]
        try:
            handler(message)
        except MailPollerError as e:
            logger.error("Failed to handle %s: %s", message, e)
        except Exception:
            logger.exception("Unexpected error handling %s", message)

    # ---------- handlers ----------

    def _handle_check(self, message: CheckRequested) -> None:
        # Restore last-sync times in case the process was restarted since the wake was armed
        if message.snapshot is not None:
            self.registry.restore_from_snapshot(message.snapshot)
        else:
            self.registry.load(LoadMode.FILL_IF_EMPTY)

        account_id = message.account_id
        logger.debug("Check mail for id=%s", account_id)
        if account_id is not None:
            self._completed.discard(account_id)
            self._announced.pop(account_id, None)
            self.watchdog.arm(account_id)

        started = False
        if account_id is not None and self._background_data_enabled():
            started = self.scheduler.run_one_if_due(account_id, self._start_check)

        if not started:
            # Pretend the account was checked so it doesn't spin
            if account_id is not None:
                self.registry.update(account_id)
            self.scheduler.rearm()

    def _start_check(self, account_id: int) -> bool:
        inbox_id = self._checker.find_inbox(account_id)
        if inbox_id is None:
            logger.info("Account %d has no inbox; not checking", account_id)
            return False

        try:
            self._checker.check_mail(account_id, inbox_id)
        except Exception as e:
            logger.error("Failed to start check for account %d: %s", account_id, e)
            return False

        logger.info("Started mail check for account %d", account_id)
        return True

    def _handle_watchdog(self, message: WatchdogFired) -> None:
        account_id = message.account_id
        if account_id in self._completed:
            logger.debug("Stale watchdog for account %d; check already completed", account_id)
        else:
            logger.warning("Watchdog fired for account %d; check never completed", account_id)
            self.registry.load(LoadMode.FILL_IF_EMPTY)
            self.registry.update(account_id)
        self.scheduler.rearm()

    def _handle_reschedule(self, message: RescheduleRequested) -> None:
        # The account list may have changed, so drop every notification
        self._presenter.cancel_notification(None)
        self.registry.refresh()
        self.scheduler.rearm()

    def _handle_cancel(self, message: CancelRequested) -> None:
        self.scheduler.cancel()

    def _handle_notify(self, message: NotifyRequested) -> None:
        account_id = message.account_id
        count = self._source.get_new_message_count(account_id)
        logger.debug("Notify accountId=%d count=%s", account_id, count)
        if count is not None and self.registry.update(account_id, count) is not None:
            self.coalescer.on_count_updated(account_id)
        self.scheduler.rearm()

    def _handle_send_pending(self, message: SendPendingRequested) -> None:
        self._checker.send_pending_messages(message.account_id)
        self.scheduler.rearm()

    def _handle_delete_protocol(self, message: DeleteProtocolRequested) -> None:
        for account_id in self._source.account_ids_with_protocol(message.protocol):
            logger.info("Deleting %s account: %d", message.protocol, account_id)
            self._checker.delete_account(account_id)
        self.registry.refresh()
        self.scheduler.rearm()

    def _handle_progress(self, message: CheckProgress) -> None:
        if message.error is None and message.progress != 100:
            return
        # Only the inbox drives scheduling
        if message.mailbox_id != self._checker.find_inbox(message.account_id):
            return

        if message.progress == 100:
            self.registry.update(message.account_id, message.new_message_count)
            if message.new_message_count:
                self.coalescer.on_count_updated(message.account_id)
                self._announced[message.account_id] = message.new_message_count
        else:
            self.registry.update(message.account_id)

    def _handle_complete(self, message: CheckComplete) -> None:
        account_id = message.account_id
        self._completed.add(account_id)
        announced = self._announced.pop(account_id, None)
        self.registry.load(LoadMode.FILL_IF_EMPTY)

        if message.error is not None:
            # Advance the refresh time so a broken account doesn't spin
            logger.warning("Mail check failed for account %d: %s", account_id, message.error)
            self.registry.update(account_id)
        elif message.new_message_count is None:
            self.registry.update(account_id)
        else:
            self.registry.update(account_id, message.new_message_count)
            # The inbox progress tick may already have announced these arrivals
            if message.new_message_count > 0 and announced != message.new_message_count:
                self.coalescer.on_count_updated(account_id)

        self.scheduler.rearm()
