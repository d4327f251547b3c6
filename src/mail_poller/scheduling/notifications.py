"""New-mail notification de-duplication."""

from __future__ import annotations

import logging

from mail_poller.core.models import NewMailEvent
from mail_poller.core.ports import AccountSource, NotificationPresenter
from mail_poller.scheduling.registry import SyncRegistry

logger = logging.getLogger(__name__)


class NotificationCoalescer:
    """Raises "new mail" notifications, never announcing the same arrivals twice."""

    def __init__(
        self,
        registry: SyncRegistry,
        presenter: NotificationPresenter,
        source: AccountSource,
    ) -> None:
        self._registry = registry
        self._presenter = presenter
        self._source = source

    def on_count_updated(self, account_id: int) -> NewMailEvent | None:
        """Notify about the account's unseen messages if there is anything new to say.

        Returns:
            The event handed to the presenter, or None if nothing was shown.
        """
        with self._registry.locked() as reports:
            report = reports.get(account_id)
            if report is None or report.unseen_message_count == 0 or not report.notify:
                return None
            event = NewMailEvent(
                account_id=account_id,
                unseen_message_count=report.unseen_message_count,
                just_fetched_count=report.just_fetched_count,
            )
            report.last_unseen_message_count = report.unseen_message_count

        logger.info(
            "New mail for account %d: %d unseen, %d just fetched",
            account_id,
            event.unseen_message_count,
            event.just_fetched_count,
        )
        self._presenter.show_new_mail_notification(
            event.account_id, event.unseen_message_count, event.just_fetched_count
        )
        return event

    def reset(self, account_id: int | None = None) -> None:
        """Clear unseen counts for one account, or all accounts when ``account_id`` is None.

        This zeroes the in-memory counts, withdraws the notification and asks
        the store to clear its persisted count.
        """
        with self._registry.locked() as reports:
            for report in reports.values():
                if account_id is None or report.account_id == account_id:
                    report.unseen_message_count = 0
                    report.last_unseen_message_count = 0

        self._presenter.cancel_notification(account_id)
        self._source.reset_new_message_count(account_id)
