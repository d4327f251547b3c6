"""Interfaces of the collaborators the scheduling core drives but does not implement."""

from __future__ import annotations

from typing import Protocol

from mail_poller.core.models import AccountRow


class AccountSource(Protocol):
    """Read access to the persistent account store."""

    def list_accounts(self) -> list[AccountRow]: ...

    def get_account(self, account_id: int) -> AccountRow | None: ...

    def is_sync_enabled(self, email_address: str) -> bool: ...

    def get_new_message_count(self, account_id: int) -> int | None: ...

    def reset_new_message_count(self, account_id: int | None = None) -> None: ...

    def account_ids_with_protocol(self, protocol: str) -> list[int]: ...


class MailChecker(Protocol):
    """The component that performs the actual mail check.

    Checks run asynchronously; results come back through
    ``SyncDriver.on_check_progress`` and ``SyncDriver.on_check_complete``.
    """

    def find_inbox(self, account_id: int) -> int | None: ...

    def check_mail(self, account_id: int, mailbox_id: int) -> None: ...

    def send_pending_messages(self, account_id: int) -> None: ...

    def delete_account(self, account_id: int) -> None: ...


class WakeTimer(Protocol):
    """A single-slot alarm: arming replaces whatever was pending."""

    def arm(self, at: int, payload: bytes) -> None: ...

    def cancel(self) -> None: ...


class NotificationPresenter(Protocol):
    def show_new_mail_notification(
        self, account_id: int, unseen_count: int, just_fetched_count: int
    ) -> None: ...

    def cancel_notification(self, account_id: int | None = None) -> None:
        """Withdraw the notification for one account, or all when ``account_id`` is None."""
        ...
