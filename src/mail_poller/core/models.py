"""Dataclasses for the mail poller domain model.

Times are monotonic milliseconds (elapsed since an arbitrary fixed point),
never wall-clock time.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum

# Account.flags bit: raise new-mail notifications for this account
FLAG_NOTIFY_NEW_MAIL = 0x1

CHECK_INTERVAL_NEVER = -1

NEVER_CHECKED = 0
DUE_NOW = 0
NOT_SCHEDULED = -1

MS_PER_MINUTE = 60 * 1000


@dataclass(frozen=True)
class AccountRow:
    """An account as read from the external account store."""

    id: int
    email_address: str
    recv_credential_ref: int | None
    send_credential_ref: int | None
    sync_interval_minutes: int = CHECK_INTERVAL_NEVER
    flags: int = 0
    protocol: str = "imap"

    @property
    def is_well_formed(self) -> bool:
        """Rows without an address or credentials are orphans, not live accounts."""
        return bool(self.email_address) and all(
            ref is not None and ref > 0
            for ref in (self.recv_credential_ref, self.send_credential_ref)
        )

    @property
    def notify(self) -> bool:
        return bool(self.flags & FLAG_NOTIFY_NEW_MAIL)


@dataclass
class SyncReport:
    """Mutable per-account scheduling state, owned by the SyncRegistry."""

    account_id: int
    sync_interval: int
    prev_sync_time: int = NEVER_CHECKED
    next_sync_time: int = NOT_SCHEDULED
    sync_enabled: bool = False
    notify: bool = False
    unseen_message_count: int = 0
    # Unseen count shown on the last notification
    last_unseen_message_count: int = 0

    @property
    def is_scheduled(self) -> bool:
        return self.sync_interval > 0

    @property
    def just_fetched_count(self) -> int:
        """Number of messages that arrived since the last notification."""
        return self.unseen_message_count - self.last_unseen_message_count

    def schedule_from(self, prev_sync_time: int) -> None:
        """Record a check at ``prev_sync_time`` and push the next one out by the interval."""
        self.prev_sync_time = prev_sync_time
        if self.sync_interval > 0 and prev_sync_time != NEVER_CHECKED:
            self.next_sync_time = prev_sync_time + self.sync_interval * MS_PER_MINUTE

    def __str__(self) -> str:
        return (
            f"id={self.account_id} prevSync={self.prev_sync_time} "
            f"nextSync={self.next_sync_time} numUnseen={self.unseen_message_count}"
        )


class LoadMode(Enum):
    """Global registry load modes."""

    FILL_IF_EMPTY = "fill_if_empty"
    FORCE_RESET = "force_reset"


@dataclass(frozen=True)
class LoadOne:
    """Load a single account's report if it is not already tracked."""

    account_id: int


@dataclass(frozen=True)
class Selection:
    """Result of picking the next account to check."""

    account_id: int | None
    wake_time: int = DUE_NOW


@dataclass(frozen=True)
class WakeSnapshot:
    """State carried by an armed wake so a restarted process can resume."""

    account_id: int | None = None
    prev_sync_times: tuple[tuple[int, int], ...] = field(default_factory=tuple)
    watchdog: bool = False


@dataclass(frozen=True)
class NewMailEvent:
    """A new-mail notification handed to the presentation layer."""

    account_id: int
    unseen_message_count: int
    just_fetched_count: int


# ---------- driver messages ----------


@dataclass(frozen=True)
class CheckRequested:
    account_id: int | None = None
    snapshot: WakeSnapshot | None = None


@dataclass(frozen=True)
class WatchdogFired:
    account_id: int


@dataclass(frozen=True)
class RescheduleRequested:
    pass


@dataclass(frozen=True)
class CancelRequested:
    pass


@dataclass(frozen=True)
class NotifyRequested:
    account_id: int


@dataclass(frozen=True)
class SendPendingRequested:
    account_id: int


@dataclass(frozen=True)
class DeleteProtocolRequested:
    protocol: str


@dataclass(frozen=True)
class CheckProgress:
    """Mailbox-level progress reported by the mail checker."""

    account_id: int
    mailbox_id: int
    progress: int
    error: Exception | None = None
    new_message_count: int | None = None


@dataclass(frozen=True)
class CheckComplete:
    """End of a service-level check reported by the mail checker."""

    account_id: int
    new_message_count: int | None = None
    error: Exception | None = None


DriverMessage = (
    CheckRequested
    | WatchdogFired
    | RescheduleRequested
    | CancelRequested
    | NotifyRequested
    | SendPendingRequested
    | DeleteProtocolRequested
    | CheckProgress
    | CheckComplete
)
