"""Custom exceptions for the mail poller."""


class MailPollerError(Exception):
    """Base exception for all mail poller errors."""


class AccountNotFoundError(MailPollerError):
    """The referenced account no longer exists in the account store."""


class SnapshotDecodeError(MailPollerError):
    """A wake-timer payload could not be decoded."""


class StoreError(MailPollerError):
    """The account store failed to read or write."""
