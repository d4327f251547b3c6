"""Shared fixtures for Mail Poller tests."""

from __future__ import annotations

from collections.abc import Callable
from pathlib import Path

import pytest

from mail_poller.core.models import FLAG_NOTIFY_NEW_MAIL, AccountRow
from mail_poller.scheduling.registry import SyncRegistry

START_TIME_MS = 1_000_000


class FakeClock:
    """Deterministic monotonic clock advanced by hand."""

    def __init__(self, start: int = START_TIME_MS) -> None:
        self.current = start

    def now(self) -> int:
        return self.current

    def advance(self, ms: int) -> None:
        self.current += ms

    def advance_minutes(self, minutes: int) -> None:
        self.advance(minutes * 60 * 1000)


class FakeWakeTimer:
    """Single-slot timer that records every arm/cancel call."""

    def __init__(self) -> None:
        self.armed_at: int | None = None
        self.payload: bytes | None = None
        self.arm_calls: list[tuple[int, bytes]] = []
        self.cancel_calls = 0

    def arm(self, at: int, payload: bytes) -> None:
        self.armed_at = at
        self.payload = payload
        self.arm_calls.append((at, payload))

    def cancel(self) -> None:
        self.armed_at = None
        self.payload = None
        self.cancel_calls += 1


class InMemoryAccountSource:
    """Account store double backed by plain dicts."""

    def __init__(self, accounts: list[AccountRow] | None = None) -> None:
        self.accounts: dict[int, AccountRow] = {a.id: a for a in accounts or []}
        self.sync_disabled: set[str] = set()
        self.new_message_counts: dict[int, int] = {}
        self.reset_calls: list[int | None] = []
        self.list_calls = 0

    def add(self, account: AccountRow) -> None:
        self.accounts[account.id] = account

    def remove(self, account_id: int) -> None:
        self.accounts.pop(account_id, None)

    def list_accounts(self) -> list[AccountRow]:
        self.list_calls += 1
        return list(self.accounts.values())

    def get_account(self, account_id: int) -> AccountRow | None:
        return self.accounts.get(account_id)

    def is_sync_enabled(self, email_address: str) -> bool:
        return email_address not in self.sync_disabled

    def get_new_message_count(self, account_id: int) -> int | None:
        if account_id not in self.accounts:
            return None
        return self.new_message_counts.get(account_id, 0)

    def reset_new_message_count(self, account_id: int | None = None) -> None:
        self.reset_calls.append(account_id)

    def account_ids_with_protocol(self, protocol: str) -> list[int]:
        return [a.id for a in self.accounts.values() if a.protocol == protocol]


def build_account(
    account_id: int,
    *,
    interval: int = 15,
    protocol: str = "imap",
    notify: bool = True,
    email: str | None = None,
    recv_ref: int | None = 1,
    send_ref: int | None = 1,
) -> AccountRow:
    """Build a well-formed account row unless told otherwise."""
    return AccountRow(
        id=account_id,
        email_address=f"user{account_id}@example.com" if email is None else email,
        recv_credential_ref=recv_ref,
        send_credential_ref=send_ref,
        sync_interval_minutes=interval,
        flags=FLAG_NOTIFY_NEW_MAIL if notify else 0,
        protocol=protocol,
    )


@pytest.fixture
def make_account() -> Callable[..., AccountRow]:
    """Factory for account rows."""
    return build_account


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def timer() -> FakeWakeTimer:
    return FakeWakeTimer()


@pytest.fixture
def source() -> InMemoryAccountSource:
    """Two polled accounts, 15 and 30 minute intervals."""
    return InMemoryAccountSource([build_account(1, interval=15), build_account(2, interval=30)])


@pytest.fixture
def registry(source: InMemoryAccountSource, clock: FakeClock) -> SyncRegistry:
    return SyncRegistry(source, clock)


@pytest.fixture
def tmp_db_path(tmp_path: Path) -> Path:
    """Temporary database path for tests."""
    return tmp_path / "test.db"
