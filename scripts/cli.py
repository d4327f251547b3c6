"""Minimal CLI entry point for inspecting and maintaining the mail poller's account store."""

from __future__ import annotations

import argparse
import logging
import sys

from mail_poller.config.settings import MailPollerSettings
from mail_poller.core.clock import MonotonicClock
from mail_poller.core.models import (
    CHECK_INTERVAL_NEVER,
    FLAG_NOTIFY_NEW_MAIL,
    AccountRow,
    LoadMode,
)
from mail_poller.core.snapshot import decode_snapshot
from mail_poller.scheduling.notifications import NotificationCoalescer
from mail_poller.scheduling.registry import SyncRegistry
from mail_poller.scheduling.scheduler import Scheduler
from mail_poller.storage.account_store import SqliteAccountStore


def setup_logging(level: str) -> None:
    """Configure logging with timestamp and module info."""
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


class PreviewTimer:
    """Wake timer that records what would be armed instead of arming it."""

    def __init__(self) -> None:
        self.armed_at: int | None = None
        self.payload: bytes | None = None

    def arm(self, at: int, payload: bytes) -> None:
        self.armed_at = at
        self.payload = payload

    def cancel(self) -> None:
        self.armed_at = None
        self.payload = None


class ConsolePresenter:
    """Print notification requests to stdout."""

    def show_new_mail_notification(
        self, account_id: int, unseen_count: int, just_fetched_count: int
    ) -> None:
        print(
            f"New mail for account {account_id}: "
            f"{unseen_count} unseen ({just_fetched_count} new)"
        )

    def cancel_notification(self, account_id: int | None = None) -> None:
        target = "all accounts" if account_id is None else f"account {account_id}"
        print(f"Cleared notifications for {target}")


def _build_registry(store: SqliteAccountStore, settings: MailPollerSettings) -> SyncRegistry:
    return SyncRegistry(
        store,
        MonotonicClock(),
        polled_protocols=settings.polled_protocols,
        force_one_minute_refresh=settings.force_one_minute_refresh,
    )


def _validate_add_account_args(args: argparse.Namespace) -> None:
    """Reject values that would make an unusable account row."""
    if args.account_id <= 0:
        print("Error: account id must be positive", file=sys.stderr)
        sys.exit(1)
    if args.interval < CHECK_INTERVAL_NEVER:
        print("Error: --interval must be -1 (never) or non-negative", file=sys.stderr)
        sys.exit(1)


def cmd_accounts(store: SqliteAccountStore) -> None:
    accounts = store.list_accounts()
    print(f"\nFound {len(accounts)} accounts:\n")
    for account in accounts:
        status = "ok" if account.is_well_formed else "malformed"
        print(
            f"  {account.id:6d} {account.email_address or '(none)':40s} "
            f"{account.protocol:6s} every {account.sync_interval_minutes:4d} min  [{status}]"
        )


def cmd_status(store: SqliteAccountStore, settings: MailPollerSettings) -> None:
    registry = _build_registry(store, settings)
    registry.load(LoadMode.FORCE_RESET)
    timer = PreviewTimer()
    selection = Scheduler(registry, timer).rearm()

    print(f"\nTracking {len(registry)} accounts:\n")
    for report in sorted(registry.reports(), key=lambda r: r.account_id):
        enabled = "on" if report.sync_enabled else "off"
        print(
            f"  {report.account_id:6d} interval={report.sync_interval:4d} "
            f"sync={enabled:3s} notify={report.notify!s:5s} next={report.next_sync_time}"
        )

    if selection.account_id is None:
        print("\nNo account to check; wake timer would be cancelled")
    else:
        snapshot = decode_snapshot(timer.payload)
        print(
            f"\nNext check: account {selection.account_id} at {selection.wake_time} "
            f"(snapshot carries {len(snapshot.prev_sync_times)} accounts)"
        )


def main() -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Mail Poller - inspect accounts and preview the check schedule"
    )
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # accounts command
    subparsers.add_parser("accounts", help="List all accounts in the store")

    # add-account command
    add_parser = subparsers.add_parser("add-account", help="Add or update an account")
    add_parser.add_argument("account_id", type=int, help="Account ID")
    add_parser.add_argument("email", help="Email address")
    add_parser.add_argument("--protocol", "-p", default="imap", help="imap, pop3, eas, ...")
    add_parser.add_argument(
        "--interval", "-i", type=int, default=15, help="Check interval in minutes (-1 = never)"
    )
    add_parser.add_argument("--recv-ref", type=int, default=1, dest="recv_ref")
    add_parser.add_argument("--send-ref", type=int, default=1, dest="send_ref")
    add_parser.add_argument(
        "--no-notify", action="store_true", dest="no_notify", help="Disable new-mail notifications"
    )

    # remove-account command
    remove_parser = subparsers.add_parser("remove-account", help="Delete an account")
    remove_parser.add_argument("account_id", type=int)

    # set-sync command
    sync_parser = subparsers.add_parser("set-sync", help="Toggle automatic sync for an address")
    sync_parser.add_argument("email")
    sync_parser.add_argument("state", choices=["on", "off"])

    # status command
    subparsers.add_parser("status", help="Show sync reports and the next scheduled check")

    # reset-count command
    reset_parser = subparsers.add_parser("reset-count", help="Clear unseen-message counts")
    reset_parser.add_argument(
        "--account", "-a", type=int, default=None, help="Account ID (default: all accounts)"
    )

    args = parser.parse_args()
    if not args.command:
        parser.print_help()
        sys.exit(1)

    if args.command == "add-account":
        _validate_add_account_args(args)

    settings = MailPollerSettings()
    setup_logging(settings.log_level)
    settings.ensure_directories()

    store = SqliteAccountStore(settings.database_path)
    store.connect()

    try:
        if args.command == "accounts":
            cmd_accounts(store)

        elif args.command == "add-account":
            store.upsert_account(
                AccountRow(
                    id=args.account_id,
                    email_address=args.email,
                    recv_credential_ref=args.recv_ref,
                    send_credential_ref=args.send_ref,
                    sync_interval_minutes=args.interval,
                    flags=0 if args.no_notify else FLAG_NOTIFY_NEW_MAIL,
                    protocol=args.protocol,
                )
            )
            print(f"\nSaved account {args.account_id}")

        elif args.command == "remove-account":
            if store.delete_account(args.account_id):
                print(f"\nRemoved account {args.account_id}")
            else:
                print(f"\nNo account with id {args.account_id}")

        elif args.command == "set-sync":
            store.set_sync_automatically(args.email, args.state == "on")
            print(f"\nAutomatic sync {args.state} for {args.email}")

        elif args.command == "status":
            cmd_status(store, settings)

        elif args.command == "reset-count":
            registry = _build_registry(store, settings)
            NotificationCoalescer(registry, ConsolePresenter(), store).reset(args.account)

    except KeyboardInterrupt:
        print("\n\nInterrupted by user")
        sys.exit(130)
    except Exception as e:
        print(f"\nError: {e}", file=sys.stderr)
        sys.exit(1)
    finally:
        store.close()


if __name__ == "__main__":
    main()
