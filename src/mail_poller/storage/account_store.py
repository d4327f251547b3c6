"""SQLite-backed account store."""

from __future__ import annotations

import logging
import sqlite3
from datetime import UTC, datetime
from pathlib import Path

from mail_poller.core.exceptions import StoreError
from mail_poller.core.models import AccountRow

logger = logging.getLogger(__name__)


class SqliteAccountStore:
    """Persistent account list read by the scheduling core.

    Tables:
    - accounts: one row per configured account, including its persisted
      unseen-message count
    - sync_settings: per-address auto-sync toggle
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = db_path
        self._conn: sqlite3.Connection | None = None

    def connect(self) -> None:
        """Open database connection and ensure schema exists."""
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(str(self._db_path), check_same_thread=False)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._create_tables()

    def close(self) -> None:
        """Close the database connection."""
        if self._conn:
            self._conn.close()
            self._conn = None

    def __enter__(self) -> SqliteAccountStore:
        self.connect()
        return self

    def __exit__(self, *args: object) -> None:
        self.close()

    @property
    def conn(self) -> sqlite3.Connection:
        if self._conn is None:
            raise RuntimeError("Database not connected. Call connect() first.")
        return self._conn

    def _create_tables(self) -> None:
        """Create tables if they don't exist."""
        self.conn.executescript("""
            CREATE TABLE IF NOT EXISTS accounts (
                account_id INTEGER PRIMARY KEY,
                email_address TEXT NOT NULL DEFAULT '',
                recv_credential_ref INTEGER,
                send_credential_ref INTEGER,
                sync_interval_minutes INTEGER NOT NULL DEFAULT -1,
                flags INTEGER NOT NULL DEFAULT 0,
                protocol TEXT NOT NULL DEFAULT 'imap',
                new_message_count INTEGER NOT NULL DEFAULT 0,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE INDEX IF NOT EXISTS idx_accounts_protocol ON accounts(protocol);

            CREATE TABLE IF NOT EXISTS sync_settings (
                email_address TEXT PRIMARY KEY,
                sync_automatically INTEGER NOT NULL DEFAULT 1,
                updated_at TEXT NOT NULL
            );
        """)

    # ---------- read contract ----------

    def list_accounts(self) -> list[AccountRow]:
        """Get every account row, including malformed ones."""
        rows = self._query("SELECT * FROM accounts ORDER BY account_id")
        return [_to_account_row(row) for row in rows]

    def get_account(self, account_id: int) -> AccountRow | None:
        rows = self._query("SELECT * FROM accounts WHERE account_id = ?", (account_id,))
        return _to_account_row(rows[0]) if rows else None

    def is_sync_enabled(self, email_address: str) -> bool:
        """Whether automatic checks are allowed for this address (default: yes)."""
        rows = self._query(
            "SELECT sync_automatically FROM sync_settings WHERE email_address = ?",
            (email_address,),
        )
        return bool(rows[0]["sync_automatically"]) if rows else True

    def get_new_message_count(self, account_id: int) -> int | None:
        """Get the persisted unseen count, or None if the account doesn't exist."""
        rows = self._query(
            "SELECT new_message_count FROM accounts WHERE account_id = ?", (account_id,)
        )
        return rows[0]["new_message_count"] if rows else None

    def account_ids_with_protocol(self, protocol: str) -> list[int]:
        rows = self._query(
            "SELECT account_id FROM accounts WHERE protocol = ? ORDER BY account_id", (protocol,)
        )
        return [row["account_id"] for row in rows]

    # ---------- writes ----------

    def reset_new_message_count(self, account_id: int | None = None) -> None:
        """Zero the persisted unseen count for one account, or all when None."""
        now = datetime.now(UTC).isoformat()
        if account_id is None:
            self._execute("UPDATE accounts SET new_message_count = 0, updated_at = ?", (now,))
        else:
            self._execute(
                "UPDATE accounts SET new_message_count = 0, updated_at = ? WHERE account_id = ?",
                (now, account_id),
            )

    def set_new_message_count(self, account_id: int, count: int) -> None:
        now = datetime.now(UTC).isoformat()
        self._execute(
            "UPDATE accounts SET new_message_count = ?, updated_at = ? WHERE account_id = ?",
            (count, now, account_id),
        )

    def upsert_account(self, account: AccountRow) -> None:
        """Insert an account or replace its configuration, keeping its unseen count."""
        now = datetime.now(UTC).isoformat()
        self._execute(
            """INSERT INTO accounts
               (account_id, email_address, recv_credential_ref, send_credential_ref,
                sync_interval_minutes, flags, protocol, created_at, updated_at)
               VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?)
               ON CONFLICT(account_id) DO UPDATE SET
                   email_address = excluded.email_address,
                   recv_credential_ref = excluded.recv_credential_ref,
                   send_credential_ref = excluded.send_credential_ref,
                   sync_interval_minutes = excluded.sync_interval_minutes,
                   flags = excluded.flags,
                   protocol = excluded.protocol,
                   updated_at = excluded.updated_at""",
            (
                account.id,
                account.email_address,
                account.recv_credential_ref,
                account.send_credential_ref,
                account.sync_interval_minutes,
                account.flags,
                account.protocol,
                now,
                now,
            ),
        )

    def delete_account(self, account_id: int) -> bool:
        """Remove an account. Returns True if a row was deleted."""
        cursor = self._execute("DELETE FROM accounts WHERE account_id = ?", (account_id,))
        return cursor.rowcount > 0

    def set_sync_automatically(self, email_address: str, enabled: bool) -> None:
        now = datetime.now(UTC).isoformat()
        self._execute(
            """INSERT INTO sync_settings (email_address, sync_automatically, updated_at)
               VALUES (?, ?, ?)
               ON CONFLICT(email_address) DO UPDATE SET
                   sync_automatically = excluded.sync_automatically,
                   updated_at = excluded.updated_at""",
            (email_address, int(enabled), now),
        )

    # ---------- helpers ----------

    def _query(self, sql: str, params: tuple = ()) -> list[sqlite3.Row]:
        try:
            return self.conn.execute(sql, params).fetchall()
        except sqlite3.Error as e:
            logger.error("Account store query failed: %s", e)
            raise StoreError(f"Account store query failed: {e}") from e

    def _execute(self, sql: str, params: tuple = ()) -> sqlite3.Cursor:
        try:
            cursor = self.conn.execute(sql, params)
            self.conn.commit()
            return cursor
        except sqlite3.Error as e:
            logger.error("Account store write failed: %s", e)
            raise StoreError(f"Account store write failed: {e}") from e


def _to_account_row(row: sqlite3.Row) -> AccountRow:
    return AccountRow(
        id=row["account_id"],
        email_address=row["email_address"] or "",
        recv_credential_ref=row["recv_credential_ref"],
        send_credential_ref=row["send_credential_ref"],
        sync_interval_minutes=row["sync_interval_minutes"],
        flags=row["flags"],
        protocol=row["protocol"],
    )
