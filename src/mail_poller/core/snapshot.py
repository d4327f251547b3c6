"""Encode/decode the payload carried by an armed wake timer.

Wire format is UTF-8 JSON::

    {"account": 12, "accounts": [[12, 360000], [14, 0]], "watchdog": false}

``account`` is -1 when the wake means "whichever account is due".
"""

from __future__ import annotations

import json
from typing import Any

from mail_poller.core.exceptions import SnapshotDecodeError
from mail_poller.core.models import WakeSnapshot

NO_ACCOUNT = -1


def encode_snapshot(snapshot: WakeSnapshot) -> bytes:
    doc = {
        "account": NO_ACCOUNT if snapshot.account_id is None else snapshot.account_id,
        "accounts": [[account_id, prev] for account_id, prev in snapshot.prev_sync_times],
        "watchdog": snapshot.watchdog,
    }
    return json.dumps(doc, separators=(",", ":")).encode("utf-8")


def decode_snapshot(payload: bytes | None) -> WakeSnapshot:
    """Parse a wake payload.

    An empty payload decodes to a bare "whichever is due" snapshot.

    Raises:
        SnapshotDecodeError: If the payload is not a valid snapshot document.
    """
    if not payload:
        return WakeSnapshot()

    try:
        doc: Any = json.loads(payload.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise SnapshotDecodeError(f"Invalid wake payload: {e}") from e

    if not isinstance(doc, dict):
        raise SnapshotDecodeError("Wake payload must be a JSON object")

    account = doc.get("account", NO_ACCOUNT)
    if not _is_int(account):
        raise SnapshotDecodeError(f"Invalid account id in wake payload: {account!r}")

    pairs: list[tuple[int, int]] = []
    for entry in doc.get("accounts") or []:
        if not isinstance(entry, list) or len(entry) != 2 or not all(map(_is_int, entry)):
            raise SnapshotDecodeError(f"Invalid account entry in wake payload: {entry!r}")
        pairs.append((entry[0], entry[1]))

    return WakeSnapshot(
        account_id=None if account == NO_ACCOUNT else account,
        prev_sync_times=tuple(pairs),
        watchdog=bool(doc.get("watchdog", False)),
    )


def _is_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)
