"""SQLite-backed alert and schedule store.

Alert items are stored one row per (recipient, id) so marking an item
read never rewrites the rest of the record. A per-recipient version
counter in the meta table lets subscribers poll for changes cheaply.
"""

import json
import logging
import sqlite3
from datetime import datetime
from threading import Event, Lock, Thread, current_thread
from typing import Any, Dict, Iterable, List, Optional

from .models import READ, UNREAD, RecipientKey, RecipientRecord, Snapshot
from .store import AlertStore, ScheduleStore

logger = logging.getLogger(__name__)


def init_db(db_path: str) -> sqlite3.Connection:
    """
    Initialize the database and create tables if they don't exist.

    Args:
        db_path: Path to the SQLite database file.

    Returns:
        A connection to the database, usable from several threads.
    """
    conn = sqlite3.connect(db_path, check_same_thread=False)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS alert_items (
            recipient TEXT NOT NULL,
            id TEXT NOT NULL,
            position INTEGER NOT NULL,
            status TEXT NOT NULL,
            payload TEXT NOT NULL,
            created_at TEXT NOT NULL,
            PRIMARY KEY (recipient, id)
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS schedules (
            entity_id TEXT PRIMARY KEY,
            payload TEXT NOT NULL
        )
    """)
    conn.execute("""
        CREATE TABLE IF NOT EXISTS meta (
            key TEXT PRIMARY KEY,
            value TEXT NOT NULL
        )
    """)
    conn.commit()
    return conn


def get_meta(conn: sqlite3.Connection, key: str) -> Optional[str]:
    """
    Get a metadata value from the database.

    Args:
        conn: Database connection.
        key: Metadata key.

    Returns:
        The metadata value, or None if not found.
    """
    cursor = conn.execute("SELECT value FROM meta WHERE key = ?", (key,))
    row = cursor.fetchone()
    return row[0] if row else None


def set_meta(conn: sqlite3.Connection, key: str, value: str) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO meta (key, value) VALUES (?, ?)",
        (key, value)
    )


def _version_key(recipient: str) -> str:
    return f"version:{recipient}"


def get_version(conn: sqlite3.Connection, recipient: str) -> Optional[int]:
    """Change counter of a recipient record; None if it was never written."""
    value = get_meta(conn, _version_key(recipient))
    return int(value) if value is not None else None


def _bump_version(conn: sqlite3.Connection, recipient: str) -> None:
    set_meta(conn, _version_key(recipient), str((get_version(conn, recipient) or 0) + 1))


def add_alert(conn: sqlite3.Connection, recipient: str, item: Dict[str, Any]) -> bool:
    """
    Append an alert to a recipient record.

    Returns:
        False if an item with the same id already exists.
    """
    alert_id = str(item.get("id") or "").strip()
    if not alert_id:
        raise ValueError("Alert item must have an id")
    cursor = conn.execute(
        "SELECT COALESCE(MAX(position), -1) + 1 FROM alert_items WHERE recipient = ?",
        (recipient,)
    )
    position = cursor.fetchone()[0]
    created_at = str(item.get("createdAt") or datetime.utcnow().isoformat() + "Z")
    cursor = conn.execute(
        "INSERT OR IGNORE INTO alert_items (recipient, id, position, status, payload, created_at) "
        "VALUES (?, ?, ?, ?, ?, ?)",
        (recipient, alert_id, position, str(item.get("status") or UNREAD),
         json.dumps(item), created_at)
    )
    inserted = cursor.rowcount > 0
    if inserted:
        _bump_version(conn, recipient)
    conn.commit()
    return inserted


def get_items(conn: sqlite3.Connection, recipient: str) -> List[Dict[str, Any]]:
    """All items of a record in insertion order, with their current status."""
    cursor = conn.execute(
        "SELECT status, payload FROM alert_items WHERE recipient = ? ORDER BY position",
        (recipient,)
    )
    items = []
    for status, payload in cursor.fetchall():
        item = json.loads(payload)
        item["status"] = status
        items.append(item)
    return items


def mark_items_read(conn: sqlite3.Connection, recipient: str, ids: List[str]) -> int:
    """Set status=read on the given ids; returns the number of rows changed."""
    if not ids:
        return 0
    placeholders = ",".join("?" for _ in ids)
    cursor = conn.execute(
        f"UPDATE alert_items SET status = ? "
        f"WHERE recipient = ? AND status != ? AND id IN ({placeholders})",
        [READ, recipient, READ, *ids]
    )
    changed = cursor.rowcount
    if changed:
        _bump_version(conn, recipient)
    conn.commit()
    return changed


def put_schedule(conn: sqlite3.Connection, entity_id: str, schedule: Any) -> None:
    conn.execute(
        "INSERT OR REPLACE INTO schedules (entity_id, payload) VALUES (?, ?)",
        (str(entity_id), json.dumps(schedule))
    )
    conn.commit()


def get_schedule(conn: sqlite3.Connection, entity_id: str) -> Optional[Any]:
    cursor = conn.execute("SELECT payload FROM schedules WHERE entity_id = ?", (str(entity_id),))
    row = cursor.fetchone()
    return json.loads(row[0]) if row else None


class SQLiteAlertStore(AlertStore, ScheduleStore):
    """Alert and schedule store on a local SQLite file, watched by polling."""

    JOIN_TIMEOUT_SECONDS = 1.0

    def __init__(self, db_path: str, poll_interval_seconds: float = 2.0):
        self.conn = init_db(db_path)
        self.poll_interval_seconds = poll_interval_seconds
        self._lock = Lock()

    def close(self) -> None:
        with self._lock:
            self.conn.close()

    def add_alert(self, key: RecipientKey, item: Dict[str, Any]) -> bool:
        with self._lock:
            return add_alert(self.conn, str(key), item)

    def put_schedule(self, entity_id: str, schedule: Any) -> None:
        with self._lock:
            put_schedule(self.conn, entity_id, schedule)

    def read(self, key):
        with self._lock:
            version = get_version(self.conn, str(key))
            items = get_items(self.conn, str(key))
        return RecipientRecord(key=key, items=items, exists=version is not None)

    def mark_read(self, key, ids):
        with self._lock:
            mark_items_read(self.conn, str(key), [str(i) for i in ids])

    def read_schedule(self, entity_id):
        with self._lock:
            return get_schedule(self.conn, entity_id)

    def subscribe(self, key, on_update, on_error):
        stop = Event()
        thread = Thread(
            target=self._poll,
            args=(key, on_update, on_error, stop),
            name=f"alert-poll-{key}",
            daemon=True,
        )
        thread.start()

        def unsubscribe() -> None:
            stop.set()
            # the poll thread may unsubscribe itself from inside a callback
            if current_thread() is not thread:
                thread.join(timeout=self.JOIN_TIMEOUT_SECONDS)

        return unsubscribe

    def _poll(self, key: RecipientKey, on_update, on_error, stop: Event) -> None:
        last_version = -1
        while not stop.is_set():
            try:
                with self._lock:
                    version = get_version(self.conn, str(key))
                    items = get_items(self.conn, str(key)) if version != last_version else None
            except sqlite3.Error as e:
                on_error(e)
            else:
                if version != last_version:
                    last_version = version
                    on_update(Snapshot(key=key, items=items, exists=version is not None))
            stop.wait(self.poll_interval_seconds)


def open_store(db_path: str, poll_interval_seconds: float = 2.0) -> SQLiteAlertStore:
    logger.info(f"Opening alert store at {db_path}...")
    return SQLiteAlertStore(db_path, poll_interval_seconds)
