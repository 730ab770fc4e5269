"""SQLite-backed medication log store.

One row per ``(subject_id, log_date)``, enforced by a UNIQUE constraint.
Every write is an upsert; rows are never deleted.

Provides get_store() / set_store() for the process-wide active store.
The server lifespan sets it; tests inject their own via set_store().
"""

from __future__ import annotations

import logging
import sqlite3
import threading
import uuid
from datetime import date, datetime, timezone
from pathlib import Path

from errors import StoreInitializationError, StoreUnavailable
from models import MedicationLogEntry

__all__ = ["MedicationLogStore", "get_store", "set_store"]

logger = logging.getLogger("meditrack.store")

SCHEMA = """
CREATE TABLE IF NOT EXISTS medication_logs (
    id TEXT PRIMARY KEY,
    subject_id TEXT NOT NULL,
    log_date TEXT NOT NULL,
    taken INTEGER NOT NULL DEFAULT 0,
    created_at TEXT NOT NULL,
    updated_at TEXT NOT NULL,
    UNIQUE (subject_id, log_date)
);
"""

_UPSERT = """
INSERT INTO medication_logs (id, subject_id, log_date, taken, created_at, updated_at)
VALUES (:id, :subject_id, :log_date, COALESCE(:taken, 0), :now, :now)
ON CONFLICT(subject_id, log_date) DO UPDATE SET
    taken = COALESCE(:taken, medication_logs.taken),
    updated_at = :now
"""


def _utcnow() -> str:
    return datetime.now(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def _row_to_entry(row: sqlite3.Row) -> MedicationLogEntry:
    return MedicationLogEntry(
        id=row["id"],
        subject_id=row["subject_id"],
        date=date.fromisoformat(row["log_date"]),
        taken=bool(row["taken"]),
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class MedicationLogStore:
    """Persisted medication logs keyed by ``(subject_id, date)``.

    A single connection is shared across threads and serialized by a lock,
    so ``:memory:`` databases keep their contents for the store's lifetime.
    """

    def __init__(self, path: str | Path = ":memory:") -> None:
        self.path = str(path)
        self._lock = threading.Lock()
        try:
            if self.path != ":memory:":
                Path(self.path).parent.mkdir(parents=True, exist_ok=True)
            self._conn = sqlite3.connect(self.path, check_same_thread=False)
            self._conn.row_factory = sqlite3.Row
            self._conn.executescript(SCHEMA)
        except (sqlite3.Error, OSError) as exc:
            logger.error("Failed to open medication log store at %s: %s", self.path, exc)
            raise StoreInitializationError(
                "Medication log store could not be initialized", cause=exc
            ) from exc
        logger.debug("Medication log store opened at %s", self.path)

    def close(self) -> None:
        with self._lock:
            self._conn.close()

    def find_range(self, subject_id: str, start: date, end: date) -> list[MedicationLogEntry]:
        """Return the subject's entries with ``start <= date <= end``, ordered by date."""
        try:
            with self._lock:
                rows = self._conn.execute(
                    """
                    SELECT * FROM medication_logs
                    WHERE subject_id = ? AND log_date BETWEEN ? AND ?
                    ORDER BY log_date
                    """,
                    (subject_id, start.isoformat(), end.isoformat()),
                ).fetchall()
        except sqlite3.Error as exc:
            logger.warning("find_range failed for subject=%s: %s", subject_id, exc)
            raise StoreUnavailable(
                "Failed to query medication logs", code="STORE_QUERY_FAILED", cause=exc
            ) from exc
        return [_row_to_entry(row) for row in rows]

    def get(self, subject_id: str, day: date) -> MedicationLogEntry | None:
        try:
            with self._lock:
                row = self._conn.execute(
                    "SELECT * FROM medication_logs WHERE subject_id = ? AND log_date = ?",
                    (subject_id, day.isoformat()),
                ).fetchone()
        except sqlite3.Error as exc:
            raise StoreUnavailable(
                "Failed to read medication log", code="STORE_QUERY_FAILED", cause=exc
            ) from exc
        return _row_to_entry(row) if row else None

    def upsert(self, subject_id: str, day: date, taken: bool | None) -> MedicationLogEntry:
        """Create or update the entry for ``(subject_id, day)``.

        ``taken=None`` creates the row as not taken and leaves an existing
        row's value untouched.
        """
        params = {
            "id": uuid.uuid4().hex,
            "subject_id": subject_id,
            "log_date": day.isoformat(),
            "taken": None if taken is None else int(taken),
            "now": _utcnow(),
        }
        try:
            with self._lock:
                with self._conn:
                    self._conn.execute(_UPSERT, params)
                row = self._conn.execute(
                    "SELECT * FROM medication_logs WHERE subject_id = ? AND log_date = ?",
                    (subject_id, params["log_date"]),
                ).fetchone()
        except sqlite3.Error as exc:
            logger.warning("upsert failed for subject=%s date=%s: %s", subject_id, day, exc)
            raise StoreUnavailable(
                "Failed to upsert medication log", code="STORE_WRITE_FAILED", cause=exc
            ) from exc
        return _row_to_entry(row)


_store: MedicationLogStore | None = None


def get_store() -> MedicationLogStore:
    """Return the active store, or raise if not initialized."""
    if _store is None:
        raise StoreInitializationError(
            "Medication log store not initialized. Server lifespan has not started."
        )
    return _store


def set_store(store: MedicationLogStore | None) -> None:
    """Set (or clear) the active store. Used by lifespan and tests."""
    global _store
    _store = store
