"""
SQLite Store (Imperative Shell)
===============================

SQLite-backed implementation of the EventStore and SampleLog contracts.

Tables:
    1. ``samples``      - every accepted occupancy sample with its label
    2. ``queue_events`` - queue episodes (end_time NULL while open)

All statements run under one lock on a single connection. Every write is
committed before the method returns, or at the end of the enclosing
``transaction()`` block, so a reader never observes a turnover count older
than the last processed sample. sqlite3 errors are re-raised as
``StoreError``; an update or close of a missing event raises
``EventNotFoundError``.
"""

import logging
import sqlite3
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, List, Optional, Union

from queuewatch.errors import EventNotFoundError, StoreError
from queuewatch.models.queue_event import QueueEvent
from queuewatch.models.sample import Sample, SampleRecord, StatusLabel


logger = logging.getLogger(__name__)

_EVENT_COLUMNS = (
    "id, location_id, start_time, end_time, peak_count, "
    "turnover_count, estimated_queue_length"
)


class SQLiteStore:
    """Manages SQLite persistence for samples and queue events.

    Responsibilities:
        - Schema initialisation with WAL mode.
        - Sample log appends and range queries.
        - Queue event create / update / close / delete.
        - Connection lifetime via context-manager protocol.
        - Multi-statement commits via ``transaction()``.

    Example:
        with SQLiteStore("queuewatch.db") as store:
            event_id = store.create_event("front", 1731200000000, peak_count=6)
    """

    def __init__(self, db_path: Union[str, Path]):
        """Initialise with path to the SQLite database.

        Args:
            db_path: Path to the database file, or ``":memory:"``.
        """
        self.db_path = str(db_path)
        self.conn: Optional[sqlite3.Connection] = None
        self._lock = threading.RLock()
        self._in_transaction = False

    def __enter__(self) -> "SQLiteStore":
        self.open()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def open(self) -> None:
        """Connect and make sure the schema exists."""
        if self.conn is not None:
            return
        try:
            self.conn = sqlite3.connect(self.db_path, check_same_thread=False)
        except sqlite3.Error as e:
            raise StoreError(f"Cannot open database {self.db_path}: {e}") from e
        self.conn.row_factory = sqlite3.Row
        self.init_db()
        logger.info(f"SQLiteStore opened: {self.db_path}")

    def close(self) -> None:
        """Close the connection."""
        with self._lock:
            if self.conn:
                self.conn.close()
                self.conn = None

    # ------------------------------------------------------------------
    # Schema initialisation
    # ------------------------------------------------------------------

    def init_db(self) -> None:
        """Initialise database schema and indices.

        Enables WAL mode for concurrent readers.
        """
        with self._cursor() as cur:
            cur.execute("PRAGMA journal_mode=WAL")
            cur.execute("""
                CREATE TABLE IF NOT EXISTS samples (
                    id          INTEGER PRIMARY KEY AUTOINCREMENT,
                    location_id TEXT    NOT NULL,
                    timestamp   INTEGER NOT NULL,
                    count       INTEGER NOT NULL,
                    status      TEXT    NOT NULL
                )
            """)
            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_samples_location_ts
                ON samples (location_id, timestamp)
            """)
            cur.execute("""
                CREATE TABLE IF NOT EXISTS queue_events (
                    id                     INTEGER PRIMARY KEY AUTOINCREMENT,
                    location_id            TEXT    NOT NULL,
                    start_time             INTEGER NOT NULL,
                    end_time               INTEGER,
                    peak_count             INTEGER NOT NULL DEFAULT 0,
                    turnover_count         INTEGER NOT NULL DEFAULT 1,
                    estimated_queue_length INTEGER NOT NULL DEFAULT 0
                )
            """)
            cur.execute("""
                CREATE INDEX IF NOT EXISTS idx_queue_location_start
                ON queue_events (location_id, start_time)
            """)

    @contextmanager
    def transaction(self) -> Iterator[None]:
        """Group several writes into one commit.

        Every write inside the block becomes visible together, or none
        does: any exception rolls the whole block back and propagates.
        Nested calls join the outer transaction.

        Example:
            with store.transaction():
                store.record_sample(location_id, sample, status)
                store.close_event(event_id, sample.timestamp)
        """
        if self.conn is None:
            raise StoreError("No connection. Use 'with SQLiteStore(...) as store:'.")
        with self._lock:
            if self._in_transaction:
                yield
                return
            self._in_transaction = True
            try:
                yield
                self.conn.commit()
            except sqlite3.Error as e:
                self.conn.rollback()
                raise StoreError(f"SQLite transaction failed: {e}") from e
            except BaseException:
                self.conn.rollback()
                raise
            finally:
                self._in_transaction = False

    @contextmanager
    def _cursor(self) -> Iterator[sqlite3.Cursor]:
        """Locked cursor that commits on success and wraps sqlite errors.

        Inside ``transaction()`` the commit and rollback are left to the
        enclosing block.
        """
        if self.conn is None:
            raise StoreError("No connection. Use 'with SQLiteStore(...) as store:'.")
        with self._lock:
            try:
                cur = self.conn.cursor()
                yield cur
                if not self._in_transaction:
                    self.conn.commit()
            except sqlite3.Error as e:
                if not self._in_transaction:
                    self.conn.rollback()
                raise StoreError(f"SQLite operation failed: {e}") from e

    # ------------------------------------------------------------------
    # Sample log
    # ------------------------------------------------------------------

    def record_sample(self, location_id: str, sample: Sample, status: StatusLabel) -> None:
        """Append one accepted sample."""
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO samples (location_id, timestamp, count, status) "
                "VALUES (?, ?, ?, ?)",
                (location_id, sample.timestamp, sample.count, status.value),
            )

    def latest_sample(
        self,
        location_id: str,
        before: Optional[int] = None,
    ) -> Optional[SampleRecord]:
        """Most recent sample, optionally at or before a timestamp."""
        query = "SELECT location_id, timestamp, count, status FROM samples WHERE location_id = ?"
        params: list = [location_id]
        if before is not None:
            query += " AND timestamp <= ?"
            params.append(before)
        query += " ORDER BY timestamp DESC LIMIT 1"

        with self._cursor() as cur:
            row = cur.execute(query, params).fetchone()
        return _row_to_sample(row) if row else None

    def recent_samples(self, location_id: str, limit: int) -> List[SampleRecord]:
        """Newest samples first."""
        with self._cursor() as cur:
            rows = cur.execute(
                "SELECT location_id, timestamp, count, status FROM samples "
                "WHERE location_id = ? ORDER BY timestamp DESC LIMIT ?",
                (location_id, limit),
            ).fetchall()
        return [_row_to_sample(r) for r in rows]

    def list_samples(
        self,
        location_id: str,
        since: Optional[int] = None,
        until: Optional[int] = None,
    ) -> List[SampleRecord]:
        """Samples in ``[since, until)`` in timestamp order."""
        query = "SELECT location_id, timestamp, count, status FROM samples WHERE location_id = ?"
        params: list = [location_id]
        if since is not None:
            query += " AND timestamp >= ?"
            params.append(since)
        if until is not None:
            query += " AND timestamp < ?"
            params.append(until)
        query += " ORDER BY timestamp ASC"

        with self._cursor() as cur:
            rows = cur.execute(query, params).fetchall()
        return [_row_to_sample(r) for r in rows]

    def count_samples(self, location_id: str) -> int:
        """Number of samples recorded for a location."""
        with self._cursor() as cur:
            row = cur.execute(
                "SELECT COUNT(*) FROM samples WHERE location_id = ?",
                (location_id,),
            ).fetchone()
        return int(row[0])

    # ------------------------------------------------------------------
    # Queue events
    # ------------------------------------------------------------------

    def create_event(
        self,
        location_id: str,
        start_time: int,
        peak_count: int,
        turnover_count: int = 1,
        estimated_queue_length: int = 0,
    ) -> int:
        """Insert an open event and return its id."""
        with self._cursor() as cur:
            cur.execute(
                "INSERT INTO queue_events "
                "(location_id, start_time, peak_count, turnover_count, estimated_queue_length) "
                "VALUES (?, ?, ?, ?, ?)",
                (location_id, start_time, peak_count, turnover_count, estimated_queue_length),
            )
            event_id = cur.lastrowid
        return int(event_id)

    def update_event(
        self,
        event_id: int,
        turnover_count: int,
        peak_count: int,
        estimated_queue_length: int,
    ) -> None:
        """Overwrite the mutable counters of an event."""
        with self._cursor() as cur:
            cur.execute(
                "UPDATE queue_events SET turnover_count = ?, peak_count = ?, "
                "estimated_queue_length = ? WHERE id = ?",
                (turnover_count, peak_count, estimated_queue_length, event_id),
            )
            if cur.rowcount == 0:
                raise EventNotFoundError(f"Queue event {event_id} does not exist")

    def close_event(self, event_id: int, end_time: int) -> None:
        """Set the end time of an open event."""
        with self._cursor() as cur:
            cur.execute(
                "UPDATE queue_events SET end_time = ? WHERE id = ? AND end_time IS NULL",
                (end_time, event_id),
            )
            if cur.rowcount == 0:
                raise EventNotFoundError(f"Queue event {event_id} does not exist or is already closed")

    def get_event(self, event_id: int) -> Optional[QueueEvent]:
        with self._cursor() as cur:
            row = cur.execute(
                f"SELECT {_EVENT_COLUMNS} FROM queue_events WHERE id = ?",
                (event_id,),
            ).fetchone()
        return _row_to_event(row) if row else None

    def get_active_event(self, location_id: str) -> Optional[QueueEvent]:
        """Newest open event for a location."""
        with self._cursor() as cur:
            row = cur.execute(
                f"SELECT {_EVENT_COLUMNS} FROM queue_events "
                "WHERE location_id = ? AND end_time IS NULL "
                "ORDER BY start_time DESC LIMIT 1",
                (location_id,),
            ).fetchone()
        return _row_to_event(row) if row else None

    def list_open_events(self, location_id: str) -> List[QueueEvent]:
        with self._cursor() as cur:
            rows = cur.execute(
                f"SELECT {_EVENT_COLUMNS} FROM queue_events "
                "WHERE location_id = ? AND end_time IS NULL ORDER BY start_time",
                (location_id,),
            ).fetchall()
        return [_row_to_event(r) for r in rows]

    def list_closed_events(
        self,
        location_id: str,
        since: Optional[int] = None,
        limit: Optional[int] = None,
        newest_first: bool = False,
    ) -> List[QueueEvent]:
        """Closed events that started at or after ``since``."""
        query = (
            f"SELECT {_EVENT_COLUMNS} FROM queue_events "
            "WHERE location_id = ? AND end_time IS NOT NULL"
        )
        params: list = [location_id]
        if since is not None:
            query += " AND start_time >= ?"
            params.append(since)
        query += " ORDER BY start_time " + ("DESC" if newest_first else "ASC")
        if limit is not None:
            query += " LIMIT ?"
            params.append(limit)

        with self._cursor() as cur:
            rows = cur.execute(query, params).fetchall()
        return [_row_to_event(r) for r in rows]

    def delete_event(self, event_id: int) -> None:
        with self._cursor() as cur:
            cur.execute("DELETE FROM queue_events WHERE id = ?", (event_id,))

    def delete_events(self, location_id: str) -> int:
        """Delete every event of a location; returns the number removed."""
        with self._cursor() as cur:
            cur.execute("DELETE FROM queue_events WHERE location_id = ?", (location_id,))
            return cur.rowcount


# ---------------------------------------------------------------------------
# Row mapping
# ---------------------------------------------------------------------------

def _row_to_sample(row: sqlite3.Row) -> SampleRecord:
    return SampleRecord(
        location_id=row["location_id"],
        timestamp=int(row["timestamp"]),
        count=int(row["count"]),
        status=StatusLabel(row["status"]),
    )


def _row_to_event(row: sqlite3.Row) -> QueueEvent:
    return QueueEvent(
        id=row["id"],
        location_id=row["location_id"],
        start_time=row["start_time"],
        end_time=row["end_time"],
        peak_count=row["peak_count"],
        turnover_count=row["turnover_count"],
        estimated_queue_length=row["estimated_queue_length"],
    )
