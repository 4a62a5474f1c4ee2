"""SQLite sink for poll records.

Persists points and state transitions according to the schema
embedded below.  Timestamps are stored as Unix epoch integers
(seconds since 1970-01-01 00:00:00 UTC).

Example:
    >>> from splink.storage import Storage
    >>> with Storage(":memory:") as store:
    ...     store.write([Point("power", "load", 512.0, 1700000000)])
    ...     store.fetch_points(1)[0]["value"]
    512.0
"""

import logging
import sqlite3
import time
from pathlib import Path

from splink.poller import Point, Transition

log = logging.getLogger(__name__)

SCHEMA = """\
CREATE TABLE IF NOT EXISTS points (
    id           INTEGER PRIMARY KEY,
    ts           INTEGER NOT NULL,  -- Unix timestamp (seconds since epoch, UTC)
    measurement  TEXT NOT NULL,     -- e.g. power, energy, voltage
    type         TEXT NOT NULL,     -- e.g. battery, source, load
    value        REAL NOT NULL      -- scaled physical value
);
CREATE INDEX IF NOT EXISTS idx_points_measurement_ts
    ON points (measurement, ts);
CREATE TABLE IF NOT EXISTS transitions (
    id           INTEGER PRIMARY KEY,
    ts           INTEGER NOT NULL,
    measurement  TEXT NOT NULL,
    type         TEXT NOT NULL,     -- e.g. start_reason, run_reason
    from_state   TEXT NOT NULL,
    to_state     TEXT NOT NULL
);
"""

_INSERT_POINT = """\
INSERT INTO points (ts, measurement, type, value)
VALUES (?, ?, ?, ?)"""

_INSERT_TRANSITION = """\
INSERT INTO transitions (ts, measurement, type, from_state, to_state)
VALUES (?, ?, ?, ?, ?)"""

_FETCH_POINTS = """\
SELECT id, ts, measurement, type, value
FROM points ORDER BY id DESC LIMIT ?"""

_FETCH_TRANSITIONS = """\
SELECT id, ts, measurement, type, from_state, to_state
FROM transitions ORDER BY id DESC LIMIT ?"""


class Storage:
    """SQLite-backed sink for points and transitions.

    Opens (or creates) the database at *db_path*, creates the tables
    if absent, and enables WAL journaling for concurrent-read safety.

    Args:
        db_path: Path to the SQLite database file, or ``":memory:"``.
    """

    def __init__(self, db_path: str):
        """Open the database and ensure the schema exists."""
        if db_path != ":memory:":
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)
        self._conn = sqlite3.connect(db_path)
        self._conn.row_factory = sqlite3.Row
        self._conn.execute("PRAGMA journal_mode=WAL")
        self._conn.executescript(SCHEMA)
        self._conn.commit()

    def write(self, records) -> None:
        """Insert all records from one cycle and commit.

        Raises:
            TypeError: If a record is neither a Point nor a Transition.
        """
        for r in records:
            if isinstance(r, Point):
                self._conn.execute(
                    _INSERT_POINT,
                    (r.timestamp, r.measurement, r.value_type, r.value),
                )
            elif isinstance(r, Transition):
                self._conn.execute(
                    _INSERT_TRANSITION,
                    (r.timestamp, r.measurement, r.transition_type,
                     r.from_state, r.to_state),
                )
            else:
                raise TypeError("cannot store {}".format(type(r).__name__))
        self._conn.commit()

    def fetch_points(self, count: int) -> list[dict]:
        """Return the newest *count* points, newest first."""
        cursor = self._conn.execute(_FETCH_POINTS, (count,))
        return [dict(row) for row in cursor.fetchall()]

    def fetch_transitions(self, count: int) -> list[dict]:
        """Return the newest *count* transitions, newest first."""
        cursor = self._conn.execute(_FETCH_TRANSITIONS, (count,))
        return [dict(row) for row in cursor.fetchall()]

    def purge(self, days: int) -> int:
        """Delete points older than *days* days and vacuum.

        Transitions are rare and kept.  Returns the number of deleted
        rows.
        """
        cutoff = int(time.time()) - days * 86400
        cursor = self._conn.execute(
            "DELETE FROM points WHERE ts < ?", (cutoff,)
        )
        deleted = cursor.rowcount
        self._conn.commit()
        if deleted > 0:
            self._conn.execute("VACUUM")
            log.info("purged %d points older than %d days", deleted, days)
        return deleted

    def __enter__(self) -> "Storage":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.close()

    def close(self) -> None:
        """Close the database connection."""
        self._conn.close()
