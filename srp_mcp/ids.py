"""Date-scoped ID generation backed by SQLite.

Issues IDs of the form ``<kind>_<YYYYMMDD>_<NNN>``: ``note_20251005_001``,
``session_20251005_002``, ``subtask_20251005_001``. The sequence is per
kind and per day, starts at 001 and only moves forward.

Counters live in the ``id_counters`` table of the server database. Every
allocation runs inside ``BEGIN IMMEDIATE`` so concurrent writers never
receive the same ID.
"""

from __future__ import annotations

import sqlite3
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Callable

# Valid ID kinds. Tasks are "sessions" on the wire.
KINDS = ("note", "session", "subtask")

MAX_SEQUENCE = 999


class IDGeneratorError(Exception):
    """Raised on invalid or exhausted allocation requests."""


class IDGenerator:
    """Per-day sequence counter backed by SQLite.

    Supports context manager protocol::

        with IDGenerator(db_path) as ids:
            ids.next_id("note")

    Parameters
    ----------
    db_path:
        Path to the SQLite database file. Created if it does not exist.
    today:
        Callable returning the current date. Defaults to the UTC date.
    """

    def __init__(
        self,
        db_path: Path,
        today: Callable[[], date] | None = None,
    ) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._today = today or _utc_today
        self._init_table()

    def _connect(self) -> sqlite3.Connection:
        """Create a new connection with WAL mode enabled."""
        conn = sqlite3.connect(str(self._db_path))
        conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_table(self) -> None:
        """Create the id_counters table if it doesn't exist.

        Each row stores the *next available* sequence for a (kind, day).
        """
        conn = self._connect()
        try:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS id_counters (
                    kind     TEXT NOT NULL,
                    day      TEXT NOT NULL,
                    next_seq INTEGER NOT NULL DEFAULT 1,
                    PRIMARY KEY (kind, day)
                )
                """
            )
            conn.commit()
        finally:
            conn.close()

    # ------------------------------------------------------------------
    # Context manager
    # ------------------------------------------------------------------

    def __enter__(self) -> IDGenerator:
        return self

    def __exit__(self, *exc: object) -> None:
        self.close()

    # ------------------------------------------------------------------
    # Allocation
    # ------------------------------------------------------------------

    def next_id(self, kind: str) -> str:
        """Allocate and return one ID for *kind* (e.g. ``"note_20251005_001"``).

        Raises
        ------
        IDGeneratorError
            If *kind* is invalid or today's sequence for it is exhausted.
        """
        _validate_kind(kind)
        day = self._today().strftime("%Y%m%d")

        conn = self._connect()
        try:
            conn.execute("BEGIN IMMEDIATE")
            seq = _reserve_on_conn(conn, kind, day)
            conn.commit()
        except Exception:
            conn.rollback()
            raise
        finally:
            conn.close()

        return format_id(kind, day, seq)

    def note_id(self) -> str:
        return self.next_id("note")

    def task_id(self) -> str:
        return self.next_id("session")

    def subtask_id(self) -> str:
        return self.next_id("subtask")

    # ------------------------------------------------------------------
    # Query helpers
    # ------------------------------------------------------------------

    def peek(self, kind: str) -> int:
        """Return today's next sequence number for *kind* without advancing."""
        _validate_kind(kind)
        day = self._today().strftime("%Y%m%d")
        conn = self._connect()
        try:
            row = conn.execute(
                "SELECT next_seq FROM id_counters WHERE kind = ? AND day = ?",
                (kind, day),
            ).fetchone()
            return row[0] if row else 1
        finally:
            conn.close()

    def close(self) -> None:
        """No-op for API compatibility. All connections are per-call."""


# ------------------------------------------------------------------
# Module-level helpers
# ------------------------------------------------------------------

def format_id(kind: str, day: str, seq: int) -> str:
    return f"{kind}_{day}_{seq:03d}"


def _utc_today() -> date:
    return datetime.now(timezone.utc).date()


def _validate_kind(kind: str) -> None:
    """Raise if kind is not one of KINDS."""
    if kind not in KINDS:
        raise IDGeneratorError(
            f"Invalid kind '{kind}'. Must be one of: {', '.join(KINDS)}"
        )


def _reserve_on_conn(conn: sqlite3.Connection, kind: str, day: str) -> int:
    """Reserve one sequence number using an existing connection.

    The caller must manage the transaction (BEGIN/COMMIT/ROLLBACK).
    """
    row = conn.execute(
        "SELECT next_seq FROM id_counters WHERE kind = ? AND day = ?",
        (kind, day),
    ).fetchone()
    seq = row[0] if row else 1
    if seq > MAX_SEQUENCE:
        raise IDGeneratorError(
            f"Sequence exhausted for '{kind}' on {day} ({MAX_SEQUENCE} IDs issued)"
        )
    conn.execute(
        """INSERT INTO id_counters (kind, day, next_seq) VALUES (?, ?, ?)
           ON CONFLICT(kind, day) DO UPDATE SET next_seq = excluded.next_seq""",
        (kind, day, seq + 1),
    )
    return seq
