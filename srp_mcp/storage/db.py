"""SQLite database for the SRP server.

Manages two tables in ``.srp/srp.db``:

- ``tasks``: top-level tasks (sessions) owned by an agent
- ``notes``: structured notes attached to a task and optionally a subtask

The ``id_counters`` table is owned by :mod:`srp_mcp.ids` and is NOT
managed here. Both modules share the same database file.
"""

from __future__ import annotations

import sqlite3
from datetime import datetime, timezone
from pathlib import Path


class Database:
    """Opens or creates the database file and its tables.

    Connections are per-call: every repository method opens one through
    :meth:`connect` and closes it before returning.

    Parameters
    ----------
    db_path:
        Path to the SQLite database file.
    """

    def __init__(self, db_path: Path) -> None:
        self._db_path = Path(db_path)
        self._db_path.parent.mkdir(parents=True, exist_ok=True)
        self._init_tables()

    @property
    def path(self) -> Path:
        return self._db_path

    def connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(str(self._db_path))
        conn.execute("PRAGMA journal_mode=WAL")
        conn.row_factory = sqlite3.Row
        # LIKE folds ASCII only; note search compares casefold() on both sides
        conn.create_function("casefold", 1, _casefold, deterministic=True)
        return conn

    def _init_tables(self) -> None:
        conn = self.connect()
        try:
            conn.executescript("""
                CREATE TABLE IF NOT EXISTS tasks (
                    task_id     TEXT PRIMARY KEY,
                    agent_id    TEXT NOT NULL,
                    title       TEXT NOT NULL,
                    description TEXT,
                    status      TEXT NOT NULL DEFAULT 'pending',
                    created_at  TEXT NOT NULL,
                    updated_at  TEXT NOT NULL
                );

                CREATE TABLE IF NOT EXISTS notes (
                    note_id        TEXT PRIMARY KEY,
                    agent_id       TEXT NOT NULL,
                    task_id        TEXT NOT NULL,
                    subtask_id     TEXT,
                    timestamp      TEXT NOT NULL,
                    task_title     TEXT NOT NULL,
                    subtask_title  TEXT,
                    content        TEXT NOT NULL,
                    subtask_status TEXT NOT NULL DEFAULT 'pending',
                    public_state   INTEGER NOT NULL DEFAULT 1
                );

                CREATE INDEX IF NOT EXISTS idx_notes_task ON notes (task_id);
                CREATE INDEX IF NOT EXISTS idx_tasks_agent ON tasks (agent_id);
            """)
            conn.commit()
        finally:
            conn.close()

    def counts(self) -> dict[str, int]:
        """Return row counts per table, for status display."""
        conn = self.connect()
        try:
            return {
                table: conn.execute(f"SELECT COUNT(*) FROM {table}").fetchone()[0]
                for table in ("tasks", "notes")
            }
        finally:
            conn.close()


def now_iso() -> str:
    """Current UTC time as ISO string."""
    return datetime.now(timezone.utc).isoformat()


def like_pattern(text: str) -> str:
    """Substring LIKE pattern for *text*, escaping ``%``, ``_`` and ``\\``."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def _casefold(value: str | None) -> str | None:
    return value.casefold() if value is not None else None
