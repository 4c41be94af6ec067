"""Note repository: CRUD, filtering and pagination over the ``notes`` table."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from srp_mcp.ids import IDGenerator
from srp_mcp.models import STATUSES, Note
from srp_mcp.storage.db import Database, like_pattern, now_iso

log = logging.getLogger(__name__)

# Columns update() may change
UPDATABLE_FIELDS = {
    "agent_id", "task_id", "subtask_id", "task_title", "subtask_title",
    "content", "subtask_status", "public_state",
}


@dataclass
class NoteFilters:
    task_id: str | None = None
    agent_id: str | None = None
    subtask_id: str | None = None
    query: str | None = None
    limit: int | None = None
    offset: int = 0


class NoteRepository:
    """Notes backed by :class:`Database`, IDs from :class:`IDGenerator`."""

    def __init__(self, db: Database, ids: IDGenerator) -> None:
        self._db = db
        self._ids = ids

    def create(
        self,
        agent_id: str,
        task_id: str,
        task_title: str,
        content: str,
        subtask_id: str | None = None,
        subtask_title: str | None = None,
        subtask_status: str = "pending",
        public_state: bool = True,
        note_id: str | None = None,
    ) -> Note:
        """Insert a note and return it. Generates ``note_id`` when not given.

        Raises
        ------
        pydantic.ValidationError
            If any field fails the :class:`Note` schema. Nothing is written.
        """
        note = Note(
            note_id=note_id or self._ids.note_id(),
            agent_id=agent_id,
            task_id=task_id,
            timestamp=now_iso(),
            task_title=task_title,
            subtask_id=subtask_id,
            subtask_title=subtask_title,
            content=content,
            subtask_status=subtask_status,
            public_state=public_state,
        )
        conn = self._db.connect()
        try:
            conn.execute(
                """INSERT INTO notes
                   (note_id, agent_id, task_id, subtask_id, timestamp, task_title,
                    subtask_title, content, subtask_status, public_state)
                   VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?)""",
                (
                    note.note_id, note.agent_id, note.task_id, note.subtask_id,
                    note.timestamp.isoformat(), note.task_title, note.subtask_title,
                    note.content, note.subtask_status, int(note.public_state),
                ),
            )
            conn.commit()
        finally:
            conn.close()

        log.info("Note %s created for task %s", note.note_id, note.task_id)
        return note

    def find_by_id(self, note_id: str) -> Note | None:
        conn = self._db.connect()
        try:
            row = conn.execute(
                "SELECT * FROM notes WHERE note_id = ?", (note_id,)
            ).fetchone()
            return _row_to_note(row) if row else None
        finally:
            conn.close()

    def find_by_task(self, task_id: str, agent_id: str | None = None) -> list[Note]:
        """All notes of a task, newest first."""
        return self.search(NoteFilters(task_id=task_id, agent_id=agent_id))

    def search(self, filters: NoteFilters) -> list[Note]:
        """Notes matching every given filter, newest first.

        ``query`` is a case-insensitive substring match on content, folded
        with :meth:`str.casefold` so non-ASCII letters match too.
        """
        clauses: list[str] = []
        params: list[Any] = []
        for column in ("task_id", "agent_id", "subtask_id"):
            value = getattr(filters, column)
            if value:
                clauses.append(f"{column} = ?")
                params.append(value)
        if filters.query:
            clauses.append("casefold(content) LIKE ? ESCAPE '\\'")
            params.append(like_pattern(filters.query.casefold()))

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        # LIMIT -1 means no limit in SQLite
        limit = filters.limit if filters.limit is not None else -1
        params.extend([limit, max(filters.offset, 0)])

        conn = self._db.connect()
        try:
            rows = conn.execute(
                f"""SELECT * FROM notes {where}
                    ORDER BY timestamp DESC, rowid DESC
                    LIMIT ? OFFSET ?""",
                params,
            ).fetchall()
            return [_row_to_note(r) for r in rows]
        finally:
            conn.close()

    def update_status(self, note_id: str, status: str) -> Note | None:
        """Set ``subtask_status``. Returns None if the note does not exist."""
        return self.update(note_id, subtask_status=status)

    def update(self, note_id: str, **fields: Any) -> Note | None:
        """Update the given columns. Returns None if the note does not exist."""
        invalid = set(fields) - UPDATABLE_FIELDS
        if invalid:
            raise ValueError(f"Invalid note fields: {sorted(invalid)}")
        if "subtask_status" in fields:
            _check_status(fields["subtask_status"])
        if "public_state" in fields:
            fields["public_state"] = int(bool(fields["public_state"]))

        if fields:
            set_clause = ", ".join(f"{k} = ?" for k in fields)
            conn = self._db.connect()
            try:
                cur = conn.execute(
                    f"UPDATE notes SET {set_clause} WHERE note_id = ?",
                    [*fields.values(), note_id],
                )
                conn.commit()
                updated = cur.rowcount
            finally:
                conn.close()
            if not updated:
                log.warning("Note %s not found for update", note_id)
                return None
            log.info("Note %s updated (%s)", note_id, ", ".join(sorted(fields)))

        return self.find_by_id(note_id)

    def delete(self, note_id: str) -> bool:
        conn = self._db.connect()
        try:
            cur = conn.execute("DELETE FROM notes WHERE note_id = ?", (note_id,))
            conn.commit()
        finally:
            conn.close()
        if not cur.rowcount:
            log.warning("Note %s not found for deletion", note_id)
            return False
        log.info("Note %s deleted", note_id)
        return True


def _check_status(status: str) -> None:
    if status not in STATUSES:
        raise ValueError(f"Invalid status '{status}'. Must be one of {STATUSES}")


def _row_to_note(row: sqlite3.Row) -> Note:
    return Note(
        note_id=row["note_id"],
        agent_id=row["agent_id"],
        task_id=row["task_id"],
        subtask_id=row["subtask_id"],
        timestamp=row["timestamp"],
        task_title=row["task_title"],
        subtask_title=row["subtask_title"],
        content=row["content"],
        subtask_status=row["subtask_status"],
        public_state=bool(row["public_state"]),
    )
