"""Task repository: CRUD, filtering and pagination over the ``tasks`` table."""

from __future__ import annotations

import logging
import sqlite3
from dataclasses import dataclass
from typing import Any

from srp_mcp.ids import IDGenerator
from srp_mcp.models import STATUSES, Task
from srp_mcp.storage.db import Database, now_iso

log = logging.getLogger(__name__)

UPDATABLE_FIELDS = {"agent_id", "title", "description", "status"}


@dataclass
class TaskFilters:
    agent_id: str | None = None
    status: str | None = None
    limit: int | None = None
    offset: int = 0


class TaskRepository:
    """Tasks backed by :class:`Database`, IDs from :class:`IDGenerator`."""

    def __init__(self, db: Database, ids: IDGenerator) -> None:
        self._db = db
        self._ids = ids

    def create(
        self,
        agent_id: str,
        title: str,
        description: str | None = None,
        status: str = "pending",
        task_id: str | None = None,
    ) -> Task:
        """Insert a task and return it. Generates ``task_id`` when not given.

        Raises
        ------
        pydantic.ValidationError
            If any field fails the :class:`Task` schema. Nothing is written.
        """
        now = now_iso()
        task = Task(
            task_id=task_id or self._ids.task_id(),
            agent_id=agent_id,
            title=title,
            description=description,
            created_at=now,
            updated_at=now,
            status=status,
        )
        conn = self._db.connect()
        try:
            conn.execute(
                """INSERT INTO tasks
                   (task_id, agent_id, title, description, status, created_at, updated_at)
                   VALUES (?, ?, ?, ?, ?, ?, ?)""",
                (
                    task.task_id, task.agent_id, task.title, task.description,
                    task.status, now, now,
                ),
            )
            conn.commit()
        finally:
            conn.close()

        log.info("Task %s created for agent %s", task.task_id, task.agent_id)
        return task

    def find_by_id(self, task_id: str, agent_id: str | None = None) -> Task | None:
        """Fetch one task. With *agent_id*, only if that agent owns it."""
        sql = "SELECT * FROM tasks WHERE task_id = ?"
        params: list[Any] = [task_id]
        if agent_id:
            sql += " AND agent_id = ?"
            params.append(agent_id)
        conn = self._db.connect()
        try:
            row = conn.execute(sql, params).fetchone()
            return _row_to_task(row) if row else None
        finally:
            conn.close()

    def find_by_agent(self, agent_id: str, status: str | None = None) -> list[Task]:
        """All tasks of an agent, newest first."""
        return self.search(TaskFilters(agent_id=agent_id, status=status))

    def search(self, filters: TaskFilters) -> list[Task]:
        clauses: list[str] = []
        params: list[Any] = []
        if filters.agent_id:
            clauses.append("agent_id = ?")
            params.append(filters.agent_id)
        if filters.status:
            clauses.append("status = ?")
            params.append(filters.status)

        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        limit = filters.limit if filters.limit is not None else -1
        params.extend([limit, max(filters.offset, 0)])

        conn = self._db.connect()
        try:
            rows = conn.execute(
                f"""SELECT * FROM tasks {where}
                    ORDER BY created_at DESC, rowid DESC
                    LIMIT ? OFFSET ?""",
                params,
            ).fetchall()
            return [_row_to_task(r) for r in rows]
        finally:
            conn.close()

    def update(self, task_id: str, **fields: Any) -> Task | None:
        """Update the given columns and bump ``updated_at``.

        Returns None if the task does not exist.
        """
        invalid = set(fields) - UPDATABLE_FIELDS
        if invalid:
            raise ValueError(f"Invalid task fields: {sorted(invalid)}")
        if "status" in fields and fields["status"] not in STATUSES:
            raise ValueError(f"Invalid status '{fields['status']}'. Must be one of {STATUSES}")

        if fields:
            fields["updated_at"] = now_iso()
            set_clause = ", ".join(f"{k} = ?" for k in fields)
            conn = self._db.connect()
            try:
                cur = conn.execute(
                    f"UPDATE tasks SET {set_clause} WHERE task_id = ?",
                    [*fields.values(), task_id],
                )
                conn.commit()
                updated = cur.rowcount
            finally:
                conn.close()
            if not updated:
                log.warning("Task %s not found for update", task_id)
                return None
            log.info("Task %s updated", task_id)

        return self.find_by_id(task_id)

    def update_status(self, task_id: str, status: str) -> Task | None:
        return self.update(task_id, status=status)

    def delete(self, task_id: str) -> bool:
        """Delete a task row. Its notes are left in place."""
        conn = self._db.connect()
        try:
            cur = conn.execute("DELETE FROM tasks WHERE task_id = ?", (task_id,))
            conn.commit()
        finally:
            conn.close()
        if not cur.rowcount:
            log.warning("Task %s not found for deletion", task_id)
            return False
        log.info("Task %s deleted", task_id)
        return True


def _row_to_task(row: sqlite3.Row) -> Task:
    return Task(
        task_id=row["task_id"],
        agent_id=row["agent_id"],
        title=row["title"],
        description=row["description"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
        status=row["status"],
    )
