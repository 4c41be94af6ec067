"""Relational item store: SQLite tables for notes and tasks."""

from srp_mcp.storage.db import Database
from srp_mcp.storage.notes import NoteFilters, NoteRepository
from srp_mcp.storage.tasks import TaskFilters, TaskRepository

__all__ = [
    "Database",
    "NoteFilters",
    "NoteRepository",
    "TaskFilters",
    "TaskRepository",
]
