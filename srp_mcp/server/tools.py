"""MCP tools: input schemas and handlers for notes, tasks and compaction.

Handlers live on :class:`SrpTools` so they can be exercised without a
transport; :func:`register_tools` exposes them on a FastMCP server.
Every handler returns a dict with ``success``. Store failures come back as
``{"success": False, "error": ...}`` rather than as raised exceptions.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Any, Dict, List, Literal, Optional

from fastmcp import FastMCP
from pydantic import BaseModel, ConfigDict, Field

from srp_mcp.compaction import (
    CompactableItem,
    EvaluationContext,
    PreCompactionNotifier,
)
from srp_mcp.ids import IDGeneratorError
from srp_mcp.models import (
    NOTE_ID_PATTERN,
    SUBTASK_ID_PATTERN,
    TASK_ID_PATTERN,
    Status,
)
from srp_mcp.storage import NoteFilters, NoteRepository, TaskFilters, TaskRepository

log = logging.getLogger(__name__)

# Failures a handler reports instead of raising
STORE_ERRORS = (sqlite3.Error, IDGeneratorError, ValueError)


# ============================================================================
# Input Models
# ============================================================================

class CreateNoteInput(BaseModel):
    """Input for creating a structured note."""
    model_config = ConfigDict(str_strip_whitespace=True, extra='forbid')

    agent_id: str = Field(..., description="ID of the agent writing the note", min_length=1)
    task_id: str = Field(..., description="Parent task ID (session_YYYYMMDD_NNN)", pattern=TASK_ID_PATTERN)
    task_title: str = Field(..., description="Title of the parent task", min_length=1)
    subtask_id: Optional[str] = Field(None, description="Subtask ID (subtask_YYYYMMDD_NNN)", pattern=SUBTASK_ID_PATTERN)
    subtask_title: Optional[str] = Field(None, description="Title of the subtask")
    content: str = Field(..., description="Note body with the relevant details", min_length=1)
    subtask_status: Status = Field(default="in_progress", description="Current subtask status")
    public_state: bool = Field(default=True, description="Visible to other agents (True) or private to the author (False)")


class GetNotesByTaskInput(BaseModel):
    """Input for listing the notes of one task."""
    model_config = ConfigDict(str_strip_whitespace=True, extra='forbid')

    task_id: str = Field(..., description="Task ID (session_YYYYMMDD_NNN)", pattern=TASK_ID_PATTERN)
    agent_id: Optional[str] = Field(None, description="Only notes written by this agent")


class SearchNotesInput(BaseModel):
    """Input for searching notes by content and identifiers."""
    model_config = ConfigDict(str_strip_whitespace=True, extra='forbid')

    query: Optional[str] = Field(None, description="Text to find in note content (case-insensitive)")
    task_id: Optional[str] = Field(None, description="Filter by task ID")
    subtask_id: Optional[str] = Field(None, description="Filter by subtask ID")
    agent_id: Optional[str] = Field(None, description="Filter by author agent")
    limit: int = Field(default=10, description="Maximum results to return", ge=1, le=100)
    offset: int = Field(default=0, description="Results to skip (pagination)", ge=0)


class UpdateNoteStatusInput(BaseModel):
    """Input for changing the subtask status recorded on a note."""
    model_config = ConfigDict(str_strip_whitespace=True, extra='forbid')

    note_id: str = Field(..., description="Note ID (note_YYYYMMDD_NNN)", pattern=NOTE_ID_PATTERN)
    subtask_status: Status = Field(..., description="New subtask status")
    agent_id: str = Field(..., description="ID of the agent making the change", min_length=1)


class CreateTaskInput(BaseModel):
    """Input for creating a top-level task."""
    model_config = ConfigDict(str_strip_whitespace=True, extra='forbid')

    agent_id: str = Field(..., description="ID of the agent creating the task", min_length=1)
    title: str = Field(..., description="Descriptive task title", min_length=1)
    description: Optional[str] = Field(None, description="Detailed task description")


class GetTaskInput(BaseModel):
    """Input for fetching one task with its notes."""
    model_config = ConfigDict(str_strip_whitespace=True, extra='forbid')

    task_id: str = Field(..., description="Task ID (session_YYYYMMDD_NNN)", pattern=TASK_ID_PATTERN)
    agent_id: Optional[str] = Field(None, description="Only return the task if this agent owns it")


class ListTasksInput(BaseModel):
    """Input for listing an agent's tasks."""
    model_config = ConfigDict(str_strip_whitespace=True, extra='forbid')

    agent_id: str = Field(..., description="Agent whose tasks to list", min_length=1)
    status: Optional[Status] = Field(None, description="Filter by task status")
    limit: int = Field(default=10, description="Maximum results to return", ge=1, le=100)
    offset: int = Field(default=0, description="Results to skip (pagination)", ge=0)


class CompactableItemInput(BaseModel):
    """One item competing for retention."""
    model_config = ConfigDict(extra='forbid')

    id: str = Field(..., description="Item identifier, unique within the request", min_length=1)
    type: Literal["note", "task", "memory", "context"] = Field(default="context", description="Item kind (informational)")
    content: str = Field(default="", description="Item content")
    # Not a Literal: an unknown priority must reach the evaluator, which discards it
    priority: str = Field(..., description="Retention priority: 'high', 'medium' or 'low'")


class EvaluateCompactionInput(BaseModel):
    """Input for a pre-compaction preservation decision."""
    model_config = ConfigDict(extra='forbid')

    session_id: str = Field(..., description="Session being compacted")
    agent_id: str = Field(..., description="Agent whose context is compacted")
    current_context: str = Field(default="", description="Current context summary, passed through")
    items: List[CompactableItemInput] = Field(default_factory=list, description="Items to evaluate, in order")


# ============================================================================
# Handlers
# ============================================================================

class SrpTools:
    """Tool handlers bound to the repositories and the compaction hook."""

    def __init__(
        self,
        notes: NoteRepository,
        tasks: TaskRepository,
        notifier: PreCompactionNotifier,
    ) -> None:
        self._notes = notes
        self._tasks = tasks
        self._notifier = notifier

    def create_note(self, params: CreateNoteInput) -> Dict[str, Any]:
        """Create a structured note that preserves context for an agent task.

        Returns the generated ``note_id``.
        """
        log.debug("Creating note for task %s", params.task_id)
        try:
            note = self._notes.create(
                agent_id=params.agent_id,
                task_id=params.task_id,
                task_title=params.task_title,
                content=params.content,
                subtask_id=params.subtask_id,
                subtask_title=params.subtask_title,
                subtask_status=params.subtask_status,
                public_state=params.public_state,
            )
        except STORE_ERRORS as exc:
            return _failure("Error saving note", exc)
        return {
            "success": True,
            "note_id": note.note_id,
            "message": "Note created",
        }

    def get_notes_by_task(self, params: GetNotesByTaskInput) -> Dict[str, Any]:
        """Return every note of a task, newest first."""
        try:
            notes = self._notes.find_by_task(params.task_id, params.agent_id)
        except STORE_ERRORS as exc:
            return _failure("Error getting notes", exc)
        log.info("Retrieved %d note(s) for task %s", len(notes), params.task_id)
        return {
            "success": True,
            "task_id": params.task_id,
            "notes": [_dump(n) for n in notes],
            "count": len(notes),
        }

    def search_notes(self, params: SearchNotesInput) -> Dict[str, Any]:
        """Search notes by content text, task, subtask or agent."""
        filters = NoteFilters(
            task_id=params.task_id,
            agent_id=params.agent_id,
            subtask_id=params.subtask_id,
            query=params.query,
            limit=params.limit,
            offset=params.offset,
        )
        try:
            notes = self._notes.search(filters)
        except STORE_ERRORS as exc:
            return _failure("Error searching notes", exc)
        return {
            "success": True,
            "query": params.query,
            "task_id": params.task_id,
            "subtask_id": params.subtask_id,
            "agent_id": params.agent_id,
            "notes": [_dump(n) for n in notes],
            "count": len(notes),
            "limit": params.limit,
            "offset": params.offset,
        }

    def update_note_status(self, params: UpdateNoteStatusInput) -> Dict[str, Any]:
        """Change the subtask status recorded on a note."""
        try:
            note = self._notes.update_status(params.note_id, params.subtask_status)
        except STORE_ERRORS as exc:
            return _failure("Error updating note status", exc)
        if note is None:
            return {"success": False, "error": f"Note {params.note_id} not found"}
        log.info(
            "Agent %s set note %s to %s",
            params.agent_id, params.note_id, params.subtask_status,
        )
        return {
            "success": True,
            "note": _dump(note),
            "message": f"Subtask status updated to: {params.subtask_status}",
        }

    def create_task(self, params: CreateTaskInput) -> Dict[str, Any]:
        """Create a top-level task to organize notes and subtasks."""
        try:
            task = self._tasks.create(
                agent_id=params.agent_id,
                title=params.title,
                description=params.description,
            )
        except STORE_ERRORS as exc:
            return _failure("Error creating task", exc)
        return {
            "success": True,
            "task_id": task.task_id,
            "message": "Task created",
        }

    def get_task(self, params: GetTaskInput) -> Dict[str, Any]:
        """Return one task together with all of its notes."""
        try:
            task = self._tasks.find_by_id(params.task_id, params.agent_id)
            if task is None:
                return {"success": False, "error": f"Task {params.task_id} not found"}
            notes = self._notes.find_by_task(task.task_id)
        except STORE_ERRORS as exc:
            return _failure("Error getting task", exc)
        task = task.model_copy(update={"notes": notes})
        return {"success": True, "task": _dump(task)}

    def list_tasks(self, params: ListTasksInput) -> Dict[str, Any]:
        """List an agent's tasks, newest first."""
        filters = TaskFilters(
            agent_id=params.agent_id,
            status=params.status,
            limit=params.limit,
            offset=params.offset,
        )
        try:
            tasks = self._tasks.search(filters)
        except STORE_ERRORS as exc:
            return _failure("Error listing tasks", exc)
        return {
            "success": True,
            "agent_id": params.agent_id,
            "status": params.status,
            "tasks": [_dump(t, exclude={"notes"}) for t in tasks],
            "count": len(tasks),
            "limit": params.limit,
            "offset": params.offset,
        }

    def evaluate_compaction(self, params: EvaluateCompactionInput) -> Dict[str, Any]:
        """Decide which items survive an upcoming context compaction.

        High-priority items are preserved under the default policy; the
        rest are reported as removed.
        """
        context = EvaluationContext(
            session_id=params.session_id,
            agent_id=params.agent_id,
            current_context=params.current_context,
            items=tuple(
                CompactableItem(
                    id=item.id,
                    kind=item.type,
                    content=item.content,
                    priority=item.priority,
                )
                for item in params.items
            ),
        )
        result = self._notifier.execute(context)
        return {"success": result.ok, **result.to_dict()}


def _dump(model: BaseModel, exclude: set[str] | None = None) -> Dict[str, Any]:
    return model.model_dump(mode="json", exclude=exclude)


def _failure(what: str, exc: Exception) -> Dict[str, Any]:
    log.error("%s: %s", what, exc)
    return {"success": False, "error": f"{what}: {exc}"}


# ============================================================================
# Registration
# ============================================================================

# name -> (title, readOnly, destructive, idempotent)
TOOL_ANNOTATIONS: Dict[str, tuple[str, bool, bool, bool]] = {
    "create_note": ("Create Note", False, False, False),
    "get_notes_by_task": ("Get Notes By Task", True, False, True),
    "search_notes": ("Search Notes", True, False, True),
    "update_note_status": ("Update Note Status", False, False, True),
    "create_task": ("Create Task", False, False, False),
    "get_task": ("Get Task", True, False, True),
    "list_tasks": ("List Tasks", True, False, True),
    "evaluate_compaction": ("Evaluate Pre-Compaction Content", True, False, True),
}


def register_tools(mcp: FastMCP, tools: SrpTools) -> list[str]:
    """Expose every handler on *mcp*. Returns the registered tool names."""
    for name, (title, read_only, destructive, idempotent) in TOOL_ANNOTATIONS.items():
        mcp.tool(
            getattr(tools, name),
            name=name,
            annotations={
                "title": title,
                "readOnlyHint": read_only,
                "destructiveHint": destructive,
                "idempotentHint": idempotent,
                "openWorldHint": False,
            },
        )
    log.info("Registered %d tools", len(TOOL_ANNOTATIONS))
    return list(TOOL_ANNOTATIONS)
