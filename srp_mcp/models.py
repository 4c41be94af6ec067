"""Record schemas for SRP notes and tasks."""

from __future__ import annotations

from datetime import datetime
from typing import List, Literal, Optional

from pydantic import BaseModel, ConfigDict, Field

NOTE_ID_PATTERN = r"^note_\d{8}_\d{3}$"
TASK_ID_PATTERN = r"^session_\d{8}_\d{3}$"
SUBTASK_ID_PATTERN = r"^subtask_\d{8}_\d{3}$"

STATUSES = ("pending", "in_progress", "completed", "blocked")
Status = Literal["pending", "in_progress", "completed", "blocked"]


class Note(BaseModel):
    """A structured note preserving an agent's working context for a task."""
    model_config = ConfigDict(str_strip_whitespace=True)

    note_id: str = Field(..., pattern=NOTE_ID_PATTERN)
    agent_id: str
    task_id: str = Field(..., pattern=TASK_ID_PATTERN)
    timestamp: datetime
    task_title: str
    subtask_id: Optional[str] = Field(None, pattern=SUBTASK_ID_PATTERN)
    subtask_title: Optional[str] = None
    content: str
    subtask_status: Status = "pending"
    public_state: bool = True


class Task(BaseModel):
    """A top-level task (session) that groups notes and subtasks."""
    model_config = ConfigDict(str_strip_whitespace=True)

    task_id: str = Field(..., pattern=TASK_ID_PATTERN)
    agent_id: str
    title: str
    description: Optional[str] = None
    created_at: datetime
    updated_at: datetime
    status: Status = "pending"
    notes: List[Note] = Field(default_factory=list)
