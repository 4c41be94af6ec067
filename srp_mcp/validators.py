"""Validation helpers over the note and task schemas.

``validate_*`` answer yes/no; ``parse_*`` return the model or None. Both
log the validation failure instead of raising.
"""

from __future__ import annotations

import logging
from typing import Any

from pydantic import ValidationError

from srp_mcp.models import Note, Task

log = logging.getLogger(__name__)


def validate_note(note: Any) -> bool:
    return parse_note(note) is not None


def validate_task(task: Any) -> bool:
    return parse_task(task) is not None


def parse_note(note: Any) -> Note | None:
    try:
        return Note.model_validate(note)
    except ValidationError as exc:
        log.warning("Note validation failed: %s", exc)
        return None


def parse_task(task: Any) -> Task | None:
    try:
        return Task.model_validate(task)
    except ValidationError as exc:
        log.warning("Task validation failed: %s", exc)
        return None
