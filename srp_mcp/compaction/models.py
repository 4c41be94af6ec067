"""Data model for pre-compaction evaluation.

Items are frozen. The evaluator never writes to a caller's item; it
returns decided copies (``preserve`` set) inside :class:`EvaluationResult`.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class Priority(str, Enum):
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"

    @property
    def rank(self) -> int:
        """Higher rank means more worth keeping."""
        return _PRIORITY_RANK[self]

    @classmethod
    def parse(cls, value: Any) -> Priority | None:
        """Return the matching ordinal, or None for an unrecognized value."""
        try:
            return cls(value)
        except ValueError:
            return None


_PRIORITY_RANK = {Priority.LOW: 0, Priority.MEDIUM: 1, Priority.HIGH: 2}


class ItemKind(str, Enum):
    NOTE = "note"
    TASK = "task"
    MEMORY = "memory"
    CONTEXT = "context"


class ResultStatus(str, Enum):
    SUCCESS = "success"
    ERROR = "error"
    WARNING = "warning"


@dataclass(frozen=True)
class CompactableItem:
    """A unit of content competing for retention before compaction.

    ``priority`` keeps the raw inbound value so that an unknown ordinal
    can be detected (and discarded) at evaluation time instead of
    rejecting the whole payload on parse.
    """

    id: str
    kind: str
    content: str
    priority: str
    preserve: bool = False

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> CompactableItem:
        """Build an item from an inbound descriptor.

        Accepts ``type`` (wire name) or ``kind`` for the item kind. Any
        inbound ``preserve`` value is ignored: deciding is the evaluator's job.
        """
        return cls(
            id=str(data["id"]),
            kind=str(data.get("type", data.get("kind", ItemKind.CONTEXT.value))),
            content=str(data.get("content", "")),
            priority=str(data.get("priority", "")),
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "type": self.kind,
            "content": self.content,
            "priority": self.priority,
            "preserve": self.preserve,
        }


@dataclass(frozen=True)
class EvaluationContext:
    """Snapshot handed to the evaluator for one compaction event."""

    session_id: str
    agent_id: str
    items: tuple[CompactableItem, ...] = ()
    current_context: str = ""

    def __post_init__(self) -> None:
        # Accept any sequence, store a tuple
        object.__setattr__(self, "items", tuple(self.items))

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> EvaluationContext:
        """Parse an inbound hook payload.

        Item descriptors may arrive under ``items`` or ``compactableContent``.
        """
        raw_items = data.get("items")
        if raw_items is None:
            raw_items = data.get("compactableContent", [])
        return cls(
            session_id=str(data.get("sessionId", data.get("session_id", ""))),
            agent_id=str(data.get("agentId", data.get("agent_id", ""))),
            items=tuple(CompactableItem.from_dict(item) for item in raw_items),
            current_context=str(data.get("currentContext", data.get("current_context", ""))),
        )


@dataclass(frozen=True)
class EvaluationResult:
    status: ResultStatus
    preserved: tuple[CompactableItem, ...] = field(default_factory=tuple)
    removed: tuple[CompactableItem, ...] = field(default_factory=tuple)
    message: str = ""
    session_id: str = ""
    agent_id: str = ""

    @property
    def ok(self) -> bool:
        return self.status is ResultStatus.SUCCESS

    def to_dict(self) -> dict[str, Any]:
        """Serialize in the wire shape returned to the orchestration client."""
        return {
            "status": self.status.value,
            "preservedContent": [item.to_dict() for item in self.preserved],
            "removedContent": [item.to_dict() for item in self.removed],
            "message": self.message,
            "sessionId": self.session_id,
            "agentId": self.agent_id,
        }
