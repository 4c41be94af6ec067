"""Retention policies: decide whether one compactable item survives.

A policy only ever sees items whose priority is a known ordinal; the
evaluator discards unknown ordinals before asking.
"""

from __future__ import annotations

from typing import Protocol

from srp_mcp.compaction.models import CompactableItem, Priority


class RetentionPolicy(Protocol):
    """Anything with a pure ``decide(item) -> bool``."""

    def decide(self, item: CompactableItem) -> bool:
        ...


class HighPriorityPolicy:
    """Baseline: keep high-priority items, discard medium and low."""

    def decide(self, item: CompactableItem) -> bool:
        return item.priority == Priority.HIGH

    def __repr__(self) -> str:
        return "HighPriorityPolicy()"


class MinimumPriorityPolicy:
    """Keep every item ranked at or above *threshold*.

    ``MinimumPriorityPolicy(Priority.MEDIUM)`` keeps high and medium.
    """

    def __init__(self, threshold: Priority) -> None:
        self._threshold = Priority(threshold)

    @property
    def threshold(self) -> Priority:
        return self._threshold

    def decide(self, item: CompactableItem) -> bool:
        return Priority(item.priority).rank >= self._threshold.rank

    def __repr__(self) -> str:
        return f"MinimumPriorityPolicy({self._threshold.value!r})"


# Config names -> policy factories
POLICIES = {
    "high_only": HighPriorityPolicy,
    "high_and_medium": lambda: MinimumPriorityPolicy(Priority.MEDIUM),
    "all": lambda: MinimumPriorityPolicy(Priority.LOW),
}


def get_policy(name: str) -> RetentionPolicy:
    """Return a fresh policy for the config name *name*."""
    try:
        factory = POLICIES[name]
    except KeyError:
        raise ValueError(
            f"Unknown retention policy '{name}'. Must be one of: {sorted(POLICIES)}"
        ) from None
    return factory()
