"""Compaction subsystem: decide which context survives a compaction event.

A :class:`RetentionPolicy` says keep or drop for one item;
:class:`CompactionEvaluator` applies it across an
:class:`EvaluationContext` and aggregates the partition.
"""

from srp_mcp.compaction.evaluator import (
    CompactionEvaluator,
    PreCompactionNotifier,
    summarize,
)
from srp_mcp.compaction.models import (
    CompactableItem,
    EvaluationContext,
    EvaluationResult,
    ItemKind,
    Priority,
    ResultStatus,
)
from srp_mcp.compaction.policy import (
    POLICIES,
    HighPriorityPolicy,
    MinimumPriorityPolicy,
    RetentionPolicy,
    get_policy,
)

__all__ = [
    "POLICIES",
    "CompactableItem",
    "CompactionEvaluator",
    "EvaluationContext",
    "EvaluationResult",
    "HighPriorityPolicy",
    "ItemKind",
    "MinimumPriorityPolicy",
    "PreCompactionNotifier",
    "Priority",
    "ResultStatus",
    "RetentionPolicy",
    "get_policy",
    "summarize",
]
