"""Pre-compaction evaluation: partition items into preserved and removed.

:class:`CompactionEvaluator` applies a :class:`RetentionPolicy` to every
item of an :class:`EvaluationContext` and always returns a well-formed
:class:`EvaluationResult`, never an exception.

Fault handling:

- Unknown priority on an item: that item is discarded without asking the
  policy, a warning is logged, and the batch continues.
- The policy raising on any item: the whole evaluation reports
  ``status=error`` with empty partitions. Nothing decided before the fault
  is surfaced.
"""

from __future__ import annotations

import logging
from typing import Union

from srp_mcp.compaction.models import (
    CompactableItem,
    EvaluationContext,
    EvaluationResult,
    Priority,
    ResultStatus,
)
from srp_mcp.compaction.policy import HighPriorityPolicy, RetentionPolicy

log = logging.getLogger(__name__)

Logger = Union[logging.Logger, logging.LoggerAdapter]


class CompactionEvaluator:
    """Stateless evaluator. Safe to share across threads.

    Parameters
    ----------
    policy:
        Retention policy consulted once per valid item. Defaults to
        :class:`HighPriorityPolicy`.
    logger:
        Where structured events go. Defaults to this module's logger;
        tests pass their own to assert on records.
    """

    def __init__(
        self,
        policy: RetentionPolicy | None = None,
        logger: Logger | None = None,
    ) -> None:
        self._policy = policy if policy is not None else HighPriorityPolicy()
        self._log = logger if logger is not None else log

    @property
    def policy(self) -> RetentionPolicy:
        return self._policy

    def evaluate(self, context: EvaluationContext) -> EvaluationResult:
        # Snapshot: later changes to the caller's sequence are not seen
        items = tuple(context.items)

        # The injected logger runs inside the guard as well
        try:
            self._log.info(
                "Pre-compaction evaluation started",
                extra={
                    "session_id": context.session_id,
                    "agent_id": context.agent_id,
                    "content_count": len(items),
                },
            )
            preserved, removed = self._partition(items)
            self._log.info(
                "Pre-compaction evaluation completed",
                extra={
                    "session_id": context.session_id,
                    "agent_id": context.agent_id,
                    "preserved_count": len(preserved),
                    "removed_count": len(removed),
                },
            )
        except Exception as exc:
            self._report_fault(context, exc)
            return EvaluationResult(
                status=ResultStatus.ERROR,
                message=f"Error during pre-compaction analysis: {exc}",
                session_id=context.session_id,
                agent_id=context.agent_id,
            )

        return EvaluationResult(
            status=ResultStatus.SUCCESS,
            preserved=tuple(preserved),
            removed=tuple(removed),
            message=summarize(len(items), len(preserved), len(removed)),
            session_id=context.session_id,
            agent_id=context.agent_id,
        )

    def _partition(
        self, items: tuple[CompactableItem, ...],
    ) -> tuple[list[CompactableItem], list[CompactableItem]]:
        preserved: list[CompactableItem] = []
        removed: list[CompactableItem] = []
        seen: set[str] = set()
        for item in items:
            if item.id in seen:
                # Still decided: each occurrence gets exactly one decision
                self._log.warning(
                    "Duplicate item id %s in evaluation payload",
                    item.id,
                    extra={"item_id": item.id},
                )
            seen.add(item.id)
            if Priority.parse(item.priority) is None:
                self._log.warning(
                    "Unknown priority %r on item %s, discarding",
                    item.priority, item.id,
                    extra={"item_id": item.id, "priority": item.priority},
                )
                removed.append(_decided(item, False))
                continue
            keep = bool(self._policy.decide(item))
            if keep:
                preserved.append(_decided(item, True))
            else:
                removed.append(_decided(item, False))
        return preserved, removed

    def _report_fault(self, context: EvaluationContext, exc: Exception) -> None:
        extra = {
            "session_id": context.session_id,
            "agent_id": context.agent_id,
            "error": str(exc),
        }
        try:
            self._log.error(
                "Error in pre-compaction evaluation: %s", exc,
                exc_info=exc, extra=extra,
            )
        except Exception:
            # Injected logger is broken; record both failures on the module logger
            log.exception("Injected logger failed while reporting: %s", exc, extra=extra)


class PreCompactionNotifier(CompactionEvaluator):
    """Evaluator wearing a hook identity, with an on/off switch.

    When disabled, :meth:`execute` evaluates nothing and answers with
    ``status=warning`` so the caller knows no preservation decision was made.
    """

    id = "pre-compaction-notifier"
    name = "Pre-Compaction Notifier"
    description = (
        "Reports which content will be compacted and which high-priority "
        "content is preserved"
    )

    def __init__(
        self,
        policy: RetentionPolicy | None = None,
        logger: Logger | None = None,
        enabled: bool = True,
    ) -> None:
        super().__init__(policy=policy, logger=logger)
        self.enabled = enabled

    def execute(self, context: EvaluationContext) -> EvaluationResult:
        if not self.enabled:
            self._log.warning(
                "Pre-compaction hook %s is disabled, skipping evaluation", self.id,
                extra={"session_id": context.session_id, "agent_id": context.agent_id},
            )
            return EvaluationResult(
                status=ResultStatus.WARNING,
                message="Pre-compaction hook is disabled; no items were evaluated.",
                session_id=context.session_id,
                agent_id=context.agent_id,
            )
        return self.evaluate(context)


def summarize(total: int, preserved: int, removed: int) -> str:
    """Deterministic one-line summary of a partition."""
    noun = "item" if total == 1 else "items"
    return f"Evaluated {total} {noun}: {preserved} preserved, {removed} removed."


def _decided(item: CompactableItem, preserve: bool) -> CompactableItem:
    return CompactableItem(
        id=item.id,
        kind=item.kind,
        content=item.content,
        priority=item.priority,
        preserve=preserve,
    )
