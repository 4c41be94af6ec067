"""Tests for srp_mcp.compaction: retention policies and the evaluator."""

from __future__ import annotations

import dataclasses
import logging
from concurrent.futures import ThreadPoolExecutor

import pytest

from srp_mcp.compaction import (
    CompactableItem,
    CompactionEvaluator,
    EvaluationContext,
    EvaluationResult,
    HighPriorityPolicy,
    MinimumPriorityPolicy,
    PreCompactionNotifier,
    Priority,
    ResultStatus,
    get_policy,
    summarize,
)


def _item(item_id: str, priority: str, kind: str = "note") -> CompactableItem:
    return CompactableItem(id=item_id, kind=kind, content=f"content of {item_id}", priority=priority)


def _context(*items: CompactableItem) -> EvaluationContext:
    return EvaluationContext(session_id="sess-1", agent_id="agent-1", items=items)


def _ids(items: tuple[CompactableItem, ...]) -> list[str]:
    return [i.id for i in items]


class RaisingPolicy:
    """Fails on one item id, otherwise behaves like the baseline."""

    def __init__(self, fail_on: str) -> None:
        self.fail_on = fail_on
        self.seen: list[str] = []

    def decide(self, item: CompactableItem) -> bool:
        self.seen.append(item.id)
        if item.id == self.fail_on:
            raise RuntimeError(f"oracle unavailable for {item.id}")
        return item.priority == "high"


class RecordingPolicy:
    def __init__(self) -> None:
        self.seen: list[str] = []

    def decide(self, item: CompactableItem) -> bool:
        self.seen.append(item.id)
        return True


@pytest.fixture
def evaluator() -> CompactionEvaluator:
    return CompactionEvaluator()


@pytest.fixture
def scenario() -> EvaluationContext:
    return _context(
        _item("a", "high"),
        _item("b", "medium"),
        _item("c", "low"),
        _item("d", "high"),
    )


# ------------------------------------------------------------------
# Models
# ------------------------------------------------------------------

class TestPriority:
    def test_parse_known(self) -> None:
        assert Priority.parse("high") is Priority.HIGH
        assert Priority.parse("low") is Priority.LOW

    def test_parse_unknown_is_none(self) -> None:
        assert Priority.parse("urgent") is None
        assert Priority.parse("HIGH") is None
        assert Priority.parse(None) is None

    def test_rank_order(self) -> None:
        assert Priority.HIGH.rank > Priority.MEDIUM.rank > Priority.LOW.rank

    def test_compares_equal_to_wire_string(self) -> None:
        assert Priority.HIGH == "high"


class TestCompactableItem:
    def test_frozen(self) -> None:
        item = _item("a", "high")
        with pytest.raises(dataclasses.FrozenInstanceError):
            item.preserve = True  # type: ignore[misc]

    def test_from_dict_uses_type_key(self) -> None:
        item = CompactableItem.from_dict(
            {"id": "n1", "type": "task", "content": "x", "priority": "low"}
        )
        assert item.kind == "task"
        assert item.preserve is False

    def test_from_dict_ignores_inbound_preserve(self) -> None:
        item = CompactableItem.from_dict(
            {"id": "n1", "type": "note", "content": "x", "priority": "low", "preserve": True}
        )
        assert item.preserve is False

    def test_from_dict_missing_id_raises(self) -> None:
        with pytest.raises(KeyError):
            CompactableItem.from_dict({"priority": "high"})

    def test_to_dict_wire_shape(self) -> None:
        assert _item("a", "high").to_dict() == {
            "id": "a",
            "type": "note",
            "content": "content of a",
            "priority": "high",
            "preserve": False,
        }


class TestEvaluationContext:
    def test_items_stored_as_tuple(self) -> None:
        ctx = EvaluationContext(session_id="s", agent_id="a", items=[_item("a", "high")])
        assert isinstance(ctx.items, tuple)

    def test_from_dict_camel_case(self) -> None:
        ctx = EvaluationContext.from_dict({
            "sessionId": "s1",
            "agentId": "a1",
            "currentContext": "summary",
            "compactableContent": [
                {"id": "x", "type": "memory", "content": "m", "priority": "high"},
            ],
        })
        assert ctx.session_id == "s1"
        assert ctx.agent_id == "a1"
        assert ctx.current_context == "summary"
        assert _ids(ctx.items) == ["x"]

    def test_from_dict_items_key_wins(self) -> None:
        ctx = EvaluationContext.from_dict({
            "sessionId": "s1",
            "agentId": "a1",
            "items": [{"id": "i", "priority": "low"}],
            "compactableContent": [{"id": "c", "priority": "low"}],
        })
        assert _ids(ctx.items) == ["i"]

    def test_from_dict_no_items(self) -> None:
        ctx = EvaluationContext.from_dict({"sessionId": "s1", "agentId": "a1"})
        assert ctx.items == ()


class TestEvaluationResult:
    def test_to_dict(self) -> None:
        result = EvaluationResult(
            status=ResultStatus.SUCCESS,
            preserved=(dataclasses.replace(_item("a", "high"), preserve=True),),
            removed=(_item("b", "low"),),
            message="m",
            session_id="s",
            agent_id="g",
        )
        data = result.to_dict()
        assert data["status"] == "success"
        assert [i["id"] for i in data["preservedContent"]] == ["a"]
        assert data["preservedContent"][0]["preserve"] is True
        assert [i["id"] for i in data["removedContent"]] == ["b"]
        assert data["removedContent"][0]["preserve"] is False
        assert data["sessionId"] == "s"
        assert data["agentId"] == "g"


# ------------------------------------------------------------------
# Policies
# ------------------------------------------------------------------

class TestHighPriorityPolicy:
    @pytest.mark.parametrize("priority, expected", [
        ("high", True),
        ("medium", False),
        ("low", False),
    ])
    def test_decide(self, priority: str, expected: bool) -> None:
        assert HighPriorityPolicy().decide(_item("x", priority)) is expected

    def test_ignores_kind_and_content(self) -> None:
        policy = HighPriorityPolicy()
        a = CompactableItem(id="a", kind="context", content="", priority="high")
        b = CompactableItem(id="b", kind="task", content="x" * 10_000, priority="high")
        assert policy.decide(a) is policy.decide(b) is True


class TestMinimumPriorityPolicy:
    def test_medium_threshold(self) -> None:
        policy = MinimumPriorityPolicy(Priority.MEDIUM)
        assert policy.decide(_item("h", "high"))
        assert policy.decide(_item("m", "medium"))
        assert not policy.decide(_item("l", "low"))

    def test_low_threshold_keeps_all(self) -> None:
        policy = MinimumPriorityPolicy(Priority.LOW)
        assert all(policy.decide(_item(p, p)) for p in ("high", "medium", "low"))

    def test_accepts_string_threshold(self) -> None:
        assert MinimumPriorityPolicy("high").threshold is Priority.HIGH


class TestGetPolicy:
    def test_known_names(self) -> None:
        assert isinstance(get_policy("high_only"), HighPriorityPolicy)
        assert get_policy("high_and_medium").threshold is Priority.MEDIUM
        assert get_policy("all").threshold is Priority.LOW

    def test_unknown_name_raises(self) -> None:
        with pytest.raises(ValueError, match="Unknown retention policy"):
            get_policy("keep_everything_forever")


# ------------------------------------------------------------------
# Evaluator
# ------------------------------------------------------------------

class TestScenario:
    def test_partition(self, evaluator: CompactionEvaluator, scenario: EvaluationContext) -> None:
        result = evaluator.evaluate(scenario)
        assert result.status is ResultStatus.SUCCESS
        assert _ids(result.preserved) == ["a", "d"]
        assert _ids(result.removed) == ["b", "c"]

    def test_message_reports_counts(self, evaluator: CompactionEvaluator, scenario: EvaluationContext) -> None:
        result = evaluator.evaluate(scenario)
        assert "2 preserved, 2 removed" in result.message
        assert result.message == "Evaluated 4 items: 2 preserved, 2 removed."

    def test_decisions_written_on_result_items(
        self, evaluator: CompactionEvaluator, scenario: EvaluationContext,
    ) -> None:
        result = evaluator.evaluate(scenario)
        assert all(i.preserve for i in result.preserved)
        assert not any(i.preserve for i in result.removed)

    def test_input_items_untouched(self, evaluator: CompactionEvaluator, scenario: EvaluationContext) -> None:
        before = list(scenario.items)
        evaluator.evaluate(scenario)
        assert list(scenario.items) == before
        assert not any(i.preserve for i in scenario.items)

    def test_ids_pass_through(self, evaluator: CompactionEvaluator, scenario: EvaluationContext) -> None:
        result = evaluator.evaluate(scenario)
        assert result.session_id == "sess-1"
        assert result.agent_id == "agent-1"


class TestPartitionProperties:
    PRIORITIES = ["high", "medium", "low", "low", "high", "medium", "high", "low"]

    @pytest.fixture
    def context(self) -> EvaluationContext:
        return _context(*(_item(f"i{n}", p) for n, p in enumerate(self.PRIORITIES)))

    def test_completeness(self, evaluator: CompactionEvaluator, context: EvaluationContext) -> None:
        result = evaluator.evaluate(context)
        assert len(result.preserved) + len(result.removed) == len(context.items)
        preserved, removed = set(_ids(result.preserved)), set(_ids(result.removed))
        assert preserved.isdisjoint(removed)
        assert preserved | removed == set(_ids(context.items))

    def test_priority_law(self, evaluator: CompactionEvaluator, context: EvaluationContext) -> None:
        result = evaluator.evaluate(context)
        preserved = set(_ids(result.preserved))
        for item in context.items:
            assert (item.priority == "high") == (item.id in preserved)

    def test_order_preserved(self, evaluator: CompactionEvaluator, context: EvaluationContext) -> None:
        result = evaluator.evaluate(context)
        order = _ids(context.items)
        assert _ids(result.preserved) == [i for i in order if i in set(_ids(result.preserved))]
        assert _ids(result.removed) == [i for i in order if i in set(_ids(result.removed))]

    def test_idempotent(self, evaluator: CompactionEvaluator) -> None:
        first = evaluator.evaluate(_context(*(_item(f"i{n}", p) for n, p in enumerate(self.PRIORITIES))))
        second = evaluator.evaluate(_context(*(_item(f"i{n}", p) for n, p in enumerate(self.PRIORITIES))))
        assert first == second

    def test_policy_called_once_per_item_in_order(self, context: EvaluationContext) -> None:
        policy = RecordingPolicy()
        CompactionEvaluator(policy=policy).evaluate(context)
        assert policy.seen == _ids(context.items)


class TestEmptyInput:
    def test_success_with_empty_partitions(self, evaluator: CompactionEvaluator) -> None:
        result = evaluator.evaluate(_context())
        assert result.status is ResultStatus.SUCCESS
        assert result.preserved == ()
        assert result.removed == ()

    def test_message_states_zero(self, evaluator: CompactionEvaluator) -> None:
        result = evaluator.evaluate(_context())
        assert result.message == "Evaluated 0 items: 0 preserved, 0 removed."


class TestUnknownPriority:
    def test_discarded_not_fatal(self, evaluator: CompactionEvaluator) -> None:
        result = evaluator.evaluate(_context(
            _item("a", "high"), _item("bad", "urgent"), _item("c", "high"),
        ))
        assert result.status is ResultStatus.SUCCESS
        assert _ids(result.preserved) == ["a", "c"]
        assert _ids(result.removed) == ["bad"]

    def test_policy_not_consulted(self) -> None:
        policy = RecordingPolicy()  # would keep everything
        result = CompactionEvaluator(policy=policy).evaluate(_context(
            _item("a", "low"), _item("bad", ""), _item("c", "medium"),
        ))
        assert policy.seen == ["a", "c"]
        assert _ids(result.removed) == ["bad"]

    def test_warning_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("test.compaction.unknown")
        caplog.set_level(logging.INFO, logger="test.compaction.unknown")
        CompactionEvaluator(logger=logger).evaluate(_context(_item("bad", "critical")))
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert warnings[0].item_id == "bad"
        assert warnings[0].priority == "critical"


class TestPolicyFault:
    def test_fault_on_third_of_five(self) -> None:
        policy = RaisingPolicy(fail_on="i2")
        result = CompactionEvaluator(policy=policy).evaluate(
            _context(*(_item(f"i{n}", "high") for n in range(5)))
        )
        assert result.status is ResultStatus.ERROR
        assert result.preserved == ()
        assert result.removed == ()
        assert "oracle unavailable for i2" in result.message
        assert result.message.startswith("Error during pre-compaction analysis:")

    def test_fault_stops_iteration(self) -> None:
        policy = RaisingPolicy(fail_on="i2")
        CompactionEvaluator(policy=policy).evaluate(
            _context(*(_item(f"i{n}", "high") for n in range(5)))
        )
        assert policy.seen == ["i0", "i1", "i2"]

    def test_fault_does_not_escape(self) -> None:
        class Broken:
            def decide(self, item: CompactableItem) -> bool:
                raise ZeroDivisionError("boom")

        result = CompactionEvaluator(policy=Broken()).evaluate(_context(_item("a", "high")))
        assert result.status is ResultStatus.ERROR
        assert not result.ok

    def test_fault_keeps_correlation_ids(self) -> None:
        result = CompactionEvaluator(policy=RaisingPolicy("a")).evaluate(_context(_item("a", "low")))
        assert result.session_id == "sess-1"
        assert result.agent_id == "agent-1"

    def test_error_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("test.compaction.fault")
        caplog.set_level(logging.INFO, logger="test.compaction.fault")
        CompactionEvaluator(policy=RaisingPolicy("a"), logger=logger).evaluate(
            _context(_item("a", "high"))
        )
        errors = [r for r in caplog.records if r.levelno == logging.ERROR]
        assert len(errors) == 1
        assert errors[0].session_id == "sess-1"


class TestInjectedLogger:
    def test_structured_events(self, caplog: pytest.LogCaptureFixture, scenario: EvaluationContext) -> None:
        logger = logging.getLogger("test.compaction.events")
        caplog.set_level(logging.INFO, logger="test.compaction.events")
        CompactionEvaluator(logger=logger).evaluate(scenario)

        records = [r for r in caplog.records if r.name == "test.compaction.events"]
        assert [r.getMessage() for r in records] == [
            "Pre-compaction evaluation started",
            "Pre-compaction evaluation completed",
        ]
        started, completed = records
        assert started.session_id == "sess-1"
        assert started.agent_id == "agent-1"
        assert started.content_count == 4
        assert completed.preserved_count == 2
        assert completed.removed_count == 2

    def test_default_logger_is_module_logger(self, caplog: pytest.LogCaptureFixture) -> None:
        caplog.set_level(logging.INFO, logger="srp_mcp.compaction.evaluator")
        CompactionEvaluator().evaluate(_context())
        assert any(r.name == "srp_mcp.compaction.evaluator" for r in caplog.records)

    def test_raising_logger_does_not_escape(self, caplog: pytest.LogCaptureFixture) -> None:
        class BrokenLogger(logging.LoggerAdapter):
            def log(self, level, msg, *args, **kwargs):
                raise OSError("log sink closed")

        adapter = BrokenLogger(logging.getLogger("test.compaction.broken"), {})
        caplog.set_level(logging.ERROR, logger="srp_mcp.compaction.evaluator")
        result = CompactionEvaluator(logger=adapter).evaluate(_context(_item("a", "high")))

        assert result.status is ResultStatus.ERROR
        assert result.preserved == ()
        assert result.removed == ()
        assert "log sink closed" in result.message
        assert any(
            r.name == "srp_mcp.compaction.evaluator" and r.levelno == logging.ERROR
            for r in caplog.records
        )


class TestDuplicateIds:
    def test_each_occurrence_decided(self, evaluator: CompactionEvaluator) -> None:
        result = evaluator.evaluate(_context(
            _item("a", "high"), _item("a", "low"), _item("b", "low"),
        ))
        assert result.status is ResultStatus.SUCCESS
        assert _ids(result.preserved) == ["a"]
        assert _ids(result.removed) == ["a", "b"]

    def test_warning_logged(self, caplog: pytest.LogCaptureFixture) -> None:
        logger = logging.getLogger("test.compaction.dupes")
        caplog.set_level(logging.INFO, logger="test.compaction.dupes")
        CompactionEvaluator(logger=logger).evaluate(_context(
            _item("a", "high"), _item("b", "low"), _item("a", "high"),
        ))
        warnings = [r for r in caplog.records if r.levelno == logging.WARNING]
        assert len(warnings) == 1
        assert warnings[0].item_id == "a"

    def test_unique_ids_no_warning(self, caplog: pytest.LogCaptureFixture, scenario: EvaluationContext) -> None:
        logger = logging.getLogger("test.compaction.unique")
        caplog.set_level(logging.INFO, logger="test.compaction.unique")
        CompactionEvaluator(logger=logger).evaluate(scenario)
        assert not [r for r in caplog.records if r.levelno == logging.WARNING]


class TestSnapshot:
    def test_caller_list_mutation_not_seen(self, evaluator: CompactionEvaluator) -> None:
        items = [_item("a", "high"), _item("b", "low")]
        ctx = EvaluationContext(session_id="s", agent_id="a", items=items)
        items.append(_item("late", "high"))
        items[0] = _item("swapped", "low")
        result = evaluator.evaluate(ctx)
        assert _ids(result.preserved) == ["a"]
        assert _ids(result.removed) == ["b"]


class TestConcurrency:
    def test_parallel_evaluations_do_not_interleave(self, evaluator: CompactionEvaluator) -> None:
        def run(n: int) -> tuple[int, EvaluationResult]:
            items = [_item(f"s{n}-{k}", "high" if k % 2 else "low") for k in range(50)]
            ctx = EvaluationContext(session_id=f"s{n}", agent_id="a", items=items)
            return n, evaluator.evaluate(ctx)

        with ThreadPoolExecutor(max_workers=8) as pool:
            results = list(pool.map(run, range(32)))

        for n, result in results:
            assert result.session_id == f"s{n}"
            assert _ids(result.preserved) == [f"s{n}-{k}" for k in range(50) if k % 2]
            assert _ids(result.removed) == [f"s{n}-{k}" for k in range(50) if not k % 2]


class TestPreCompactionNotifier:
    def test_hook_identity(self) -> None:
        hook = PreCompactionNotifier()
        assert hook.id == "pre-compaction-notifier"
        assert hook.name == "Pre-Compaction Notifier"
        assert hook.enabled is True

    def test_execute_when_enabled(self, scenario: EvaluationContext) -> None:
        result = PreCompactionNotifier().execute(scenario)
        assert result.status is ResultStatus.SUCCESS
        assert _ids(result.preserved) == ["a", "d"]

    def test_execute_when_disabled(self, scenario: EvaluationContext) -> None:
        policy = RecordingPolicy()
        result = PreCompactionNotifier(policy=policy, enabled=False).execute(scenario)
        assert result.status is ResultStatus.WARNING
        assert result.preserved == ()
        assert result.removed == ()
        assert "disabled" in result.message
        assert policy.seen == []

    def test_alternate_policy(self, scenario: EvaluationContext) -> None:
        result = PreCompactionNotifier(policy=get_policy("high_and_medium")).execute(scenario)
        assert _ids(result.preserved) == ["a", "b", "d"]
        assert _ids(result.removed) == ["c"]


class TestSummarize:
    def test_singular(self) -> None:
        assert summarize(1, 1, 0) == "Evaluated 1 item: 1 preserved, 0 removed."

    def test_plural(self) -> None:
        assert summarize(3, 1, 2) == "Evaluated 3 items: 1 preserved, 2 removed."
