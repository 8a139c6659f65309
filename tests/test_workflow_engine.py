"""Tests for the workflow engine and the execution recorder."""

import threading
import time
from concurrent.futures import ThreadPoolExecutor

import pytest

from automation_engine.core.exceptions import (
    ExecutionEngineError, ExecutionRecorderError, WorkflowBusyError, WorkflowDisabledError,
    WorkflowNotFoundError, WorkflowValidationError,
)
from automation_engine.core.execution_recorder import determine_status
from automation_engine.core.workflow_engine import SKIP_CONDITIONS, SKIP_NO_TRIGGER, WorkflowEngine
from automation_engine.models import (
    ActionOutcome, ExecutionContext, ExecutionStatusEnum, TriggerType,
)

from conftest import SpyHandler, invoice_definition, manual_context


class TestExampleScenario:
    """Manual trigger, entity.amount > 1000, notify then flag."""

    def test_high_value_invoice_runs_both_actions(self, workflow_manager, workflow_engine, repository,
                                                  sender, record_store):
        workflow = workflow_manager.create_workflow(invoice_definition())

        result = workflow_engine.execute(workflow.id, manual_context(amount=1500))

        assert result.status == ExecutionStatusEnum.SUCCESS
        assert result.execution_id is not None
        assert result.actions_executed == 2
        assert result.actions_success == 2
        assert result.actions_failed == 0
        assert [outcome.type for outcome in result.action_results] == ["notify", "flag"]
        assert sender.sent[0]["message"] == "Invoice inv-1 needs review"
        assert record_store.get("invoice", "inv-1")["flag"] == "high_value"

        stored = repository.get_execution(result.execution_id)
        assert stored.status == ExecutionStatusEnum.SUCCESS
        assert stored.completed_at is not None
        assert stored.completed_at >= stored.started_at
        assert stored.context_summary["entity_id"] == "inv-1"
        assert [entry["type"] for entry in stored.action_results] == ["notify", "flag"]

        workflow = workflow_manager.get_workflow(workflow.id)
        assert workflow.execution_count == 1
        assert workflow.success_count == 1
        assert workflow.failure_count == 0
        assert workflow.last_execution_at == stored.completed_at

    def test_low_value_invoice_is_skipped_without_a_record(self, workflow_manager, workflow_engine,
                                                          repository, sender):
        workflow = workflow_manager.create_workflow(invoice_definition())

        result = workflow_engine.execute(workflow.id, manual_context(amount=500))

        assert result.status == ExecutionStatusEnum.SKIPPED
        assert result.skipped is True
        assert result.skip_reason == SKIP_CONDITIONS
        assert result.execution_id is None
        assert sender.sent == []
        assert repository.list_executions(workflow.id, offset=0, limit=10) == ([], 0)
        assert workflow_manager.get_workflow(workflow.id).execution_count == 0

    def test_missing_amount_is_skipped(self, workflow_manager, workflow_engine):
        workflow = workflow_manager.create_workflow(invoice_definition())

        result = workflow_engine.execute(workflow.id, manual_context())

        assert result.skip_reason == SKIP_CONDITIONS


class TestWorkflowEngine:
    """Test cases for WorkflowEngine."""

    def test_unmatched_trigger_is_skipped(self, workflow_manager, workflow_engine):
        workflow = workflow_manager.create_workflow(invoice_definition())
        context = ExecutionContext(triggered_by=TriggerType.EVENT, event="invoice.created",
                                   entity={"amount": 5000})

        result = workflow_engine.execute(workflow.id, context)

        assert result.status == ExecutionStatusEnum.SKIPPED
        assert result.skip_reason == SKIP_NO_TRIGGER

    def test_unknown_workflow(self, workflow_engine):
        with pytest.raises(WorkflowNotFoundError):
            workflow_engine.execute("missing", manual_context(amount=5000))

    def test_disabled_workflow_is_rejected(self, workflow_manager, workflow_engine, repository):
        workflow = workflow_manager.create_workflow(invoice_definition(enabled=False))

        with pytest.raises(WorkflowDisabledError):
            workflow_engine.execute(workflow.id, manual_context(amount=5000))
        assert repository.list_executions(workflow.id, offset=0, limit=10)[1] == 0

    def test_test_context_cannot_execute(self, workflow_manager, workflow_engine):
        workflow = workflow_manager.create_workflow(invoice_definition())

        with pytest.raises(WorkflowValidationError):
            workflow_engine.execute(workflow.id, ExecutionContext(triggered_by=TriggerType.TEST))

    def test_actions_run_in_order(self, workflow_manager, workflow_engine, action_registry):
        calls = []
        action_registry.register(lambda config, context: calls.append(config["name"]), action_type="record")
        workflow = workflow_manager.create_workflow(invoice_definition(actions=[
            {"type": "record", "order": 3, "config": {"name": "third"}},
            {"type": "record", "order": 1, "config": {"name": "first"}},
            {"type": "record", "order": 2, "config": {"name": "second"}},
            {"type": "record", "order": 1, "config": {"name": "first-tie"}},
        ]))

        workflow_engine.execute(workflow.id, manual_context(amount=5000))

        assert calls == ["first", "first-tie", "second", "third"]

    def test_partial_when_some_actions_fail(self, workflow_manager, workflow_engine, action_registry, sender):
        action_registry.register(SpyHandler("broken", failures=10))
        workflow = workflow_manager.create_workflow(invoice_definition(actions=[
            {"type": "broken", "order": 1},
            {"type": "notify", "order": 2, "config": {"recipients": ["ops@example.com"], "message": "hi"}},
        ]))

        result = workflow_engine.execute(workflow.id, manual_context(amount=5000))

        assert result.status == ExecutionStatusEnum.PARTIAL
        assert result.actions_executed == 2
        assert result.actions_failed == 1
        assert result.retry_count == 2
        assert len(sender.sent) == 1

        workflow = workflow_manager.get_workflow(workflow.id)
        assert workflow.failure_count == 1
        assert workflow.success_count == 0

    def test_failed_when_every_action_fails(self, workflow_manager, workflow_engine, action_registry, repository):
        action_registry.register(SpyHandler("broken", failures=10))
        workflow = workflow_manager.create_workflow(invoice_definition(actions=[{"type": "broken"}]))

        result = workflow_engine.execute(workflow.id, manual_context(amount=5000))

        assert result.status == ExecutionStatusEnum.FAILED
        assert repository.get_execution(result.execution_id).error_message == "broken: failure 3"

    def test_stop_on_error(self, workflow_manager, recorder, action_executor, action_registry, sender):
        engine = WorkflowEngine(workflow_manager, recorder, action_executor, stop_on_error=True)
        action_registry.register(SpyHandler("broken", failures=10))
        workflow = workflow_manager.create_workflow(invoice_definition(actions=[
            {"type": "broken", "order": 1},
            {"type": "notify", "order": 2, "config": {"recipients": ["ops@example.com"], "message": "hi"}},
        ]))

        result = engine.execute(workflow.id, manual_context(amount=5000))

        assert result.status == ExecutionStatusEnum.FAILED
        assert result.actions_executed == 1
        assert sender.sent == []

    def test_continue_on_error_overrides_stop_on_error(self, workflow_manager, recorder, action_executor,
                                                       action_registry, sender):
        engine = WorkflowEngine(workflow_manager, recorder, action_executor, stop_on_error=True)
        action_registry.register(SpyHandler("broken", failures=10))
        workflow = workflow_manager.create_workflow(invoice_definition(actions=[
            {"type": "broken", "order": 1, "continue_on_error": True},
            {"type": "notify", "order": 2, "config": {"recipients": ["ops@example.com"], "message": "hi"}},
        ]))

        result = engine.execute(workflow.id, manual_context(amount=5000))

        assert result.status == ExecutionStatusEnum.PARTIAL
        assert len(sender.sent) == 1

    def test_handler_removed_after_save(self, workflow_manager, workflow_engine, action_registry):
        action_registry.register(SpyHandler("temporary"))
        workflow = workflow_manager.create_workflow(invoice_definition(actions=[{"type": "temporary"}]))
        action_registry.unregister("temporary")

        result = workflow_engine.execute(workflow.id, manual_context(amount=5000))

        assert result.status == ExecutionStatusEnum.FAILED
        assert result.action_results[0].error == "unknown action type"

    def test_unexpected_error_seals_record(self, workflow_manager, recorder, repository):
        class ExplodingExecutor:
            def execute(self, action, context):
                raise RuntimeError("executor crashed")

        engine = WorkflowEngine(workflow_manager, recorder, ExplodingExecutor())
        workflow = workflow_manager.create_workflow(invoice_definition())

        with pytest.raises(ExecutionEngineError):
            engine.execute(workflow.id, manual_context(amount=5000))

        executions, total = repository.list_executions(workflow.id, offset=0, limit=10)
        assert total == 1
        assert executions[0].status == ExecutionStatusEnum.FAILED
        assert executions[0].error_message == "executor crashed"
        assert workflow_manager.get_workflow(workflow.id).failure_count == 1

    def test_single_flight_rejects_overlap(self, workflow_manager, recorder, action_executor, action_registry):
        engine = WorkflowEngine(workflow_manager, recorder, action_executor, single_flight=True)
        spy = action_registry.register(SpyHandler("slow"))
        workflow = workflow_manager.create_workflow(invoice_definition(actions=[{"type": "slow"}]))
        spy.block()

        with ThreadPoolExecutor(max_workers=1) as pool:
            first = pool.submit(engine.execute, workflow.id, manual_context(amount=5000))
            deadline = time.monotonic() + 5
            while not engine.get_active_executions() and time.monotonic() < deadline:
                time.sleep(0.01)

            with pytest.raises(WorkflowBusyError):
                engine.execute(workflow.id, manual_context(amount=5000))

            spy.unblock()
            assert first.result(timeout=5).status == ExecutionStatusEnum.SUCCESS

        assert engine.get_active_executions() == {}

    def test_overlap_allowed_by_default(self, workflow_manager, workflow_engine, action_registry):
        spy = action_registry.register(SpyHandler("quick"))
        workflow = workflow_manager.create_workflow(invoice_definition(actions=[{"type": "quick"}]))

        with ThreadPoolExecutor(max_workers=4) as pool:
            futures = [pool.submit(workflow_engine.execute, workflow.id, manual_context(amount=5000))
                       for _ in range(4)]
            results = [future.result(timeout=10) for future in futures]

        assert all(result.status == ExecutionStatusEnum.SUCCESS for result in results)
        assert spy.calls == 4
        stored = workflow_manager.get_workflow(workflow.id)
        assert stored.execution_count == 4
        assert stored.success_count == 4

    def test_auto_disable_after_consecutive_failures(self, workflow_manager, recorder, action_executor,
                                                     action_registry):
        engine = WorkflowEngine(workflow_manager, recorder, action_executor, auto_disable_after=2)
        action_registry.register(SpyHandler("broken", failures=100))
        workflow = workflow_manager.create_workflow(invoice_definition(actions=[{"type": "broken"}]))

        engine.execute(workflow.id, manual_context(amount=5000))
        assert workflow_manager.get_workflow(workflow.id).enabled is True

        engine.execute(workflow.id, manual_context(amount=5000))
        assert workflow_manager.get_workflow(workflow.id).enabled is False

        with pytest.raises(WorkflowDisabledError):
            engine.execute(workflow.id, manual_context(amount=5000))

    def test_never_auto_disables_by_default(self, workflow_manager, workflow_engine, action_registry):
        action_registry.register(SpyHandler("broken", failures=100))
        workflow = workflow_manager.create_workflow(invoice_definition(actions=[{"type": "broken"}]))

        for _ in range(3):
            workflow_engine.execute(workflow.id, manual_context(amount=5000))

        assert workflow_manager.get_workflow(workflow.id).enabled is True


class TestDryRun:
    """Test cases for dry runs."""

    def test_dry_run_has_no_side_effects(self, workflow_manager, workflow_engine, repository, sender, record_store):
        workflow = workflow_manager.create_workflow(invoice_definition(
            triggers=[{"type": "MANUAL"}, {"type": "TEST"}]
        ))

        report = workflow_engine.test(workflow.id, manual_context(amount=5000))

        assert report.would_execute is True
        assert report.trigger_matched is True
        assert report.conditions_passed is True
        assert [match.matched for match in report.per_trigger] == [False, True]
        assert [(preview.type, preview.will_execute) for preview in report.per_action] == [
            ("notify", True), ("flag", True)
        ]
        assert sender.sent == []
        assert record_store.get("invoice", "inv-1") is None
        assert repository.list_executions(workflow.id, offset=0, limit=10)[1] == 0
        assert workflow_manager.get_workflow(workflow.id).execution_count == 0

    def test_simulate_as_matches_other_trigger_types(self, workflow_manager, workflow_engine):
        workflow = workflow_manager.create_workflow(invoice_definition())

        plain = workflow_engine.test(workflow.id, manual_context(amount=5000))
        simulated = workflow_engine.test(workflow.id, manual_context(amount=5000), simulate_as=TriggerType.MANUAL)

        assert plain.would_execute is False
        assert simulated.would_execute is True
        assert simulated.simulated_as == TriggerType.MANUAL

    def test_reports_failed_conditions(self, workflow_manager, workflow_engine):
        workflow = workflow_manager.create_workflow(invoice_definition())

        report = workflow_engine.test(workflow.id, manual_context(amount=10), simulate_as=TriggerType.MANUAL)

        assert report.trigger_matched is True
        assert report.conditions_passed is False
        assert not any(preview.will_execute for preview in report.per_action)

    def test_works_on_disabled_workflow(self, workflow_manager, workflow_engine):
        workflow = workflow_manager.create_workflow(invoice_definition(enabled=False))

        report = workflow_engine.test(workflow.id, simulate_as=TriggerType.MANUAL)

        assert report.workflow_id == workflow.id
        assert report.conditions_passed is False

    def test_unregistered_action_is_reported(self, workflow_manager, workflow_engine, action_registry):
        action_registry.register(SpyHandler("temporary"))
        workflow = workflow_manager.create_workflow(invoice_definition(actions=[{"type": "temporary"}]))
        action_registry.unregister("temporary")

        report = workflow_engine.test(workflow.id, manual_context(amount=5000), simulate_as=TriggerType.MANUAL)

        assert report.would_execute is True
        assert report.per_action[0].registered is False
        assert report.per_action[0].will_execute is False


class TestExecutionRecorder:
    """Test cases for ExecutionRecorder."""

    def test_determine_status(self):
        ok = ActionOutcome(type="a", order=0, success=True)
        bad = ActionOutcome(type="b", order=1, success=False)

        assert determine_status([ok, ok]) == ExecutionStatusEnum.SUCCESS
        assert determine_status([bad]) == ExecutionStatusEnum.FAILED
        assert determine_status([ok, bad]) == ExecutionStatusEnum.PARTIAL

    def test_record_is_sealed_once(self, workflow_manager, recorder, repository):
        workflow = workflow_manager.create_workflow(invoice_definition())
        execution = recorder.start(workflow, manual_context())
        assert repository.get_execution(execution.id).status == ExecutionStatusEnum.RUNNING

        outcome = ActionOutcome(type="notify", order=1, success=True, attempts=2)
        sealed = recorder.complete(execution, [outcome], duration_ms=40)

        assert sealed.status == ExecutionStatusEnum.SUCCESS
        assert sealed.retry_count == 1
        with pytest.raises(ExecutionRecorderError):
            recorder.complete(execution, [outcome], duration_ms=40)

        workflow = workflow_manager.get_workflow(workflow.id)
        assert workflow.execution_count == 1
        assert workflow.total_duration_ms == 40
        assert workflow.avg_execution_ms == 40.0

    def test_concurrent_seals_do_not_lose_counter_updates(self, workflow_manager, recorder):
        workflow = workflow_manager.create_workflow(invoice_definition())
        executions = [recorder.start(workflow, manual_context()) for _ in range(5)]
        outcome = ActionOutcome(type="notify", order=1, success=True, attempts=1)
        barrier = threading.Barrier(len(executions))

        def seal(execution):
            barrier.wait(timeout=5)
            return recorder.complete(execution, [outcome], duration_ms=10)

        with ThreadPoolExecutor(max_workers=len(executions)) as pool:
            list(pool.map(seal, executions))

        workflow = workflow_manager.get_workflow(workflow.id)
        assert workflow.execution_count == 5
        assert workflow.success_count == 5
        assert workflow.total_duration_ms == 50
