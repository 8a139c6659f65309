"""Workflow Engine: orchestrates triggers, conditions, actions and recording."""

import threading
import time
from typing import Dict, List, Optional

from ..models.core import ActionConfig, TriggerType, Workflow, utc_now
from ..models.execution import (
    ActionOutcome, ActionPreview, DryRunResult, ExecutionContext, ExecutionResult,
    ExecutionStatusEnum,
)
from .action_executor import ActionExecutor
from .condition_evaluator import ConditionEvaluator
from .exceptions import (
    ExecutionEngineError, WorkflowBusyError, WorkflowDisabledError, WorkflowEngineError,
    WorkflowValidationError,
)
from .execution_recorder import ExecutionRecorder
from .logging import clear_logging_context, get_logger, set_logging_context
from .trigger_evaluator import TriggerEvaluator
from .workflow_manager import WorkflowManager

logger = get_logger(__name__)

SKIP_NO_TRIGGER = "no trigger matched"
SKIP_CONDITIONS = "conditions not met"


class WorkflowEngine:
    """Runs workflows against execution contexts.

    A run goes PENDING -> SKIPPED when no trigger matches or the conditions
    fail, without touching storage. Otherwise it goes PENDING -> RUNNING ->
    SUCCESS | FAILED | PARTIAL, with the execution record created before the
    first action and sealed after the last.
    """

    def __init__(
        self,
        workflow_manager: WorkflowManager,
        recorder: ExecutionRecorder,
        action_executor: ActionExecutor,
        trigger_evaluator: Optional[TriggerEvaluator] = None,
        condition_evaluator: Optional[ConditionEvaluator] = None,
        stop_on_error: bool = False,
        single_flight: bool = False,
        auto_disable_after: Optional[int] = None,
    ):
        """Initialize the workflow engine.

        Args:
            workflow_manager: Source of workflow definitions
            recorder: Persists execution records and counters
            action_executor: Runs individual actions
            trigger_evaluator: Trigger matcher
            condition_evaluator: Condition tree evaluator
            stop_on_error: Stop a run at the first failed action unless the
                action sets ``continue_on_error``
            single_flight: Reject a run while the same workflow is running
            auto_disable_after: Disable a workflow after this many consecutive
                non-successful executions; None never disables
        """
        self.workflow_manager = workflow_manager
        self.recorder = recorder
        self.action_executor = action_executor
        self.trigger_evaluator = trigger_evaluator or TriggerEvaluator()
        self.condition_evaluator = condition_evaluator or ConditionEvaluator()
        self.stop_on_error = stop_on_error
        self.single_flight = single_flight
        self.auto_disable_after = auto_disable_after

        self._active: Dict[str, int] = {}
        self._active_lock = threading.Lock()

        logger.info(
            f"WorkflowEngine initialized with stop_on_error={stop_on_error}, "
            f"single_flight={single_flight}, auto_disable_after={auto_disable_after}"
        )

    def execute(self, workflow_id: str, context: ExecutionContext) -> ExecutionResult:
        """
        Load a workflow and run it.

        Args:
            workflow_id: ID of the workflow to run
            context: Execution context

        Returns:
            Result summary; ``status`` is SKIPPED when the workflow did not fire

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
            WorkflowDisabledError: If the workflow is disabled
            WorkflowBusyError: If single-flight is on and a run is in progress
        """
        workflow = self.workflow_manager.get_workflow(workflow_id)
        if not workflow.enabled:
            raise WorkflowDisabledError(workflow_id)
        return self.run(workflow, context)

    def run(self, workflow: Workflow, context: ExecutionContext) -> ExecutionResult:
        """
        Run an already-loaded workflow.

        Raises:
            WorkflowValidationError: If the context is a TEST context; use ``dry_run``
            WorkflowBusyError: If single-flight is on and a run is in progress
        """
        if context.triggered_by == TriggerType.TEST:
            raise WorkflowValidationError("TEST contexts only run as dry runs")

        set_logging_context(workflow_id=workflow.id, triggered_by=context.triggered_by.value)
        try:
            if not self.trigger_evaluator.evaluate(workflow.triggers, context):
                logger.info(f"Workflow {workflow.id} skipped: {SKIP_NO_TRIGGER}")
                return ExecutionResult.skip(workflow.id, SKIP_NO_TRIGGER)

            if not self.condition_evaluator.evaluate(workflow.conditions, context):
                logger.info(f"Workflow {workflow.id} skipped: {SKIP_CONDITIONS}")
                return ExecutionResult.skip(workflow.id, SKIP_CONDITIONS)

            self._acquire(workflow.id)
            try:
                result = self._execute_actions(workflow, context)
            finally:
                self._release(workflow.id)

            self._apply_auto_disable(workflow, result.status)
            return result
        finally:
            clear_logging_context()

    def _execute_actions(self, workflow: Workflow, context: ExecutionContext) -> ExecutionResult:
        started = time.monotonic()
        execution = self.recorder.start(workflow, context, utc_now())
        set_logging_context(execution_id=execution.id)
        outcomes: List[ActionOutcome] = []

        try:
            for action in workflow.ordered_actions():
                outcome = self.action_executor.execute(action, context)
                outcomes.append(outcome)
                if not outcome.success:
                    logger.warning(f"Action '{action.type}' (order {action.order}) failed: {outcome.error}")
                    if not self._continue_after_failure(action):
                        logger.info(f"Stopping execution {execution.id} after failed action '{action.type}'")
                        break
        except Exception as e:
            # Seal the record so it never stays RUNNING, then surface the error
            logger.error(f"Execution {execution.id} aborted: {e}", exc_info=True)
            self.recorder.complete(
                execution, outcomes, _elapsed_ms(started),
                status=ExecutionStatusEnum.FAILED, error_message=str(e),
            )
            if isinstance(e, WorkflowEngineError):
                raise
            raise ExecutionEngineError(
                f"Execution {execution.id} aborted: {e}",
                execution_id=execution.id,
                workflow_id=workflow.id,
            ) from e

        sealed = self.recorder.complete(execution, outcomes, _elapsed_ms(started))
        return ExecutionResult.from_execution(sealed, outcomes)

    def _continue_after_failure(self, action: ActionConfig) -> bool:
        if action.continue_on_error is not None:
            return action.continue_on_error
        return not self.stop_on_error

    def test(self, workflow_id: str, context: Optional[ExecutionContext] = None,
             simulate_as: Optional[TriggerType] = None) -> DryRunResult:
        """
        Dry-run a stored workflow. Works on disabled workflows.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
        """
        workflow = self.workflow_manager.get_workflow(workflow_id)
        return self.dry_run(workflow, context, simulate_as)

    def dry_run(self, workflow: Workflow, context: Optional[ExecutionContext] = None,
                simulate_as: Optional[TriggerType] = None) -> DryRunResult:
        """
        Explain what a run would do without writing anything or calling handlers.

        The context is always treated as ``triggered_by = TEST``. With
        ``simulate_as`` the triggers are matched as if fired that way instead.

        Args:
            workflow: Workflow to check
            context: Context to check against; an empty TEST context by default
            simulate_as: Trigger kind to match the triggers as

        Returns:
            Per-trigger and per-action verdicts plus the overall answer
        """
        context = (context or ExecutionContext()).model_copy(update={"triggered_by": TriggerType.TEST})
        trigger_context = context
        if simulate_as is not None:
            trigger_context = context.model_copy(update={"triggered_by": simulate_as})

        per_trigger = self.trigger_evaluator.evaluate_each(workflow.triggers, trigger_context)
        trigger_matched = any(match.matched for match in per_trigger)
        conditions_passed = self.condition_evaluator.evaluate(workflow.conditions, context)
        would_execute = trigger_matched and conditions_passed

        registry = self.action_executor.registry
        per_action = []
        for action in workflow.ordered_actions():
            registered = registry.has_handler(action.type)
            per_action.append(ActionPreview(
                type=action.type,
                order=action.order,
                registered=registered,
                will_execute=would_execute and registered,
            ))

        logger.info(
            f"Dry run of workflow {workflow.id}: would_execute={would_execute} "
            f"(triggers={trigger_matched}, conditions={conditions_passed})"
        )
        return DryRunResult(
            workflow_id=workflow.id,
            would_execute=would_execute,
            trigger_matched=trigger_matched,
            conditions_passed=conditions_passed,
            simulated_as=simulate_as,
            per_trigger=per_trigger,
            per_action=per_action,
        )

    def _acquire(self, workflow_id: str) -> None:
        with self._active_lock:
            running = self._active.get(workflow_id, 0)
            if self.single_flight and running:
                raise WorkflowBusyError(workflow_id)
            self._active[workflow_id] = running + 1

    def _release(self, workflow_id: str) -> None:
        with self._active_lock:
            remaining = self._active.get(workflow_id, 1) - 1
            if remaining > 0:
                self._active[workflow_id] = remaining
            else:
                self._active.pop(workflow_id, None)

    def get_active_executions(self) -> Dict[str, int]:
        """Number of in-progress runs per workflow id."""
        with self._active_lock:
            return dict(self._active)

    def _apply_auto_disable(self, workflow: Workflow, status: ExecutionStatusEnum) -> None:
        if not self.auto_disable_after or status == ExecutionStatusEnum.SUCCESS:
            return
        statuses = self.recorder.recent_statuses(workflow.id, self.auto_disable_after)
        if len(statuses) < self.auto_disable_after:
            return
        if all(recorded != ExecutionStatusEnum.SUCCESS.value for recorded in statuses):
            self.workflow_manager.set_enabled(workflow.id, False)
            logger.warning(
                f"Workflow {workflow.id} disabled after {self.auto_disable_after} "
                f"consecutive unsuccessful executions"
            )

    def shutdown(self) -> None:
        """Wait for in-flight action handlers, then log shutdown."""
        self.action_executor.shutdown()
        logger.info("WorkflowEngine shutdown completed")


def _elapsed_ms(started: float) -> int:
    return int((time.monotonic() - started) * 1000)
