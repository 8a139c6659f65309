"""Execution Recorder: persists execution records and workflow counters."""

import uuid
from datetime import datetime
from typing import List, Optional

from ..models.core import Workflow, utc_now
from ..models.execution import ActionOutcome, ExecutionContext, ExecutionStatusEnum, WorkflowExecution
from ..storage.repository import WorkflowRepository
from .error_recovery import RetryConfig, with_retry
from .exceptions import StorageError, TransientError
from .logging import get_logger

logger = get_logger(__name__)

_storage_retry = RetryConfig(max_attempts=3, base_delay=0.1, max_delay=1.0,
                             retryable_exceptions=[StorageError, TransientError])


def determine_status(outcomes: List[ActionOutcome]) -> ExecutionStatusEnum:
    """SUCCESS with no failures, FAILED with no successes, PARTIAL otherwise."""
    failed = sum(1 for outcome in outcomes if not outcome.success)
    succeeded = len(outcomes) - failed
    if failed == 0:
        return ExecutionStatusEnum.SUCCESS
    if succeeded == 0:
        return ExecutionStatusEnum.FAILED
    return ExecutionStatusEnum.PARTIAL


class ExecutionRecorder:
    """Creates RUNNING execution records and seals them exactly once.

    Sealing and the counter delta on the parent workflow happen in one
    transaction, with the counters written as SQL increments so concurrent
    runs of the same workflow never lose an update.
    """

    def __init__(self, repository: WorkflowRepository):
        self.repository = repository

    @with_retry(_storage_retry)
    def start(self, workflow: Workflow, context: ExecutionContext,
              started_at: Optional[datetime] = None) -> WorkflowExecution:
        """
        Insert a RUNNING execution for ``workflow``.

        Args:
            workflow: The workflow being run
            context: Context of the run; only its summary is stored
            started_at: Start time, defaults to now

        Returns:
            The stored execution record

        Raises:
            StorageError: If the record cannot be written after retries
        """
        started_at = started_at or utc_now()
        execution = WorkflowExecution(
            id=str(uuid.uuid4()),
            workflow_id=workflow.id,
            status=ExecutionStatusEnum.RUNNING,
            triggered_by=context.triggered_by,
            trigger_source=context.trigger_source,
            started_at=started_at,
            context_summary=context.summary(),
            created_at=started_at,
        )
        stored = self.repository.create_execution(execution)
        logger.info(f"Execution {stored.id} started for workflow {workflow.id}")
        return stored

    def complete(
        self,
        execution: WorkflowExecution,
        outcomes: List[ActionOutcome],
        duration_ms: int,
        completed_at: Optional[datetime] = None,
        status: Optional[ExecutionStatusEnum] = None,
        error_message: Optional[str] = None,
    ) -> WorkflowExecution:
        """
        Seal a RUNNING execution and bump the workflow counters.

        Args:
            execution: The record returned by ``start``
            outcomes: Outcomes of the actions that ran, in order
            duration_ms: Wall-clock duration of the run
            completed_at: Completion time, defaults to now
            status: Final status; derived from ``outcomes`` when omitted
            error_message: Run-level error, if the run ended abnormally

        Returns:
            The sealed execution

        Raises:
            ExecutionRecorderError: If the execution was already sealed
            StorageError: If the transaction fails
        """
        failed = sum(1 for outcome in outcomes if not outcome.success)
        sealed = execution.model_copy(update={
            "status": status or determine_status(outcomes),
            "completed_at": completed_at or utc_now(),
            "duration_ms": duration_ms,
            "actions_executed": len(outcomes),
            "actions_success": len(outcomes) - failed,
            "actions_failed": failed,
            "retry_count": sum(outcome.retries for outcome in outcomes),
            "action_results": [
                outcome.model_dump(mode="json", include={"type", "order", "success", "error", "attempts", "duration_ms"})
                for outcome in outcomes
            ],
            "error_message": error_message or _first_error(outcomes),
        })
        self.repository.complete_execution(sealed)
        logger.info(
            f"Execution {sealed.id} sealed as {sealed.status.value}: "
            f"{sealed.actions_success}/{sealed.actions_executed} actions succeeded in {duration_ms}ms"
        )
        return sealed

    def recent_statuses(self, workflow_id: str, limit: int) -> List[str]:
        """Statuses of the latest sealed executions, newest first."""
        return self.repository.recent_statuses(workflow_id, limit)


def _first_error(outcomes: List[ActionOutcome]) -> Optional[str]:
    for outcome in outcomes:
        if not outcome.success:
            return f"{outcome.type}: {outcome.error}"
    return None
