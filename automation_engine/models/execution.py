"""Pydantic models for execution contexts, results, history and statistics."""

from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field

from .core import TriggerType, utc_now


class ExecutionStatusEnum(str, Enum):
    """Lifecycle states of a workflow execution."""
    PENDING = "PENDING"
    RUNNING = "RUNNING"
    SUCCESS = "SUCCESS"
    FAILED = "FAILED"
    PARTIAL = "PARTIAL"
    SKIPPED = "SKIPPED"


class ExecutionContext(BaseModel):
    """Everything a single run knows about why and for what it was started."""
    triggered_by: TriggerType = Field(TriggerType.MANUAL, description="How the run was initiated")
    trigger_source: Optional[str] = Field(None, description="Free-form origin, e.g. a user id or schedule name")
    event: Optional[str] = Field(None, description="Domain event name for EVENT runs")
    entity: Optional[Dict[str, Any]] = Field(None, description="Snapshot of the affected record")
    user: Optional[Dict[str, Any]] = Field(None, description="Identity of the initiating user")
    timestamp: datetime = Field(default_factory=utc_now)
    metadata: Dict[str, Any] = Field(default_factory=dict, description="Additional caller-supplied data")

    def summary(self) -> Dict[str, Any]:
        """The part of the context that is stored on the execution record."""
        entity = self.entity or {}
        user = self.user or {}
        return {
            "triggered_by": self.triggered_by.value,
            "trigger_source": self.trigger_source,
            "event": self.event,
            "entity_type": entity.get("type"),
            "entity_id": entity.get("id"),
            "user_id": user.get("id"),
        }


class ActionResult(BaseModel):
    """What a handler reports back for one attempt."""
    success: bool
    error: Optional[str] = None
    output: Any = None


class ActionOutcome(ActionResult):
    """Final result of one action after retries."""
    type: str
    order: int
    attempts: int = 0
    duration_ms: int = 0

    @property
    def retries(self) -> int:
        return max(self.attempts - 1, 0)


class WorkflowExecution(BaseModel):
    """A persisted execution record."""
    id: str
    workflow_id: str
    status: ExecutionStatusEnum
    triggered_by: TriggerType
    trigger_source: Optional[str] = None
    started_at: datetime
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    actions_executed: int = 0
    actions_success: int = 0
    actions_failed: int = 0
    retry_count: int = 0
    context_summary: Dict[str, Any] = Field(default_factory=dict)
    action_results: List[Dict[str, Any]] = Field(default_factory=list)
    error_message: Optional[str] = None
    created_at: datetime = Field(default_factory=utc_now)


class ExecutionResult(BaseModel):
    """Summary returned to callers of WorkflowEngine.execute / run."""
    workflow_id: str
    status: ExecutionStatusEnum
    execution_id: Optional[str] = None
    skip_reason: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    actions_executed: int = 0
    actions_success: int = 0
    actions_failed: int = 0
    retry_count: int = 0
    action_results: List[ActionOutcome] = Field(default_factory=list)

    @property
    def skipped(self) -> bool:
        return self.status == ExecutionStatusEnum.SKIPPED

    @classmethod
    def skip(cls, workflow_id: str, reason: str) -> "ExecutionResult":
        return cls(workflow_id=workflow_id, status=ExecutionStatusEnum.SKIPPED, skip_reason=reason)

    @classmethod
    def from_execution(cls, execution: WorkflowExecution, outcomes: List[ActionOutcome]) -> "ExecutionResult":
        return cls(
            workflow_id=execution.workflow_id,
            status=execution.status,
            execution_id=execution.id,
            started_at=execution.started_at,
            completed_at=execution.completed_at,
            duration_ms=execution.duration_ms,
            actions_executed=execution.actions_executed,
            actions_success=execution.actions_success,
            actions_failed=execution.actions_failed,
            retry_count=execution.retry_count,
            action_results=outcomes,
        )


class TriggerMatch(BaseModel):
    """Per-trigger verdict of a dry run."""
    index: int
    type: TriggerType
    enabled: bool
    matched: bool


class ActionPreview(BaseModel):
    """Per-action verdict of a dry run."""
    type: str
    order: int
    registered: bool
    will_execute: bool


class DryRunResult(BaseModel):
    """Explanation of what a run would do, produced without side effects."""
    workflow_id: str
    would_execute: bool
    trigger_matched: bool
    conditions_passed: bool
    simulated_as: Optional[TriggerType] = None
    per_trigger: List[TriggerMatch] = Field(default_factory=list)
    per_action: List[ActionPreview] = Field(default_factory=list)


class StatsOverview(BaseModel):
    total_executions: int = 0
    successful_executions: int = 0
    failed_executions: int = 0
    running: int = 0
    success_rate: float = 0.0
    avg_duration_ms: float = 0.0
    total_duration_ms: int = 0
    total_retries: int = 0


class TrendPoint(BaseModel):
    date: str = Field(..., description="Calendar day (YYYY-MM-DD) in the reporting timezone")
    total: int = 0
    success: int = 0
    failed: int = 0
    success_rate: float = 0.0


class WorkflowStats(BaseModel):
    """Aggregates over a workflow's executions inside a trailing window."""
    workflow_id: str
    days: int
    timezone: str
    since: datetime
    overview: StatsOverview
    status_breakdown: Dict[str, int] = Field(default_factory=dict)
    trend: List[TrendPoint] = Field(default_factory=list)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    total_pages: int


class ExecutionPage(BaseModel):
    """One page of execution history, newest first."""
    executions: List[WorkflowExecution]
    pagination: Pagination
