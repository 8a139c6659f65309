"""Pydantic models for workflows and their executions."""

from .core import (
    ActionConfig,
    ConditionGroup,
    ConditionLeaf,
    ConditionNode,
    ConditionOperator,
    DryRunTrigger,
    EventTrigger,
    LogicalOperator,
    ManualTrigger,
    ScheduleTrigger,
    TriggerConfig,
    TriggerType,
    ValidationResult,
    Workflow,
    WorkflowDefinition,
    utc_now,
)
from .execution import (
    ActionOutcome,
    ActionPreview,
    ActionResult,
    DryRunResult,
    ExecutionContext,
    ExecutionPage,
    ExecutionResult,
    ExecutionStatusEnum,
    Pagination,
    StatsOverview,
    TrendPoint,
    TriggerMatch,
    WorkflowExecution,
    WorkflowStats,
)

__all__ = [
    "ActionConfig",
    "ConditionGroup",
    "ConditionLeaf",
    "ConditionNode",
    "ConditionOperator",
    "DryRunTrigger",
    "EventTrigger",
    "LogicalOperator",
    "ManualTrigger",
    "ScheduleTrigger",
    "TriggerConfig",
    "TriggerType",
    "ValidationResult",
    "Workflow",
    "WorkflowDefinition",
    "utc_now",
    "ActionOutcome",
    "ActionPreview",
    "ActionResult",
    "DryRunResult",
    "ExecutionContext",
    "ExecutionPage",
    "ExecutionResult",
    "ExecutionStatusEnum",
    "Pagination",
    "StatsOverview",
    "TrendPoint",
    "TriggerMatch",
    "WorkflowExecution",
    "WorkflowStats",
]
