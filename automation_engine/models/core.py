"""Core Pydantic models describing workflow definitions."""

from datetime import datetime, timezone
from enum import Enum
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field, field_validator, model_validator


def utc_now() -> datetime:
    """Current time as a naive UTC datetime, the form stored in the database."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


class TriggerType(str, Enum):
    """Ways a workflow run can be initiated."""
    MANUAL = "MANUAL"
    TEST = "TEST"
    EVENT = "EVENT"
    SCHEDULE = "SCHEDULE"


class ConditionOperator(str, Enum):
    """Comparison operators available to condition leaves."""
    EQUALS = "equals"
    NOT_EQUALS = "notEquals"
    GREATER_THAN = "greaterThan"
    LESS_THAN = "lessThan"
    GREATER_OR_EQUAL = "greaterOrEqual"
    LESS_OR_EQUAL = "lessOrEqual"
    CONTAINS = "contains"
    NOT_CONTAINS = "notContains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    IN = "in"
    NOT_IN = "notIn"
    EXISTS = "exists"


class LogicalOperator(str, Enum):
    """Boolean combinators for condition branches."""
    AND = "AND"
    OR = "OR"
    NOT = "NOT"


class ValidationResult(BaseModel):
    """Result of workflow validation."""
    is_valid: bool = Field(..., description="Whether the workflow is valid")
    errors: List[str] = Field(default_factory=list, description="List of validation errors")
    warnings: List[str] = Field(default_factory=list, description="List of validation warnings")


class ConditionLeaf(BaseModel):
    """A single comparison of a context field against a value."""
    model_config = ConfigDict(extra="forbid")

    field: str = Field(..., description="Dotted path into the execution context")
    operator: ConditionOperator = Field(..., description="Comparison operator")
    value: Any = Field(None, description="Comparison operand; ignored by 'exists'")

    @field_validator('field')
    @classmethod
    def validate_field(cls, field):
        """Ensure the field path is a non-empty dotted path."""
        if not field or not field.strip():
            raise ValueError("Condition field cannot be empty")
        field = field.strip()
        if any(not segment for segment in field.split('.')):
            raise ValueError(f"Condition field '{field}' contains an empty path segment")
        return field

    @model_validator(mode='after')
    def validate_operand(self):
        """Membership operators need a list operand."""
        if self.operator in (ConditionOperator.IN, ConditionOperator.NOT_IN):
            if not isinstance(self.value, (list, tuple)):
                raise ValueError(f"Operator '{self.operator.value}' requires a list value")
        return self


class ConditionGroup(BaseModel):
    """AND / OR / NOT over child conditions."""
    model_config = ConfigDict(extra="forbid")

    op: LogicalOperator = Field(..., description="Logical combinator")
    children: List["ConditionNode"] = Field(..., description="Child conditions")

    @model_validator(mode='after')
    def validate_children(self):
        """NOT takes exactly one child; AND and OR take at least one."""
        if self.op == LogicalOperator.NOT and len(self.children) != 1:
            raise ValueError("NOT condition must have exactly one child")
        if self.op != LogicalOperator.NOT and not self.children:
            raise ValueError(f"{self.op.value} condition must have at least one child")
        return self


ConditionNode = Union[ConditionGroup, ConditionLeaf]
ConditionGroup.model_rebuild()


class _TriggerBase(BaseModel):
    model_config = ConfigDict(extra="forbid")

    enabled: bool = Field(True, description="Disabled triggers never match")


class EventTrigger(_TriggerBase):
    """Fires on a named domain event, optionally narrowed by entity type and field matchers."""
    type: Literal["EVENT"] = "EVENT"
    event: str = Field(..., description="Domain event name, e.g. 'invoice.created'")
    entity_type: Optional[str] = Field(None, description="Required value of entity['type']")
    field_matchers: List[ConditionLeaf] = Field(default_factory=list, description="Leaf conditions that must all pass")

    @field_validator('event')
    @classmethod
    def validate_event(cls, event):
        if not event or not event.strip():
            raise ValueError("Event name cannot be empty")
        return event.strip()


class ManualTrigger(_TriggerBase):
    """Fires when a user runs the workflow by hand."""
    type: Literal["MANUAL"] = "MANUAL"


class DryRunTrigger(_TriggerBase):
    """Fires for test (dry) runs."""
    type: Literal["TEST"] = "TEST"


class ScheduleTrigger(_TriggerBase):
    """Fires when an external scheduler invokes the workflow."""
    type: Literal["SCHEDULE"] = "SCHEDULE"
    schedule: Optional[str] = Field(None, description="Schedule identifier matched against trigger_source")


TriggerConfig = Annotated[
    Union[EventTrigger, ManualTrigger, DryRunTrigger, ScheduleTrigger],
    Field(discriminator="type")
]


class ActionConfig(BaseModel):
    """One configured action inside a workflow."""
    type: str = Field(..., description="Registered action type")
    order: int = Field(0, description="Execution order; ties keep list position")
    config: Dict[str, Any] = Field(default_factory=dict, description="Handler-specific configuration")
    continue_on_error: Optional[bool] = Field(
        None, description="Overrides the engine failure policy for this action"
    )
    timeout: Optional[float] = Field(None, description="Per-attempt timeout in seconds")

    @field_validator('type')
    @classmethod
    def validate_type(cls, action_type):
        if not action_type or not action_type.strip():
            raise ValueError("Action type cannot be empty")
        return action_type.strip()

    @field_validator('timeout')
    @classmethod
    def validate_timeout(cls, timeout):
        if timeout is not None and timeout <= 0:
            raise ValueError("Action timeout must be positive")
        return timeout


class WorkflowDefinition(BaseModel):
    """The editable part of a workflow, as accepted on create and update."""
    name: str = Field(..., description="Workflow name")
    description: Optional[str] = Field(None, description="Free-form description")
    enabled: bool = Field(True, description="Disabled workflows cannot be executed")
    triggers: List[TriggerConfig] = Field(..., description="Trigger list; any match fires the workflow")
    conditions: Optional[ConditionNode] = Field(None, description="Condition tree; absent means always pass")
    actions: List[ActionConfig] = Field(..., description="Actions executed in ascending order")
    priority: int = Field(0, description="Presentation ranking")
    category: Optional[str] = Field(None, description="Presentation grouping")
    tags: List[str] = Field(default_factory=list, description="Presentation labels")
    created_by: str = Field("system", description="Creator identity")

    @field_validator('name')
    @classmethod
    def validate_name(cls, name):
        """Ensure workflow name is present and of reasonable length."""
        if not name or not name.strip():
            raise ValueError("Workflow name cannot be empty")
        name = name.strip()
        if len(name) > 255:
            raise ValueError("Workflow name cannot exceed 255 characters")
        return name

    @field_validator('triggers')
    @classmethod
    def validate_triggers(cls, triggers):
        if not triggers:
            raise ValueError("Workflow must have at least one trigger")
        return triggers

    @field_validator('actions')
    @classmethod
    def validate_actions(cls, actions):
        if not actions:
            raise ValueError("Workflow must have at least one action")
        return actions

    def ordered_actions(self) -> List[ActionConfig]:
        """Actions in execution order; sorted() is stable so ties keep list position."""
        return sorted(self.actions, key=lambda action: action.order)


class Workflow(WorkflowDefinition):
    """A stored workflow with identity, version and execution counters."""
    id: str = Field(..., description="Unique workflow identifier")
    version: int = Field(1, description="Bumped on every edit")
    execution_count: int = Field(0, description="Sealed executions")
    success_count: int = Field(0, description="Executions that ended SUCCESS")
    failure_count: int = Field(0, description="Executions that ended FAILED or PARTIAL")
    total_duration_ms: int = Field(0, description="Sum of sealed execution durations")
    last_execution_at: Optional[datetime] = Field(None, description="Completion time of the latest execution")
    created_at: datetime = Field(default_factory=utc_now)
    updated_at: datetime = Field(default_factory=utc_now)

    @computed_field
    @property
    def avg_execution_ms(self) -> float:
        """Mean duration of sealed executions, 0 when none have run."""
        if not self.execution_count:
            return 0.0
        return round(self.total_duration_ms / self.execution_count, 2)
