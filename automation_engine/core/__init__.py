"""Core automation engine components."""

from .exceptions import (
    WorkflowEngineError,
    WorkflowValidationError,
    WorkflowNotFoundError,
    TemplateNotFoundError,
    WorkflowDisabledError,
    WorkflowBusyError,
    WorkflowVersionConflictError,
    ActionExecutionError,
    ActionTimeoutError,
    ActionConfigurationError,
    ActionRegistryError,
    ExecutionRecorderError,
    ExecutionEngineError,
    StorageError,
    TransientError,
    ConfigurationError,
)
from .logging import setup_logging, get_logger
from .action_registry import ActionHandler, ActionRegistry
from .condition_evaluator import ConditionEvaluator, evaluate_condition
from .trigger_evaluator import TriggerEvaluator

__all__ = [
    "WorkflowEngineError",
    "WorkflowValidationError",
    "WorkflowNotFoundError",
    "TemplateNotFoundError",
    "WorkflowDisabledError",
    "WorkflowBusyError",
    "WorkflowVersionConflictError",
    "ActionExecutionError",
    "ActionTimeoutError",
    "ActionConfigurationError",
    "ActionRegistryError",
    "ExecutionRecorderError",
    "ExecutionEngineError",
    "StorageError",
    "TransientError",
    "ConfigurationError",
    "setup_logging",
    "get_logger",
    "ActionHandler",
    "ActionRegistry",
    "ConditionEvaluator",
    "evaluate_condition",
    "TriggerEvaluator",
]
