"""Custom exceptions for the automation engine with detailed error information."""

from datetime import datetime, timezone
from typing import Optional, Dict, Any, List
from enum import Enum


class ErrorSeverity(Enum):
    """Error severity levels for categorizing exceptions."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


class ErrorCategory(Enum):
    """Categories of errors for better classification."""
    VALIDATION = "validation"
    EXECUTION = "execution"
    STORAGE = "storage"
    NETWORK = "network"
    CONFIGURATION = "configuration"
    RESOURCE = "resource"
    BUSINESS_LOGIC = "business_logic"


class WorkflowEngineError(Exception):
    """Base exception for all automation engine errors."""

    def __init__(
        self,
        message: str,
        error_code: Optional[str] = None,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        category: ErrorCategory = ErrorCategory.EXECUTION,
        details: Optional[Dict[str, Any]] = None,
        recoverable: bool = False,
        retry_after: Optional[int] = None,
        context: Optional[Dict[str, Any]] = None
    ):
        super().__init__(message)
        self.message = message
        self.error_code = error_code or self.__class__.__name__
        self.severity = severity
        self.category = category
        self.details = details or {}
        self.recoverable = recoverable
        self.retry_after = retry_after
        self.context = context or {}
        self.timestamp = datetime.now(timezone.utc)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to dictionary for logging and API responses."""
        return {
            "error_code": self.error_code,
            "message": self.message,
            "severity": self.severity.value,
            "category": self.category.value,
            "details": self.details,
            "recoverable": self.recoverable,
            "retry_after": self.retry_after,
            "context": self.context,
            "timestamp": self.timestamp.isoformat(),
            "exception_type": self.__class__.__name__
        }

    def add_context(self, **kwargs):
        """Add additional context to the exception."""
        self.context.update(kwargs)
        return self

    def add_details(self, **kwargs):
        """Add additional details to the exception."""
        self.details.update(kwargs)
        return self


class WorkflowValidationError(WorkflowEngineError):
    """Raised when a workflow definition or request payload is rejected."""

    def __init__(
        self,
        message: str,
        validation_errors: Optional[List[str]] = None,
        workflow_name: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.VALIDATION,
            **kwargs
        )
        self.validation_errors = validation_errors or []
        if workflow_name:
            self.add_context(workflow_name=workflow_name)
        if validation_errors:
            self.add_details(validation_errors=validation_errors)


class WorkflowNotFoundError(WorkflowEngineError):
    """Raised when a workflow id does not resolve to a stored workflow."""

    def __init__(self, workflow_id: str, **kwargs):
        super().__init__(
            f"Workflow '{workflow_id}' not found",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.BUSINESS_LOGIC,
            **kwargs
        )
        self.workflow_id = workflow_id
        self.add_context(workflow_id=workflow_id)


class WorkflowDisabledError(WorkflowEngineError):
    """Raised when a disabled workflow is asked to execute."""

    def __init__(self, workflow_id: str, **kwargs):
        super().__init__(
            f"Workflow '{workflow_id}' is disabled",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.BUSINESS_LOGIC,
            **kwargs
        )
        self.workflow_id = workflow_id
        self.add_context(workflow_id=workflow_id)


class WorkflowBusyError(WorkflowEngineError):
    """Raised when single-flight is on and the workflow already has a run in progress."""

    def __init__(self, workflow_id: str, **kwargs):
        super().__init__(
            f"Workflow '{workflow_id}' already has an execution in progress",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.RESOURCE,
            recoverable=True,
            retry_after=1,
            **kwargs
        )
        self.workflow_id = workflow_id
        self.add_context(workflow_id=workflow_id)


class TemplateNotFoundError(WorkflowEngineError):
    """Raised when a template id is not in the catalogue."""

    def __init__(self, template_id: str, **kwargs):
        super().__init__(
            f"Workflow template '{template_id}' not found",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.BUSINESS_LOGIC,
            **kwargs
        )
        self.template_id = template_id
        self.add_context(template_id=template_id)


class WorkflowVersionConflictError(WorkflowEngineError):
    """Raised when an update was made against a stale workflow version."""

    def __init__(self, workflow_id: str, expected_version: int, actual_version: int, **kwargs):
        super().__init__(
            f"Workflow '{workflow_id}' is at version {actual_version}, expected {expected_version}",
            severity=ErrorSeverity.LOW,
            category=ErrorCategory.BUSINESS_LOGIC,
            **kwargs
        )
        self.add_context(workflow_id=workflow_id)
        self.add_details(expected_version=expected_version, actual_version=actual_version)


class ActionExecutionError(WorkflowEngineError):
    """Raised when an action handler fails."""

    def __init__(
        self,
        message: str,
        action_type: Optional[str] = None,
        recoverable: bool = True,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            recoverable=recoverable,
            **kwargs
        )
        if action_type:
            self.add_context(action_type=action_type)


class ActionTimeoutError(ActionExecutionError):
    """Raised when a single action attempt exceeds its timeout."""

    def __init__(self, action_type: str, timeout: float, **kwargs):
        super().__init__(
            f"Action '{action_type}' timed out after {timeout} seconds",
            action_type=action_type,
            recoverable=True,
            **kwargs
        )
        self.timeout = timeout
        self.add_details(timeout=timeout)


class ActionConfigurationError(WorkflowEngineError):
    """Raised when an action is misconfigured; never retried."""

    def __init__(
        self,
        message: str,
        action_type: Optional[str] = None,
        config_errors: Optional[List[str]] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.CONFIGURATION,
            recoverable=False,
            **kwargs
        )
        self.config_errors = config_errors or []
        if action_type:
            self.add_context(action_type=action_type)
        if config_errors:
            self.add_details(config_errors=config_errors)


class ActionRegistryError(WorkflowEngineError):
    """Raised when action registry operations fail."""

    def __init__(
        self,
        message: str,
        action_type: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if action_type:
            self.add_context(action_type=action_type)
        if operation:
            self.add_context(operation=operation)


class ExecutionRecorderError(WorkflowEngineError):
    """Raised when an execution record cannot be created or sealed."""

    def __init__(
        self,
        message: str,
        execution_id: Optional[str] = None,
        operation: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            **kwargs
        )
        if execution_id:
            self.add_context(execution_id=execution_id)
        if operation:
            self.add_context(operation=operation)


class ExecutionEngineError(WorkflowEngineError):
    """Raised when the orchestrator fails outside of any single action."""

    def __init__(
        self,
        message: str,
        execution_id: Optional[str] = None,
        workflow_id: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.EXECUTION,
            **kwargs
        )
        if execution_id:
            self.add_context(execution_id=execution_id)
        if workflow_id:
            self.add_context(workflow_id=workflow_id)


class StorageError(WorkflowEngineError):
    """Raised when storage operations fail."""

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        table: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.STORAGE,
            recoverable=True,
            retry_after=3,
            **kwargs
        )
        if operation:
            self.add_context(operation=operation)
        if table:
            self.add_context(table=table)


class TransientError(WorkflowEngineError):
    """Raised for transient errors that should be retried."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("category", ErrorCategory.NETWORK)
        super().__init__(
            message,
            severity=ErrorSeverity.MEDIUM,
            recoverable=True,
            retry_after=5,
            **kwargs
        )


class ConfigurationError(WorkflowEngineError):
    """Raised when configuration is invalid or missing."""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        super().__init__(
            message,
            severity=ErrorSeverity.HIGH,
            category=ErrorCategory.CONFIGURATION,
            **kwargs
        )
        if config_key:
            self.add_context(config_key=config_key)


def create_error_response(error: WorkflowEngineError) -> Dict[str, Any]:
    """Create a standardized error response from a WorkflowEngineError."""
    return {
        "error": error.error_code,
        "message": error.message,
        "details": {
            **error.details,
            "severity": error.severity.value,
            "category": error.category.value,
            "recoverable": error.recoverable,
            "retry_after": error.retry_after,
            "timestamp": error.timestamp.isoformat()
        },
        "context": error.context
    }
