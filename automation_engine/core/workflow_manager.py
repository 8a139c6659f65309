"""Workflow Manager for validating and storing workflow definitions."""

import uuid
from typing import Any, Dict, List, Optional

from pydantic import ValidationError

from ..models.core import (
    ConditionLeaf, ConditionNode, EventTrigger, ValidationResult,
    Workflow, WorkflowDefinition, utc_now,
)
from ..storage.repository import WorkflowRepository
from .action_registry import ActionRegistry
from .exceptions import TemplateNotFoundError, WorkflowNotFoundError, WorkflowValidationError
from .logging import get_logger
from .workflow_templates import get_template_by_id

logger = get_logger(__name__)

MAX_CONDITION_DEPTH = 10


class WorkflowManager:
    """Validating front door for workflow definitions.

    Structural rules (trigger and action lists not empty, NOT with one child,
    known operators) are enforced by the pydantic models; this class adds the
    checks that need the action registry and keeps version bumps in one place.
    """

    def __init__(self, repository: WorkflowRepository, action_registry: Optional[ActionRegistry] = None,
                 default_action_timeout: Optional[float] = None):
        self.repository = repository
        self.action_registry = action_registry
        self.default_action_timeout = default_action_timeout

    @staticmethod
    def parse_definition(payload: Dict[str, Any]) -> WorkflowDefinition:
        """
        Parse a raw payload into a workflow definition.

        Raises:
            WorkflowValidationError: If the payload is structurally invalid
        """
        try:
            return WorkflowDefinition.model_validate(payload)
        except ValidationError as e:
            errors = [
                f"{'.'.join(str(part) for part in error['loc']) or 'workflow'}: {error['msg']}"
                for error in e.errors()
            ]
            raise WorkflowValidationError(
                "Workflow definition is invalid",
                validation_errors=errors,
                workflow_name=payload.get("name") if isinstance(payload, dict) else None,
            )

    def validate_workflow(self, definition: WorkflowDefinition) -> ValidationResult:
        """
        Check a parsed definition against the registry and for suspicious shapes.

        Args:
            definition: The definition to check

        Returns:
            Validation result with errors and warnings
        """
        errors: List[str] = []
        warnings: List[str] = []

        for position, action in enumerate(definition.actions):
            label = f"actions[{position}] ({action.type})"
            if self.action_registry is None:
                continue
            handler = self.action_registry.get_handler(action.type)
            if handler is None:
                errors.append(f"{label}: unknown action type '{action.type}'")
                continue
            problems = handler.validate_config(action.config)
            errors.extend(f"{label}: {problem}" for problem in problems)
            if problems:
                continue
            # A run that outlasts its timeout fails on every attempt
            minimum = handler.minimum_duration(action.config)
            timeout = action.timeout or self.default_action_timeout
            if minimum is not None and timeout is not None and minimum >= timeout:
                errors.append(f"{label}: runs for at least {minimum:g}s but times out after {timeout:g}s")

        orders = [action.order for action in definition.actions]
        if len(orders) != len(set(orders)):
            warnings.append("Several actions share the same order; they run in list position")

        if not any(trigger.enabled for trigger in definition.triggers):
            warnings.append("All triggers are disabled; the workflow can never fire")

        for trigger in definition.triggers:
            if isinstance(trigger, EventTrigger) and trigger.entity_type is None and not trigger.field_matchers:
                warnings.append(f"Event trigger '{trigger.event}' matches every entity type")

        if definition.conditions is not None and _depth(definition.conditions) > MAX_CONDITION_DEPTH:
            errors.append(f"Condition tree is deeper than {MAX_CONDITION_DEPTH} levels")

        result = ValidationResult(is_valid=not errors, errors=errors, warnings=warnings)
        logger.debug(f"Validated workflow '{definition.name}': valid={result.is_valid}, "
                     f"errors={len(errors)}, warnings={len(warnings)}")
        return result

    def create_workflow(self, definition: WorkflowDefinition) -> Workflow:
        """
        Validate and store a new workflow.

        Args:
            definition: Parsed workflow definition

        Returns:
            The stored workflow at version 1

        Raises:
            WorkflowValidationError: If validation fails
            StorageError: If the workflow cannot be stored
        """
        logger.info(f"Creating new workflow: {definition.name}")
        self._ensure_valid(definition)

        now = utc_now()
        workflow = Workflow(
            id=str(uuid.uuid4()),
            version=1,
            created_at=now,
            updated_at=now,
            **definition.model_dump(),
        )
        stored = self.repository.add_workflow(workflow)
        logger.info(f"Successfully created workflow '{stored.name}' with ID: {stored.id}")
        return stored

    def create_from_template(self, template_id: str, overrides: Optional[Dict[str, Any]] = None) -> Workflow:
        """
        Store a new workflow built from a catalogue template.

        Args:
            template_id: Catalogue id of the template
            overrides: Top-level definition fields replacing the template's values

        Returns:
            The stored workflow at version 1

        Raises:
            TemplateNotFoundError: If the template id is unknown
            WorkflowValidationError: If an override is unknown or the result is invalid
        """
        template = get_template_by_id(template_id)
        if template is None:
            raise TemplateNotFoundError(template_id)

        overrides = overrides or {}
        unknown = sorted(set(overrides) - set(WorkflowDefinition.model_fields))
        if unknown:
            raise WorkflowValidationError(
                "Unknown template overrides",
                validation_errors=[f"{key}: not a workflow field" for key in unknown],
                workflow_name=template.name,
            )

        payload = template.definition.model_dump(mode="json")
        payload.update(overrides)
        logger.info(f"Creating workflow from template '{template_id}'")
        return self.create_workflow(self.parse_definition(payload))

    def update_workflow(self, workflow_id: str, definition: WorkflowDefinition,
                        expected_version: Optional[int] = None) -> Workflow:
        """
        Replace a workflow's definition and bump its version. Counters are kept.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
            WorkflowValidationError: If validation fails
            WorkflowVersionConflictError: If ``expected_version`` is stale
        """
        self._ensure_valid(definition)
        updated = self.repository.update_definition(workflow_id, definition, expected_version)
        if updated is None:
            raise WorkflowNotFoundError(workflow_id)
        return updated

    def get_workflow(self, workflow_id: str) -> Workflow:
        """
        Load a workflow.

        Raises:
            WorkflowNotFoundError: If the workflow does not exist
        """
        workflow = self.repository.get_workflow(workflow_id)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        return workflow

    def list_workflows(self, enabled: Optional[bool] = None) -> List[Workflow]:
        return self.repository.list_workflows(enabled)

    def set_enabled(self, workflow_id: str, enabled: bool) -> Workflow:
        """Enable or disable a workflow."""
        workflow = self.repository.set_enabled(workflow_id, enabled)
        if workflow is None:
            raise WorkflowNotFoundError(workflow_id)
        logger.info(f"Workflow {workflow_id} {'enabled' if enabled else 'disabled'} (version {workflow.version})")
        return workflow

    def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow and its execution history. False if it did not exist."""
        deleted = self.repository.delete_workflow(workflow_id)
        if deleted:
            logger.info(f"Deleted workflow {workflow_id}")
        else:
            logger.warning(f"Workflow with ID '{workflow_id}' not found for deletion")
        return deleted

    def _ensure_valid(self, definition: WorkflowDefinition) -> None:
        result = self.validate_workflow(definition)
        if not result.is_valid:
            error_msg = f"Workflow validation failed: {'; '.join(result.errors)}"
            logger.error(error_msg)
            raise WorkflowValidationError(error_msg, validation_errors=result.errors,
                                          workflow_name=definition.name)
        if result.warnings:
            logger.warning(f"Workflow validation warnings: {'; '.join(result.warnings)}")


def _depth(node: ConditionNode) -> int:
    if isinstance(node, ConditionLeaf):
        return 1
    return 1 + max(_depth(child) for child in node.children)
