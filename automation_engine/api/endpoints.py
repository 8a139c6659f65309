"""FastAPI REST endpoints for the workflow automation engine."""

from datetime import datetime, timezone
from typing import Any, Dict, List, NoReturn, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status
from pydantic import BaseModel, Field

from ..core.action_registry import ActionRegistry
from ..core.exceptions import (
    TemplateNotFoundError, WorkflowEngineError, WorkflowNotFoundError, create_error_response,
)
from ..core.logging import get_logger
from ..core.middleware import http_status_for_error
from ..core.statistics import StatisticsAggregator
from ..core.workflow_engine import WorkflowEngine
from ..core.workflow_manager import WorkflowManager
from ..core.workflow_templates import (
    WorkflowTemplate, get_all_templates, get_categories, get_template_by_id, get_template_stats,
    get_templates_by_category, search_templates,
)
from ..models.core import TriggerType, Workflow
from ..models.execution import (
    ActionOutcome, DryRunResult, ExecutionContext, ExecutionPage, ExecutionStatusEnum,
    WorkflowStats,
)

logger = get_logger(__name__)

# Create router
router = APIRouter(prefix="/api/v1", tags=["workflows"])


def get_components(request: Request):
    """Dependency returning the components built at startup."""
    components = getattr(request.app.state, "components", None)
    if components is None:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Application components not initialized"
        )
    return components


def get_workflow_manager(components=Depends(get_components)) -> WorkflowManager:
    return components.workflow_manager


def get_workflow_engine(components=Depends(get_components)) -> WorkflowEngine:
    return components.workflow_engine


def get_statistics(components=Depends(get_components)) -> StatisticsAggregator:
    return components.statistics


def get_action_registry(components=Depends(get_components)) -> ActionRegistry:
    return components.action_registry


# Request/Response models
class WorkflowResponse(BaseModel):
    """Response model for workflow create and update."""
    workflow: Workflow = Field(..., description="The stored workflow")
    message: str = Field(..., description="Success message")
    validation_warnings: List[str] = Field(default_factory=list, description="Validation warnings")


class WorkflowListResponse(BaseModel):
    workflows: List[Workflow]
    total: int


class ExecuteWorkflowRequest(BaseModel):
    """Request model for running a workflow."""
    context: ExecutionContext = Field(
        default_factory=ExecutionContext,
        description="Execution context; triggered_by defaults to MANUAL"
    )


class ExecuteWorkflowResponse(BaseModel):
    """Response model for a workflow run."""
    workflow_id: str
    execution_id: Optional[str] = Field(None, description="Absent when the run was skipped")
    status: ExecutionStatusEnum
    skip_reason: Optional[str] = None
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_ms: Optional[int] = None
    actions_executed: int = 0
    actions_success: int = 0
    actions_failed: int = 0
    retry_count: int = 0
    action_results: List[ActionOutcome] = Field(default_factory=list)


class DryRunRequest(BaseModel):
    """Request model for a dry run."""
    context: Optional[ExecutionContext] = Field(None, description="Context to check the workflow against")
    simulate_as: Optional[TriggerType] = Field(None, description="Match triggers as if fired this way")


class DeleteWorkflowResponse(BaseModel):
    workflow_id: str
    message: str


class TemplateListResponse(BaseModel):
    templates: List[WorkflowTemplate]
    total: int
    categories: List[str] = Field(default_factory=list, description="Every category in the catalogue")


class TemplateWorkflowRequest(BaseModel):
    """Request model for creating a workflow from a template."""
    overrides: Dict[str, Any] = Field(
        default_factory=dict,
        description="Top-level definition fields replacing the template's, e.g. name or enabled"
    )


def _raise_http_error(e: WorkflowEngineError, operation: str) -> NoReturn:
    status_code = http_status_for_error(e)
    if status_code >= 500:
        logger.error(f"Workflow engine error during {operation}: {e}")
    else:
        logger.warning(f"Workflow engine error during {operation}: {e}")
    raise HTTPException(status_code=status_code, detail=create_error_response(e))


def _raise_internal_error(e: Exception, operation: str) -> NoReturn:
    logger.error(f"Unexpected error during {operation}: {e}", exc_info=True)
    raise HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail={
            "error": "InternalError",
            "message": f"An unexpected error occurred during {operation}",
            "details": {"original_error": str(e)},
            "timestamp": datetime.now(timezone.utc).isoformat()
        }
    )


# Endpoints

@router.post(
    "/workflows",
    response_model=WorkflowResponse,
    status_code=status.HTTP_201_CREATED,
    summary="Create a workflow",
    description="Validate a workflow definition and store it at version 1"
)
def create_workflow(
    payload: Dict[str, Any] = Body(...),
    workflow_manager: WorkflowManager = Depends(get_workflow_manager)
) -> WorkflowResponse:
    """
    Create a new workflow.

    The body is parsed by the workflow manager rather than by FastAPI so that
    malformed definitions come back as a 400 with the engine's error format.

    Raises:
        HTTPException: If the definition is invalid or cannot be stored
    """
    try:
        definition = workflow_manager.parse_definition(payload)
        warnings = workflow_manager.validate_workflow(definition).warnings
        workflow = workflow_manager.create_workflow(definition)
        return WorkflowResponse(
            workflow=workflow,
            message=f"Workflow '{workflow.name}' created successfully",
            validation_warnings=warnings,
        )
    except WorkflowEngineError as e:
        _raise_http_error(e, "workflow creation")
    except Exception as e:
        _raise_internal_error(e, "workflow creation")


@router.get(
    "/workflows",
    response_model=WorkflowListResponse,
    summary="List workflows",
    description="List workflows ordered by priority, optionally filtered by enabled flag"
)
def list_workflows(
    enabled: Optional[bool] = Query(None, description="Only enabled or only disabled workflows"),
    workflow_manager: WorkflowManager = Depends(get_workflow_manager)
) -> WorkflowListResponse:
    try:
        workflows = workflow_manager.list_workflows(enabled)
        return WorkflowListResponse(workflows=workflows, total=len(workflows))
    except WorkflowEngineError as e:
        _raise_http_error(e, "workflow listing")
    except Exception as e:
        _raise_internal_error(e, "workflow listing")


@router.get(
    "/workflows/{workflow_id}",
    response_model=Workflow,
    summary="Get a workflow"
)
def get_workflow(
    workflow_id: str,
    workflow_manager: WorkflowManager = Depends(get_workflow_manager)
) -> Workflow:
    try:
        return workflow_manager.get_workflow(workflow_id)
    except WorkflowEngineError as e:
        _raise_http_error(e, "workflow retrieval")
    except Exception as e:
        _raise_internal_error(e, "workflow retrieval")


@router.put(
    "/workflows/{workflow_id}",
    response_model=WorkflowResponse,
    summary="Update a workflow",
    description="Replace a workflow's definition; bumps the version and keeps its counters"
)
def update_workflow(
    workflow_id: str,
    payload: Dict[str, Any] = Body(...),
    expected_version: Optional[int] = Query(
        None, description="Reject the update with 409 unless the stored version matches"
    ),
    workflow_manager: WorkflowManager = Depends(get_workflow_manager)
) -> WorkflowResponse:
    """
    Update an existing workflow.

    Raises:
        HTTPException: 400 on invalid definitions, 404 if the workflow does
            not exist, 409 on a version conflict
    """
    try:
        definition = workflow_manager.parse_definition(payload)
        warnings = workflow_manager.validate_workflow(definition).warnings
        workflow = workflow_manager.update_workflow(workflow_id, definition, expected_version)
        return WorkflowResponse(
            workflow=workflow,
            message=f"Workflow '{workflow.name}' updated to version {workflow.version}",
            validation_warnings=warnings,
        )
    except WorkflowEngineError as e:
        _raise_http_error(e, "workflow update")
    except Exception as e:
        _raise_internal_error(e, "workflow update")


@router.delete(
    "/workflows/{workflow_id}",
    response_model=DeleteWorkflowResponse,
    summary="Delete a workflow",
    description="Delete a workflow together with its execution history"
)
def delete_workflow(
    workflow_id: str,
    workflow_manager: WorkflowManager = Depends(get_workflow_manager)
) -> DeleteWorkflowResponse:
    try:
        if not workflow_manager.delete_workflow(workflow_id):
            raise WorkflowNotFoundError(workflow_id)
        return DeleteWorkflowResponse(workflow_id=workflow_id, message="Workflow deleted successfully")
    except WorkflowEngineError as e:
        _raise_http_error(e, "workflow deletion")
    except Exception as e:
        _raise_internal_error(e, "workflow deletion")


@router.post("/workflows/{workflow_id}/enable", response_model=Workflow, summary="Enable a workflow")
def enable_workflow(
    workflow_id: str,
    workflow_manager: WorkflowManager = Depends(get_workflow_manager)
) -> Workflow:
    try:
        return workflow_manager.set_enabled(workflow_id, True)
    except WorkflowEngineError as e:
        _raise_http_error(e, "workflow enable")
    except Exception as e:
        _raise_internal_error(e, "workflow enable")


@router.post("/workflows/{workflow_id}/disable", response_model=Workflow, summary="Disable a workflow")
def disable_workflow(
    workflow_id: str,
    workflow_manager: WorkflowManager = Depends(get_workflow_manager)
) -> Workflow:
    try:
        return workflow_manager.set_enabled(workflow_id, False)
    except WorkflowEngineError as e:
        _raise_http_error(e, "workflow disable")
    except Exception as e:
        _raise_internal_error(e, "workflow disable")


@router.post(
    "/workflows/{workflow_id}/execute",
    response_model=ExecuteWorkflowResponse,
    summary="Execute a workflow",
    description="Run a workflow synchronously against the given context"
)
def execute_workflow(
    workflow_id: str,
    request: Optional[ExecuteWorkflowRequest] = None,
    workflow_engine: WorkflowEngine = Depends(get_workflow_engine)
) -> ExecuteWorkflowResponse:
    """
    Execute a workflow.

    A run whose triggers or conditions do not match is reported with status
    SKIPPED and no execution id.

    Raises:
        HTTPException: 404 if the workflow does not exist, 409 if it is
            disabled or already running under single-flight
    """
    try:
        request = request or ExecuteWorkflowRequest()
        logger.info(f"Executing workflow {workflow_id} ({request.context.triggered_by.value})")
        result = workflow_engine.execute(workflow_id, request.context)
        return ExecuteWorkflowResponse(**result.model_dump())
    except WorkflowEngineError as e:
        _raise_http_error(e, "workflow execution")
    except Exception as e:
        _raise_internal_error(e, "workflow execution")


@router.post(
    "/workflows/{workflow_id}/test",
    response_model=DryRunResult,
    summary="Dry-run a workflow",
    description="Report what a run would do without executing actions or writing history"
)
def test_workflow(
    workflow_id: str,
    request: Optional[DryRunRequest] = None,
    workflow_engine: WorkflowEngine = Depends(get_workflow_engine)
) -> DryRunResult:
    try:
        request = request or DryRunRequest()
        return workflow_engine.test(workflow_id, request.context, request.simulate_as)
    except WorkflowEngineError as e:
        _raise_http_error(e, "workflow dry run")
    except Exception as e:
        _raise_internal_error(e, "workflow dry run")


@router.get(
    "/workflows/{workflow_id}/stats",
    response_model=WorkflowStats,
    summary="Workflow statistics",
    description="Overview, status breakdown and per-day trend over a trailing window"
)
def get_workflow_stats(
    workflow_id: str,
    days: Optional[int] = Query(None, description="Window length in days (1-365)"),
    tz: Optional[str] = Query(None, alias="timezone", description="IANA timezone for the trend"),
    workflow_manager: WorkflowManager = Depends(get_workflow_manager),
    statistics: StatisticsAggregator = Depends(get_statistics)
) -> WorkflowStats:
    try:
        workflow_manager.get_workflow(workflow_id)
        return statistics.get_stats(workflow_id, days=days, tz=tz)
    except WorkflowEngineError as e:
        _raise_http_error(e, "statistics retrieval")
    except Exception as e:
        _raise_internal_error(e, "statistics retrieval")


@router.get(
    "/workflows/{workflow_id}/executions",
    response_model=ExecutionPage,
    summary="Execution history",
    description="Paginated execution history, newest first"
)
def list_workflow_executions(
    workflow_id: str,
    page: int = Query(1, description="Page number, starting at 1"),
    limit: int = Query(20, description="Page size (1-100)"),
    status_filter: Optional[str] = Query(None, alias="status", description="Only executions in this status"),
    workflow_manager: WorkflowManager = Depends(get_workflow_manager),
    statistics: StatisticsAggregator = Depends(get_statistics)
) -> ExecutionPage:
    try:
        workflow_manager.get_workflow(workflow_id)
        return statistics.list_executions(workflow_id, page=page, limit=limit, status=status_filter)
    except WorkflowEngineError as e:
        _raise_http_error(e, "execution history retrieval")
    except Exception as e:
        _raise_internal_error(e, "execution history retrieval")


@router.get(
    "/actions",
    summary="List action types",
    description="Registered action types with their configuration schemas"
)
def list_actions(
    action_registry: ActionRegistry = Depends(get_action_registry)
) -> Dict[str, Any]:
    actions = [action_registry.describe(action_type) for action_type in action_registry.list_action_types()]
    return {"actions": actions, "total": len(actions)}


@router.get("/actions/{action_type}", summary="Describe an action type")
def describe_action(
    action_type: str,
    action_registry: ActionRegistry = Depends(get_action_registry)
) -> Dict[str, Any]:
    try:
        return action_registry.describe(action_type)
    except WorkflowEngineError as e:
        _raise_http_error(e, "action lookup")


@router.get(
    "/templates",
    response_model=TemplateListResponse,
    tags=["templates"],
    summary="List workflow templates",
    description="Catalogue of ready-made workflows, optionally filtered by category or difficulty"
)
def list_templates(
    category: Optional[str] = Query(None, description="Only templates in this category"),
    difficulty: Optional[str] = Query(None, description="Only templates of this difficulty"),
) -> TemplateListResponse:
    templates = get_templates_by_category(category) if category else get_all_templates()
    if difficulty:
        templates = [template for template in templates if template.difficulty == difficulty]
    return TemplateListResponse(templates=templates, total=len(templates), categories=get_categories())


@router.get(
    "/templates/search",
    response_model=TemplateListResponse,
    tags=["templates"],
    summary="Search workflow templates",
    description="Case-insensitive match on name, description, tags and use cases"
)
def search_workflow_templates(
    q: str = Query("", description="Search text"),
) -> TemplateListResponse:
    templates = search_templates(q)
    return TemplateListResponse(templates=templates, total=len(templates), categories=get_categories())


@router.get("/templates/stats", tags=["templates"], summary="Template catalogue counts")
def template_stats() -> Dict[str, Any]:
    return get_template_stats()


@router.get("/templates/{template_id}", response_model=WorkflowTemplate, tags=["templates"],
            summary="Get a workflow template")
def get_workflow_template(template_id: str) -> WorkflowTemplate:
    template = get_template_by_id(template_id)
    if template is None:
        _raise_http_error(TemplateNotFoundError(template_id), "template retrieval")
    return template


@router.post(
    "/templates/{template_id}/workflows",
    response_model=WorkflowResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["templates"],
    summary="Create a workflow from a template",
    description="Store a copy of the template's definition with optional top-level overrides"
)
def create_workflow_from_template(
    template_id: str,
    request: Optional[TemplateWorkflowRequest] = None,
    workflow_manager: WorkflowManager = Depends(get_workflow_manager)
) -> WorkflowResponse:
    """
    Instantiate a catalogue template as a stored workflow.

    Raises:
        HTTPException: 404 for an unknown template, 400 when the overrides
            make the definition invalid
    """
    try:
        request = request or TemplateWorkflowRequest()
        workflow = workflow_manager.create_from_template(template_id, request.overrides)
        return WorkflowResponse(
            workflow=workflow,
            message=f"Workflow '{workflow.name}' created from template '{template_id}'",
            validation_warnings=workflow_manager.validate_workflow(workflow).warnings,
        )
    except WorkflowEngineError as e:
        _raise_http_error(e, "workflow creation from template")
    except Exception as e:
        _raise_internal_error(e, "workflow creation from template")
