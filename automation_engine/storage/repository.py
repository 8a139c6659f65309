"""Persistence contract for workflows and executions, with a SQLAlchemy implementation."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from sqlalchemy import delete, func, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from ..core.exceptions import ExecutionRecorderError, StorageError, WorkflowVersionConflictError
from ..core.logging import get_logger
from ..models.core import Workflow, WorkflowDefinition, utc_now
from ..models.execution import ExecutionStatusEnum, WorkflowExecution
from .models import WorkflowExecutionModel, WorkflowModel

logger = get_logger(__name__)


class WorkflowRepository(ABC):
    """Storage operations the engine relies on."""

    @abstractmethod
    def add_workflow(self, workflow: Workflow) -> Workflow:
        """Insert a new workflow."""

    @abstractmethod
    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        """Load a workflow, or None."""

    @abstractmethod
    def list_workflows(self, enabled: Optional[bool] = None) -> List[Workflow]:
        """All workflows, highest priority first."""

    @abstractmethod
    def update_definition(self, workflow_id: str, definition: WorkflowDefinition,
                          expected_version: Optional[int] = None) -> Optional[Workflow]:
        """Replace the editable fields and bump the version. None if the workflow is gone."""

    @abstractmethod
    def set_enabled(self, workflow_id: str, enabled: bool) -> Optional[Workflow]:
        """Enable or disable a workflow, bumping its version."""

    @abstractmethod
    def delete_workflow(self, workflow_id: str) -> bool:
        """Delete a workflow and its executions."""

    @abstractmethod
    def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Insert a RUNNING execution record."""

    @abstractmethod
    def complete_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        """Seal a RUNNING execution and apply the counter delta in one transaction."""

    @abstractmethod
    def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        """Load one execution, or None."""

    @abstractmethod
    def list_executions(self, workflow_id: str, offset: int, limit: int,
                        status: Optional[str] = None) -> Tuple[List[WorkflowExecution], int]:
        """A newest-first slice of executions plus the total count."""

    @abstractmethod
    def executions_since(self, workflow_id: str, since: datetime) -> List[WorkflowExecution]:
        """Executions started at or after ``since``, oldest first."""

    @abstractmethod
    def recent_statuses(self, workflow_id: str, limit: int) -> List[str]:
        """Statuses of the latest sealed executions, newest first."""

    @abstractmethod
    def delete_executions_before(self, cutoff: datetime) -> int:
        """Remove sealed executions created before ``cutoff``; returns the number removed."""


class SqlAlchemyWorkflowRepository(WorkflowRepository):
    """Repository backed by the SQLAlchemy models, one session per operation."""

    def __init__(self, session_factory: sessionmaker):
        self._session_factory = session_factory

    def _session(self) -> Session:
        return self._session_factory()

    # Workflows

    def add_workflow(self, workflow: Workflow) -> Workflow:
        db = self._session()
        try:
            model = WorkflowModel(id=workflow.id)
            _apply_definition(model, workflow)
            model.version = workflow.version
            model.created_at = workflow.created_at
            model.updated_at = workflow.updated_at
            db.add(model)
            db.commit()
            logger.info(f"Stored workflow {workflow.id} ('{workflow.name}')")
            return _to_workflow(model)
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to store workflow: {e}", operation="add_workflow", table="workflows")
        finally:
            db.close()

    def get_workflow(self, workflow_id: str) -> Optional[Workflow]:
        db = self._session()
        try:
            model = db.get(WorkflowModel, workflow_id)
            return _to_workflow(model) if model else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load workflow {workflow_id}: {e}", operation="get_workflow", table="workflows")
        finally:
            db.close()

    def list_workflows(self, enabled: Optional[bool] = None) -> List[Workflow]:
        db = self._session()
        try:
            query = select(WorkflowModel).order_by(WorkflowModel.priority.desc(), WorkflowModel.created_at)
            if enabled is not None:
                query = query.where(WorkflowModel.enabled == enabled)
            return [_to_workflow(model) for model in db.scalars(query)]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list workflows: {e}", operation="list_workflows", table="workflows")
        finally:
            db.close()

    def update_definition(self, workflow_id: str, definition: WorkflowDefinition,
                          expected_version: Optional[int] = None) -> Optional[Workflow]:
        db = self._session()
        try:
            model = db.get(WorkflowModel, workflow_id, with_for_update=True)
            if model is None:
                return None
            if expected_version is not None and model.version != expected_version:
                raise WorkflowVersionConflictError(workflow_id, expected_version, model.version)
            _apply_definition(model, definition)
            model.version = model.version + 1
            model.updated_at = utc_now()
            db.commit()
            logger.info(f"Updated workflow {workflow_id} to version {model.version}")
            return _to_workflow(model)
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to update workflow {workflow_id}: {e}", operation="update_definition", table="workflows")
        finally:
            db.close()

    def set_enabled(self, workflow_id: str, enabled: bool) -> Optional[Workflow]:
        db = self._session()
        try:
            result = db.execute(
                update(WorkflowModel)
                .where(WorkflowModel.id == workflow_id)
                .values(enabled=enabled, version=WorkflowModel.version + 1, updated_at=utc_now())
            )
            db.commit()
            if result.rowcount == 0:
                return None
            return _to_workflow(db.get(WorkflowModel, workflow_id, populate_existing=True))
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to change workflow {workflow_id}: {e}", operation="set_enabled", table="workflows")
        finally:
            db.close()

    def delete_workflow(self, workflow_id: str) -> bool:
        db = self._session()
        try:
            db.execute(delete(WorkflowExecutionModel).where(WorkflowExecutionModel.workflow_id == workflow_id))
            result = db.execute(delete(WorkflowModel).where(WorkflowModel.id == workflow_id))
            db.commit()
            return result.rowcount > 0
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to delete workflow {workflow_id}: {e}", operation="delete_workflow", table="workflows")
        finally:
            db.close()

    # Executions

    def create_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        db = self._session()
        try:
            model = WorkflowExecutionModel(
                id=execution.id,
                workflow_id=execution.workflow_id,
                status=execution.status.value,
                triggered_by=execution.triggered_by.value,
                trigger_source=execution.trigger_source,
                started_at=execution.started_at,
                context_summary=execution.context_summary,
                action_results=[],
                created_at=execution.created_at,
            )
            db.add(model)
            db.commit()
            return _to_execution(model)
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to create execution record: {e}", operation="create_execution",
                               table="workflow_executions")
        finally:
            db.close()

    def complete_execution(self, execution: WorkflowExecution) -> WorkflowExecution:
        succeeded = execution.status == ExecutionStatusEnum.SUCCESS
        db = self._session()
        try:
            sealed = db.execute(
                update(WorkflowExecutionModel)
                .where(
                    WorkflowExecutionModel.id == execution.id,
                    WorkflowExecutionModel.status == ExecutionStatusEnum.RUNNING.value,
                )
                .values(
                    status=execution.status.value,
                    completed_at=execution.completed_at,
                    duration_ms=execution.duration_ms,
                    actions_executed=execution.actions_executed,
                    actions_success=execution.actions_success,
                    actions_failed=execution.actions_failed,
                    retry_count=execution.retry_count,
                    action_results=execution.action_results,
                    error_message=execution.error_message,
                )
            )
            if sealed.rowcount != 1:
                db.rollback()
                raise ExecutionRecorderError(
                    f"Execution {execution.id} is not RUNNING and cannot be sealed again",
                    execution_id=execution.id,
                    operation="complete_execution",
                )

            db.execute(
                update(WorkflowModel)
                .where(WorkflowModel.id == execution.workflow_id)
                .values(
                    execution_count=WorkflowModel.execution_count + 1,
                    success_count=WorkflowModel.success_count + (1 if succeeded else 0),
                    failure_count=WorkflowModel.failure_count + (0 if succeeded else 1),
                    total_duration_ms=WorkflowModel.total_duration_ms + (execution.duration_ms or 0),
                    last_execution_at=execution.completed_at,
                )
            )
            db.commit()
            return execution
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to seal execution {execution.id}: {e}", operation="complete_execution",
                               table="workflow_executions")
        finally:
            db.close()

    def get_execution(self, execution_id: str) -> Optional[WorkflowExecution]:
        db = self._session()
        try:
            model = db.get(WorkflowExecutionModel, execution_id)
            return _to_execution(model) if model else None
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to load execution {execution_id}: {e}", operation="get_execution",
                               table="workflow_executions")
        finally:
            db.close()

    def list_executions(self, workflow_id: str, offset: int, limit: int,
                        status: Optional[str] = None) -> Tuple[List[WorkflowExecution], int]:
        db = self._session()
        try:
            filters = [WorkflowExecutionModel.workflow_id == workflow_id]
            if status:
                filters.append(WorkflowExecutionModel.status == status)

            total = db.scalar(select(func.count()).select_from(WorkflowExecutionModel).where(*filters))
            query = (
                select(WorkflowExecutionModel)
                .where(*filters)
                .order_by(WorkflowExecutionModel.created_at.desc(), WorkflowExecutionModel.id.desc())
                .offset(offset)
                .limit(limit)
            )
            return [_to_execution(model) for model in db.scalars(query)], total or 0
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to list executions: {e}", operation="list_executions",
                               table="workflow_executions")
        finally:
            db.close()

    def executions_since(self, workflow_id: str, since: datetime) -> List[WorkflowExecution]:
        db = self._session()
        try:
            query = (
                select(WorkflowExecutionModel)
                .where(WorkflowExecutionModel.workflow_id == workflow_id, WorkflowExecutionModel.started_at >= since)
                .order_by(WorkflowExecutionModel.started_at)
            )
            return [_to_execution(model) for model in db.scalars(query)]
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to query executions: {e}", operation="executions_since",
                               table="workflow_executions")
        finally:
            db.close()

    def recent_statuses(self, workflow_id: str, limit: int) -> List[str]:
        db = self._session()
        try:
            query = (
                select(WorkflowExecutionModel.status)
                .where(
                    WorkflowExecutionModel.workflow_id == workflow_id,
                    WorkflowExecutionModel.status != ExecutionStatusEnum.RUNNING.value,
                )
                .order_by(WorkflowExecutionModel.completed_at.desc())
                .limit(limit)
            )
            return list(db.scalars(query))
        except SQLAlchemyError as e:
            raise StorageError(f"Failed to query execution statuses: {e}", operation="recent_statuses",
                               table="workflow_executions")
        finally:
            db.close()

    def delete_executions_before(self, cutoff: datetime) -> int:
        db = self._session()
        try:
            result = db.execute(
                delete(WorkflowExecutionModel).where(
                    WorkflowExecutionModel.created_at < cutoff,
                    WorkflowExecutionModel.status != ExecutionStatusEnum.RUNNING.value,
                )
            )
            db.commit()
            logger.info(f"Deleted {result.rowcount} executions created before {cutoff.isoformat()}")
            return result.rowcount
        except SQLAlchemyError as e:
            db.rollback()
            raise StorageError(f"Failed to delete old executions: {e}", operation="delete_executions_before",
                               table="workflow_executions")
        finally:
            db.close()


def _apply_definition(model: WorkflowModel, definition: WorkflowDefinition) -> None:
    data = definition.model_dump(mode="json")
    model.name = data["name"]
    model.description = data["description"]
    model.enabled = data["enabled"]
    model.triggers = data["triggers"]
    model.conditions = data["conditions"]
    model.actions = data["actions"]
    model.priority = data["priority"]
    model.category = data["category"]
    model.tags = data["tags"]
    model.created_by = data["created_by"]


def _to_workflow(model: WorkflowModel) -> Workflow:
    return Workflow.model_validate({
        "id": model.id,
        "name": model.name,
        "description": model.description,
        "enabled": model.enabled,
        "version": model.version,
        "triggers": model.triggers,
        "conditions": model.conditions,
        "actions": model.actions,
        "priority": model.priority,
        "category": model.category,
        "tags": model.tags or [],
        "created_by": model.created_by,
        "execution_count": model.execution_count,
        "success_count": model.success_count,
        "failure_count": model.failure_count,
        "total_duration_ms": model.total_duration_ms,
        "last_execution_at": model.last_execution_at,
        "created_at": model.created_at,
        "updated_at": model.updated_at,
    })


def _to_execution(model: WorkflowExecutionModel) -> WorkflowExecution:
    return WorkflowExecution(
        id=model.id,
        workflow_id=model.workflow_id,
        status=ExecutionStatusEnum(model.status),
        triggered_by=model.triggered_by,
        trigger_source=model.trigger_source,
        started_at=model.started_at,
        completed_at=model.completed_at,
        duration_ms=model.duration_ms,
        actions_executed=model.actions_executed or 0,
        actions_success=model.actions_success or 0,
        actions_failed=model.actions_failed or 0,
        retry_count=model.retry_count or 0,
        context_summary=model.context_summary or {},
        action_results=model.action_results or [],
        error_message=model.error_message,
        created_at=model.created_at,
    )
