"""Database models and storage layer."""

from .database import (
    Base,
    create_database_engine,
    create_tables,
    drop_tables,
    get_database_engine,
    get_session_factory,
)
from .models import WorkflowExecutionModel, WorkflowModel
from .repository import SqlAlchemyWorkflowRepository, WorkflowRepository

__all__ = [
    "Base",
    "create_database_engine",
    "create_tables",
    "drop_tables",
    "get_database_engine",
    "get_session_factory",
    "WorkflowExecutionModel",
    "WorkflowModel",
    "SqlAlchemyWorkflowRepository",
    "WorkflowRepository",
]
