"""SQLAlchemy database models for workflows and their executions."""

from sqlalchemy import Boolean, Column, DateTime, ForeignKey, Index, Integer, JSON, String, Text
from sqlalchemy.orm import relationship

from ..models.core import utc_now
from .database import Base


class WorkflowModel(Base):
    """Database model for workflow definitions and their counters."""
    __tablename__ = "workflows"

    id = Column(String(36), primary_key=True)
    name = Column(String(255), nullable=False)
    description = Column(Text)
    enabled = Column(Boolean, nullable=False, default=True)
    version = Column(Integer, nullable=False, default=1)
    triggers = Column(JSON, nullable=False)
    conditions = Column(JSON)
    actions = Column(JSON, nullable=False)
    priority = Column(Integer, nullable=False, default=0)
    category = Column(String(100))
    tags = Column(JSON)
    created_by = Column(String(255), nullable=False)

    # Written only by the execution recorder, as atomic increments
    execution_count = Column(Integer, nullable=False, default=0)
    success_count = Column(Integer, nullable=False, default=0)
    failure_count = Column(Integer, nullable=False, default=0)
    total_duration_ms = Column(Integer, nullable=False, default=0)
    last_execution_at = Column(DateTime)

    created_at = Column(DateTime, nullable=False, default=utc_now)
    updated_at = Column(DateTime, nullable=False, default=utc_now)

    executions = relationship(
        "WorkflowExecutionModel",
        back_populates="workflow",
        cascade="all, delete-orphan",
        passive_deletes=True,
    )


class WorkflowExecutionModel(Base):
    """Database model for one workflow execution."""
    __tablename__ = "workflow_executions"
    __table_args__ = (
        Index("idx_workflow_executions_workflow_created", "workflow_id", "created_at"),
    )

    id = Column(String(36), primary_key=True)
    workflow_id = Column(String(36), ForeignKey("workflows.id", ondelete="CASCADE"), nullable=False)
    status = Column(String(20), nullable=False)  # RUNNING, SUCCESS, FAILED, PARTIAL
    triggered_by = Column(String(20), nullable=False)
    trigger_source = Column(String(255))
    started_at = Column(DateTime, nullable=False)
    completed_at = Column(DateTime)
    duration_ms = Column(Integer)
    actions_executed = Column(Integer, nullable=False, default=0)
    actions_success = Column(Integer, nullable=False, default=0)
    actions_failed = Column(Integer, nullable=False, default=0)
    retry_count = Column(Integer, nullable=False, default=0)
    context_summary = Column(JSON)
    action_results = Column(JSON)
    error_message = Column(Text)
    created_at = Column(DateTime, nullable=False, default=utc_now)

    workflow = relationship("WorkflowModel", back_populates="executions")
