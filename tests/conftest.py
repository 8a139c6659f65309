"""Pytest configuration and fixtures."""

import os
import tempfile
import threading
from typing import Any, Dict, List, Optional

import pytest

from automation_engine.actions import InMemoryRecordStore, NotificationSender, register_builtin_actions
from automation_engine.core.action_executor import ActionExecutor
from automation_engine.core.action_registry import ActionHandler, ActionRegistry
from automation_engine.core.error_recovery import RetryConfig
from automation_engine.core.execution_recorder import ExecutionRecorder
from automation_engine.core.statistics import StatisticsAggregator
from automation_engine.core.workflow_engine import WorkflowEngine
from automation_engine.core.workflow_manager import WorkflowManager
from automation_engine.models import ActionResult, ExecutionContext, TriggerType, WorkflowDefinition
from automation_engine.storage.database import create_database_engine, create_tables, get_session_factory
from automation_engine.storage.repository import SqlAlchemyWorkflowRepository


class RecordingSender(NotificationSender):
    """Notification sender that keeps every message in memory."""

    def __init__(self):
        self.sent: List[Dict[str, Any]] = []

    def send(self, channel, recipients, subject, message):
        self.sent.append({"channel": channel, "recipients": recipients, "subject": subject, "message": message})
        return f"msg-{len(self.sent)}"


class SpyHandler(ActionHandler):
    """Handler that fails a fixed number of times, then succeeds. Counts calls."""

    description = "Test handler"

    def __init__(self, action_type: str, failures: int = 0, raises: Optional[Exception] = None, delay: float = 0.0):
        self.action_type = action_type
        self.failures = failures
        self.raises = raises
        self.delay = delay
        self.calls = 0
        self.configs: List[Dict[str, Any]] = []
        self._lock = threading.Lock()
        self._release = threading.Event()
        self._release.set()

    def block(self):
        """Make subsequent calls wait until ``unblock`` is called."""
        self._release.clear()

    def unblock(self):
        self._release.set()

    def run(self, config, context):
        with self._lock:
            self.calls += 1
            call = self.calls
            self.configs.append(config.model_dump())
        self._release.wait(timeout=5)
        if self.delay:
            threading.Event().wait(self.delay)
        if call <= self.failures:
            if self.raises is not None:
                raise self.raises
            return ActionResult(success=False, error=f"failure {call}")
        return ActionResult(success=True, output={"call": call})


@pytest.fixture
def temp_db():
    """Create a temporary SQLite database and yield its engine."""
    db_fd, db_path = tempfile.mkstemp(suffix=".db")
    os.close(db_fd)

    engine = create_database_engine(f"sqlite:///{db_path}")
    create_tables(engine)

    yield engine

    engine.dispose()
    try:
        os.unlink(db_path)
    except OSError:
        pass


@pytest.fixture
def session_factory(temp_db):
    return get_session_factory(temp_db)


@pytest.fixture
def repository(session_factory):
    return SqlAlchemyWorkflowRepository(session_factory)


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def record_store():
    return InMemoryRecordStore()


@pytest.fixture
def action_registry(sender, record_store):
    """Registry with the built-in actions, backed by in-memory collaborators."""
    registry = ActionRegistry()
    register_builtin_actions(registry, notification_sender=sender, record_mutator=record_store)
    return registry


@pytest.fixture
def retry_config():
    return RetryConfig(max_attempts=3, base_delay=0.0, max_delay=0.0, jitter=False,
                       retryable_exceptions=[Exception])


@pytest.fixture
def sleeps():
    """Delays requested by the action executor between attempts."""
    return []


@pytest.fixture
def action_executor(action_registry, retry_config, sleeps):
    executor = ActionExecutor(action_registry, retry_config=retry_config, default_timeout=2.0,
                              max_workers=4, sleep=sleeps.append)
    yield executor
    executor.shutdown(wait=False)


@pytest.fixture
def recorder(repository):
    return ExecutionRecorder(repository)


@pytest.fixture
def workflow_manager(repository, action_registry):
    return WorkflowManager(repository, action_registry, default_action_timeout=2.0)


@pytest.fixture
def workflow_engine(workflow_manager, recorder, action_executor):
    return WorkflowEngine(workflow_manager, recorder, action_executor)


@pytest.fixture
def statistics(repository):
    return StatisticsAggregator(repository)


def invoice_definition(**overrides) -> WorkflowDefinition:
    """Manual workflow that notifies finance and flags invoices over 1000."""
    payload = {
        "name": "High value invoices",
        "triggers": [{"type": "MANUAL"}],
        "conditions": {"field": "entity.amount", "operator": "greaterThan", "value": 1000},
        "actions": [
            {
                "type": "notify",
                "order": 1,
                "config": {"recipients": ["finance@example.com"], "message": "Invoice {{entity.id}} needs review"},
            },
            {"type": "flag", "order": 2, "config": {"label": "high_value"}},
        ],
    }
    payload.update(overrides)
    return WorkflowDefinition.model_validate(payload)


def manual_context(**entity) -> ExecutionContext:
    return ExecutionContext(triggered_by=TriggerType.MANUAL, entity={"type": "invoice", "id": "inv-1", **entity})
