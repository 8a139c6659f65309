"""Actions that change business records: field updates and review flags."""

import threading
from abc import ABC, abstractmethod
from typing import Any, Dict, Optional, Tuple

from pydantic import BaseModel, Field, field_validator

from ..core.action_registry import ActionHandler
from ..core.exceptions import ActionConfigurationError
from ..core.logging import get_logger
from ..models.execution import ActionResult, ExecutionContext

logger = get_logger(__name__)


class RecordMutator(ABC):
    """Write access to business records, supplied by the host application."""

    @abstractmethod
    def update(self, entity_type: str, entity_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        """Apply ``changes`` to the record and return its new state."""


class InMemoryRecordStore(RecordMutator):
    """Dictionary-backed mutator for development setups and tests."""

    def __init__(self):
        self._records: Dict[Tuple[str, str], Dict[str, Any]] = {}
        self._lock = threading.Lock()

    def update(self, entity_type: str, entity_id: str, changes: Dict[str, Any]) -> Dict[str, Any]:
        with self._lock:
            record = self._records.setdefault((entity_type, str(entity_id)), {})
            record.update(changes)
            return dict(record)

    def get(self, entity_type: str, entity_id: str) -> Optional[Dict[str, Any]]:
        with self._lock:
            record = self._records.get((entity_type, str(entity_id)))
            return dict(record) if record is not None else None


class _RecordTarget(BaseModel):
    entity_type: Optional[str] = Field(None, description="Defaults to entity['type'] of the context")
    entity_id: Optional[str] = Field(None, description="Defaults to entity['id'] of the context")

    @field_validator('entity_id', mode='before')
    @classmethod
    def stringify_id(cls, entity_id):
        return str(entity_id) if entity_id is not None else None


class UpdateRecordConfig(_RecordTarget):
    changes: Dict[str, Any] = Field(..., description="Field values to write")

    @field_validator('changes')
    @classmethod
    def validate_changes(cls, changes):
        if not changes:
            raise ValueError("changes cannot be empty")
        return changes


class FlagConfig(_RecordTarget):
    label: str = Field("review", description="Flag label")
    reason: Optional[str] = Field(None, description="Why the record was flagged")


class _RecordHandler(ActionHandler):

    def __init__(self, mutator: RecordMutator):
        self.mutator = mutator

    def _target(self, config: _RecordTarget, context: ExecutionContext) -> Tuple[str, str]:
        entity = context.entity or {}
        entity_type = config.entity_type or entity.get("type")
        entity_id = config.entity_id or entity.get("id")
        if not entity_type or entity_id is None:
            raise ActionConfigurationError(
                f"Action '{self.action_type}' needs an entity type and id, from config or context",
                action_type=self.action_type,
            )
        return entity_type, str(entity_id)


class UpdateRecordHandler(_RecordHandler):
    action_type = "update_record"
    description = "Write field values on the triggering (or a configured) record"
    config_model = UpdateRecordConfig

    def run(self, config: UpdateRecordConfig, context: ExecutionContext) -> ActionResult:
        entity_type, entity_id = self._target(config, context)
        record = self.mutator.update(entity_type, entity_id, config.changes)
        logger.info(f"Updated {entity_type} {entity_id}: {sorted(config.changes)}")
        return ActionResult(success=True, output={"entity_type": entity_type, "entity_id": entity_id, "record": record})


class FlagHandler(_RecordHandler):
    action_type = "flag"
    description = "Flag the triggering (or a configured) record for review"
    config_model = FlagConfig

    def run(self, config: FlagConfig, context: ExecutionContext) -> ActionResult:
        entity_type, entity_id = self._target(config, context)
        changes = {"flagged": True, "flag": config.label}
        if config.reason:
            changes["flag_reason"] = config.reason
        self.mutator.update(entity_type, entity_id, changes)
        logger.info(f"Flagged {entity_type} {entity_id} as '{config.label}'")
        return ActionResult(success=True, output={"entity_type": entity_type, "entity_id": entity_id, "flag": config.label})
