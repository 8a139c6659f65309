"""Trigger matching: decides whether a context fires a workflow."""

from typing import List, Sequence

from ..models.core import EventTrigger, ScheduleTrigger, TriggerConfig, TriggerType
from ..models.execution import ExecutionContext, TriggerMatch
from .condition_evaluator import evaluate_all
from .logging import get_logger


logger = get_logger(__name__)


class TriggerEvaluator:
    """Matches a workflow's trigger list against an execution context.

    The list is any-match: one enabled, matching trigger is enough. An empty
    list matches nothing. Matching has no side effects; anything it needs to
    know about the entity must already be in ``context.entity``.
    """

    def evaluate(self, triggers: Sequence[TriggerConfig], context: ExecutionContext) -> bool:
        """Return True if any trigger matches the context."""
        return any(self.matches(trigger, context) for trigger in triggers)

    def evaluate_each(self, triggers: Sequence[TriggerConfig], context: ExecutionContext) -> List[TriggerMatch]:
        """Per-trigger verdicts, in declaration order."""
        return [
            TriggerMatch(
                index=index,
                type=TriggerType(trigger.type),
                enabled=trigger.enabled,
                matched=self.matches(trigger, context),
            )
            for index, trigger in enumerate(triggers)
        ]

    def matches(self, trigger: TriggerConfig, context: ExecutionContext) -> bool:
        """Check a single trigger."""
        if not trigger.enabled:
            return False
        if context.triggered_by != trigger.type:
            return False

        if isinstance(trigger, EventTrigger):
            return self._matches_event(trigger, context)
        if isinstance(trigger, ScheduleTrigger):
            return trigger.schedule is None or context.trigger_source == trigger.schedule
        return True

    def _matches_event(self, trigger: EventTrigger, context: ExecutionContext) -> bool:
        if context.event != trigger.event:
            return False

        if trigger.entity_type is not None:
            entity_type = (context.entity or {}).get("type")
            if entity_type != trigger.entity_type:
                logger.debug(
                    f"Event trigger '{trigger.event}' skipped: entity type "
                    f"{entity_type!r} != {trigger.entity_type!r}"
                )
                return False

        return evaluate_all(trigger.field_matchers, context)
