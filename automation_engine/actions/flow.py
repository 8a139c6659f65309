"""Flow helpers: delay and log actions."""

import logging
import time
from typing import Any, Dict, Literal, Optional

from pydantic import BaseModel, Field

from ..core.action_registry import ActionHandler
from ..core.logging import get_logger, log_with_context
from ..models.execution import ActionResult, ExecutionContext

logger = get_logger(__name__)


class DelayConfig(BaseModel):
    seconds: float = Field(..., ge=0, le=3600, description="Time to wait")


class DelayHandler(ActionHandler):
    """Pauses the run. The pause counts against the action timeout."""

    action_type = "delay"
    description = "Wait for a number of seconds before the next action"
    config_model = DelayConfig

    def minimum_duration(self, config: Dict[str, Any]) -> Optional[float]:
        seconds = config.get("seconds")
        if isinstance(seconds, bool) or not isinstance(seconds, (int, float)):
            return None
        return float(seconds)

    def run(self, config: DelayConfig, context: ExecutionContext) -> ActionResult:
        time.sleep(config.seconds)
        return ActionResult(success=True, output={"waited_seconds": config.seconds})


class LogConfig(BaseModel):
    message: str = Field(..., description="Message to log; supports {{path}} placeholders")
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR"] = Field("INFO", description="Log level")


class LogHandler(ActionHandler):
    action_type = "log"
    description = "Write a message to the application log"
    config_model = LogConfig

    def run(self, config: LogConfig, context: ExecutionContext) -> ActionResult:
        log_with_context(
            logger, getattr(logging, config.level), config.message,
            triggered_by=context.triggered_by.value,
            event=context.event,
        )
        return ActionResult(success=True, output={"message": config.message})
