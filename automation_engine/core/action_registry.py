"""Action registry: maps action-type identifiers to handler implementations."""

import threading
from abc import ABC, abstractmethod
from typing import Any, Callable, Dict, List, Optional, Type

from pydantic import BaseModel, ConfigDict, ValidationError

from ..models.execution import ActionResult, ExecutionContext
from .exceptions import ActionConfigurationError, ActionRegistryError
from .logging import get_logger
from .templates import has_placeholders, render_value

logger = get_logger(__name__)


class EmptyConfig(BaseModel):
    """Config model for handlers that take no configuration."""
    model_config = ConfigDict(extra="allow")


class ActionHandler(ABC):
    """Capability interface every action type implements.

    Subclasses declare a pydantic ``config_model``; the raw ``config`` dict of
    an action is rendered against the context and parsed into that model
    before ``run`` is called. Handlers report failure either by returning an
    unsuccessful ``ActionResult`` or by raising. ``ActionConfigurationError``
    is never retried; anything else is treated as transient.
    """

    action_type: str = ""
    description: str = ""
    config_model: Type[BaseModel] = EmptyConfig

    def parse_config(self, config: Dict[str, Any], context: Optional[ExecutionContext] = None) -> BaseModel:
        """Render placeholders and validate the config.

        Raises:
            ActionConfigurationError: If the config does not fit ``config_model``
        """
        payload = render_value(config, context) if context is not None else config
        try:
            return self.config_model.model_validate(payload)
        except ValidationError as e:
            raise ActionConfigurationError(
                f"Invalid configuration for action '{self.action_type}'",
                action_type=self.action_type,
                config_errors=_format_errors(e),
            )

    def validate_config(self, config: Dict[str, Any]) -> List[str]:
        """Save-time validation; fields holding placeholders are checked at run time instead."""
        try:
            self.config_model.model_validate(config)
            return []
        except ValidationError as e:
            return [
                _format_error(error) for error in e.errors()
                if not (error["loc"] and has_placeholders(config.get(error["loc"][0])))
            ]

    def minimum_duration(self, config: Dict[str, Any]) -> Optional[float]:
        """Seconds a run with this raw config takes at least, or None when not known before run time."""
        return None

    def execute(self, config: Dict[str, Any], context: ExecutionContext) -> ActionResult:
        """Parse the config and run the handler."""
        return self.run(self.parse_config(config, context), context)

    @abstractmethod
    def run(self, config: BaseModel, context: ExecutionContext) -> ActionResult:
        """Perform the action with a validated config."""


class CallableActionHandler(ActionHandler):
    """Adapts a plain ``func(config, context)`` into a handler."""

    def __init__(self, action_type: str, function: Callable, description: str = ""):
        self.action_type = action_type
        self.function = function
        self.description = description

    def run(self, config: BaseModel, context: ExecutionContext) -> ActionResult:
        result = self.function(config.model_dump(), context)
        if isinstance(result, ActionResult):
            return result
        return ActionResult(success=True, output=result)


class ActionRegistry:
    """Thread-safe in-memory registry of action handlers.

    Handlers are live objects carrying their injected collaborators (senders,
    HTTP sessions, record mutators), so the registry holds them in memory and
    is populated at application start-up.
    """

    def __init__(self):
        self._handlers: Dict[str, ActionHandler] = {}
        self._lock = threading.RLock()

    def register(self, handler: Any, action_type: Optional[str] = None, description: Optional[str] = None) -> ActionHandler:
        """Register a handler object or a plain callable.

        Args:
            handler: An ``ActionHandler`` instance or a ``func(config, context)`` callable
            action_type: Type identifier; defaults to ``handler.action_type``
            description: Optional description; defaults to the handler's own

        Returns:
            The registered handler

        Raises:
            ActionRegistryError: If the type is empty, already taken, or the handler is invalid
        """
        if not isinstance(handler, ActionHandler):
            if not callable(handler):
                raise ActionRegistryError(
                    "Action handler must be an ActionHandler or a callable",
                    action_type=action_type,
                    operation="register",
                )
            if not action_type:
                raise ActionRegistryError("Callable handlers need an explicit action type", operation="register")
            handler = CallableActionHandler(action_type, handler, description or "")

        action_type = (action_type or handler.action_type or "").strip()
        if not action_type:
            raise ActionRegistryError("Action type cannot be empty", operation="register")

        with self._lock:
            if action_type in self._handlers:
                raise ActionRegistryError(
                    f"Action type '{action_type}' is already registered",
                    action_type=action_type,
                    operation="register",
                )
            if description is not None:
                handler.description = description
            self._handlers[action_type] = handler

        logger.info(f"Registered action type '{action_type}' ({type(handler).__name__})")
        return handler

    def get_handler(self, action_type: str) -> Optional[ActionHandler]:
        """Look up a handler; None when the type is unknown."""
        with self._lock:
            return self._handlers.get(action_type)

    def has_handler(self, action_type: str) -> bool:
        with self._lock:
            return action_type in self._handlers

    def unregister(self, action_type: str) -> bool:
        """Remove a handler. Returns False if the type was not registered."""
        with self._lock:
            removed = self._handlers.pop(action_type, None)
        if removed is not None:
            logger.info(f"Unregistered action type '{action_type}'")
        return removed is not None

    def list_action_types(self) -> Dict[str, str]:
        """Map of registered action types to their descriptions."""
        with self._lock:
            return {name: handler.description for name, handler in sorted(self._handlers.items())}

    def describe(self, action_type: str) -> Dict[str, Any]:
        """Type, description and JSON schema of a handler's configuration.

        Raises:
            ActionRegistryError: If the type is not registered
        """
        handler = self.get_handler(action_type)
        if handler is None:
            raise ActionRegistryError(
                f"Action type '{action_type}' is not registered",
                action_type=action_type,
                operation="describe",
            )
        return {
            "type": action_type,
            "description": handler.description,
            "config_schema": handler.config_model.model_json_schema(),
        }

    def clear(self) -> None:
        with self._lock:
            self._handlers.clear()


def _format_error(error: Dict[str, Any]) -> str:
    location = ".".join(str(part) for part in error["loc"]) or "config"
    return f"{location}: {error['msg']}"


def _format_errors(exc: ValidationError) -> List[str]:
    return [_format_error(error) for error in exc.errors()]
