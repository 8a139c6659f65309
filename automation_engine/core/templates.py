"""``{{path}}`` placeholder substitution for action configuration."""

import re
from typing import Any

from ..models.execution import ExecutionContext
from .condition_evaluator import MISSING, resolve_field


PLACEHOLDER = re.compile(r"\{\{\s*([\w.\-]+)\s*\}\}")


def render_value(value: Any, context: ExecutionContext) -> Any:
    """
    Substitute placeholders in strings, recursing through lists and dicts.

    A string that is exactly one placeholder is replaced by the resolved
    value itself, keeping its type. Placeholders embedded in longer strings
    are replaced by ``str(value)``. Unresolvable placeholders are left as
    written.
    """
    if isinstance(value, str):
        return _render_string(value, context)
    if isinstance(value, list):
        return [render_value(item, context) for item in value]
    if isinstance(value, dict):
        return {key: render_value(item, context) for key, item in value.items()}
    return value


def _render_string(text: str, context: ExecutionContext) -> Any:
    whole = PLACEHOLDER.fullmatch(text.strip())
    if whole:
        resolved = resolve_field(whole.group(1), context)
        return text if resolved is MISSING else resolved

    def substitute(match):
        resolved = resolve_field(match.group(1), context)
        return match.group(0) if resolved is MISSING else str(resolved)

    return PLACEHOLDER.sub(substitute, text)


def has_placeholders(value: Any) -> bool:
    """True if a config value contains any placeholder at any depth."""
    if isinstance(value, str):
        return PLACEHOLDER.search(value) is not None
    if isinstance(value, list):
        return any(has_placeholders(item) for item in value)
    if isinstance(value, dict):
        return any(has_placeholders(item) for item in value.values())
    return False
