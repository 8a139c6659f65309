"""Condition tree evaluation against an execution context.

Evaluation is pure: no I/O, no mutation of the context, and it never raises.
A field that cannot be resolved, or resolves to ``None``, is *missing*:
``exists`` is false for it and every other operator is false as well.
"""

import math
from typing import Any, List, Optional, Sequence

from ..models.core import ConditionLeaf, ConditionNode, ConditionOperator, LogicalOperator
from ..models.execution import ExecutionContext
from .logging import get_logger


logger = get_logger(__name__)

MISSING = object()

_ROOTS = ("entity", "metadata", "user")


def resolve_field(path: str, context: ExecutionContext) -> Any:
    """
    Resolve a dotted path against the context.

    A leading ``entity.``, ``metadata.`` or ``user.`` segment selects that
    root explicitly. Any other path is looked up in ``entity`` first and then
    in ``metadata``.

    Args:
        path: Dotted field path, e.g. ``entity.customer.tier``
        context: Execution context to read from

    Returns:
        The resolved value, or ``MISSING``
    """
    segments = path.split(".")
    roots = {
        "entity": context.entity,
        "metadata": context.metadata,
        "user": context.user,
    }

    if segments[0] in _ROOTS:
        return _walk(roots[segments[0]], segments[1:])

    value = _walk(context.entity, segments)
    if value is MISSING:
        value = _walk(context.metadata, segments)
    return value


def _walk(value: Any, segments: List[str]) -> Any:
    for segment in segments:
        if value is None:
            return MISSING
        if isinstance(value, dict):
            if segment not in value:
                return MISSING
            value = value[segment]
        elif isinstance(value, (list, tuple)) and segment.lstrip("-").isdigit():
            index = int(segment)
            if not -len(value) <= index < len(value):
                return MISSING
            value = value[index]
        else:
            return MISSING
    return MISSING if value is None else value


def to_number(value: Any) -> Optional[float]:
    """Coerce a value to a float, or None when it is not numeric."""
    if isinstance(value, bool):
        return float(value)
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except ValueError:
            return None
    else:
        return None
    return None if math.isnan(number) else number


def _is_sequence(value: Any) -> bool:
    return isinstance(value, (list, tuple, set, frozenset))


def _contains(actual: Any, expected: Any) -> Optional[bool]:
    """Containment test, or None when the resolved side is not a string or sequence."""
    if isinstance(actual, str):
        return isinstance(expected, str) and expected in actual
    if _is_sequence(actual):
        return expected in actual
    return None


def compare(operator: ConditionOperator, actual: Any, expected: Any) -> bool:
    """
    Apply a comparison operator to a resolved (non-missing) value.

    Args:
        operator: The leaf operator
        actual: Value resolved from the context
        expected: The leaf's configured operand

    Returns:
        Result of the comparison; type mismatches compare false
    """
    if operator == ConditionOperator.EXISTS:
        return True
    if operator == ConditionOperator.EQUALS:
        return actual == expected
    if operator == ConditionOperator.NOT_EQUALS:
        return actual != expected

    if operator in (ConditionOperator.GREATER_THAN, ConditionOperator.LESS_THAN,
                    ConditionOperator.GREATER_OR_EQUAL, ConditionOperator.LESS_OR_EQUAL):
        left, right = to_number(actual), to_number(expected)
        if left is None or right is None:
            return False
        if operator == ConditionOperator.GREATER_THAN:
            return left > right
        if operator == ConditionOperator.LESS_THAN:
            return left < right
        if operator == ConditionOperator.GREATER_OR_EQUAL:
            return left >= right
        return left <= right

    if operator == ConditionOperator.CONTAINS:
        return _contains(actual, expected) is True
    if operator == ConditionOperator.NOT_CONTAINS:
        return _contains(actual, expected) is False

    if operator in (ConditionOperator.STARTS_WITH, ConditionOperator.ENDS_WITH):
        if not isinstance(actual, str) or not isinstance(expected, str):
            return False
        if operator == ConditionOperator.STARTS_WITH:
            return actual.startswith(expected)
        return actual.endswith(expected)

    if operator == ConditionOperator.IN:
        return _is_sequence(expected) and actual in expected
    if operator == ConditionOperator.NOT_IN:
        return _is_sequence(expected) and actual not in expected

    logger.warning(f"Unsupported condition operator: {operator}")
    return False


def evaluate_leaf(leaf: ConditionLeaf, context: ExecutionContext) -> bool:
    """Evaluate a single leaf condition."""
    try:
        actual = resolve_field(leaf.field, context)
        if actual is MISSING:
            return False
        return compare(leaf.operator, actual, leaf.value)
    except Exception as e:
        logger.warning(f"Failed to evaluate condition on '{leaf.field}': {e}")
        return False


def evaluate_condition(tree: Optional[ConditionNode], context: ExecutionContext) -> bool:
    """
    Evaluate a condition tree; an absent tree passes.

    AND and OR short-circuit from the first child.
    """
    if tree is None:
        return True
    if isinstance(tree, ConditionLeaf):
        return evaluate_leaf(tree, context)

    if tree.op == LogicalOperator.NOT:
        return not evaluate_condition(tree.children[0], context)
    if tree.op == LogicalOperator.AND:
        return all(evaluate_condition(child, context) for child in tree.children)
    return any(evaluate_condition(child, context) for child in tree.children)


def evaluate_all(leaves: Sequence[ConditionLeaf], context: ExecutionContext) -> bool:
    """True when every leaf passes; used for trigger field matchers."""
    return all(evaluate_leaf(leaf, context) for leaf in leaves)


class ConditionEvaluator:
    """Object wrapper so the engine can take the evaluator as a collaborator."""

    def evaluate(self, tree: Optional[ConditionNode], context: ExecutionContext) -> bool:
        return evaluate_condition(tree, context)
