"""Evaluate showWhen/hideWhen style conditions against a record.

A rule is either a single condition::

    {"field": "status", "operator": "equals", "value": "active"}

or a group combining conditions and nested groups::

    {"operator": "or", "conditions": [...]}

Groups without an operator combine with ``and``.
"""

import logging
from typing import Any

logger = logging.getLogger(__name__)


def _is_blank(value: Any) -> bool:
    return value is None or value == ""


def _number(value: Any) -> float | None:
    try:
        return float(value)
    except (TypeError, ValueError):
        return None


def _compare(left: Any, right: Any, greater: bool) -> bool:
    a, b = _number(left), _number(right)
    if a is None or b is None:
        return False
    return a > b if greater else a < b


def _contains(haystack: Any, needle: Any) -> bool:
    return str(needle).lower() in str(haystack or "").lower()


def evaluate_condition(condition: dict | None, record: dict[str, Any]) -> bool:
    """Evaluate one condition. A missing or field-less condition is true."""
    if not condition or not condition.get("field"):
        return True

    operator = condition.get("operator")
    expected = condition.get("value")
    actual = record.get(condition["field"])

    if operator == "equals":
        return actual == expected
    if operator == "not_equals":
        return actual != expected
    if operator == "in":
        return isinstance(expected, list) and actual in expected
    if operator == "not_in":
        return not isinstance(expected, list) or actual not in expected
    if operator == "greater_than":
        return _compare(actual, expected, greater=True)
    if operator == "less_than":
        return _compare(actual, expected, greater=False)
    if operator == "contains":
        return _contains(actual, expected)
    if operator == "not_contains":
        return not _contains(actual, expected)
    if operator == "exists":
        return not _is_blank(actual)
    if operator == "not_exists":
        return _is_blank(actual)

    logger.warning("Unknown condition operator: %s", operator)
    return True


def evaluate_rule(rule: dict | None, record: dict[str, Any]) -> bool:
    """Evaluate a condition or a (nested) and/or group."""
    if not rule:
        return True
    if "field" in rule:
        return evaluate_condition(rule, record)

    conditions = rule.get("conditions")
    if not isinstance(conditions, list):
        return True

    results = (evaluate_rule(c, record) for c in conditions)
    if rule.get("operator") == "or":
        return any(results)
    return all(results)
