"""DataSource Protocol: the narrow record-store contract.

Every component that reads or writes records goes through this
interface, so any store that can answer these five calls can back the
whole application.

Filters are plain dicts::

    {"operator": "and", "conditions": [
        {"field": "status", "operator": "eq", "value": "draft"},
        {"operator": "or", "conditions": [...]},
    ]}

Supported condition operators: eq, neq, gt, gte, lt, lte, in, notIn,
contains, startsWith, isNull, isNotNull, between.
"""

from typing import Any, Protocol, runtime_checkable

from crmkit.auth.principal import Principal

Record = dict[str, Any]
Filter = dict[str, Any]

CONDITION_OPERATORS = (
    "eq", "neq", "gt", "gte", "lt", "lte", "in", "notIn",
    "contains", "startsWith", "isNull", "isNotNull", "between",
)


@runtime_checkable
class DataSource(Protocol):
    """Interface all record stores must implement."""

    async def select(self, table: str, filter: Filter | None = None) -> list[Record]: ...

    async def insert(self, table: str, rows: list[Record]) -> list[Record]: ...

    async def update(self, table: str, filter: Filter, patch: Record) -> list[Record]: ...

    async def delete(self, table: str, filter: Filter) -> int: ...

    async def current_principal(self) -> Principal: ...


def condition(field: str, operator: str, value: Any = None) -> dict[str, Any]:
    if operator not in CONDITION_OPERATORS:
        raise ValueError(f"Unsupported filter operator: {operator}")
    return {"field": field, "operator": operator, "value": value}


def all_of(*conditions: dict[str, Any]) -> Filter:
    return {"operator": "and", "conditions": list(conditions)}


def eq_filter(field: str, value: Any) -> Filter:
    return all_of(condition(field, "eq", value))


def in_filter(field: str, values: list[Any]) -> Filter:
    return all_of(condition(field, "in", list(values)))
