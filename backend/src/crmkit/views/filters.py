"""List filters and sorting for the table view.

A collection declares which fields may be filtered. Incoming values are
matched against those declarations only; anything else is ignored.
``text`` filters narrow by substring, ``select`` and ``tab`` by exact value.
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

from crmkit.errors import ConfigurationError
from crmkit.metadata.loader import CollectionDescriptor, FilterConfig
from crmkit.persistence.source import Filter, Record, all_of, condition

logger = logging.getLogger(__name__)

FILTER_OPERATORS = {"text": "contains", "select": "eq", "tab": "eq"}
SORT_DIRECTIONS = ("asc", "desc")


@dataclass(frozen=True)
class ActiveFilter:
    config: FilterConfig
    value: str

    def to_dict(self) -> dict[str, Any]:
        return {**self.config.to_dict(), "value": self.value}


def active_filters(
    descriptor: CollectionDescriptor, values: Mapping[str, str]
) -> list[ActiveFilter]:
    """Declared filters that have a non-empty value, in declaration order."""
    active = []
    for config in descriptor.filters:
        value = values.get(config.field)
        if value is None or str(value).strip() == "":
            continue
        active.append(ActiveFilter(config=config, value=str(value).strip()))
    return active


def build_record_filter(
    descriptor: CollectionDescriptor, values: Mapping[str, str]
) -> Filter | None:
    """Store filter for the active filters, or None when nothing narrows the list."""
    active = active_filters(descriptor, values)
    if not active:
        return None
    return all_of(
        *(condition(a.config.field, FILTER_OPERATORS[a.config.type], a.value) for a in active)
    )


def filter_state(
    descriptor: CollectionDescriptor, values: Mapping[str, str]
) -> list[dict[str, Any]]:
    """Every declared filter with its current value (None when unset)."""
    current = {a.config.field: a.value for a in active_filters(descriptor, values)}
    return [{**f.to_dict(), "value": current.get(f.field)} for f in descriptor.filters]


def sort_records(
    descriptor: CollectionDescriptor,
    records: list[Record],
    sort: str | None,
    direction: str = "asc",
) -> list[Record]:
    """Records ordered by one field. Empty values go last in either direction."""
    if not sort:
        return records
    if not descriptor.has_field(sort) and sort != "id":
        raise ConfigurationError(f"Cannot sort '{descriptor.key}' by unknown field '{sort}'")
    if direction not in SORT_DIRECTIONS:
        raise ConfigurationError(f"Invalid sort direction '{direction}'")

    present = [r for r in records if r.get(sort) is not None]
    missing = [r for r in records if r.get(sort) is None]
    present.sort(key=lambda r: _sort_key(r[sort]), reverse=direction == "desc")
    return present + missing


def _sort_key(value: Any) -> tuple[int, Any]:
    if isinstance(value, bool):
        return (0, int(value))
    if isinstance(value, (int, float)):
        return (0, value)
    return (1, str(value).lower())
