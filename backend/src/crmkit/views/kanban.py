"""Kanban board: records grouped into columns by a status field."""

import logging
from typing import Any

from crmkit.errors import ConfigurationError
from crmkit.hydration.hydrator import label_of
from crmkit.metadata.loader import CollectionDescriptor, FieldDescriptor
from crmkit.mutations.gateway import MutationGateway
from crmkit.persistence.source import Record
from crmkit.views.table import open_record_intent
from crmkit.views.types import KanbanCard, KanbanColumn

logger = logging.getLogger(__name__)


def kanban_field(descriptor: CollectionDescriptor, group_by: str | None = None) -> FieldDescriptor:
    """The field a board groups on: ``group_by`` or the ``views.kanban.groupBy`` config."""
    name = group_by or (descriptor.views.get("kanban") or {}).get("groupBy")
    if not name:
        raise ConfigurationError(f"Collection '{descriptor.key}' has no kanban view configured")
    f = descriptor.get_field(name)
    if f is None:
        raise ConfigurationError(f"Collection '{descriptor.key}' has no field '{name}' to group by")
    return f


def build_kanban(
    descriptor: CollectionDescriptor,
    records: list[Record],
    group_by: str | None = None,
) -> list[KanbanColumn]:
    """Declared options come first, in order, even when empty.

    Values outside the options get one trailing column each in the order
    they are first seen; records with no value go into a final column
    whose value is None.
    """
    f = kanban_field(descriptor, group_by)
    columns: dict[str, KanbanColumn] = {}
    for option in f.options:
        columns[str(option["value"])] = KanbanColumn(value=option["value"], label=option["label"])

    empty: KanbanColumn | None = None
    for record in records:
        value = record.get(f.name)
        card = KanbanCard(
            id=record.get("id"),
            title=label_of(record, descriptor.label_field),
            intent=open_record_intent(descriptor, record.get("id"), f.open_mode),
        )
        if value is None or value == "":
            if empty is None:
                empty = KanbanColumn(value=None, label=f"No {f.label}", declared=False)
            empty.cards.append(card)
            continue
        column = columns.get(str(value))
        if column is None:
            logger.debug("%s.%s value %r is not a declared option", descriptor.key, f.name, value)
            column = columns[str(value)] = KanbanColumn(value=value, label=str(value), declared=False)
        column.cards.append(card)

    result = list(columns.values())
    if empty is not None:
        result.append(empty)
    return result


async def move_card(
    gateway: MutationGateway,
    descriptor: CollectionDescriptor,
    record_id: Any,
    value: Any,
    group_by: str | None = None,
) -> Record:
    """Move a card to another column by updating its status field."""
    f = kanban_field(descriptor, group_by)
    return await gateway.update(descriptor.key, record_id, {f.name: value})
