"""Field Type Resolver: map (field, value, mode) to a render instruction.

The resolver is pure. It never touches the record store; in edit and
create mode the caller's ``on_change`` callback is handed back on the
instruction and the caller persists through the Mutation Gateway.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from crmkit.core.navigation import NavigationIntent
from crmkit.core.types import FieldKind, get_field_type
from crmkit.fields.formatters import (
    PLACEHOLDER,
    FormatterRegistry,
    format_boolean,
    format_currency,
    format_date,
    format_timestamp,
    strip_tags,
)
from crmkit.hydration.normalize import normalize_multi_relationship_value
from crmkit.metadata.loader import FieldDescriptor
from crmkit.metadata.registry import CollectionRegistry

logger = logging.getLogger(__name__)


class RenderMode(str, Enum):
    VIEW = "view"
    EDIT = "edit"
    CREATE = "create"


@dataclass
class RenderItem:
    """One entry of a multi-valued display (tags, repeater rows)."""

    label: str
    id: Any = None
    intent: NavigationIntent | None = None


@dataclass
class RenderInstruction:
    """What to show for one field.

    View mode fills ``text`` (and ``href``/``intent``/``items`` where the
    kind links somewhere). Edit and create mode fill ``component``,
    ``value`` and ``on_change``.
    """

    field_name: str
    kind: FieldKind
    mode: RenderMode
    text: str | None = None
    href: str | None = None
    intent: NavigationIntent | None = None
    items: list[RenderItem] = field(default_factory=list)
    component: str | None = None
    value: Any = None
    on_change: Callable[[Any], Any] | None = None
    options: tuple[dict, ...] = ()
    editable: bool = False
    is_placeholder: bool = False

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {
            "field": self.field_name,
            "kind": self.kind.value,
            "mode": self.mode.value,
            "text": self.text,
        }
        if self.href:
            data["href"] = self.href
        if self.intent:
            data["intent"] = self.intent.to_dict()
        if self.items:
            data["items"] = [
                {
                    "id": item.id,
                    "label": item.label,
                    "intent": item.intent.to_dict() if item.intent else None,
                }
                for item in self.items
            ]
        if self.mode is not RenderMode.VIEW:
            data["component"] = self.component
            data["value"] = self.value
            data["editable"] = self.editable
            if self.options:
                data["options"] = list(self.options)
        return data


def is_empty(value: Any) -> bool:
    return value is None or value == "" or value == [] or value == {}


class FieldTypeResolver:
    """Dispatches on ``FieldKind`` to produce a ``RenderInstruction``.

    With a registry, relation links name the collection stored in the
    related table rather than the table itself.
    """

    def __init__(self, registry: CollectionRegistry | None = None) -> None:
        self._registry = registry
        self._view_renderers: dict[
            FieldKind, Callable[[FieldDescriptor, Any, dict, RenderInstruction], None]
        ] = {
            FieldKind.TEXT: self._view_text,
            FieldKind.BOOLEAN: self._view_boolean,
            FieldKind.DATE: self._view_date,
            FieldKind.TIMESTAMP: self._view_timestamp,
            FieldKind.CURRENCY: self._view_currency,
            FieldKind.STATUS: self._view_status,
            FieldKind.RELATIONSHIP: self._view_relationship,
            FieldKind.MULTI_RELATIONSHIP: self._view_multi_relationship,
            FieldKind.REPEATER: self._view_repeater,
            FieldKind.MEDIA: self._view_media,
            FieldKind.RICH_TEXT: self._view_rich_text,
            FieldKind.COLOR: self._view_text,
            FieldKind.LINK: self._view_link,
            FieldKind.TIMEZONE: self._view_text,
            FieldKind.UNKNOWN: self._view_text,
        }

    def resolve(
        self,
        field: FieldDescriptor,
        value: Any,
        mode: RenderMode | str,
        record: dict[str, Any] | None = None,
        on_change: Callable[[Any], Any] | None = None,
    ) -> RenderInstruction:
        mode = RenderMode(mode)
        record = record or {}
        instruction = RenderInstruction(field_name=field.name, kind=field.kind, mode=mode)

        if mode is RenderMode.VIEW:
            self._resolve_view(field, value, record, instruction)
        else:
            self._resolve_edit(field, value, on_change, instruction)

        return instruction

    def _resolve_view(
        self,
        field: FieldDescriptor,
        value: Any,
        record: dict[str, Any],
        instruction: RenderInstruction,
    ) -> None:
        # Junction-backed values live only in the hydrated keys
        if is_empty(value) and field.kind is FieldKind.MULTI_RELATIONSHIP:
            if record.get(f"{field.name}_labels"):
                value = record.get(f"{field.name}_details") or record[f"{field.name}_labels"]

        formatted = self._apply_format(field, value)
        if is_empty(value):
            instruction.text = PLACEHOLDER if formatted is None else formatted
            instruction.is_placeholder = instruction.text == PLACEHOLDER
            return

        renderer = self._view_renderers.get(field.kind, self._view_text)
        renderer(field, value, record, instruction)

        if formatted is not None:
            instruction.text = formatted

    def _resolve_edit(
        self,
        field: FieldDescriptor,
        value: Any,
        on_change: Callable[[Any], Any] | None,
        instruction: RenderInstruction,
    ) -> None:
        instruction.component = get_field_type(field.kind).ui.edit_component
        instruction.value = value
        instruction.on_change = on_change
        instruction.options = field.options
        instruction.editable = field.editable
        if field.kind is FieldKind.MULTI_RELATIONSHIP:
            instruction.value = normalize_multi_relationship_value(value)
        instruction.text = self._apply_format(field, value)

    def _apply_format(self, field: FieldDescriptor, value: Any) -> str | None:
        if not field.format:
            return None
        try:
            fn = FormatterRegistry.get(field.format)
        except ValueError:
            logger.warning(
                "Field '%s' references unregistered formatter '%s'", field.name, field.format
            )
            return None
        return fn(value)

    # ── View renderers ──

    def _view_text(self, field, value, record, instruction) -> None:
        instruction.text = str(value)

    def _view_boolean(self, field, value, record, instruction) -> None:
        instruction.text = format_boolean(value)

    def _view_date(self, field, value, record, instruction) -> None:
        instruction.text = format_date(value)

    def _view_timestamp(self, field, value, record, instruction) -> None:
        instruction.text = format_timestamp(value)

    def _view_currency(self, field, value, record, instruction) -> None:
        instruction.text = format_currency(value)

    def _view_status(self, field, value, record, instruction) -> None:
        instruction.text = field.option_label(value) or str(value).capitalize()

    def _view_rich_text(self, field, value, record, instruction) -> None:
        instruction.text = strip_tags(value)

    def _view_link(self, field, value, record, instruction) -> None:
        instruction.href = str(value)
        instruction.text = field.display_label or str(value)

    def _view_relationship(self, field, value, record, instruction) -> None:
        instruction.text = record.get(f"{field.name}_label") or f"ID: {value}"
        instruction.intent = self._intent(field, value)

    def _view_multi_relationship(self, field, value, record, instruction) -> None:
        details = record.get(f"{field.name}_details")
        labels = record.get(f"{field.name}_labels")
        if isinstance(details, list) and details and isinstance(details[0], dict):
            label_field = field.relation.label_field if field.relation else "title"
            items = [
                RenderItem(
                    id=d.get("id"),
                    label=str(d.get(label_field) or d.get("label") or f"ID: {d.get('id')}"),
                    intent=self._intent(field, d.get("id")),
                )
                for d in details
            ]
        elif labels:
            items = [RenderItem(label=str(label)) for label in labels]
        else:
            items = [
                RenderItem(id=i, label=f"ID: {i}", intent=self._intent(field, i))
                for i in normalize_multi_relationship_value(value)
            ]
        instruction.items = items
        instruction.text = ", ".join(item.label for item in items) or PLACEHOLDER
        instruction.is_placeholder = not items

    def _view_repeater(self, field, value, record, instruction) -> None:
        details = record.get(f"{field.name}_details")
        rows = details if isinstance(details, list) else (value if isinstance(value, list) else [])
        items = []
        for i, row in enumerate(rows):
            label = row.get("label") if isinstance(row, dict) else None
            items.append(RenderItem(label=str(label or f"{field.label} {i + 1}")))
        instruction.items = items
        instruction.text = ", ".join(item.label for item in items) or PLACEHOLDER
        instruction.is_placeholder = not items

    def _view_media(self, field, value, record, instruction) -> None:
        details = record.get(f"{field.name}_details")
        url = None
        if isinstance(details, dict):
            url = details.get("url") or details.get("src")
        elif isinstance(value, str) and value.startswith(("http://", "https://", "/")):
            url = value
        instruction.href = url
        instruction.text = record.get(f"{field.name}_label") or url or f"ID: {value}"

    def _intent(self, field: FieldDescriptor, record_id: Any) -> NavigationIntent | None:
        if field.relation is None or record_id in (None, ""):
            return None
        return NavigationIntent(
            collection=field.relation.link_to or self._collection_for(field.relation.table),
            record_id=record_id,
            mode="view",
            open_mode=field.open_mode,
        )

    def _collection_for(self, table: str) -> str:
        if self._registry is not None:
            descriptor = self._registry.by_table(table)
            if descriptor is not None:
                return descriptor.key
        return table
