"""View model types."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from crmkit.core.navigation import NavigationIntent
from crmkit.errors import CrmkitError
from crmkit.fields.resolver import RenderInstruction

DEFAULT_TAB = "General"
DEFAULT_GROUP = "Fields"


class ScreenState(str, Enum):
    LOADING = "loading"
    LOADED = "loaded"
    EDITING = "editing"
    CREATING = "creating"
    SAVING = "saving"
    ERROR = "error"


class FieldState(str, Enum):
    PRISTINE = "pristine"
    DIRTY = "dirty"
    SAVING = "saving"


class ScreenStateError(CrmkitError):
    """A screen was asked to make a transition its current state forbids."""

    def __init__(self, current: ScreenState, target: ScreenState):
        self.current = current
        self.target = target
        super().__init__(f"Cannot go from {current.value} to {target.value}")


@dataclass
class TableColumn:
    name: str
    label: str
    kind: str
    alignment: str = "left"

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "label": self.label, "kind": self.kind, "alignment": self.alignment}


@dataclass
class TableCell:
    column: str
    display: RenderInstruction
    intent: NavigationIntent | None = None  # Set on clickable cells

    def to_dict(self) -> dict[str, Any]:
        data = self.display.to_dict()
        data["column"] = self.column
        if self.intent:
            data["open"] = self.intent.to_dict()
        return data


@dataclass
class TableRow:
    id: Any
    cells: list[TableCell]
    selected: bool = False

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "selected": self.selected,
            "cells": [c.to_dict() for c in self.cells],
        }


@dataclass
class TableViewModel:
    collection: str
    label: str
    columns: list[TableColumn]
    rows: list[TableRow]
    filters: list[dict[str, Any]] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "label": self.label,
            "columns": [c.to_dict() for c in self.columns],
            "rows": [r.to_dict() for r in self.rows],
            "filters": self.filters,
        }


@dataclass
class FieldGroup:
    name: str
    fields: list[RenderInstruction] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "fields": [f.to_dict() for f in self.fields]}


@dataclass
class TabSection:
    name: str
    groups: list[FieldGroup] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return {"name": self.name, "groups": [g.to_dict() for g in self.groups]}


@dataclass
class DetailViewModel:
    collection: str
    title: str
    mode: str
    record_id: Any
    tabs: list[TabSection]

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "title": self.title,
            "mode": self.mode,
            "recordId": self.record_id,
            "tabs": [t.to_dict() for t in self.tabs],
        }


@dataclass
class KanbanCard:
    id: Any
    title: str
    intent: NavigationIntent

    def to_dict(self) -> dict[str, Any]:
        return {"id": self.id, "title": self.title, "open": self.intent.to_dict()}


@dataclass
class KanbanColumn:
    value: Any
    label: str
    cards: list[KanbanCard] = field(default_factory=list)
    declared: bool = True  # False for values outside the field's options

    def to_dict(self) -> dict[str, Any]:
        return {
            "value": self.value,
            "label": self.label,
            "declared": self.declared,
            "cards": [c.to_dict() for c in self.cards],
        }


@dataclass
class CalendarEvent:
    id: Any
    title: str
    start: str
    end: str | None
    all_day: bool
    intent: NavigationIntent

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "title": self.title,
            "start": self.start,
            "end": self.end,
            "allDay": self.all_day,
            "open": self.intent.to_dict(),
        }


@dataclass
class QuickViewCard:
    collection: str
    record_id: Any
    title: str
    subtitle: str | None
    image_url: str | None
    fields: list[RenderInstruction]
    intent: NavigationIntent

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "recordId": self.record_id,
            "title": self.title,
            "subtitle": self.subtitle,
            "imageUrl": self.image_url,
            "fields": [f.to_dict() for f in self.fields],
            "open": self.intent.to_dict(),
        }
