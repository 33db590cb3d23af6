"""View layer - table, detail, kanban, calendar and quick view renderers."""

from crmkit.views.calendar import build_calendar
from crmkit.views.context import ContextClosedError, ModalContext, SelectionContext
from crmkit.views.detail import DetailScreen, group_fields, render_detail
from crmkit.views.diagnostics import UnknownCollectionDiagnostic, diagnose_unknown
from crmkit.views.filters import (
    ActiveFilter,
    active_filters,
    build_record_filter,
    filter_state,
    sort_records,
)
from crmkit.views.kanban import build_kanban, move_card
from crmkit.views.quickview import build_quick_view
from crmkit.views.session import EditSession
from crmkit.views.table import TableView, open_record_intent
from crmkit.views.types import FieldState, ScreenState, ScreenStateError
from crmkit.views.visibility import is_field_visible, is_included_in_view, visible_fields

__all__ = [
    "ActiveFilter",
    "ContextClosedError",
    "DetailScreen",
    "EditSession",
    "FieldState",
    "ModalContext",
    "ScreenState",
    "ScreenStateError",
    "SelectionContext",
    "TableView",
    "UnknownCollectionDiagnostic",
    "active_filters",
    "build_calendar",
    "build_kanban",
    "build_quick_view",
    "build_record_filter",
    "diagnose_unknown",
    "filter_state",
    "group_fields",
    "is_field_visible",
    "is_included_in_view",
    "move_card",
    "open_record_intent",
    "render_detail",
    "sort_records",
    "visible_fields",
]
