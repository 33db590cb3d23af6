"""Table view: one row per record, one column per table field."""

import logging
from collections.abc import Mapping
from typing import Any

from crmkit.core.navigation import NavigationIntent
from crmkit.core.types import get_field_type
from crmkit.fields.resolver import FieldTypeResolver, RenderMode
from crmkit.metadata.loader import CollectionDescriptor, FieldDescriptor
from crmkit.mutations.gateway import DeleteResult, MutationGateway
from crmkit.persistence.source import Record
from crmkit.views.context import ModalContext, SelectionContext
from crmkit.views.filters import filter_state
from crmkit.views.types import TableCell, TableColumn, TableRow, TableViewModel
from crmkit.views.visibility import table_columns

logger = logging.getLogger(__name__)


def open_record_intent(
    descriptor: CollectionDescriptor, record_id: Any, open_mode: str = "page"
) -> NavigationIntent:
    return NavigationIntent(
        collection=descriptor.key, record_id=record_id, mode="view", open_mode=open_mode
    )


class TableView:
    """Renders hydrated records and owns the screen's selection and modal."""

    def __init__(
        self,
        descriptor: CollectionDescriptor,
        gateway: MutationGateway | None = None,
        resolver: FieldTypeResolver | None = None,
    ):
        self.descriptor = descriptor
        self._gateway = gateway
        self._resolver = resolver or FieldTypeResolver()
        self.selection = SelectionContext(descriptor.key)
        self.modal = ModalContext(descriptor.key)
        self.columns: list[FieldDescriptor] = table_columns(descriptor)

    def render(
        self, records: list[Record], filter_values: Mapping[str, str] | None = None
    ) -> TableViewModel:
        columns = [
            TableColumn(
                name=f.name,
                label=f.label,
                kind=f.kind.value,
                alignment=get_field_type(f.kind).ui.alignment,
            )
            for f in self.columns
        ]
        rows = [self._render_row(r) for r in records]
        return TableViewModel(
            collection=self.descriptor.key,
            label=self.descriptor.label,
            columns=columns,
            rows=rows,
            filters=filter_state(self.descriptor, filter_values or {}),
        )

    def _render_row(self, record: Record) -> TableRow:
        record_id = record.get("id")
        cells = []
        for f in self.columns:
            display = self._resolver.resolve(f, record.get(f.name), RenderMode.VIEW, record)
            intent = open_record_intent(self.descriptor, record_id, f.open_mode) if f.clickable else None
            cells.append(TableCell(column=f.name, display=display, intent=intent))
        return TableRow(id=record_id, cells=cells, selected=self.selection.is_selected(record_id))

    def open_record(self, record: Record, field_name: str | None = None) -> NavigationIntent:
        """Intent for a clicked cell; modal intents are also opened on this screen."""
        f = self.descriptor.get_field(field_name) if field_name else None
        intent = open_record_intent(
            self.descriptor, record.get("id"), f.open_mode if f else "page"
        )
        if intent.open_mode == "modal":
            self.modal.open(intent)
        return intent

    async def delete_selected(self) -> DeleteResult:
        """Cascade-delete the selected rows. The selection is cleared on success."""
        if self._gateway is None:
            raise RuntimeError("TableView has no mutation gateway")
        ids = self.selection.selected_ids
        if not ids:
            return DeleteResult(success=True)

        result = await self._gateway.delete_many(self.descriptor.key, ids)
        if result.success:
            self.selection.clear()
        else:
            logger.warning("Bulk delete on %s failed: %s", self.descriptor.key, result.error)
        return result

    def unmount(self) -> None:
        self.selection.close()
        self.modal.close()
