"""Detail and create views plus the per-screen state machine.

Screen lifecycle::

    LOADING -> LOADED -> (EDITING | CREATING) -> SAVING -> LOADED

ERROR is reachable from every transition that touches the store.
``retry()`` re-runs the operation that failed and ``dismiss_error()``
returns to the state the screen was in before it, draft intact.
"""

import logging
from collections.abc import Awaitable, Callable
from typing import Any

from crmkit.errors import CrmkitError, DataSourceError
from crmkit.fields.resolver import FieldTypeResolver, RenderMode
from crmkit.hydration.hydrator import RecordHydrator
from crmkit.metadata.loader import CollectionDescriptor, FieldDescriptor
from crmkit.metadata.registry import CollectionRegistry
from crmkit.mutations.gateway import MutationGateway
from crmkit.persistence.source import DataSource, Record, eq_filter
from crmkit.views.context import ModalContext
from crmkit.views.diagnostics import UnknownCollectionDiagnostic, diagnose_unknown
from crmkit.views.types import (
    DEFAULT_GROUP,
    DEFAULT_TAB,
    DetailViewModel,
    FieldGroup,
    ScreenState,
    ScreenStateError,
    TabSection,
)
from crmkit.views.visibility import visible_fields

logger = logging.getLogger(__name__)

_TRANSITIONS: dict[ScreenState, set[ScreenState]] = {
    ScreenState.LOADING: {ScreenState.LOADED, ScreenState.CREATING, ScreenState.ERROR},
    ScreenState.LOADED: {ScreenState.LOADING, ScreenState.EDITING, ScreenState.CREATING},
    ScreenState.EDITING: {ScreenState.SAVING, ScreenState.LOADED},
    ScreenState.CREATING: {ScreenState.SAVING, ScreenState.LOADED, ScreenState.LOADING},
    ScreenState.SAVING: {ScreenState.LOADED, ScreenState.ERROR},
    ScreenState.ERROR: {
        ScreenState.LOADING,
        ScreenState.SAVING,
        ScreenState.LOADED,
        ScreenState.EDITING,
        ScreenState.CREATING,
    },
}

_CONTEXT_FOR_MODE = {
    RenderMode.VIEW: "detail",
    RenderMode.EDIT: "edit",
    RenderMode.CREATE: "create",
}


def group_fields(fields: list[FieldDescriptor]) -> list[tuple[str, list[tuple[str, list[FieldDescriptor]]]]]:
    """Group fields by tab, then by group, keeping first-appearance order.

    Fields without a tab land in "General"; fields without a group in "Fields".
    """
    tabs: dict[str, dict[str, list[FieldDescriptor]]] = {}
    for f in fields:
        groups = tabs.setdefault(f.tab or DEFAULT_TAB, {})
        groups.setdefault(f.group or DEFAULT_GROUP, []).append(f)
    return [(tab, list(groups.items())) for tab, groups in tabs.items()]


def render_detail(
    descriptor: CollectionDescriptor,
    record: Record,
    mode: RenderMode,
    resolver: FieldTypeResolver | None = None,
    on_change: Callable[[str], Callable[[Any], Any]] | None = None,
) -> DetailViewModel:
    """One editor (or display) per visible field, grouped by tab then group.

    ``on_change`` builds the change callback for a field name; it is only
    used in edit and create mode.
    """
    resolver = resolver or FieldTypeResolver()
    fields = visible_fields(descriptor, _CONTEXT_FOR_MODE[mode], record)

    tabs = []
    for tab_name, groups in group_fields(fields):
        section = TabSection(name=tab_name)
        for group_name, group_fields_ in groups:
            rendered = [
                resolver.resolve(
                    f,
                    record.get(f.name),
                    mode,
                    record,
                    on_change(f.name) if on_change and mode is not RenderMode.VIEW else None,
                )
                for f in group_fields_
            ]
            section.groups.append(FieldGroup(name=group_name, fields=rendered))
        tabs.append(section)

    title = record.get(descriptor.label_field)
    if not title:
        title = f"New {descriptor.singular_label}" if mode is RenderMode.CREATE else descriptor.singular_label
    return DetailViewModel(
        collection=descriptor.key,
        title=str(title),
        mode=mode.value,
        record_id=record.get("id"),
        tabs=tabs,
    )


class DetailScreen:
    """State machine behind one detail/create screen."""

    def __init__(
        self,
        collection: str,
        registry: CollectionRegistry,
        source: DataSource,
        gateway: MutationGateway,
        hydrator: RecordHydrator | None = None,
        resolver: FieldTypeResolver | None = None,
    ):
        self.collection = collection
        self.descriptor: CollectionDescriptor | None = registry.get(collection)
        self.diagnostic: UnknownCollectionDiagnostic | None = diagnose_unknown(registry, collection)
        self._source = source
        self._gateway = gateway
        self._hydrator = hydrator or RecordHydrator(source, registry)
        self._resolver = resolver or FieldTypeResolver(registry)
        self.modal = ModalContext(collection)

        self.state = ScreenState.LOADING
        self.history: list[ScreenState] = [ScreenState.LOADING]
        self.record: Record | None = None
        self.draft: Record = {}
        self.error: str | None = None
        self.mounted = True

        self._resume_state: ScreenState | None = None
        self._failed_op: Callable[[], Awaitable[None]] | None = None

        if self.diagnostic is not None:
            self.error = self.diagnostic.message
            self._transition(ScreenState.ERROR)

    # ── Transitions ──

    def _transition(self, target: ScreenState) -> None:
        if target not in _TRANSITIONS[self.state]:
            raise ScreenStateError(self.state, target)
        self.state = target
        self.history.append(target)

    def _require_descriptor(self) -> CollectionDescriptor:
        if self.descriptor is None:
            raise ScreenStateError(self.state, ScreenState.LOADING)
        return self.descriptor

    def _fail(self, message: str, retry: Callable[[], Awaitable[None]]) -> None:
        self.error = message
        self._failed_op = retry
        self._transition(ScreenState.ERROR)

    # ── Loading ──

    async def load(self, record_id: Any) -> None:
        descriptor = self._require_descriptor()
        if self.state is not ScreenState.LOADING:
            self._resume_state = self.state
            self._transition(ScreenState.LOADING)
        else:
            self._resume_state = None

        try:
            rows = await self._source.select(descriptor.name, eq_filter("id", record_id))
            if not rows:
                raise DataSourceError(descriptor.name, f"record {record_id} not found")
            hydrated = await self._hydrator.hydrate(rows[0], descriptor)
        except CrmkitError as e:
            if self.mounted:
                self._fail(str(e), lambda: self.load(record_id))
            return

        if not self.mounted:
            return
        self.record = hydrated
        self.error = None
        self._transition(ScreenState.LOADED)

    # ── Editing ──

    def begin_create(self, initial: Record | None = None) -> None:
        self._require_descriptor()
        self.draft = dict(initial or {})
        self._transition(ScreenState.CREATING)

    def begin_edit(self) -> None:
        self.draft = {}
        self._transition(ScreenState.EDITING)

    def set_field(self, name: str, value: Any) -> None:
        if self.state not in (ScreenState.EDITING, ScreenState.CREATING):
            raise ScreenStateError(self.state, ScreenState.EDITING)
        self.draft[name] = value

    def change_handler(self, name: str) -> Callable[[Any], None]:
        return lambda value: self.set_field(name, value)

    def cancel(self) -> None:
        self.draft = {}
        if self.record is None and self.state is ScreenState.CREATING:
            self._transition(ScreenState.LOADING)
        else:
            self._transition(ScreenState.LOADED)

    async def save(self) -> None:
        descriptor = self._require_descriptor()
        if self.state not in (ScreenState.EDITING, ScreenState.CREATING):
            raise ScreenStateError(self.state, ScreenState.SAVING)
        self._resume_state = self.state
        await self._save(descriptor)

    async def _save(self, descriptor: CollectionDescriptor) -> None:
        creating = self._resume_state is ScreenState.CREATING
        self._transition(ScreenState.SAVING)
        try:
            if creating:
                saved = await self._gateway.create(descriptor.key, dict(self.draft))
            elif self.record is None:
                raise DataSourceError(descriptor.name, "no loaded record to update")
            else:
                saved = await self._gateway.update(descriptor.key, self.record["id"], dict(self.draft))
            hydrated = await self._hydrator.hydrate(saved, descriptor)
        except CrmkitError as e:
            if self.mounted:
                logger.warning("Save on %s failed: %s", descriptor.key, e)
                self._fail(str(e), lambda: self._save(descriptor))
            return

        if not self.mounted:
            return
        self.record = hydrated
        self.draft = {}
        self.error = None
        self._transition(ScreenState.LOADED)

    # ── Errors ──

    async def retry(self) -> None:
        if self.state is not ScreenState.ERROR or self._failed_op is None:
            raise ScreenStateError(self.state, ScreenState.LOADING)
        op, self._failed_op = self._failed_op, None
        await op()

    def dismiss_error(self) -> None:
        """Return to the state before the failed operation, keeping the draft."""
        if self.state is not ScreenState.ERROR:
            raise ScreenStateError(self.state, ScreenState.LOADED)
        target = self._resume_state or ScreenState.LOADING
        if target is ScreenState.LOADING and self.record is not None:
            target = ScreenState.LOADED
        self.error = None
        self._failed_op = None
        self._transition(target)

    # ── Rendering ──

    @property
    def mode(self) -> RenderMode:
        if self.state is ScreenState.CREATING or (
            self.state in (ScreenState.SAVING, ScreenState.ERROR)
            and self._resume_state is ScreenState.CREATING
        ):
            return RenderMode.CREATE
        if self.state is ScreenState.EDITING or (
            self.state in (ScreenState.SAVING, ScreenState.ERROR)
            and self._resume_state is ScreenState.EDITING
        ):
            return RenderMode.EDIT
        return RenderMode.VIEW

    def render(self) -> DetailViewModel | UnknownCollectionDiagnostic:
        if self.diagnostic is not None:
            return self.diagnostic
        record = {**(self.record or {}), **self.draft}
        return render_detail(
            self._require_descriptor(), record, self.mode, self._resolver, self.change_handler
        )

    def unmount(self) -> None:
        """Discard in-flight results and close the screen's contexts."""
        self.mounted = False
        self.modal.close()
