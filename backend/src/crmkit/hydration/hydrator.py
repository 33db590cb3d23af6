"""Record Hydrator: attach display data for related records.

Hydration is additive. The hydrated record is a copy of the input with
extra keys (``<field>_label``, ``<field>_labels``, ``<field>_details``)
added where they are absent; no key already present on the input is
removed or overwritten. A failed lookup degrades the one field to an
empty label and logs a warning.
"""

import json
import logging
from collections.abc import Awaitable, Callable
from typing import Any

from crmkit.core.types import FieldKind
from crmkit.errors import HydrationError
from crmkit.hydration.normalize import normalize_multi_relationship_value
from crmkit.metadata.loader import CollectionDescriptor, FieldDescriptor
from crmkit.metadata.registry import CollectionRegistry
from crmkit.persistence.source import DataSource, Record, eq_filter, in_filter

logger = logging.getLogger(__name__)


def _attach(hydrated: Record, key: str, value: Any) -> None:
    hydrated.setdefault(key, value)


def _is_empty(value: Any) -> bool:
    return value is None or value == ""


def label_of(row: Record, label_field: str) -> str:
    label = row.get(label_field)
    if label is None or label == "":
        return f"ID: {row.get('id')}"
    return str(label)


class _LookupCache:
    """Related rows fetched during one hydration call, keyed by table and str(id)."""

    def __init__(self) -> None:
        self._rows: dict[str, dict[str, Record | None]] = {}

    def put(self, table: str, rows: list[Record]) -> None:
        bucket = self._rows.setdefault(table, {})
        for row in rows:
            bucket[str(row.get("id"))] = row

    async def fetch(self, source: DataSource, table: str, ids: list[str]) -> list[Record]:
        """Rows for ``ids`` in the order given; unknown ids are skipped."""
        bucket = self._rows.setdefault(table, {})
        missing = [i for i in dict.fromkeys(ids) if i not in bucket]
        if missing:
            for row in await source.select(table, in_filter("id", missing)):
                bucket[str(row.get("id"))] = row
            for i in missing:
                bucket.setdefault(i, None)
        return [row for row in (bucket.get(i) for i in ids) if row is not None]


class RecordHydrator:
    """Adds related-record labels and details to records."""

    def __init__(self, source: DataSource, registry: CollectionRegistry | None = None):
        self._source = source
        self._registry = registry
        self._handlers: dict[
            FieldKind,
            Callable[[FieldDescriptor, Record, CollectionDescriptor, Record, _LookupCache], Awaitable[None]],
        ] = {
            FieldKind.RELATIONSHIP: self._hydrate_relationship,
            FieldKind.MEDIA: self._hydrate_media,
            FieldKind.MULTI_RELATIONSHIP: self._hydrate_multi_relationship,
            FieldKind.REPEATER: self._hydrate_repeater,
            FieldKind.STATUS: self._hydrate_status,
        }

    async def hydrate(self, record: Record, descriptor: CollectionDescriptor) -> Record:
        """Return a hydrated copy of ``record``."""
        hydrated = await self.hydrate_many([record], descriptor)
        return hydrated[0]

    async def hydrate_many(
        self, records: list[Record], descriptor: CollectionDescriptor
    ) -> list[Record]:
        """Hydrate a page of records, batching single-relation lookups per field."""
        cache = _LookupCache()
        failed: dict[str, Exception] = {}

        for field in descriptor.fields_of_kind(FieldKind.RELATIONSHIP, FieldKind.MEDIA):
            if field.relation is None:
                continue
            ids = [
                str(r[field.name])
                for r in records
                if not _is_empty(r.get(field.name)) and self._embedded(field, r) is None
            ]
            if not ids:
                continue
            try:
                await cache.fetch(self._source, self._table_for(field.relation.table), ids)
            except Exception as e:
                failed[field.name] = e

        return [await self._hydrate_one(r, descriptor, cache, failed) for r in records]

    async def _hydrate_one(
        self,
        record: Record,
        descriptor: CollectionDescriptor,
        cache: _LookupCache,
        failed: dict[str, Exception],
    ) -> Record:
        hydrated = dict(record)
        for field in descriptor.fields:
            handler = self._handlers.get(field.kind)
            if handler is None:
                continue
            try:
                if field.name in failed and self._embedded(field, record) is None:
                    raise failed[field.name]
                await handler(field, record, descriptor, hydrated, cache)
            except Exception as e:
                error = HydrationError(field.name, str(e))
                logger.warning("%s.%s: %s", descriptor.key, field.name, error)
                self._degrade(field, hydrated)
        return hydrated

    def _degrade(self, field: FieldDescriptor, hydrated: Record) -> None:
        if field.kind is FieldKind.MULTI_RELATIONSHIP:
            _attach(hydrated, f"{field.name}_labels", [])
            _attach(hydrated, f"{field.name}_details", [])
        elif field.kind is FieldKind.REPEATER:
            _attach(hydrated, f"{field.name}_details", [])
        else:
            _attach(hydrated, f"{field.name}_label", None)
            if field.kind is not FieldKind.STATUS:
                _attach(hydrated, f"{field.name}_details", None)

    def _table_for(self, table: str) -> str:
        if self._registry is not None:
            target = self._registry.by_table(table)
            if target is not None:
                return target.name
        return table

    def _embedded(self, field: FieldDescriptor, record: Record) -> Record | None:
        """Related row already nested in the record, if the store returned one."""
        nested = record.get(f"{field.name}_details")
        if isinstance(nested, dict):
            return nested
        if field.relation:
            nested = record.get(field.relation.table)
            if isinstance(nested, dict):
                return nested
        return None

    # ── Handlers ──

    async def _hydrate_relationship(self, field, record, descriptor, hydrated, cache) -> None:
        value = record.get(field.name)
        if _is_empty(value) or field.relation is None:
            return

        details = self._embedded(field, record)
        if details is None:
            rows = await cache.fetch(self._source, self._table_for(field.relation.table), [str(value)])
            details = rows[0] if rows else None

        _attach(hydrated, f"{field.name}_details", details)
        _attach(
            hydrated,
            f"{field.name}_label",
            label_of(details, field.relation.label_field) if details else None,
        )

    async def _hydrate_media(self, field, record, descriptor, hydrated, cache) -> None:
        value = record.get(field.name)
        if _is_empty(value) or field.relation is None:
            return

        details = self._embedded(field, record)
        if details is None:
            rows = await cache.fetch(self._source, self._table_for(field.relation.table), [str(value)])
            details = rows[0] if rows else None

        _attach(hydrated, f"{field.name}_details", details)
        label = None
        if details:
            label = details.get(field.relation.label_field) or details.get("url")
        _attach(hydrated, f"{field.name}_label", label)

    async def _hydrate_multi_relationship(self, field, record, descriptor, hydrated, cache) -> None:
        rel = field.relation
        if rel is None:
            return
        table = self._table_for(rel.table)
        record_id = record.get("id")
        parent_id = record_id if table == descriptor.name else None

        ids = normalize_multi_relationship_value(record.get(field.name), parent_id=parent_id)
        if not ids and record_id is not None:
            if rel.junction_table and rel.source_key and rel.target_key:
                rows = await self._source.select(rel.junction_table, eq_filter(rel.source_key, record_id))
                ids = [str(r[rel.target_key]) for r in rows if r.get(rel.target_key) is not None]
                _attach(hydrated, field.name, ids)
            elif rel.source_key:
                children = await self._source.select(table, eq_filter(rel.source_key, record_id))
                cache.put(table, children)
                ids = [str(c["id"]) for c in children]
                _attach(hydrated, field.name, ids)

        details = await cache.fetch(self._source, table, ids) if ids else []
        _attach(hydrated, f"{field.name}_details", details)
        _attach(hydrated, f"{field.name}_labels", [label_of(d, rel.label_field) for d in details])

    async def _hydrate_repeater(self, field, record, descriptor, hydrated, cache) -> None:
        items = record.get(field.name)
        if isinstance(items, str):
            items = json.loads(items) if items.strip().startswith("[") else []
        if not isinstance(items, list):
            items = []

        details = []
        for i, item in enumerate(items):
            default_label = f"{field.label} {i + 1}"
            if isinstance(item, dict):
                label = item.get(field.label_field) if field.label_field else item.get("label")
                details.append({**item, "label": str(label) if label else default_label})
            else:
                details.append({"value": item, "label": default_label})
        _attach(hydrated, f"{field.name}_details", details)

    async def _hydrate_status(self, field, record, descriptor, hydrated, cache) -> None:
        value = record.get(field.name)
        if _is_empty(value):
            return
        _attach(hydrated, f"{field.name}_label", field.option_label(value) or str(value))
