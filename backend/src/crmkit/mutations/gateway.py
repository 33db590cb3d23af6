"""Mutation Gateway: the only path through which records are written.

create/update clean the payload (derived display keys and ``id`` are
dropped, booleans coerced, timestamps and author stamped), run the
collection's hooks, write the row and then bring junction rows in line
with any multi-relationship values in the payload. If that fails on
create, the new row and whatever relation rows were written are removed
before the error is raised.

delete_many is two-phase. Every declared dependency table is cleared
first (``foreignKey IN ids``); the target rows are deleted only if all of
those succeed. A failure stops the sequence and is reported on the
returned DeleteResult, naming the table that failed.
"""

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any

from crmkit.auth.principal import Principal
from crmkit.core.types import FieldKind
from crmkit.errors import AuthenticationError, DataSourceError, MutationError
from crmkit.fields.formatters import to_bool
from crmkit.hooks import HookContext, HookDefinition, HookService, Operation, compute_changes
from crmkit.hydration.normalize import normalize_multi_relationship_value
from crmkit.metadata.loader import CollectionDescriptor, FieldDescriptor
from crmkit.metadata.registry import CollectionRegistry
from crmkit.mutations.junctions import sync_children, sync_junction
from crmkit.persistence.source import DataSource, Record, eq_filter, in_filter

logger = logging.getLogger(__name__)

DERIVED_SUFFIXES = ("_label", "_labels", "_details")


@dataclass
class DeleteResult:
    """Outcome of a cascade delete."""

    success: bool
    deleted: int = 0
    error: str | None = None
    failed_table: str | None = None
    warnings: list[str] = field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        data: dict[str, Any] = {"success": self.success, "deleted": self.deleted}
        if self.error:
            data["error"] = self.error
            data["failedTable"] = self.failed_table
        if self.warnings:
            data["warnings"] = self.warnings
        return data


def _utcnow() -> datetime:
    return datetime.now(UTC)


class MutationGateway:
    """Create, update and cascade-delete records of registered collections."""

    def __init__(
        self,
        registry: CollectionRegistry,
        source: DataSource,
        hook_service: HookService | None = None,
        clock: Callable[[], datetime] = _utcnow,
    ):
        self._registry = registry
        self._source = source
        self._hooks = hook_service or HookService()
        self._clock = clock

    # ------------------------------------------------------------------
    # Create / update
    # ------------------------------------------------------------------

    async def create(self, collection: str, partial: Record) -> Record:
        descriptor = self._registry.require(collection)
        table = descriptor.name
        payload, relations = self._prepare_payload(descriptor, partial)

        now = self._clock().isoformat()
        if descriptor.has_field("created_at"):
            payload["created_at"] = now
        if descriptor.has_field("updated_at"):
            payload["updated_at"] = now

        principal = await self._principal()
        if descriptor.has_field("author_id") and "author_id" not in payload:
            if principal is None:
                raise AuthenticationError(
                    f"Creating {descriptor.singular_label} requires an authenticated principal"
                )
            payload["author_id"] = principal.user_id

        context = HookContext(
            collection=descriptor.key,
            operation=Operation.CREATE,
            record=payload,
            principal=principal,
            source=self._source,
        )
        await self._run_before_save(descriptor, context)

        try:
            rows = await self._source.insert(table, [payload])
        except DataSourceError as e:
            raise MutationError("create", table, str(e)) from e
        if not rows:
            raise MutationError("create", table, "the store returned no row")

        record = rows[0]
        try:
            await self._sync_relations(descriptor, record, relations, "create")
        except MutationError:
            await self._undo_create(descriptor, record["id"], relations)
            raise
        logger.info("Created %s %s", descriptor.key, record.get("id"))

        context.record = record
        await self._run_hooks("afterSave", descriptor, context)
        return record

    async def update(self, collection: str, record_id: Any, partial: Record) -> Record:
        """Partial update keyed by id. Concurrent updates are last write wins."""
        descriptor = self._registry.require(collection)
        table = descriptor.name
        payload, relations = self._prepare_payload(descriptor, partial, record_id=record_id)

        if descriptor.has_field("updated_at"):
            payload["updated_at"] = self._clock().isoformat()

        try:
            existing = await self._source.select(table, eq_filter("id", record_id))
        except DataSourceError as e:
            raise MutationError("update", table, str(e)) from e
        if not existing:
            raise MutationError("update", table, f"record {record_id} not found")
        original = existing[0]

        context = HookContext(
            collection=descriptor.key,
            operation=Operation.UPDATE,
            record={**original, **payload},
            original=original,
            changes=compute_changes(payload, original),
            principal=await self._principal(),
            source=self._source,
        )
        result = await self._run_before_save(descriptor, context)
        if result:
            payload.update(result)

        try:
            rows = await self._source.update(table, eq_filter("id", record_id), payload)
        except DataSourceError as e:
            raise MutationError("update", table, str(e)) from e
        if not rows:
            raise MutationError("update", table, f"record {record_id} not found")

        record = rows[0]
        await self._sync_relations(descriptor, record, relations, "update")
        logger.info("Updated %s %s", descriptor.key, record_id)

        context.record = record
        await self._run_hooks("afterSave", descriptor, context)
        return record

    # ------------------------------------------------------------------
    # Delete
    # ------------------------------------------------------------------

    async def delete_many(self, collection: str, ids: list[Any]) -> DeleteResult:
        descriptor = self._registry.require(collection)
        table = descriptor.name
        warnings = [
            f"{dep.table}.{dep.foreign_key} references {descriptor.key} but is not a "
            "declared dependency; its rows were left in place"
            for dep in self._registry.undeclared_dependencies(descriptor.key)
        ]

        if not ids:
            return DeleteResult(success=True, warnings=warnings)

        abort = await self._run_before_delete(descriptor, ids)
        if abort:
            return DeleteResult(success=False, error=abort, failed_table=table, warnings=warnings)

        for dep in descriptor.dependencies:
            try:
                removed = await self._source.delete(dep.table, in_filter(dep.foreign_key, ids))
            except DataSourceError as e:
                logger.error("Cascade delete of %s stopped at %s: %s", descriptor.key, dep.table, e)
                return DeleteResult(
                    success=False,
                    error=f"Failed to delete dependent rows from {dep.table}: {e}",
                    failed_table=dep.table,
                    warnings=warnings,
                )
            logger.debug("Deleted %d rows from %s", removed, dep.table)

        try:
            deleted = await self._source.delete(table, in_filter("id", ids))
        except DataSourceError as e:
            logger.error("Delete of %s failed: %s", descriptor.key, e)
            return DeleteResult(
                success=False,
                error=f"Failed to delete {descriptor.label}: {e}",
                failed_table=table,
                warnings=warnings,
            )

        logger.info("Deleted %d %s record(s)", deleted, descriptor.key)
        return DeleteResult(success=True, deleted=deleted, warnings=warnings)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _prepare_payload(
        self,
        descriptor: CollectionDescriptor,
        partial: Record,
        record_id: Any = None,
    ) -> tuple[Record, dict[str, list[str]]]:
        """Split a form payload into column values and relation selections."""
        payload: Record = {}
        relations: dict[str, list[str]] = {}

        for key, value in partial.items():
            if key == "id":
                continue
            f = descriptor.get_field(key)
            if f is None:
                if key.endswith(DERIVED_SUFFIXES):
                    continue
                payload[key] = value
                continue
            if f.kind is FieldKind.MULTI_RELATIONSHIP:
                # A record never relates to itself
                self_referencing = f.relation and self._table_for(f.relation.table) == descriptor.name
                ids = normalize_multi_relationship_value(
                    value, parent_id=record_id if self_referencing else None
                )
                if f.stored_inline:
                    payload[key] = ids
                else:
                    relations[key] = ids
                continue
            payload[key] = self._coerce(f, value)

        return payload, relations

    def _coerce(self, f: FieldDescriptor, value: Any) -> Any:
        if f.kind is FieldKind.BOOLEAN and value is not None:
            return to_bool(value)
        return value

    async def _sync_relations(
        self,
        descriptor: CollectionDescriptor,
        record: Record,
        relations: dict[str, list[str]],
        operation: str,
    ) -> None:
        for name, ids in relations.items():
            f = descriptor.get_field(name)
            rel = f.relation if f else None
            if rel is None:
                continue
            target = rel.junction_table or self._table_for(rel.table)
            try:
                if rel.junction_table:
                    await sync_junction(self._source, rel, record["id"], ids)
                else:
                    await sync_children(self._source, target, rel, record["id"], ids)
            except DataSourceError as e:
                raise MutationError(operation, target, str(e)) from e
            record.setdefault(name, ids)

    async def _undo_create(
        self, descriptor: CollectionDescriptor, record_id: Any, relations: dict[str, list[str]]
    ) -> None:
        """Remove a created row and any relation rows already written for it."""
        for name in relations:
            f = descriptor.get_field(name)
            rel = f.relation if f else None
            if rel is None or not rel.source_key:
                continue
            owned = eq_filter(rel.source_key, record_id)
            table = rel.junction_table or self._table_for(rel.table)
            try:
                if rel.junction_table:
                    await self._source.delete(table, owned)
                else:
                    await self._source.update(table, owned, {rel.source_key: None})
            except DataSourceError as e:
                logger.error("Rollback of %s %s left rows in %s: %s", descriptor.key, record_id, table, e)

        try:
            await self._source.delete(descriptor.name, eq_filter("id", record_id))
        except DataSourceError as e:
            logger.error("Rollback could not delete %s %s: %s", descriptor.key, record_id, e)
            return
        logger.warning("Rolled back create of %s %s", descriptor.key, record_id)

    def _table_for(self, table: str) -> str:
        target = self._registry.by_table(table)
        return target.name if target else table

    async def _principal(self) -> Principal | None:
        try:
            return await self._source.current_principal()
        except AuthenticationError:
            return None

    async def _run_hooks(
        self, point: str, descriptor: CollectionDescriptor, context: HookContext
    ):
        definitions = [HookDefinition.from_config(h) for h in descriptor.hooks.get(point, ())]
        return await self._hooks.run_hooks(point, definitions, context)

    async def _run_before_save(
        self, descriptor: CollectionDescriptor, context: HookContext
    ) -> Record | None:
        result = await self._run_hooks("beforeSave", descriptor, context)
        if result is None:
            return None
        operation = context.operation.value
        if result.abort:
            raise MutationError(operation, descriptor.name, result.abort)
        return result.update

    async def _run_before_delete(
        self, descriptor: CollectionDescriptor, ids: list[Any]
    ) -> str | None:
        if not descriptor.hooks.get("beforeDelete"):
            return None
        try:
            records = await self._source.select(descriptor.name, in_filter("id", ids))
        except DataSourceError as e:
            return f"Failed to load {descriptor.label} for delete: {e}"

        principal = await self._principal()
        for record in records:
            context = HookContext(
                collection=descriptor.key,
                operation=Operation.DELETE,
                record=record,
                principal=principal,
                source=self._source,
            )
            result = await self._run_hooks("beforeDelete", descriptor, context)
            if result and result.abort:
                return result.abort
        return None
