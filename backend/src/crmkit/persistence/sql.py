"""SQL record store built on SQLAlchemy Core.

Tables are derived from the collection registry: one table per
collection (integer ``id`` primary key plus one column per stored field)
and one table per declared junction table (``id``, ``sourceKey``,
``targetKey``). Multi-relationship fields backed by a junction table or a
child table have no column of their own.

All methods are ``async`` to satisfy the DataSource contract; the
underlying engine is synchronous and each call runs in its own
transaction.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from typing import Any

from sqlalchemy import (
    JSON,
    Boolean,
    Column,
    Float,
    Integer,
    MetaData,
    Table,
    Text,
    and_,
    create_engine,
    delete,
    insert,
    or_,
    select,
    update,
)
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import StaticPool

from crmkit.auth.principal import Principal, get_current_principal
from crmkit.core.types import FieldKind, get_storage_type
from crmkit.errors import DataSourceError
from crmkit.metadata.registry import CollectionRegistry
from crmkit.persistence.source import Filter, Record

logger = logging.getLogger(__name__)

_COLUMN_TYPES = {
    "TEXT": Text,
    "INTEGER": Integer,
    "REAL": Float,
    "BOOLEAN": Boolean,
    "JSON": JSON,
}


def _create_engine(url: str) -> Engine:
    if url in ("sqlite://", "sqlite:///", "sqlite:///:memory:"):
        # One shared connection, otherwise every checkout sees an empty database
        return create_engine(
            "sqlite://",
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    return create_engine(url)


def _coerce(column: Column, value: Any) -> Any:
    """Ids travel as strings through hydration and junction sync."""
    if isinstance(column.type, Integer) and isinstance(value, str):
        text = value.strip()
        if text.lstrip("-").isdigit():
            return int(text)
    return value


class SqlDataSource:
    """DataSource over any SQLAlchemy-supported database."""

    def __init__(
        self,
        url: str,
        registry: CollectionRegistry,
        principal_provider: Callable[[], Principal] = get_current_principal,
    ):
        self.url = url
        self._registry = registry
        self._principal_provider = principal_provider
        self._engine = _create_engine(url)
        self._metadata = MetaData()
        self._tables: dict[str, Table] = {}
        self._define_tables()

    # ------------------------------------------------------------------
    # Schema
    # ------------------------------------------------------------------

    def _define_tables(self) -> None:
        specs: dict[str, dict[str, type]] = {}

        for descriptor in self._registry.list():
            columns = specs.setdefault(descriptor.name, {})
            for f in descriptor.fields:
                if f.name == "id" or not f.stored_inline:
                    continue
                columns[f.name] = _COLUMN_TYPES.get(get_storage_type(f.kind), Text)

        for descriptor in self._registry.list():
            for f in descriptor.fields_of_kind(FieldKind.MULTI_RELATIONSHIP):
                rel = f.relation
                if rel is None or rel.junction_table or not rel.source_key:
                    continue
                child = self._registry.by_table(rel.table)
                child_table = child.name if child else rel.table
                specs.setdefault(child_table, {}).setdefault(rel.source_key, Integer)

        for junction, (source_key, target_key) in self._registry.junction_tables().items():
            columns = specs.setdefault(junction, {})
            columns.setdefault(source_key, Integer)
            columns.setdefault(target_key, Integer)

        for name, columns in specs.items():
            self._tables[name] = Table(
                name,
                self._metadata,
                Column("id", Integer, primary_key=True, autoincrement=True),
                *(Column(col, col_type) for col, col_type in columns.items()),
            )

    def initialize(self) -> None:
        """Create all tables that don't exist yet."""
        self._metadata.create_all(self._engine)
        logger.info("Initialized %d tables at %s", len(self._tables), self._engine.url)

    def close(self) -> None:
        self._engine.dispose()

    @property
    def tables(self) -> list[str]:
        return sorted(self._tables)

    def _table(self, name: str) -> Table:
        table = self._tables.get(name)
        if table is None:
            raise DataSourceError(name, "unknown table")
        return table

    # ------------------------------------------------------------------
    # DataSource API
    # ------------------------------------------------------------------

    async def select(self, table: str, filter: Filter | None = None) -> list[Record]:
        t = self._table(table)
        stmt = select(t).order_by(t.c.id)
        clause = self._build_filter(t, filter)
        if clause is not None:
            stmt = stmt.where(clause)

        try:
            with self._engine.connect() as conn:
                return [dict(row._mapping) for row in conn.execute(stmt)]
        except SQLAlchemyError as e:
            raise DataSourceError(table, str(e)) from e

    async def insert(self, table: str, rows: list[Record]) -> list[Record]:
        t = self._table(table)
        created: list[Record] = []
        try:
            with self._engine.begin() as conn:
                for row in rows:
                    result = conn.execute(insert(t).values(**self._known_columns(t, row)))
                    pk = result.inserted_primary_key[0]
                    stored = conn.execute(select(t).where(t.c.id == pk)).one()
                    created.append(dict(stored._mapping))
        except SQLAlchemyError as e:
            raise DataSourceError(table, str(e)) from e
        return created

    async def update(self, table: str, filter: Filter, patch: Record) -> list[Record]:
        t = self._table(table)
        clause = self._build_filter(t, filter)
        if clause is None:
            raise DataSourceError(table, "refusing to update without a filter")

        values = self._known_columns(t, patch)
        values.pop("id", None)
        try:
            with self._engine.begin() as conn:
                ids = [row.id for row in conn.execute(select(t.c.id).where(clause))]
                if not ids:
                    return []
                if values:
                    conn.execute(update(t).where(t.c.id.in_(ids)).values(**values))
                rows = conn.execute(select(t).where(t.c.id.in_(ids)).order_by(t.c.id))
                return [dict(row._mapping) for row in rows]
        except SQLAlchemyError as e:
            raise DataSourceError(table, str(e)) from e

    async def delete(self, table: str, filter: Filter) -> int:
        t = self._table(table)
        clause = self._build_filter(t, filter)
        if clause is None:
            raise DataSourceError(table, "refusing to delete without a filter")

        try:
            with self._engine.begin() as conn:
                result = conn.execute(delete(t).where(clause))
                return result.rowcount
        except SQLAlchemyError as e:
            raise DataSourceError(table, str(e)) from e

    async def current_principal(self) -> Principal:
        return self._principal_provider()

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _known_columns(self, t: Table, row: Record) -> Record:
        unknown = [k for k in row if k not in t.c]
        if unknown:
            logger.debug("Ignoring unknown columns for %s: %s", t.name, unknown)
        return {k: _coerce(t.c[k], v) for k, v in row.items() if k in t.c}

    def _build_filter(self, t: Table, group: Filter | None) -> Any:
        if not group:
            return None
        if "field" in group:
            return self._build_condition(t, group)

        conditions = group.get("conditions") or []
        clauses = [c for c in (self._build_filter(t, cond) for cond in conditions) if c is not None]
        if not clauses:
            return None
        if group.get("operator", "and") == "or":
            return or_(*clauses)
        return and_(*clauses)

    def _build_condition(self, t: Table, cond: dict) -> Any:
        """Build a SQLAlchemy clause from a filter condition dict."""
        name = cond["field"]
        if name not in t.c:
            raise DataSourceError(t.name, f"unknown column '{name}'")
        column = t.c[name]
        op = cond["operator"]
        value = cond.get("value")
        if isinstance(value, (list, tuple)):
            value = [_coerce(column, v) for v in value]
        else:
            value = _coerce(column, value)

        if op == "eq":
            return column == value
        elif op == "neq":
            return column != value
        elif op == "gt":
            return column > value
        elif op == "gte":
            return column >= value
        elif op == "lt":
            return column < value
        elif op == "lte":
            return column <= value
        elif op == "in":
            return column.in_(list(value or []))
        elif op == "notIn":
            return column.not_in(list(value or []))
        elif op == "contains":
            return column.contains(value)
        elif op == "startsWith":
            return column.startswith(value)
        elif op == "isNull":
            return column.is_(None)
        elif op == "isNotNull":
            return column.is_not(None)
        elif op == "between":
            return column.between(value[0], value[1])

        raise DataSourceError(t.name, f"unsupported filter operator '{op}'")
