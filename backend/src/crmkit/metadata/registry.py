"""Read-only registry of collection descriptors."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Iterable

from crmkit.core.types import FieldKind
from crmkit.errors import ConfigurationError, UnknownCollectionError
from crmkit.metadata.loader import (
    CollectionDescriptor,
    DependencyConfig,
    MetadataLoader,
)

logger = logging.getLogger(__name__)


class CollectionRegistry:
    """Maps collection keys to descriptors.

    Built once and never mutated. Relation targets are checked when the
    registry is constructed so a bad reference fails at startup rather
    than on first render.
    """

    def __init__(self, collections: Iterable[CollectionDescriptor]):
        self._collections: dict[str, CollectionDescriptor] = {c.key: c for c in collections}
        self._validate_relations()
        for key in self._collections:
            for dep in self.undeclared_dependencies(key):
                logger.warning(
                    "Collection '%s' does not declare dependency %s.%s; "
                    "deleting its records will leave orphaned rows",
                    key,
                    dep.table,
                    dep.foreign_key,
                )

    @classmethod
    def from_path(cls, metadata_path: Path) -> "CollectionRegistry":
        loader = MetadataLoader(metadata_path)
        loader.load_all()
        registry = cls(loader.collections.values())
        logger.info("Loaded %d collections from %s", len(registry), metadata_path)
        return registry

    def __len__(self) -> int:
        return len(self._collections)

    def __contains__(self, key: object) -> bool:
        return key in self._collections

    def get(self, key: str) -> CollectionDescriptor | None:
        return self._collections.get(key)

    def require(self, key: str) -> CollectionDescriptor:
        """Get a descriptor or raise ``UnknownCollectionError``."""
        descriptor = self._collections.get(key)
        if descriptor is None:
            raise UnknownCollectionError(key, self.keys())
        return descriptor

    def keys(self) -> list[str]:
        return sorted(self._collections)

    def list(self) -> list[CollectionDescriptor]:
        return [self._collections[k] for k in self.keys()]

    def by_table(self, table: str) -> CollectionDescriptor | None:
        """Find the collection stored in ``table``."""
        for descriptor in self._collections.values():
            if descriptor.name == table:
                return descriptor
        return self._collections.get(table)

    def junction_tables(self) -> dict[str, tuple[str, str]]:
        """All declared junction tables with their (sourceKey, targetKey)."""
        junctions: dict[str, tuple[str, str]] = {}
        for descriptor in self._collections.values():
            for f in descriptor.fields:
                rel = f.relation
                if rel and rel.junction_table:
                    junctions[rel.junction_table] = (rel.source_key or "", rel.target_key or "")
        return junctions

    def undeclared_dependencies(self, key: str) -> list[DependencyConfig]:
        """Rows that reference ``key`` but are not cleared on delete.

        Covers both sides of every junction table (the owning collection via
        ``sourceKey`` and the related collection via ``targetKey``),
        one-to-many children that hold ``sourceKey``, and relationship
        fields of other collections whose column holds the id.
        """
        descriptor = self.require(key)
        declared = {(d.table, d.foreign_key) for d in descriptor.dependencies}
        referencing: list[DependencyConfig] = []

        for other in self._collections.values():
            for f in other.fields:
                rel = f.relation
                if rel is None:
                    continue
                if f.kind is FieldKind.RELATIONSHIP:
                    if self._refers_to(rel.table, descriptor):
                        referencing.append(DependencyConfig(other.name, f.name))
                    continue
                if f.kind is not FieldKind.MULTI_RELATIONSHIP:
                    continue
                if rel.junction_table:
                    if other.key == key and rel.source_key:
                        referencing.append(DependencyConfig(rel.junction_table, rel.source_key))
                    if self._refers_to(rel.table, descriptor) and rel.target_key:
                        referencing.append(DependencyConfig(rel.junction_table, rel.target_key))
                elif other.key == key and rel.source_key:
                    referencing.append(DependencyConfig(rel.table, rel.source_key))

        missing: list[DependencyConfig] = []
        for dep in referencing:
            if (dep.table, dep.foreign_key) not in declared and dep not in missing:
                missing.append(dep)
        return missing

    def to_dict(self) -> dict[str, Any]:
        return {key: self._collections[key].to_dict() for key in self.keys()}

    def _refers_to(self, table: str, descriptor: CollectionDescriptor) -> bool:
        return table in (descriptor.key, descriptor.name)

    def _validate_relations(self) -> None:
        known_tables = set(self._collections)
        known_tables.update(c.name for c in self._collections.values())
        junctions = self.junction_tables()

        errors: list[str] = []
        for descriptor in self._collections.values():
            for f in descriptor.fields:
                rel = f.relation
                if f.kind in (FieldKind.RELATIONSHIP, FieldKind.MULTI_RELATIONSHIP) and rel is None:
                    errors.append(f"{descriptor.key}.{f.name}: {f.kind.value} field has no relation")
                    continue
                if rel is None:
                    continue
                if rel.table not in known_tables:
                    errors.append(
                        f"{descriptor.key}.{f.name}: relation table '{rel.table}' "
                        "is not a registered collection"
                    )
                if rel.link_to and rel.link_to not in self._collections:
                    errors.append(
                        f"{descriptor.key}.{f.name}: linkTo '{rel.link_to}' "
                        "is not a registered collection"
                    )
                if rel.junction_table and not (rel.source_key and rel.target_key):
                    errors.append(
                        f"{descriptor.key}.{f.name}: junction table '{rel.junction_table}' "
                        "requires sourceKey and targetKey"
                    )
            for dep in descriptor.dependencies:
                if dep.table not in known_tables and dep.table not in junctions:
                    errors.append(
                        f"{descriptor.key}: dependency table '{dep.table}' is neither a "
                        "collection nor a declared junction table"
                    )

        if errors:
            raise ConfigurationError("Invalid collection metadata:\n  " + "\n  ".join(errors))
