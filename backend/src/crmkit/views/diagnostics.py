"""Inline diagnostic for a collection key the registry does not hold."""

from dataclasses import dataclass
from typing import Any

from crmkit.errors import UnknownCollectionError
from crmkit.metadata.registry import CollectionRegistry


@dataclass
class UnknownCollectionDiagnostic:
    key: str
    available: list[str]

    @property
    def message(self) -> str:
        return str(UnknownCollectionError(self.key, self.available))

    def to_dict(self) -> dict[str, Any]:
        return UnknownCollectionError(self.key, self.available).to_dict()


def diagnose_unknown(registry: CollectionRegistry, key: str) -> UnknownCollectionDiagnostic | None:
    """Diagnostic for ``key``, or None when the collection exists."""
    if registry.get(key) is not None:
        return None
    return UnknownCollectionDiagnostic(key=key, available=registry.keys())
