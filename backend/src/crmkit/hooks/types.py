"""Hook system types for crmkit.

Defines the core data structures for the mutation lifecycle hook system:
- HookDefinition: metadata describing when/how a hook should run
- HookContext: runtime state passed to hook functions
- HookResult: return value from hook functions
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from crmkit.auth.principal import Principal
from crmkit.metadata.loader import HookConfig


class Operation(str, Enum):
    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"


@dataclass
class HookDefinition:
    """Definition of a hook from collection metadata.

    Attributes:
        name: Registered hook name (e.g., "computeInvoiceTotal")
        on: Operations this hook applies to (create, update, delete)
        when: Optional condition rule evaluated against the record
        description: Human-readable description
    """

    name: str
    on: list[Operation] = field(
        default_factory=lambda: [Operation.CREATE, Operation.UPDATE]
    )
    when: dict | None = None
    description: str = ""

    @classmethod
    def from_config(cls, config: HookConfig) -> "HookDefinition":
        return cls(
            name=config.name,
            on=[Operation(op) for op in config.on],
            when=config.when,
            description=config.description,
        )


@dataclass
class HookContext:
    """Runtime context passed to every hook function.

    Attributes:
        collection: Key of the collection being mutated
        operation: The current operation (create, update, delete)
        record: Current record state; for delete, the record being removed
        original: Stored record before an update, None for create
        changes: Changed fields (update only, None for create)
        principal: The acting principal, if resolved
        source: The record store, for hooks that need to read or write
    """

    collection: str
    operation: Operation
    record: dict[str, Any]
    original: dict[str, Any] | None = None
    changes: dict[str, Any] | None = None
    principal: Principal | None = None
    source: Any = None  # DataSource (avoids circular import)


@dataclass
class HookResult:
    """Return value from beforeSave and beforeDelete hooks.

    Attributes:
        update: Fields to merge into the record
        abort: Error message that cancels the mutation
    """

    update: dict[str, Any] | None = None
    abort: str | None = None


def compute_changes(
    record: dict[str, Any], original: dict[str, Any] | None
) -> dict[str, Any] | None:
    """Compute a diff of changed fields between record and original.

    Returns None if original is None (create operations).
    Returns a dict of {field: new_value} for fields that differ.
    """
    if original is None:
        return None

    return {
        key: value
        for key, value in record.items()
        if key not in original or original[key] != value
    }
