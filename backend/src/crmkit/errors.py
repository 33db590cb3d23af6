"""Error taxonomy shared by every crmkit component.

Collaborator failures (record store, hydration lookups) are caught at the
boundary of each component and converted into one of these kinds, so the
rendering layer and the HTTP surface never see raw backend exceptions.
"""

from typing import Any


class CrmkitError(Exception):
    """Base exception for crmkit."""

    def to_dict(self) -> dict[str, Any]:
        return {"error": type(self).__name__, "message": str(self)}


class ConfigurationError(CrmkitError):
    """Collection metadata is missing, malformed or inconsistent."""


class UnknownCollectionError(ConfigurationError):
    """A collection key was requested that the registry does not hold."""

    def __init__(self, key: str, available: list[str]):
        self.key = key
        self.available = sorted(available)
        super().__init__(
            f"Unknown collection '{key}'. Available collections: "
            f"{', '.join(self.available) or '(none)'}"
        )

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "UnknownCollection",
            "message": str(self),
            "collection": self.key,
            "availableCollections": self.available,
        }


class DataSourceError(CrmkitError):
    """The record store rejected or failed an operation on a table."""

    def __init__(self, table: str, message: str):
        self.table = table
        super().__init__(f"{table}: {message}")


class HydrationError(CrmkitError):
    """A relation lookup failed while hydrating a record."""

    def __init__(self, field_name: str, message: str):
        self.field_name = field_name
        super().__init__(f"Failed to hydrate '{field_name}': {message}")


class MutationError(CrmkitError):
    """A create, update or delete could not be completed."""

    def __init__(self, operation: str, table: str, message: str):
        self.operation = operation
        self.table = table
        super().__init__(f"Failed to {operation} {table}: {message}")

    def to_dict(self) -> dict[str, Any]:
        return {
            "error": "MutationError",
            "message": str(self),
            "operation": self.operation,
            "table": self.table,
        }


class AuthenticationError(CrmkitError):
    """The current principal could not be resolved."""
