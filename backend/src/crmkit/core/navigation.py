"""Opaque navigation intents handed to the host router."""

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class NavigationIntent:
    """Request to open a record.

    The host maps intents to URLs or modals; crmkit never builds routes.

    Attributes:
        collection: Collection key of the target record
        record_id: Target record id, None to open the create form
        mode: "view" | "edit" | "create"
        open_mode: "page" | "modal"
    """

    collection: str
    record_id: Any = None
    mode: str = "view"
    open_mode: str = "page"

    def to_dict(self) -> dict[str, Any]:
        return {
            "collection": self.collection,
            "recordId": self.record_id,
            "mode": self.mode,
            "openMode": self.open_mode,
        }
