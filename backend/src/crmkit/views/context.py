"""Per-screen context objects.

Each screen creates its own SelectionContext and ModalContext when it
mounts and closes them when it unmounts. Nothing here is module-level
state, so two screens never share a selection or a modal.
"""

import logging
from typing import Any

from crmkit.core.navigation import NavigationIntent
from crmkit.errors import CrmkitError

logger = logging.getLogger(__name__)


class ContextClosedError(CrmkitError):
    """A context was used after its screen unmounted."""


class _ScreenContext:
    def __init__(self, name: str):
        self.name = name
        self.closed = False

    def close(self) -> None:
        self.closed = True

    def _check_open(self) -> None:
        if self.closed:
            raise ContextClosedError(f"{type(self).__name__} for '{self.name}' is closed")


class SelectionContext(_ScreenContext):
    """Row selection for one table screen."""

    def __init__(self, name: str):
        super().__init__(name)
        self._selected: dict[str, Any] = {}

    @property
    def selected_ids(self) -> list[Any]:
        return list(self._selected.values())

    def __len__(self) -> int:
        return len(self._selected)

    def is_selected(self, record_id: Any) -> bool:
        return str(record_id) in self._selected

    def select(self, record_id: Any) -> None:
        self._check_open()
        self._selected[str(record_id)] = record_id

    def deselect(self, record_id: Any) -> None:
        self._check_open()
        self._selected.pop(str(record_id), None)

    def toggle(self, record_id: Any) -> bool:
        """Flip selection for one row. Returns the new selected state."""
        if self.is_selected(record_id):
            self.deselect(record_id)
            return False
        self.select(record_id)
        return True

    def select_all(self, record_ids: list[Any]) -> None:
        self._check_open()
        for record_id in record_ids:
            self._selected[str(record_id)] = record_id

    def clear(self) -> None:
        self._selected.clear()

    def close(self) -> None:
        self.clear()
        super().close()


class ModalContext(_ScreenContext):
    """The record modal (if any) open on one screen."""

    def __init__(self, name: str):
        super().__init__(name)
        self.current: NavigationIntent | None = None

    @property
    def is_open(self) -> bool:
        return self.current is not None

    def open(self, intent: NavigationIntent) -> None:
        self._check_open()
        if self.current is not None:
            logger.debug("Replacing open modal %s with %s", self.current, intent)
        self.current = intent

    def dismiss(self) -> None:
        self.current = None

    def close(self) -> None:
        self.dismiss()
        super().close()
