"""Inline field editing for one record.

Each field moves pristine -> dirty on change and dirty -> saving while its
value is written. Saves on the same session are serialised by a lock, so
a second save starts only after the first has finished and sees its
result. Once the session is unmounted, results that arrive late are
dropped.
"""

import asyncio
import logging
from collections.abc import Callable
from typing import Any

from crmkit.errors import CrmkitError
from crmkit.mutations.gateway import MutationGateway
from crmkit.persistence.source import Record
from crmkit.views.types import FieldState

logger = logging.getLogger(__name__)


class EditSession:
    def __init__(self, collection: str, record: Record, gateway: MutationGateway):
        self.collection = collection
        self.record: Record = dict(record)
        self._gateway = gateway
        self._lock = asyncio.Lock()
        self._pending: dict[str, Any] = {}
        self.states: dict[str, FieldState] = {}
        self.errors: dict[str, str] = {}
        self.mounted = True

    @property
    def record_id(self) -> Any:
        return self.record.get("id")

    def state_of(self, name: str) -> FieldState:
        return self.states.get(name, FieldState.PRISTINE)

    @property
    def is_dirty(self) -> bool:
        return any(s is FieldState.DIRTY for s in self.states.values())

    def change(self, name: str, value: Any) -> None:
        self._pending[name] = value
        self.states[name] = FieldState.DIRTY
        self.errors.pop(name, None)

    def change_handler(self, name: str) -> Callable[[Any], None]:
        """Callback suitable for ``RenderInstruction.on_change``."""
        return lambda value: self.change(name, value)

    async def save(self) -> Record | None:
        """Write all dirty fields. Returns the saved record, or None if nothing ran."""
        async with self._lock:
            if not self.mounted:
                return None
            patch, self._pending = self._pending, {}
            if not patch:
                return None
            for name in patch:
                self.states[name] = FieldState.SAVING

            try:
                saved = await self._gateway.update(self.collection, self.record_id, patch)
            except CrmkitError as e:
                if not self.mounted:
                    return None
                logger.warning("Inline save on %s/%s failed: %s", self.collection, self.record_id, e)
                for name, value in patch.items():
                    # Changes made while the save was in flight take precedence.
                    self._pending.setdefault(name, value)
                    self.states[name] = FieldState.DIRTY
                    self.errors[name] = str(e)
                return None

            if not self.mounted:
                return None
            self.record.update(saved)
            for name in patch:
                if name not in self._pending:
                    self.states[name] = FieldState.PRISTINE
                else:
                    self.states[name] = FieldState.DIRTY
                self.errors.pop(name, None)
            return saved

    def unmount(self) -> None:
        self.mounted = False
        self._pending.clear()
