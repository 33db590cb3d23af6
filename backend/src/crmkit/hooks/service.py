"""Run a collection's hooks at one lifecycle point.

Hooks run one after another in the order the collection declares them.
``beforeSave`` updates are applied to ``context.record`` as they arrive,
so a later hook sees the earlier hook's output, and are returned merged.
The first abort (or exception) stops the run. ``afterSave`` runs once the
write is committed: nothing it does can undo the save, so its failures
are logged and the run carries on.
"""

import logging
from typing import Any

from crmkit.core.conditions import evaluate_rule
from crmkit.hooks.registry import HookFn, HookRegistry
from crmkit.hooks.types import HookContext, HookDefinition, HookResult

logger = logging.getLogger(__name__)

AFTER_SAVE = "afterSave"


class HookService:
    async def run_hooks(
        self,
        hook_point: str,
        definitions: list[HookDefinition],
        context: HookContext,
    ) -> HookResult | None:
        """Return the merged updates, the aborting result, or None if nothing changed."""
        merged: dict[str, Any] = {}

        for definition in definitions:
            hook_fn = self._resolve(definition, context)
            if hook_fn is None:
                continue

            if hook_point == AFTER_SAVE:
                await self._run_after_save(definition, hook_fn, context)
                continue

            try:
                result = await hook_fn(context)
            except Exception as e:
                logger.warning("%s hook '%s' raised: %s", hook_point, definition.name, e)
                return HookResult(abort=f"Hook '{definition.name}' failed: {e}")

            if result is None:
                continue
            if result.abort:
                return result
            if result.update:
                context.record.update(result.update)
                merged.update(result.update)

        return HookResult(update=merged) if merged else None

    def _resolve(self, definition: HookDefinition, context: HookContext) -> HookFn | None:
        """The hook function, if it applies to this operation and record."""
        if context.operation not in definition.on:
            return None
        if definition.when and not evaluate_rule(definition.when, context.record):
            return None
        if not HookRegistry.is_registered(definition.name):
            logger.warning(
                "Collection '%s' names hook '%s', which is not registered; skipping",
                context.collection,
                definition.name,
            )
            return None
        return HookRegistry.get(definition.name)

    async def _run_after_save(
        self, definition: HookDefinition, hook_fn: HookFn, context: HookContext
    ) -> None:
        try:
            result = await hook_fn(context)
        except Exception as e:
            logger.error("afterSave hook '%s' failed: %s", definition.name, e)
            return
        if result is not None and result.abort:
            logger.warning(
                "afterSave hook '%s' cannot abort a completed save: %s",
                definition.name,
                result.abort,
            )
