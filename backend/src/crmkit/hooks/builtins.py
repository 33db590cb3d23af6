"""Hooks available to every collection by name."""

import logging

from crmkit.hooks.registry import HookRegistry
from crmkit.hooks.types import HookContext, HookResult

logger = logging.getLogger("crmkit.audit")


async def audit_log(ctx: HookContext) -> HookResult | None:
    """Log who changed what. Use on afterSave or beforeDelete."""
    actor = ctx.principal.user_id if ctx.principal else "anonymous"
    if ctx.changes:
        detail = ", ".join(sorted(ctx.changes))
    else:
        detail = ""
    logger.info(
        "%s %s %s/%s %s",
        actor,
        ctx.operation.value,
        ctx.collection,
        ctx.record.get("id"),
        detail,
    )
    return None


async def strip_whitespace(ctx: HookContext) -> HookResult | None:
    """Trim leading and trailing whitespace from string values before save."""
    update = {
        key: value.strip()
        for key, value in ctx.record.items()
        if isinstance(value, str) and value != value.strip()
    }
    return HookResult(update=update) if update else None


def register_builtin_hooks() -> None:
    """Register framework-provided hooks. Called at application startup."""
    HookRegistry.register("auditLog", audit_log)
    HookRegistry.register("stripWhitespace", strip_whitespace)
