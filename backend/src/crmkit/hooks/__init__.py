"""crmkit mutation lifecycle hook system.

Provides extension points for logic that runs at specific points
in the record create/update/delete lifecycle:
- beforeSave: Before the write (can modify record, can abort)
- afterSave: After the write (side effects only, failures are logged)
- beforeDelete: Before the cascade delete (can abort)

Usage:
    from crmkit.hooks import hook, HookContext, HookResult

    @hook("computeInvoiceTotal")
    async def compute_invoice_total(ctx: HookContext) -> HookResult:
        total = sum(item["amount"] for item in ctx.record.get("line_items", []))
        return HookResult(update={"amount": total})
"""

from crmkit.hooks.builtins import register_builtin_hooks
from crmkit.hooks.registry import HookRegistry, hook
from crmkit.hooks.service import HookService
from crmkit.hooks.types import (
    HookContext,
    HookDefinition,
    HookResult,
    Operation,
    compute_changes,
)

VALID_HOOK_POINTS = ("beforeSave", "afterSave", "beforeDelete")

__all__ = [
    "HookContext",
    "HookDefinition",
    "HookRegistry",
    "HookResult",
    "HookService",
    "Operation",
    "VALID_HOOK_POINTS",
    "compute_changes",
    "hook",
    "register_builtin_hooks",
]
