"""Named hook functions referenced from a collection's ``hooks`` block."""

from collections.abc import Awaitable, Callable

from crmkit.hooks.types import HookContext, HookResult

HookFn = Callable[[HookContext], Awaitable[HookResult | None]]


class HookRegistry:
    """Process-wide table of hook name -> async function.

    Collections name hooks in YAML; the functions themselves are
    registered in code, usually with ``@hook`` at import time::

        @hook("stampOwner")
        async def stamp_owner(ctx: HookContext) -> HookResult:
            return HookResult(update={"owner_id": ctx.principal.user_id})
    """

    _hooks: dict[str, HookFn] = {}

    @classmethod
    def register(cls, name: str, hook_fn: HookFn) -> None:
        # First registration wins; modules may be imported more than once
        cls._hooks.setdefault(name, hook_fn)

    @classmethod
    def get(cls, name: str) -> HookFn:
        try:
            return cls._hooks[name]
        except KeyError:
            raise ValueError(
                f"Hook '{name}' is not registered; known hooks: "
                f"{', '.join(cls.list_registered()) or '(none)'}"
            ) from None

    @classmethod
    def is_registered(cls, name: str) -> bool:
        return name in cls._hooks

    @classmethod
    def list_registered(cls) -> list[str]:
        return sorted(cls._hooks)

    @classmethod
    def clear(cls) -> None:
        cls._hooks.clear()


def hook(name: str) -> Callable[[HookFn], HookFn]:
    """Register the decorated coroutine function under ``name``."""

    def decorator(fn: HookFn) -> HookFn:
        HookRegistry.register(name, fn)
        return fn

    return decorator
