"""Tests for the mutation lifecycle hook system."""

import logging

import pytest

from crmkit.auth.principal import Principal
from crmkit.hooks import (
    HookContext,
    HookDefinition,
    HookRegistry,
    HookResult,
    HookService,
    Operation,
    VALID_HOOK_POINTS,
    compute_changes,
    hook,
    register_builtin_hooks,
)
from crmkit.metadata.loader import HookConfig


# =============================================================================
# Fixtures
# =============================================================================


@pytest.fixture(autouse=True)
def clear_hook_registry():
    """Clear hook registry before and after each test."""
    HookRegistry.clear()
    yield
    HookRegistry.clear()


@pytest.fixture
def hook_service():
    return HookService()


@pytest.fixture
def base_context():
    return HookContext(
        collection="contact",
        operation=Operation.CREATE,
        record={"title": "Ann", "status": "active"},
        principal=Principal(user_id="U001", tenant_id="T001", role="user"),
    )


# =============================================================================
# compute_changes
# =============================================================================


class TestComputeChanges:
    def test_returns_none_for_create(self):
        assert compute_changes({"a": 1}, None) is None

    def test_detects_changed_and_new_fields(self):
        assert compute_changes({"a": 1, "b": 99, "c": 3}, {"a": 1, "b": 2}) == {"b": 99, "c": 3}

    def test_empty_when_no_changes(self):
        record = {"a": 1}
        assert compute_changes(record, record) == {}


# =============================================================================
# HookRegistry
# =============================================================================


class TestHookRegistry:
    def test_register_and_get(self):
        async def my_hook(ctx):
            return None

        HookRegistry.register("myHook", my_hook)
        assert HookRegistry.get("myHook") is my_hook

    def test_register_idempotent(self):
        async def hook_a(ctx):
            return None

        async def hook_b(ctx):
            return None

        HookRegistry.register("same", hook_a)
        HookRegistry.register("same", hook_b)
        assert HookRegistry.get("same") is hook_a

    def test_get_unknown_raises(self):
        with pytest.raises(ValueError, match="not registered"):
            HookRegistry.get("missing")

    def test_decorator_registers(self):
        @hook("decorated")
        async def decorated(ctx):
            return None

        assert HookRegistry.is_registered("decorated")
        assert HookRegistry.list_registered() == ["decorated"]


class TestHookDefinition:
    def test_from_config(self):
        config = HookConfig(name="h", on=("update",), when={"field": "a", "operator": "exists"})
        definition = HookDefinition.from_config(config)
        assert definition.on == [Operation.UPDATE]
        assert definition.when == {"field": "a", "operator": "exists"}

    def test_defaults(self):
        assert HookDefinition(name="h").on == [Operation.CREATE, Operation.UPDATE]


# =============================================================================
# HookService
# =============================================================================


class TestHookService:
    @pytest.mark.asyncio
    async def test_empty_definitions_returns_none(self, hook_service, base_context):
        assert await hook_service.run_hooks("beforeSave", [], base_context) is None

    @pytest.mark.asyncio
    async def test_operation_filtering(self, hook_service, base_context):
        called = []

        @hook("onlyUpdate")
        async def only_update(ctx):
            called.append(ctx.operation)

        definitions = [HookDefinition(name="onlyUpdate", on=[Operation.UPDATE])]
        await hook_service.run_hooks("beforeSave", definitions, base_context)
        assert called == []

    @pytest.mark.asyncio
    async def test_when_condition(self, hook_service, base_context):
        called = []

        @hook("archivedOnly")
        async def archived_only(ctx):
            called.append(ctx.record["status"])

        when = {"field": "status", "operator": "equals", "value": "archived"}
        definitions = [HookDefinition(name="archivedOnly", when=when)]
        await hook_service.run_hooks("beforeSave", definitions, base_context)
        assert called == []

        base_context.record["status"] = "archived"
        await hook_service.run_hooks("beforeSave", definitions, base_context)
        assert called == ["archived"]

    @pytest.mark.asyncio
    async def test_compounding_updates(self, hook_service, base_context):
        @hook("first")
        async def first(ctx):
            return HookResult(update={"score": 1})

        @hook("second")
        async def second(ctx):
            return HookResult(update={"score": ctx.record["score"] + 1, "rank": "b"})

        definitions = [HookDefinition(name="first"), HookDefinition(name="second")]
        result = await hook_service.run_hooks("beforeSave", definitions, base_context)
        assert result.update == {"score": 2, "rank": "b"}
        assert base_context.record["score"] == 2

    @pytest.mark.asyncio
    async def test_abort_stops_execution(self, hook_service, base_context):
        called = []

        @hook("blocker")
        async def blocker(ctx):
            return HookResult(abort="Not allowed")

        @hook("after")
        async def after(ctx):
            called.append(True)

        definitions = [HookDefinition(name="blocker"), HookDefinition(name="after")]
        result = await hook_service.run_hooks("beforeSave", definitions, base_context)
        assert result.abort == "Not allowed"
        assert called == []

    @pytest.mark.asyncio
    async def test_exception_becomes_abort(self, hook_service, base_context):
        @hook("broken")
        async def broken(ctx):
            raise RuntimeError("boom")

        result = await hook_service.run_hooks(
            "beforeSave", [HookDefinition(name="broken")], base_context
        )
        assert result.abort == "Hook 'broken' failed: boom"

    @pytest.mark.asyncio
    async def test_unregistered_hook_skipped(self, hook_service, base_context, caplog):
        result = await hook_service.run_hooks(
            "beforeSave", [HookDefinition(name="ghost")], base_context
        )
        assert result is None
        assert "ghost" in caplog.text

    @pytest.mark.asyncio
    async def test_after_save_failures_are_logged(self, hook_service, base_context, caplog):
        called = []

        @hook("broken")
        async def broken(ctx):
            raise RuntimeError("boom")

        @hook("refuses")
        async def refuses(ctx):
            return HookResult(abort="too late")

        @hook("tracker")
        async def tracker(ctx):
            called.append(True)

        definitions = [
            HookDefinition(name="broken"),
            HookDefinition(name="refuses"),
            HookDefinition(name="tracker"),
        ]
        with caplog.at_level(logging.WARNING):
            result = await hook_service.run_hooks("afterSave", definitions, base_context)
        assert result is None
        assert called == [True]
        assert "boom" in caplog.text
        assert "too late" in caplog.text


# =============================================================================
# Built-in hooks
# =============================================================================


class TestBuiltinHooks:
    def test_registered_by_name(self):
        register_builtin_hooks()
        assert HookRegistry.list_registered() == ["auditLog", "stripWhitespace"]

    @pytest.mark.asyncio
    async def test_strip_whitespace(self, hook_service, base_context):
        register_builtin_hooks()
        base_context.record.update({"title": "  Ann ", "email": "ann@x.test"})
        result = await hook_service.run_hooks(
            "beforeSave", [HookDefinition(name="stripWhitespace")], base_context
        )
        assert result.update == {"title": "Ann"}

    @pytest.mark.asyncio
    async def test_audit_log(self, hook_service, caplog):
        register_builtin_hooks()
        context = HookContext(
            collection="contact",
            operation=Operation.UPDATE,
            record={"id": 4, "title": "Ann"},
            original={"id": 4, "title": "Anne"},
            changes={"title": "Ann"},
            principal=Principal(user_id="U001"),
        )
        with caplog.at_level(logging.INFO, logger="crmkit.audit"):
            await hook_service.run_hooks("afterSave", [HookDefinition(name="auditLog")], context)
        assert "U001 update contact/4 title" in caplog.text


def test_valid_hook_points():
    assert VALID_HOOK_POINTS == ("beforeSave", "afterSave", "beforeDelete")
