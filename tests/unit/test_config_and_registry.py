"""
Unit tests for GatewayConfig, operation descriptors, the registry and the
input schemas
"""

import pytest
from pydantic import ValidationError

from mcp_gateway.config import GatewayConfig
from mcp_gateway.descriptors import AffectedScope, OperationDescriptor, OperationKind, OperationRegistry
from mcp_gateway.schemas import DeleteInput, ListInput, UpdateInput


async def noop_handler(ctx, params, scope):
    return {}


async def noop_scope(ctx, params):
    return AffectedScope(count=0)


class TestGatewayConfig:
    """Defaults, validation and environment precedence"""

    def test_defaults(self):
        config = GatewayConfig()
        assert config.read_only is False
        assert config.max_page_size == 100
        assert config.default_page_size == 25
        assert config.max_batch_size == 100
        assert len(config.cursor_secret) == 32

    def test_from_environment(self, monkeypatch):
        monkeypatch.setenv("MCP_GATEWAY_READ_ONLY", "true")
        monkeypatch.setenv("MCP_GATEWAY_MAX_BATCH_SIZE", "10")
        monkeypatch.setenv("MCP_GATEWAY_RATE_LIMIT", "")
        monkeypatch.setenv("MCP_GATEWAY_CURSOR_SECRET", "s3cret")
        monkeypatch.setenv("MCP_GATEWAY_MAX_ATTEMPTS", "5")

        config = GatewayConfig.from_environment()

        assert config.read_only is True
        assert config.max_batch_size == 10
        assert config.rate_limit is None
        assert config.cursor_secret == b"s3cret"
        assert config.resilience.max_attempts == 5

    def test_to_dict_redacts_secret(self):
        data = GatewayConfig(cursor_secret=b"hunter2").to_dict()
        assert data["cursor_secret"] == "***"
        assert "hunter2" not in str(data)

    @pytest.mark.parametrize("overrides", [
        {"default_page_size": 0},
        {"default_page_size": 200},
        {"max_batch_size": 0},
        {"batch_concurrency": 0},
        {"auto_safe_threshold": -1},
    ])
    def test_invalid_values(self, overrides):
        with pytest.raises(ValueError):
            GatewayConfig(**overrides)


class TestOperationDescriptor:
    """Declarative descriptor rules"""

    def test_defaults_by_kind(self):
        read = OperationDescriptor("items_list", OperationKind.READ, ListInput, noop_handler)
        delete = OperationDescriptor("items_delete", OperationKind.DELETE, DeleteInput, noop_handler,
                                     resolve_scope=noop_scope)
        assert read.mutating is False
        assert read.idempotent is True
        assert read.dangerous is False
        assert delete.mutating is True
        assert delete.dangerous is True
        assert delete.resource is None

    def test_resource_is_explicit(self):
        descriptor = OperationDescriptor("user_notes_delete", OperationKind.DELETE, DeleteInput, noop_handler,
                                         resolve_scope=noop_scope, resource="user_notes")
        assert descriptor.resource == "user_notes"
        assert descriptor.to_dict()["resource"] == "user_notes"

    @pytest.mark.parametrize("name", ["list", "Items_list", "items-list", "_items_list", "items__list"])
    def test_name_must_follow_resource_action(self, name):
        with pytest.raises(ValueError):
            OperationDescriptor(name, OperationKind.READ, ListInput, noop_handler)

    def test_mutating_needs_scope_resolver(self):
        with pytest.raises(ValueError):
            OperationDescriptor("items_delete", OperationKind.DELETE, DeleteInput, noop_handler)

    def test_schema_uses_camel_case(self):
        descriptor = OperationDescriptor("items_list", OperationKind.READ, ListInput, noop_handler)
        properties = descriptor.to_dict()["inputSchema"]["properties"]
        assert {"pageSize", "pageToken", "returnOnlyIds", "compact", "fields", "filter"} <= set(properties)


class TestOperationRegistry:
    """Registration, freezing and lookup"""

    def setup_method(self):
        self.registry = OperationRegistry()

        @self.registry.operation("items_list", OperationKind.READ, ListInput)
        async def list_items(ctx, params, scope):
            """List items"""
            return {}

    def test_decorator_registers_with_docstring(self):
        descriptor = self.registry.get("items_list")
        assert descriptor.description == "List items"
        assert "items_list" in self.registry
        assert len(self.registry) == 1

    def test_duplicate_rejected(self):
        with pytest.raises(ValueError):
            self.registry.register(OperationDescriptor("items_list", OperationKind.READ, ListInput, noop_handler))

    def test_frozen_rejects_registration(self):
        self.registry.freeze()
        with pytest.raises(RuntimeError):
            self.registry.register(OperationDescriptor("items_get", OperationKind.READ, ListInput, noop_handler))

    def test_suggest(self):
        assert self.registry.suggest("items_lst") == ["items_list"]
        assert self.registry.suggest("zzz") == []


class TestSchemas:
    """Cross-cutting input models"""

    def test_aliases_and_names(self):
        params = ListInput.model_validate({"pageSize": 5, "returnOnlyIds": True})
        assert params.page_size == 5
        assert params.shaping().return_only_ids is True
        assert ListInput(page_size=3).page_size == 3

    def test_unknown_argument_rejected(self):
        with pytest.raises(ValidationError):
            ListInput.model_validate({"pagesize": 5})

    def test_ids_required_and_not_blank(self):
        with pytest.raises(ValidationError):
            DeleteInput.model_validate({"ids": []})
        with pytest.raises(ValidationError):
            DeleteInput.model_validate({"ids": ["1", "  "]})

    def test_update_needs_changes(self):
        with pytest.raises(ValidationError):
            UpdateInput.model_validate({"ids": ["1"], "changes": {}})
        params = UpdateInput.model_validate({"ids": ["1"], "changes": {"status": "done"}, "dryRun": True})
        assert params.dry_run is True
