"""
Unit tests for the in-memory resource adapter and the standard operation set
"""

import pytest

from mcp_gateway.adapters import InMemoryAdapter, matches
from mcp_gateway.descriptors import OperationKind, OperationRegistry
from mcp_gateway.infrastructure.error_handling import NotFoundError, ValidationFailedError
from mcp_gateway.operations import register_resource_operations


class TestMatches:
    def test_equality_and_any_of(self):
        resource = {"status": "open", "owner": "ana"}
        assert matches(resource, {})
        assert matches(resource, {"status": "open"})
        assert matches(resource, {"status": ["done", "open"]})
        assert not matches(resource, {"status": "done"})
        assert not matches(resource, {"missing": "x"})


class TestInMemoryAdapter:
    """CRUD semantics of the demo adapter"""

    @pytest.mark.asyncio
    async def test_list_slices_in_insertion_order(self, adapter):
        page = await adapter.list({}, offset=1, limit=2)
        assert [r["id"] for r in page] == ["2", "3"]

    @pytest.mark.asyncio
    async def test_get_returns_copy(self, adapter):
        item = await adapter.get("1")
        item["title"] = "changed"
        assert (await adapter.get("1"))["title"] == "Item 1"

    @pytest.mark.asyncio
    async def test_get_missing(self, adapter):
        with pytest.raises(NotFoundError) as exc_info:
            await adapter.get("nope")
        assert "items_list" in exc_info.value.suggestion

    @pytest.mark.asyncio
    async def test_create_generates_id(self):
        adapter = InMemoryAdapter("notes", id_factory=lambda: "generated")
        created = await adapter.create({"title": "t"})
        assert created["id"] == "generated"
        assert "createdAt" in created
        assert "generated" in adapter

    @pytest.mark.asyncio
    async def test_create_duplicate_rejected(self, adapter):
        with pytest.raises(ValidationFailedError):
            await adapter.create({"id": "1"})

    @pytest.mark.asyncio
    async def test_update_cannot_change_id(self, adapter):
        with pytest.raises(ValidationFailedError):
            await adapter.update("1", {"id": "9"})
        updated = await adapter.update("1", {"status": "done", "id": "1"})
        assert updated["status"] == "done"

    @pytest.mark.asyncio
    async def test_delete_and_count(self, adapter):
        await adapter.delete("1")
        assert "1" not in adapter
        assert await adapter.count({"status": "archived"}) == 2
        with pytest.raises(NotFoundError):
            await adapter.delete("1")


class TestStandardOperations:
    """register_resource_operations"""

    def test_registers_six_operations(self, adapter):
        registry = OperationRegistry()
        descriptors = register_resource_operations(registry, "items", adapter)

        kinds = {d.name: d.kind for d in descriptors}
        assert kinds == {
            "items_list": OperationKind.READ,
            "items_get": OperationKind.READ,
            "items_create": OperationKind.WRITE,
            "items_update": OperationKind.WRITE,
            "items_delete": OperationKind.DELETE,
            "items_delete_matching": OperationKind.DELETE,
        }
        assert registry.get("items_update").idempotent is True
        assert registry.get("items_create").idempotent is False

    def test_subset(self, adapter):
        registry = OperationRegistry()
        register_resource_operations(registry, "items", adapter, include=["list", "get"])
        assert registry.names() == ["items_get", "items_list"]

    def test_unknown_action(self, adapter):
        with pytest.raises(ValueError):
            register_resource_operations(OperationRegistry(), "items", adapter, include=["purge"])

    def test_two_resources_share_a_registry(self, adapter):
        registry = OperationRegistry()
        register_resource_operations(registry, "items", adapter)
        register_resource_operations(registry, "notes", InMemoryAdapter("notes"))
        assert len(registry) == 12

    def test_underscored_resource_name(self):
        registry = OperationRegistry()
        register_resource_operations(registry, "user_notes", InMemoryAdapter("user_notes"))

        descriptor = registry.get("user_notes_delete_matching")
        assert descriptor.resource == "user_notes"
        assert {d.resource for d in registry} == {"user_notes"}
