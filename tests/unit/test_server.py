"""
Unit tests for the MCP server binding
"""

import json

import pytest

from mcp_gateway.config import GatewayConfig
from mcp_gateway.server import (
    METRICS_URI,
    STATUS_URI,
    build_demo_gateway,
    create_server,
    handle_tool_call,
    read_gateway_resource,
    tool_from_descriptor,
)


@pytest.fixture
def demo_gateway():
    return build_demo_gateway(GatewayConfig(rate_limit=None, cursor_secret=b"k"))


class TestToolDefinitions:
    """Descriptors rendered as MCP tools"""

    def test_annotations_follow_kind(self, demo_gateway):
        tools = {d.name: tool_from_descriptor(d) for d in demo_gateway.registry}

        listing = tools["notes_list"]
        assert listing.annotations.readOnlyHint is True
        assert listing.annotations.destructiveHint is False
        assert "pageToken" in listing.inputSchema["properties"]

        delete = tools["notes_delete_matching"]
        assert delete.annotations.readOnlyHint is False
        assert delete.annotations.destructiveHint is True

    def test_create_server(self, demo_gateway):
        server = create_server(demo_gateway)
        assert server.name == "mcp-gateway"


class TestToolCalls:
    """call_tool routing returns the JSON envelope"""

    @pytest.mark.asyncio
    async def test_successful_call(self, demo_gateway):
        content = await handle_tool_call(demo_gateway, "notes_list", {"pageSize": 2, "compact": True})
        payload = json.loads(content[0].text)

        assert content[0].type == "text"
        assert payload["status"] == "completed"
        assert [item["id"] for item in payload["data"]["items"]] == ["n1", "n2"]
        assert payload["data"]["hasMore"] is True

    @pytest.mark.asyncio
    async def test_failed_call(self, demo_gateway):
        content = await handle_tool_call(demo_gateway, "notes_purge", None)
        payload = json.loads(content[0].text)

        assert payload["status"] == "failed"
        assert payload["error"]["code"] == "NOT_FOUND"


class TestResources:
    def test_status_resource(self, demo_gateway):
        status = json.loads(read_gateway_resource(demo_gateway, STATUS_URI))
        assert "notes_delete" in status["operations"]

    def test_metrics_resource(self, demo_gateway):
        metrics = json.loads(read_gateway_resource(demo_gateway, METRICS_URI))
        assert {"operations", "errors", "retries", "batch_items"} <= set(metrics)

    def test_unknown_resource(self, demo_gateway):
        with pytest.raises(ValueError):
            read_gateway_resource(demo_gateway, "gateway://nope")
