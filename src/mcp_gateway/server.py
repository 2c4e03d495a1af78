#!/usr/bin/env python3
"""
MCP Server Binding
Exposes every registered gateway operation as an MCP tool over stdio

- Tool list is generated from the frozen OperationRegistry
- Tool calls route through ToolGateway.invoke, so every guardrail applies
- gateway://status and gateway://metrics expose registry and telemetry snapshots
"""

import asyncio
import json
import os
import sys
from typing import Any, Dict, List, Optional

from mcp.server import NotificationOptions, Server
from mcp.server.models import InitializationOptions
import mcp.server.stdio
import mcp.types as types

from .adapters import InMemoryAdapter
from .config import GatewayConfig
from .descriptors import OperationDescriptor, OperationKind, OperationRegistry
from .gateway import ToolGateway
from .infrastructure.structured_logging import get_logger
from .infrastructure.telemetry import get_telemetry, setup_telemetry
from .operations import register_resource_operations

logger = get_logger("server")

SERVER_NAME = "mcp-gateway"
SERVER_VERSION = "0.3.0"

STATUS_URI = "gateway://status"
METRICS_URI = "gateway://metrics"


def tool_from_descriptor(descriptor: OperationDescriptor) -> types.Tool:
    """MCP tool definition for one operation"""
    return types.Tool(
        name=descriptor.name,
        description=descriptor.description,
        inputSchema=descriptor.input_schema(),
        annotations=types.ToolAnnotations(
            readOnlyHint=descriptor.kind is OperationKind.READ,
            destructiveHint=bool(descriptor.dangerous),
            idempotentHint=bool(descriptor.idempotent),
        ),
    )


def _json_content(payload: Dict[str, Any]) -> List[types.TextContent]:
    return [types.TextContent(type="text", text=json.dumps(payload, default=str))]


async def handle_tool_call(gateway: ToolGateway,
                           name: str,
                           arguments: Optional[Dict[str, Any]],
                           client: str = "mcp") -> List[types.TextContent]:
    """Invoke an operation and render the result envelope as JSON text"""
    result = await gateway.invoke(name, arguments or {}, client=client)
    return _json_content(result.to_dict())


def read_gateway_resource(gateway: ToolGateway, uri: str) -> str:
    if uri == STATUS_URI:
        return json.dumps(gateway.status(), indent=2, default=str)
    if uri == METRICS_URI:
        return json.dumps(get_telemetry().snapshot(), indent=2)
    raise ValueError(f"Unknown resource: {uri}")


def create_server(gateway: ToolGateway) -> Server:
    """Build an MCP server whose tools are the gateway's operations"""
    server = Server(SERVER_NAME)
    tools = [tool_from_descriptor(d) for d in gateway.registry]

    @server.list_tools()
    async def handle_list_tools() -> List[types.Tool]:
        return tools

    # Arguments are validated by the gateway so failures come back as VALIDATION_ERROR
    @server.call_tool(validate_input=False)
    async def handle_call_tool(name: str, arguments: dict) -> List[types.TextContent]:
        return await handle_tool_call(gateway, name, arguments)

    @server.list_resources()
    async def handle_list_resources() -> List[types.Resource]:
        return [
            types.Resource(
                uri=STATUS_URI,
                name="Gateway Status",
                description="Registered operations and effective configuration",
                mimeType="application/json",
            ),
            types.Resource(
                uri=METRICS_URI,
                name="Gateway Metrics",
                description="Invocation, error, retry and batch counters",
                mimeType="application/json",
            ),
        ]

    @server.read_resource()
    async def handle_read_resource(uri) -> str:
        return read_gateway_resource(gateway, str(uri))

    return server


DEMO_NOTES = [
    {"id": "n1", "title": "Release checklist", "status": "open", "tags": ["release"],
     "body": "Tag the build, publish the changelog and announce the release in the team channel."},
    {"id": "n2", "title": "Rotate credentials", "status": "open", "tags": ["security"],
     "body": "Rotate the upstream API keys before the end of the quarter."},
    {"id": "n3", "title": "Old meeting notes", "status": "archived", "tags": [],
     "body": "Superseded by the planning document."},
    {"id": "n4", "title": "Draft roadmap", "status": "draft", "tags": ["planning"],
     "body": "Collect proposals for the next two milestones."},
    {"id": "n5", "title": "Stale reminder", "status": "archived", "tags": [],
     "body": "Nothing left to do here."},
]


def build_demo_gateway(config: Optional[GatewayConfig] = None) -> ToolGateway:
    """Gateway over an in-memory 'notes' collection"""
    registry = OperationRegistry()
    register_resource_operations(registry, "notes", InMemoryAdapter("notes", DEMO_NOTES))
    return ToolGateway(registry, config=config if config is not None else GatewayConfig.from_environment())


async def main():
    """Main server entry point"""
    if os.getenv("OTLP_ENDPOINT"):
        setup_telemetry()

    gateway = build_demo_gateway()
    server = create_server(gateway)
    logger.info("server_starting", operations=len(gateway.registry), transport="stdio")

    async with mcp.server.stdio.stdio_server() as (read_stream, write_stream):
        await server.run(
            read_stream,
            write_stream,
            InitializationOptions(
                server_name=SERVER_NAME,
                server_version=SERVER_VERSION,
                capabilities=server.get_capabilities(
                    notification_options=NotificationOptions(),
                    experimental_capabilities={},
                ),
            ),
        )


def run():
    """Console script entry point"""
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("server_shutdown_requested")
    except Exception:
        logger.exception("server_fatal_error", component="server")
        sys.exit(1)


if __name__ == "__main__":
    run()
