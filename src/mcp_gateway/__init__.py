"""
mcp-gateway: guardrails for MCP tool calls

Pagination, response shaping, batch execution, dry-run confirmation and retry
around a declarative table of operations.
"""

from .adapters import InMemoryAdapter, ResourceAdapter
from .batch import BatchExecutor, BatchResult, ItemFailure
from .config import GatewayConfig
from .confirmation import ActionSignature, ConfirmationGate
from .descriptors import AffectedScope, OperationDescriptor, OperationKind, OperationRegistry
from .gateway import InvocationResult, InvocationStatus, OperationContext, ToolGateway
from .operations import register_resource_operations
from .pagination import Page, Paginator
from .shaping import ResponseShaper, ShapingRequest

__version__ = "0.3.0"
