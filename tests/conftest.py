"""
Shared fixtures for the gateway unit tests

Provides a seeded in-memory collection, a registry with the standard
operations for it, and a gateway wired with fast retries and a fake clock.
"""

import sys
from pathlib import Path
from unittest.mock import AsyncMock

import pytest

# Add src to Python path so the suite runs from a plain checkout
src_path = Path(__file__).parent.parent / "src"
sys.path.insert(0, str(src_path))

from mcp_gateway.adapters import InMemoryAdapter  # noqa: E402
from mcp_gateway.config import GatewayConfig  # noqa: E402
from mcp_gateway.descriptors import OperationRegistry  # noqa: E402
from mcp_gateway.gateway import ToolGateway  # noqa: E402
from mcp_gateway.infrastructure.rate_limiting import RateLimiter  # noqa: E402
from mcp_gateway.infrastructure.resilience import ResilienceConfig, RetryPolicy  # noqa: E402
from mcp_gateway.infrastructure.state_store import StateStore  # noqa: E402
from mcp_gateway.infrastructure.telemetry import get_telemetry  # noqa: E402
from mcp_gateway.operations import register_resource_operations  # noqa: E402


class FakeClock:
    """Manually advanced epoch clock"""

    def __init__(self, start: float = 1_700_000_000.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def seed_items(count: int = 5):
    return [
        {"id": str(i), "title": f"Item {i}", "status": "archived" if i % 2 else "open", "body": "x" * 50}
        for i in range(1, count + 1)
    ]


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def adapter():
    return InMemoryAdapter("items", seed_items())


@pytest.fixture
def no_sleep():
    return AsyncMock()


@pytest.fixture
def retry_policy(no_sleep):
    return RetryPolicy(ResilienceConfig(max_attempts=3, base_delay=0.01, max_delay=0.05, call_timeout=1.0),
                       sleep=no_sleep)


@pytest.fixture
def config():
    return GatewayConfig(rate_limit=None, cursor_secret=b"test-secret")


@pytest.fixture
def state_store(clock):
    return StateStore(clock=clock)


@pytest.fixture
def make_gateway(adapter, config, retry_policy, state_store):
    """Factory so tests can override config, adapter or the audit sink"""
    def factory(**overrides):
        gateway_adapter = overrides.pop("adapter", adapter)
        gateway_config = overrides.pop("config", config)
        registry = OperationRegistry()
        register_resource_operations(registry, "items", gateway_adapter)
        overrides.setdefault("retry_policy", retry_policy)
        overrides.setdefault("state_store", state_store)
        overrides.setdefault("rate_limiter", RateLimiter(gateway_config.rate_limit))
        return ToolGateway(registry, config=gateway_config, **overrides)
    return factory


@pytest.fixture
def gateway(make_gateway):
    return make_gateway()


@pytest.fixture(autouse=True)
def reset_telemetry():
    get_telemetry().reset()
    yield
