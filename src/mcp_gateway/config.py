"""
Gateway Configuration Module
Centralized configuration with environment variable precedence
"""

import os
import secrets
import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Optional

from .infrastructure.resilience import ResilienceConfig

logger = logging.getLogger(__name__)

ENV_PREFIX = "MCP_GATEWAY_"

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 25


def _env(name: str, default: str) -> str:
    return os.environ.get(f"{ENV_PREFIX}{name}", default)


def _env_bool(name: str, default: bool) -> bool:
    return _env(name, "true" if default else "false").strip().lower() in ("1", "true", "yes", "on")


@dataclass
class GatewayConfig:
    """Complete gateway configuration"""

    # Guardrails
    read_only: bool = False
    max_batch_size: int = 100
    batch_concurrency: int = 5
    auto_safe_threshold: int = 2  # scopes strictly smaller run without a confirm token
    rate_limit: Optional[str] = "120/minute"

    # Pagination
    default_page_size: int = DEFAULT_PAGE_SIZE
    max_page_size: int = MAX_PAGE_SIZE
    cursor_ttl_seconds: float = 3600.0
    cursor_secret: bytes = field(default_factory=lambda: secrets.token_bytes(32), repr=False)

    # Confirmation tokens
    confirmation_ttl_seconds: float = 300.0

    # Response shaping
    compact_text_limit: int = 200

    # Upstream calls
    resilience: ResilienceConfig = field(default_factory=ResilienceConfig)

    def __post_init__(self):
        if not 1 <= self.default_page_size <= self.max_page_size:
            raise ValueError("default_page_size must be within [1, max_page_size]")
        if self.max_batch_size < 1:
            raise ValueError("max_batch_size must be at least 1")
        if self.batch_concurrency < 1:
            raise ValueError("batch_concurrency must be at least 1")
        if self.auto_safe_threshold < 0:
            raise ValueError("auto_safe_threshold cannot be negative")

    @classmethod
    def from_environment(cls) -> 'GatewayConfig':
        """Create configuration from MCP_GATEWAY_* environment variables"""

        secret = os.environ.get(f"{ENV_PREFIX}CURSOR_SECRET")
        if secret:
            cursor_secret = secret.encode("utf-8")
        else:
            cursor_secret = secrets.token_bytes(32)
            logger.info("MCP_GATEWAY_CURSOR_SECRET not set, page tokens will not survive a restart")

        call_timeout = _env("CALL_TIMEOUT", "10.0")
        resilience = ResilienceConfig(
            max_attempts=int(_env("MAX_ATTEMPTS", "3")),
            base_delay=float(_env("RETRY_BASE_DELAY", "0.2")),
            max_delay=float(_env("RETRY_MAX_DELAY", "5.0")),
            call_timeout=float(call_timeout) if call_timeout else None,
        )

        config = cls(
            read_only=_env_bool("READ_ONLY", False),
            max_batch_size=int(_env("MAX_BATCH_SIZE", "100")),
            batch_concurrency=int(_env("BATCH_CONCURRENCY", "5")),
            auto_safe_threshold=int(_env("AUTO_SAFE_THRESHOLD", "2")),
            rate_limit=_env("RATE_LIMIT", "120/minute") or None,
            default_page_size=int(_env("DEFAULT_PAGE_SIZE", str(DEFAULT_PAGE_SIZE))),
            max_page_size=int(_env("MAX_PAGE_SIZE", str(MAX_PAGE_SIZE))),
            cursor_ttl_seconds=float(_env("CURSOR_TTL", "3600")),
            cursor_secret=cursor_secret,
            confirmation_ttl_seconds=float(_env("CONFIRMATION_TTL", "300")),
            compact_text_limit=int(_env("COMPACT_TEXT_LIMIT", "200")),
            resilience=resilience,
        )

        logger.info(f"Gateway configuration initialized: "
                    f"read_only={config.read_only}, "
                    f"max_batch_size={config.max_batch_size}, "
                    f"rate_limit={config.rate_limit}, "
                    f"max_attempts={config.resilience.max_attempts}")

        return config

    def to_dict(self) -> Dict[str, Any]:
        """Export configuration as dictionary for debugging, secrets redacted"""
        return {
            "read_only": self.read_only,
            "max_batch_size": self.max_batch_size,
            "batch_concurrency": self.batch_concurrency,
            "auto_safe_threshold": self.auto_safe_threshold,
            "rate_limit": self.rate_limit,
            "default_page_size": self.default_page_size,
            "max_page_size": self.max_page_size,
            "cursor_ttl_seconds": self.cursor_ttl_seconds,
            "cursor_secret": "***",
            "confirmation_ttl_seconds": self.confirmation_ttl_seconds,
            "compact_text_limit": self.compact_text_limit,
            "resilience": {
                "max_attempts": self.resilience.max_attempts,
                "base_delay": self.resilience.base_delay,
                "max_delay": self.resilience.max_delay,
                "call_timeout": self.resilience.call_timeout,
            },
        }
