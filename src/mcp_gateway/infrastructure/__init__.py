"""
Gateway infrastructure: errors, retries, rate limits, shared state, logging
and telemetry. Nothing in here knows about specific operations.
"""

from .error_handling import (
    ErrorCode,
    ErrorInfo,
    ErrorSeverity,
    GatewayError,
    NotFoundError,
    InvalidCursorError,
    BatchTooLargeError,
    InvalidConfirmTokenError,
    ConfirmationRequiredError,
    RateLimitError,
    ReadOnlyModeError,
    ValidationFailedError,
    TransientUpstreamError,
    UpstreamUnavailableError,
    ItemCancelledError,
    UnknownGatewayError,
    classify_error,
    error_response,
)
from .rate_limiting import RateLimiter
from .resilience import ResilienceConfig, RetryOutcome, RetryPolicy, default_is_transient
from .state_store import StateStore
from .structured_logging import StructuredLogger, get_logger, setup_structured_logging
from .telemetry import TelemetryManager, get_telemetry, setup_telemetry
