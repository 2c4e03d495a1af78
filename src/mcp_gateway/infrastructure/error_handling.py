#!/usr/bin/env python3
"""
Gateway Error Handling
Structured error taxonomy shared by every gateway component

Every failure that leaves the gateway is an ErrorInfo with a machine-parseable
code, a message, an optional suggestion, a recoverable flag and, for rate
limits, a retry-after hint.
"""

import logging
import traceback
import uuid
from typing import Dict, Any, Optional
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum

logger = logging.getLogger(__name__)


class ErrorCode(str, Enum):
    """Closed set of error codes visible to callers"""
    NOT_FOUND = "NOT_FOUND"
    INVALID_CURSOR = "INVALID_CURSOR"
    BATCH_TOO_LARGE = "BATCH_TOO_LARGE"
    INVALID_CONFIRM_TOKEN = "INVALID_CONFIRM_TOKEN"
    CONFIRMATION_REQUIRED = "CONFIRMATION_REQUIRED"
    RATE_LIMIT = "RATE_LIMIT"
    READ_ONLY_MODE = "READ_ONLY_MODE"
    VALIDATION_ERROR = "VALIDATION_ERROR"
    TRANSIENT_UPSTREAM = "TRANSIENT_UPSTREAM"
    UPSTREAM_UNAVAILABLE = "UPSTREAM_UNAVAILABLE"
    CANCELLED = "CANCELLED"
    UNKNOWN_ERROR = "UNKNOWN_ERROR"


class ErrorSeverity(Enum):
    """Error severity levels"""
    LOW = "low"           # Caller mistake, nothing wrong server-side
    MEDIUM = "medium"     # Guardrail or upstream hiccup
    HIGH = "high"         # Upstream down or unexpected failure


@dataclass
class ErrorInfo:
    """Structured error information, the wire shape of a failure"""
    code: ErrorCode
    message: str
    error_id: str
    severity: ErrorSeverity = ErrorSeverity.MEDIUM
    recoverable: bool = False
    suggestion: Optional[str] = None
    retry_after: Optional[float] = None
    context: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for responses and logs"""
        data = {
            "code": self.code.value,
            "message": self.message,
            "recoverable": self.recoverable,
            "errorId": self.error_id,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.suggestion:
            data["suggestion"] = self.suggestion
        if self.retry_after is not None:
            data["retryAfter"] = round(self.retry_after, 3)
        if self.context:
            data["details"] = self.context
        return data


class GatewayError(Exception):
    """Base exception for all gateway failures"""

    code = ErrorCode.UNKNOWN_ERROR
    severity = ErrorSeverity.HIGH
    recoverable = False

    def __init__(
        self,
        message: str,
        suggestion: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        retry_after: Optional[float] = None,
    ):
        super().__init__(message)
        self.message = message
        self.suggestion = suggestion
        self.context = context or {}
        self.retry_after = retry_after
        self.error_id = f"GW-{uuid.uuid4().hex[:8]}"
        self.timestamp = datetime.now(timezone.utc)

    def to_error_info(self) -> ErrorInfo:
        """Convert to ErrorInfo object"""
        return ErrorInfo(
            code=self.code,
            message=self.message,
            error_id=self.error_id,
            severity=self.severity,
            recoverable=self.recoverable,
            suggestion=self.suggestion,
            retry_after=self.retry_after,
            context=self.context,
            timestamp=self.timestamp,
        )


class NotFoundError(GatewayError):
    code = ErrorCode.NOT_FOUND
    severity = ErrorSeverity.LOW


class InvalidCursorError(GatewayError):
    code = ErrorCode.INVALID_CURSOR
    severity = ErrorSeverity.LOW
    recoverable = True

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("suggestion", "Restart the listing without pageToken")
        super().__init__(message, **kwargs)


class BatchTooLargeError(GatewayError):
    code = ErrorCode.BATCH_TOO_LARGE
    severity = ErrorSeverity.LOW
    recoverable = True


class InvalidConfirmTokenError(GatewayError):
    code = ErrorCode.INVALID_CONFIRM_TOKEN
    severity = ErrorSeverity.LOW
    recoverable = True

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault(
            "suggestion", "Run the operation again with dryRun=true to get a fresh confirmToken"
        )
        super().__init__(message, **kwargs)


class ConfirmationRequiredError(GatewayError):
    code = ErrorCode.CONFIRMATION_REQUIRED
    severity = ErrorSeverity.LOW
    recoverable = True

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault(
            "suggestion", "Preview with dryRun=true, then repeat the call with the returned confirmToken"
        )
        super().__init__(message, **kwargs)


class RateLimitError(GatewayError):
    code = ErrorCode.RATE_LIMIT
    severity = ErrorSeverity.MEDIUM
    recoverable = True


class ReadOnlyModeError(GatewayError):
    code = ErrorCode.READ_ONLY_MODE
    severity = ErrorSeverity.LOW


class ValidationFailedError(GatewayError):
    code = ErrorCode.VALIDATION_ERROR
    severity = ErrorSeverity.LOW
    recoverable = True


class TransientUpstreamError(GatewayError):
    """Retryable upstream failure. Never surfaced past the retry policy."""
    code = ErrorCode.TRANSIENT_UPSTREAM
    severity = ErrorSeverity.MEDIUM
    recoverable = True


class UpstreamUnavailableError(GatewayError):
    code = ErrorCode.UPSTREAM_UNAVAILABLE
    severity = ErrorSeverity.HIGH
    recoverable = True

    def __init__(self, message: str, attempts: int = 0, **kwargs):
        kwargs.setdefault("suggestion", "The backing service is unavailable, try again later")
        super().__init__(message, **kwargs)
        self.attempts = attempts
        self.context.setdefault("attempts", attempts)


class ItemCancelledError(GatewayError):
    code = ErrorCode.CANCELLED
    severity = ErrorSeverity.LOW


class UnknownGatewayError(GatewayError):
    code = ErrorCode.UNKNOWN_ERROR
    severity = ErrorSeverity.HIGH


def classify_error(error: Exception, operation_name: str = "unknown") -> GatewayError:
    """Map any exception to a GatewayError

    Gateway errors pass through untouched. Anything else is unexpected: it is
    logged with its traceback and reported as UNKNOWN_ERROR.
    """
    if isinstance(error, GatewayError):
        return error

    logger.error(
        f"Unexpected {type(error).__name__} in {operation_name}: {error}\n"
        f"{''.join(traceback.format_exception(type(error), error, error.__traceback__))}"
    )
    return UnknownGatewayError(
        f"Unexpected error in {operation_name}: {error}",
        context={"exceptionType": type(error).__name__},
    )


def error_response(error: Exception, operation_name: str = "unknown") -> Dict[str, Any]:
    """Standard error payload for any exception"""
    gateway_error = classify_error(error, operation_name)
    # An escaped transient error means a call bypassed the retry policy
    if isinstance(gateway_error, TransientUpstreamError):
        gateway_error = UpstreamUnavailableError(gateway_error.message)
    return gateway_error.to_error_info().to_dict()
