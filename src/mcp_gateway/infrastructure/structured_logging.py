#!/usr/bin/env python3
"""
Structured Logging Infrastructure

Provides structured logging for the gateway with:
- JSON output for log aggregation outside development
- Console rendering in development
- Call site information (function, line, file)
- ISO timestamp formatting
- Exception stack traces
- Environment-based log levels

Everything is written to stderr: stdout carries the MCP stdio stream and a
stray log line there breaks the protocol.
"""

import os
import sys
import logging
from typing import Dict, Any, Optional

import structlog
from structlog.processors import CallsiteParameter, CallsiteParameterAdder, JSONRenderer

from .telemetry import get_telemetry

# Service information
SERVICE_NAME = os.getenv("SERVICE_NAME", "mcp-gateway")
SERVICE_VERSION = os.getenv("SERVICE_VERSION", "0.3.0")
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

_configured = False


def callsite_adder() -> CallsiteParameterAdder:
    """Callsite fields pointing at the code that called StructuredLogger"""
    return CallsiteParameterAdder(
        parameters=[
            CallsiteParameter.FUNC_NAME,
            CallsiteParameter.LINENO,
            CallsiteParameter.PATHNAME,
        ],
        # Skip the wrapper frames in this module
        additional_ignores=[__name__],
    )


def _configure_structlog() -> None:
    """Configure structlog and stdlib logging once per process"""
    global _configured
    if _configured:
        return

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        callsite_adder(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if ENVIRONMENT == "development":
        processors.append(structlog.dev.ConsoleRenderer())
    else:
        processors.append(JSONRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
        stream=sys.stderr
    )
    _configured = True


class StructuredLogger:
    """
    Structured logger with gateway-specific event helpers

    Wraps a structlog BoundLogger and adds the service context to every event.
    Errors are also counted in telemetry.
    """

    def __init__(self, name: str = SERVICE_NAME):
        self.name = name
        self.telemetry = get_telemetry()
        _configure_structlog()
        self.logger = structlog.get_logger(name)

    def _add_context(self, **kwargs) -> Dict[str, Any]:
        """Add standard context to log entries"""
        return {
            "service": SERVICE_NAME,
            "version": SERVICE_VERSION,
            "environment": ENVIRONMENT,
            **kwargs
        }

    def bind(self, **kwargs) -> "StructuredLogger":
        """Return a logger that carries extra context on every event"""
        bound = StructuredLogger.__new__(StructuredLogger)
        bound.name = self.name
        bound.telemetry = self.telemetry
        bound.logger = self.logger.bind(**kwargs)
        return bound

    def debug(self, event: str, **kwargs):
        self.logger.debug(event, **self._add_context(**kwargs))

    def info(self, event: str, **kwargs):
        self.logger.info(event, **self._add_context(**kwargs))

    def warning(self, event: str, **kwargs):
        self.logger.warning(event, **self._add_context(**kwargs))

    def error(self, event: str, **kwargs):
        """Log error message with structured context and telemetry"""
        error_type = kwargs.get("error_type", "unknown")
        component = kwargs.get("component", self.name)
        self.telemetry.record_error(error_type, component)
        self.logger.error(event, **self._add_context(**kwargs))

    def exception(self, event: str, **kwargs):
        """Log exception with full stack trace and context"""
        self.telemetry.record_error("exception", kwargs.get("component", self.name))
        self.logger.exception(event, **self._add_context(**kwargs))

    # Convenience methods for common gateway events
    def operation_received(self, operation: str, client: str, **kwargs):
        self.info("operation_received", operation=operation, client=client, **kwargs)

    def operation_completed(self, operation: str, duration: float, **kwargs):
        self.info("operation_completed",
                  operation=operation,
                  duration_ms=round(duration * 1000, 2),
                  **kwargs)

    def operation_failed(self, operation: str, code: str, message: str,
                         duration: Optional[float] = None, **kwargs):
        """Log a structured gateway failure"""
        log_data = {
            "operation": operation,
            "error_code": code,
            "error_message": message,
            **kwargs
        }
        if duration is not None:
            log_data["duration_ms"] = round(duration * 1000, 2)
        # Guardrail rejections are expected traffic, not server faults
        self.warning("operation_failed", **log_data)
        self.telemetry.record_error(code, "gateway")

    def batch_completed(self, requested: int, success: int, failed: int, **kwargs):
        self.info("batch_completed",
                  requested=requested,
                  success=success,
                  failed=failed,
                  **kwargs)

    def retry_scheduled(self, operation: str, attempt: int, max_attempts: int,
                        delay: float, error: str, **kwargs):
        self.warning("retry_scheduled",
                     operation=operation,
                     attempt=attempt,
                     max_attempts=max_attempts,
                     delay_s=round(delay, 3),
                     error=error,
                     **kwargs)


_loggers: Dict[str, StructuredLogger] = {}


def get_logger(name: str = SERVICE_NAME) -> StructuredLogger:
    """Get or create a structured logger for a component"""
    if name not in _loggers:
        _loggers[name] = StructuredLogger(name)
    return _loggers[name]


def setup_structured_logging(service_name: str = SERVICE_NAME) -> StructuredLogger:
    """
    Setup structured logging for the entire application

    Returns:
        Configured StructuredLogger instance
    """
    _loggers.pop(service_name, None)
    return get_logger(service_name)
