#!/usr/bin/env python3
"""
OpenTelemetry instrumentation for the tool gateway

Features:
- Distributed tracing around every gateway invocation
- Metrics for operations, errors and upstream retries
- OTLP export for DataDog, New Relic, etc.
- In-process counters for the gateway://metrics resource

Telemetry stays a no-op until initialize() is called, so library users and
tests never need a collector.
"""

import os
import sys
import logging
import threading
from contextlib import contextmanager
from typing import Dict, Optional, Any

# OpenTelemetry core
from opentelemetry import trace, metrics
from opentelemetry.sdk.trace import TracerProvider
from opentelemetry.sdk.metrics import MeterProvider
from opentelemetry.sdk.resources import Resource

# Exporters
from opentelemetry.exporter.otlp.proto.grpc.trace_exporter import OTLPSpanExporter
from opentelemetry.exporter.otlp.proto.grpc.metric_exporter import OTLPMetricExporter
from opentelemetry.sdk.trace.export import BatchSpanProcessor, ConsoleSpanExporter
from opentelemetry.sdk.metrics.export import PeriodicExportingMetricReader, ConsoleMetricExporter

logger = logging.getLogger(__name__)

# Service information
SERVICE_NAME = "mcp-gateway"
SERVICE_VERSION = "0.3.0"
ENVIRONMENT = os.getenv("ENVIRONMENT", "development")


class TelemetryManager:
    """Centralized telemetry management for the gateway"""

    def __init__(self):
        self.tracer = None
        self.meter = None
        self._initialized = False

        # Metrics
        self.operation_counter = None
        self.operation_duration = None
        self.retry_counter = None
        self.batch_item_counter = None
        self.error_counter = None

        # Local snapshot, independent of any exporter
        self._lock = threading.Lock()
        self._snapshot: Dict[str, Any] = {
            "operations": {},
            "errors": {},
            "retries": 0,
            "batch_items": {"succeeded": 0, "failed": 0},
        }

    def initialize(self,
                   otlp_endpoint: Optional[str] = None,
                   enable_console_export: bool = False) -> None:
        """Initialize OpenTelemetry with proper configuration"""

        if self._initialized:
            logger.warning("Telemetry already initialized, skipping")
            return

        try:
            resource = Resource.create({
                "service.name": SERVICE_NAME,
                "service.version": SERVICE_VERSION,
                "deployment.environment": ENVIRONMENT,
                "service.namespace": "mcp-gateway"
            })

            self._setup_tracing(resource, otlp_endpoint, enable_console_export)
            self._setup_metrics(resource, otlp_endpoint, enable_console_export)

            self._initialized = True
            logger.info(f"OpenTelemetry initialized for {SERVICE_NAME}")

        except Exception as e:
            logger.error(f"Failed to initialize telemetry: {e}")
            # Don't fail the application if telemetry setup fails
            self._setup_noop_telemetry()

    def _setup_tracing(self,
                       resource: Resource,
                       otlp_endpoint: Optional[str],
                       enable_console: bool) -> None:
        """Configure distributed tracing"""

        trace_provider = TracerProvider(resource=resource)

        if otlp_endpoint:
            otlp_exporter = OTLPSpanExporter(
                endpoint=otlp_endpoint,
                insecure=ENVIRONMENT == "development"
            )
            trace_provider.add_span_processor(BatchSpanProcessor(otlp_exporter))

        # stdout carries the MCP stream, console spans go to stderr
        if enable_console:
            trace_provider.add_span_processor(
                BatchSpanProcessor(ConsoleSpanExporter(out=sys.stderr))
            )

        trace.set_tracer_provider(trace_provider)
        self.tracer = trace.get_tracer(__name__)

    def _setup_metrics(self,
                       resource: Resource,
                       otlp_endpoint: Optional[str],
                       enable_console: bool) -> None:
        """Configure metrics collection"""

        readers = []

        if otlp_endpoint:
            otlp_metrics_exporter = OTLPMetricExporter(
                endpoint=otlp_endpoint,
                insecure=ENVIRONMENT == "development"
            )
            readers.append(
                PeriodicExportingMetricReader(otlp_metrics_exporter, export_interval_millis=10000)
            )

        if enable_console:
            readers.append(
                PeriodicExportingMetricReader(
                    ConsoleMetricExporter(out=sys.stderr), export_interval_millis=30000
                )
            )

        meter_provider = MeterProvider(resource=resource, metric_readers=readers)
        metrics.set_meter_provider(meter_provider)
        self.meter = metrics.get_meter(__name__)

        self._create_metrics()

    def _create_metrics(self) -> None:
        """Create gateway metrics"""

        if not self.meter:
            return

        self.operation_counter = self.meter.create_counter(
            name="gateway_operations_total",
            description="Gateway invocations by operation and status",
            unit="1"
        )

        self.operation_duration = self.meter.create_histogram(
            name="gateway_operation_duration_seconds",
            description="Duration of gateway invocations",
            unit="s"
        )

        self.retry_counter = self.meter.create_counter(
            name="gateway_upstream_attempts_total",
            description="Upstream call attempts including retries",
            unit="1"
        )

        self.batch_item_counter = self.meter.create_counter(
            name="gateway_batch_items_total",
            description="Batch items processed by outcome",
            unit="1"
        )

        self.error_counter = self.meter.create_counter(
            name="gateway_errors_total",
            description="Gateway errors by code and component",
            unit="1"
        )

    def _setup_noop_telemetry(self) -> None:
        """Setup no-op telemetry if initialization fails"""
        self.tracer = trace.NoOpTracer()
        self._initialized = True
        logger.warning("Using no-op telemetry due to initialization failure")

    @contextmanager
    def trace_operation(self,
                        operation_name: str,
                        attributes: Optional[Dict[str, Any]] = None):
        """Context manager for tracing operations"""

        if not self.tracer:
            yield None
            return

        with self.tracer.start_as_current_span(operation_name) as span:
            if attributes:
                for key, value in attributes.items():
                    if value is not None:
                        span.set_attribute(key, str(value))
            yield span

    def record_operation(self, operation: str, status: str, duration: float) -> None:
        """Record a completed or failed gateway invocation"""
        with self._lock:
            per_op = self._snapshot["operations"].setdefault(
                operation, {"completed": 0, "failed": 0, "total_time": 0.0}
            )
            per_op[status] = per_op.get(status, 0) + 1
            per_op["total_time"] += duration

        if not self.operation_counter:
            return

        attributes = {"operation": operation, "status": status}
        self.operation_counter.add(1, attributes)
        if self.operation_duration:
            self.operation_duration.record(duration, attributes)

    def record_attempts(self, operation: str, attempts: int) -> None:
        """Record upstream attempts for one wrapped call"""
        with self._lock:
            self._snapshot["retries"] += max(attempts - 1, 0)

        if not self.retry_counter:
            return
        self.retry_counter.add(attempts, {"operation": operation})

    def record_batch_items(self, succeeded: int, failed: int) -> None:
        """Record batch item outcomes"""
        with self._lock:
            self._snapshot["batch_items"]["succeeded"] += succeeded
            self._snapshot["batch_items"]["failed"] += failed

        if not self.batch_item_counter:
            return
        self.batch_item_counter.add(succeeded, {"outcome": "succeeded"})
        self.batch_item_counter.add(failed, {"outcome": "failed"})

    def record_error(self, error_type: str, component: str) -> None:
        """Record gateway errors"""
        with self._lock:
            key = f"{component}:{error_type}"
            self._snapshot["errors"][key] = self._snapshot["errors"].get(key, 0) + 1

        if not self.error_counter:
            return

        attributes = {
            "error_type": error_type,
            "component": component
        }
        self.error_counter.add(1, attributes)

    def snapshot(self) -> Dict[str, Any]:
        """Copy of the in-process counters"""
        with self._lock:
            return {
                "operations": {k: dict(v) for k, v in self._snapshot["operations"].items()},
                "errors": dict(self._snapshot["errors"]),
                "retries": self._snapshot["retries"],
                "batch_items": dict(self._snapshot["batch_items"]),
                "exporting": self._initialized,
            }

    def reset(self) -> None:
        """Clear the in-process counters"""
        with self._lock:
            self._snapshot = {
                "operations": {},
                "errors": {},
                "retries": 0,
                "batch_items": {"succeeded": 0, "failed": 0},
            }


# Global telemetry instance
telemetry = TelemetryManager()


def setup_telemetry(otlp_endpoint: Optional[str] = None) -> TelemetryManager:
    """Setup telemetry for the application"""

    if not otlp_endpoint:
        otlp_endpoint = os.getenv("OTLP_ENDPOINT")

    enable_console = ENVIRONMENT in ["development", "test"]

    telemetry.initialize(
        otlp_endpoint=otlp_endpoint,
        enable_console_export=enable_console
    )

    return telemetry


def get_telemetry() -> TelemetryManager:
    """Get the global telemetry instance"""
    return telemetry
