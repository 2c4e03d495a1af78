"""
Tool Gateway
Dispatches named operations and enforces the guardrails around them

Per invocation:
    RECEIVED -> VALIDATED -> (DRY_RUN_PREVIEW | EXECUTING) -> COMPLETED | FAILED

Guardrails run in a fixed order: unknown operation, read-only mode, rate
limit, input schema, batch ceiling, then (for mutating operations) scope
resolution, dry-run preview and the confirmation gate.
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Mapping, Optional, Sequence

from pydantic import BaseModel, ValidationError

from .batch import BatchExecutor, BatchResult, ItemAction
from .config import GatewayConfig
from .confirmation import ActionSignature, ConfirmationGate
from .descriptors import AffectedScope, OperationDescriptor, OperationRegistry
from .infrastructure.error_handling import (
    ConfirmationRequiredError,
    ErrorInfo,
    GatewayError,
    NotFoundError,
    ReadOnlyModeError,
    TransientUpstreamError,
    UpstreamUnavailableError,
    ValidationFailedError,
    classify_error,
)
from .infrastructure.rate_limiting import RateLimiter
from .infrastructure.resilience import RetryPolicy
from .infrastructure.state_store import StateStore
from .infrastructure.structured_logging import get_logger
from .infrastructure.telemetry import get_telemetry
from .pagination import Page, PageSource, Paginator
from .shaping import ResponseShaper

logger = get_logger("gateway")
telemetry = get_telemetry()

AuditSink = Callable[[Dict[str, Any]], Awaitable[None]]

PREVIEW_SAMPLE_SIZE = 10


class InvocationState(str, Enum):
    RECEIVED = "received"
    VALIDATED = "validated"
    DRY_RUN_PREVIEW = "dry_run_preview"
    EXECUTING = "executing"
    COMPLETED = "completed"
    FAILED = "failed"


class InvocationStatus(str, Enum):
    COMPLETED = "completed"
    FAILED = "failed"


@dataclass
class InvocationResult:
    operation: str
    status: InvocationStatus
    data: Optional[Dict[str, Any]] = None
    error: Optional[ErrorInfo] = None
    states: List[InvocationState] = field(default_factory=list)
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    @property
    def ok(self) -> bool:
        return self.status is InvocationStatus.COMPLETED

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "status": self.status.value,
            "operation": self.operation,
            "timestamp": self.timestamp.isoformat(),
        }
        if self.ok:
            payload["data"] = self.data
        else:
            payload["error"] = self.error.to_dict()
        return payload


@dataclass
class OperationContext:
    """Everything a handler may use; outbound calls go through call()"""
    descriptor: OperationDescriptor
    config: GatewayConfig
    adapter: Any
    retry: RetryPolicy
    batch: BatchExecutor
    shaper: ResponseShaper
    paginator: Paginator
    client: str = "default"
    cancel_event: Optional[asyncio.Event] = None

    async def call(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        return await self.retry.call(func, *args, **kwargs)

    async def call_once(self, func: Callable[..., Awaitable[Any]], *args, **kwargs) -> Any:
        """Bounded by the call timeout but never retried"""
        return await self.retry.call_once(func, *args, **kwargs)

    async def run_batch(self, ids: Sequence[str], action: ItemAction) -> BatchResult:
        """Batch over ids, each item call wrapped in the retry policy"""
        async def guarded(item_id: str) -> Any:
            return await self.call(action, item_id)

        return await self.batch.run(
            ids, guarded, cancel_event=self.cancel_event, action_name=self.descriptor.name
        )

    async def paginate(self, source: PageSource, filter: Mapping[str, Any],
                       page_size: Optional[int], cursor: Optional[str]) -> Page:
        async def guarded(flt: Mapping[str, Any], offset: int, limit: int) -> List[Any]:
            return await self.call(source, flt, offset, limit)

        return await self.paginator.paginate(guarded, filter, page_size, cursor)


class ToolGateway:
    """Façade composing registry, guardrails and the execution helpers"""

    def __init__(self,
                 registry: OperationRegistry,
                 adapter: Any = None,
                 config: Optional[GatewayConfig] = None,
                 *,
                 state_store: Optional[StateStore] = None,
                 rate_limiter: Optional[RateLimiter] = None,
                 retry_policy: Optional[RetryPolicy] = None,
                 shaper: Optional[ResponseShaper] = None,
                 paginator: Optional[Paginator] = None,
                 audit_sink: Optional[AuditSink] = None):
        self.config = config if config is not None else GatewayConfig()
        self.registry = registry
        self.registry.freeze()
        self.adapter = adapter

        self.state_store = state_store if state_store is not None else StateStore()
        self.rate_limiter = rate_limiter if rate_limiter is not None else RateLimiter(self.config.rate_limit)
        self.retry = retry_policy if retry_policy is not None else RetryPolicy(self.config.resilience)
        self.batch = BatchExecutor(self.config.max_batch_size, self.config.batch_concurrency)
        self.shaper = shaper if shaper is not None else ResponseShaper(text_limit=self.config.compact_text_limit)
        self.paginator = paginator if paginator is not None else Paginator(
            secret=self.config.cursor_secret,
            max_page_size=self.config.max_page_size,
            default_page_size=self.config.default_page_size,
            cursor_ttl=self.config.cursor_ttl_seconds,
        )
        self.confirmation = ConfirmationGate(self.state_store, ttl=self.config.confirmation_ttl_seconds)
        self.audit_sink = audit_sink

        logger.info("gateway_initialized",
                    operations=len(self.registry),
                    read_only=self.config.read_only)

    def describe_tools(self) -> List[Dict[str, Any]]:
        return [descriptor.to_dict() for descriptor in self.registry]

    def status(self) -> Dict[str, Any]:
        return {
            "status": "healthy",
            "operations": self.registry.names(),
            "config": self.config.to_dict(),
            "confirmationStore": self.state_store.get_stats(),
        }

    async def invoke(self,
                     name: str,
                     arguments: Optional[Mapping[str, Any]] = None,
                     *,
                     client: str = "default",
                     cancel_event: Optional[asyncio.Event] = None) -> InvocationResult:
        """Run one operation end to end; never raises for gateway errors"""
        start = time.time()
        states = [InvocationState.RECEIVED]
        logger.operation_received(name, client)

        with telemetry.trace_operation(f"gateway.{name}", {"operation": name, "client": client}) as span:
            try:
                data = await self._run(name, dict(arguments or {}), client, cancel_event, states)
            except Exception as e:
                states.append(InvocationState.FAILED)
                error = self._to_gateway_error(e, name)
                duration = time.time() - start
                logger.operation_failed(name, error.code.value, error.message, duration,
                                        client=client, error_id=error.error_id)
                telemetry.record_operation(name, InvocationStatus.FAILED.value, duration)
                if span is not None:
                    span.set_attribute("error.code", error.code.value)
                return InvocationResult(name, InvocationStatus.FAILED, error=error.to_error_info(), states=states)

        states.append(InvocationState.COMPLETED)
        duration = time.time() - start
        logger.operation_completed(name, duration, client=client, path=states[-2].value)
        telemetry.record_operation(name, InvocationStatus.COMPLETED.value, duration)
        return InvocationResult(name, InvocationStatus.COMPLETED, data=data, states=states)

    async def _run(self,
                   name: str,
                   arguments: Dict[str, Any],
                   client: str,
                   cancel_event: Optional[asyncio.Event],
                   states: List[InvocationState]) -> Dict[str, Any]:
        descriptor = self.registry.get(name)
        if descriptor is None:
            suggestions = self.registry.suggest(name)
            raise NotFoundError(
                f"Unknown operation '{name}'",
                suggestion=f"Did you mean: {', '.join(suggestions)}?" if suggestions else None,
                context={"available": self.registry.names()},
            )

        # Checked before any business parameter is looked at
        if self.config.read_only and descriptor.mutating:
            raise ReadOnlyModeError(
                f"'{name}' modifies data and the gateway is in read-only mode",
                suggestion="Use a read operation, or ask an operator to disable read-only mode",
            )

        self.rate_limiter.check(client)
        params = self._validate(descriptor, arguments)

        ids = getattr(params, "ids", None)
        if isinstance(ids, list):
            self.batch.check_size(ids)
        states.append(InvocationState.VALIDATED)

        ctx = OperationContext(
            descriptor=descriptor,
            config=self.config,
            adapter=descriptor.adapter if descriptor.adapter is not None else self.adapter,
            retry=self.retry,
            batch=self.batch,
            shaper=self.shaper,
            paginator=self.paginator,
            client=client,
            cancel_event=cancel_event,
        )

        scope: Optional[AffectedScope] = None
        if descriptor.mutating:
            scope = await descriptor.resolve_scope(ctx, params)
            signature = ActionSignature(name, scope.binding, scope.count)
            needs_confirmation = bool(descriptor.dangerous) and scope.count >= self.config.auto_safe_threshold

            if getattr(params, "dry_run", False):
                states.append(InvocationState.DRY_RUN_PREVIEW)
                return await self._preview(descriptor, scope, signature, needs_confirmation)

            if needs_confirmation:
                token = getattr(params, "confirm_token", None)
                if not token:
                    raise ConfirmationRequiredError(
                        f"'{name}' would affect {scope.count} items and needs confirmation",
                        context={"affectedCount": scope.count, "autoSafeThreshold": self.config.auto_safe_threshold},
                    )
                await self.confirmation.require(token, signature)

        states.append(InvocationState.EXECUTING)
        data = await descriptor.handler(ctx, params, scope)

        if descriptor.mutating:
            await self._audit(descriptor, client, scope, data)
        return data

    def _validate(self, descriptor: OperationDescriptor, arguments: Dict[str, Any]) -> BaseModel:
        try:
            return descriptor.input_model.model_validate(arguments)
        except ValidationError as e:
            problems = [
                {"field": ".".join(str(part) for part in err["loc"]) or "(root)", "message": err["msg"]}
                for err in e.errors()
            ]
            raise ValidationFailedError(
                f"Invalid arguments for '{descriptor.name}': "
                + "; ".join(f"{p['field']}: {p['message']}" for p in problems),
                suggestion="Check the tool's inputSchema",
                context={"errors": problems},
            ) from e

    async def _preview(self,
                       descriptor: OperationDescriptor,
                       scope: AffectedScope,
                       signature: ActionSignature,
                       needs_confirmation: bool) -> Dict[str, Any]:
        preview: Dict[str, Any] = {
            "dryRun": True,
            "operation": descriptor.name,
            "affectedCount": scope.count,
            "sampleIds": scope.sample[:PREVIEW_SAMPLE_SIZE],
            "requiresConfirmation": needs_confirmation,
        }
        if needs_confirmation:
            issued = await self.confirmation.issue(signature)
            preview.update(issued.to_dict())
        logger.info("dry_run_preview", operation=descriptor.name, affected_count=scope.count)
        return preview

    async def _audit(self,
                     descriptor: OperationDescriptor,
                     client: str,
                     scope: Optional[AffectedScope],
                     data: Dict[str, Any]) -> None:
        record = {
            "operation": descriptor.name,
            "kind": descriptor.kind.value,
            "client": client,
            "affectedCount": scope.count if scope else None,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "result": {k: data[k] for k in ("requested", "success", "failed", "id") if k in data},
        }
        if self.audit_sink is None:
            logger.info("audit", **record)
            return
        try:
            await self.audit_sink(record)
        except Exception:
            # The mutation already happened; report the lost audit record loudly
            logger.exception("audit_sink_failed", operation=descriptor.name, component="audit")

    @staticmethod
    def _to_gateway_error(error: Exception, name: str) -> GatewayError:
        gateway_error = classify_error(error, name)
        if isinstance(gateway_error, TransientUpstreamError):
            return UpstreamUnavailableError(gateway_error.message)
        return gateway_error
