"""
Batch Execution
Runs one action over many identifiers with bounded concurrency

A failing item never aborts the batch: every outcome is folded into a
BatchResult where success + failed == requested. Duplicate identifiers are
processed once and their outcome is reported for each occurrence.
"""

import asyncio
import time
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from .infrastructure.error_handling import (
    BatchTooLargeError,
    ErrorCode,
    GatewayError,
    ItemCancelledError,
    classify_error,
)
from .infrastructure.structured_logging import get_logger
from .infrastructure.telemetry import get_telemetry

logger = get_logger("batch")
telemetry = get_telemetry()

ItemAction = Callable[[str], Awaitable[Any]]


@dataclass
class ItemFailure:
    id: str
    code: ErrorCode
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "error": self.code.value, "message": self.message}


@dataclass
class BatchResult:
    """Aggregate outcome of a batch; errors only appear when something failed"""
    requested: int
    success: int
    failed: int
    errors: List[ItemFailure] = field(default_factory=list)
    results: Dict[str, Any] = field(default_factory=dict)
    cancelled: bool = False

    @property
    def succeeded_ids(self) -> List[str]:
        return list(self.results)

    def to_dict(self) -> Dict[str, Any]:
        data: Dict[str, Any] = {
            "requested": self.requested,
            "success": self.success,
            "failed": self.failed,
        }
        if self.failed:
            data["errors"] = [e.to_dict() for e in self.errors]
        if self.cancelled:
            data["cancelled"] = True
        return data


class BatchExecutor:
    """Bounded-concurrency, continue-on-error batch runner"""

    def __init__(self, max_batch_size: int = 100, concurrency: int = 5):
        if max_batch_size < 1 or concurrency < 1:
            raise ValueError("max_batch_size and concurrency must be positive")
        self.max_batch_size = max_batch_size
        self.concurrency = concurrency

    def check_size(self, ids: Sequence[str]) -> None:
        if len(ids) > self.max_batch_size:
            raise BatchTooLargeError(
                f"Batch of {len(ids)} items exceeds the maximum of {self.max_batch_size}",
                suggestion=f"Split the request into chunks of at most {self.max_batch_size} ids",
                context={"requested": len(ids), "maxBatchSize": self.max_batch_size},
            )

    async def run(self,
                  ids: Sequence[str],
                  action: ItemAction,
                  cancel_event: Optional[asyncio.Event] = None,
                  action_name: str = "batch") -> BatchResult:
        """Apply action to every distinct id; never raises for item failures"""
        self.check_size(ids)
        start = time.time()

        unique_ids = list(dict.fromkeys(ids))
        semaphore = asyncio.Semaphore(self.concurrency)
        outcomes: Dict[str, Tuple[bool, Any]] = {}

        async def process(item_id: str) -> None:
            async with semaphore:
                # Cancellation only stops dispatch; applied mutations stay applied
                if cancel_event is not None and cancel_event.is_set():
                    outcomes[item_id] = (False, ItemCancelledError("Batch cancelled before this item ran"))
                    return
                try:
                    outcomes[item_id] = (True, await action(item_id))
                except GatewayError as e:
                    outcomes[item_id] = (False, e)
                except Exception as e:
                    outcomes[item_id] = (False, classify_error(e, action_name))

        await asyncio.gather(*(process(item_id) for item_id in unique_ids))

        result = BatchResult(requested=len(ids), success=0, failed=0)
        for item_id in ids:
            ok, value = outcomes[item_id]
            if ok:
                result.success += 1
                result.results[item_id] = value
            else:
                result.failed += 1
                result.errors.append(ItemFailure(item_id, value.code, value.message))
                if value.code is ErrorCode.CANCELLED:
                    result.cancelled = True

        for failure in result.errors:
            if failure.code is not ErrorCode.CANCELLED:
                logger.debug("batch_item_failed", action=action_name, item_id=failure.id, error_code=failure.code.value)

        telemetry.record_batch_items(result.success, result.failed)
        logger.batch_completed(
            requested=result.requested,
            success=result.success,
            failed=result.failed,
            action=action_name,
            cancelled=result.cancelled,
            duration_ms=round((time.time() - start) * 1000, 2),
        )
        return result
