"""
localchat - Parallel Tool Dispatch

Runs every extracted tool call concurrently and collects one result per
call.

Key Features:
- One slot per call; results come back in input order whatever the
  completion order
- Error isolation: a failing, hung or unknown tool only fails its own slot
- Per-call deadline via asyncio.wait_for
- Concurrency bounded by a semaphore
"""

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import List, Optional

from ..observability.logging import get_logger
from ..observability.metrics import get_metrics
from ..observability.tracing import get_tracing_manager, tool_attributes
from .registry import ToolRegistry
from .schema import ToolCall, ToolErrorKind, ToolOutput, ToolResult


logger = get_logger(__name__)


class ToolCallStatus(str, Enum):
    """Status of a tool call."""
    PENDING = "pending"       # Waiting to be executed
    RUNNING = "running"       # Currently executing
    COMPLETED = "completed"   # Result recorded (success or failure)
    CANCELLED = "cancelled"   # Dispatch cancelled before completion


@dataclass
class ToolCallSlot:
    """Result slot of a single call; written only by that call's task."""
    call: ToolCall
    status: ToolCallStatus = ToolCallStatus.PENDING
    result: Optional[ToolResult] = None
    started_at: Optional[float] = None

    def start(self):
        self.status = ToolCallStatus.RUNNING
        self.started_at = time.perf_counter()

    @property
    def elapsed_ms(self) -> Optional[int]:
        if self.started_at is None:
            return None
        return int((time.perf_counter() - self.started_at) * 1000)

    def complete(self, result: ToolResult):
        self.status = ToolCallStatus.COMPLETED
        self.result = result

    def cancel(self):
        self.status = ToolCallStatus.CANCELLED
        self.result = ToolResult.failure(
            self.call,
            ToolErrorKind.CANCELLED,
            "Tool execution was cancelled",
            duration_ms=self.elapsed_ms,
        )


@dataclass
class DispatchTracker:
    """
    Ordered slots for one batch of calls.

    Pass one to ``dispatch`` to inspect partial outcomes after a
    cancellation.
    """
    slots: List[ToolCallSlot] = field(default_factory=list)

    @classmethod
    def for_calls(cls, calls: List[ToolCall]) -> "DispatchTracker":
        return cls(slots=[ToolCallSlot(call=call) for call in calls])

    @property
    def is_all_complete(self) -> bool:
        return all(slot.result is not None for slot in self.slots)

    @property
    def has_failures(self) -> bool:
        return any(slot.result is not None and not slot.result.success for slot in self.slots)

    def cancel_unfinished(self):
        for slot in self.slots:
            if slot.result is None:
                slot.cancel()

    def get_results(self) -> List[ToolResult]:
        """Results in input order; only valid once every slot is filled."""
        return [slot.result for slot in self.slots if slot.result is not None]


class ParallelToolExecutor:
    """
    Dispatches tool calls concurrently against a registry.

    Usage:
        executor = ParallelToolExecutor(registry, max_concurrent=10, default_timeout=30.0)
        results = await executor.dispatch(calls)

    ``dispatch`` never raises for a tool failure. It raises only if the
    dispatch itself is cancelled, after marking unfinished slots cancelled.
    """

    def __init__(
        self,
        registry: ToolRegistry,
        max_concurrent: int = 10,
        default_timeout: float = 30.0
    ):
        """
        Args:
            registry: Where tool executors are looked up
            max_concurrent: Maximum concurrent executions
            default_timeout: Default timeout per tool call (seconds)
        """
        self.registry = registry
        self.max_concurrent = max_concurrent
        self.default_timeout = default_timeout
        self._semaphore = asyncio.Semaphore(max_concurrent)

    async def dispatch(
        self,
        calls: List[ToolCall],
        timeout: Optional[float] = None,
        tracker: Optional[DispatchTracker] = None,
    ) -> List[ToolResult]:
        """
        Execute all calls and wait for every one to settle.

        Args:
            calls: Calls in order of appearance
            timeout: Per-call deadline (uses default if not specified)
            tracker: Optional tracker to fill; created if omitted

        Returns:
            One ToolResult per call, in input order
        """
        timeout = timeout or self.default_timeout
        tracker = tracker or DispatchTracker.for_calls(calls)

        tasks = [
            asyncio.ensure_future(self._execute_single(slot, timeout))
            for slot in tracker.slots
        ]

        try:
            await asyncio.gather(*tasks)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            tracker.cancel_unfinished()
            logger.info(
                "Tool dispatch cancelled",
                total=len(tracker.slots),
                cancelled=sum(1 for s in tracker.slots if s.status == ToolCallStatus.CANCELLED),
            )
            raise

        return tracker.get_results()

    async def _execute_single(self, slot: ToolCallSlot, timeout: float):
        """Execute one call with semaphore and timeout; never raises except on cancellation."""
        call = slot.call
        tool = self.registry.get(call.name)

        if tool is None:
            slot.complete(ToolResult.failure(call, ToolErrorKind.UNKNOWN_TOOL, f"Unknown tool: {call.name}"))
            self._record(slot.result)
            return

        async with self._semaphore:
            slot.start()
            tracing = get_tracing_manager()

            with tracing.start_client_span(
                f"tool.{call.name}",
                attributes=tool_attributes(call.name, call.id),
            ) as span:
                try:
                    value = await asyncio.wait_for(
                        tool.executor(call if tool.receives_call else call.arguments),
                        timeout=timeout,
                    )
                    if isinstance(value, ToolOutput):
                        result = ToolResult.ok(call, value.value, value.display_type, slot.elapsed_ms)
                    else:
                        result = ToolResult.ok(call, value, duration_ms=slot.elapsed_ms)

                except asyncio.TimeoutError:
                    result = ToolResult.failure(
                        call,
                        ToolErrorKind.TIMEOUT,
                        f"Tool execution timed out after {timeout:g}s",
                        slot.elapsed_ms,
                    )

                except Exception as e:
                    tracing.record_exception(e, span)
                    result = ToolResult.failure(
                        call,
                        ToolErrorKind.EXECUTION_FAILED,
                        str(e) or type(e).__name__,
                        slot.elapsed_ms,
                    )

                span.set_attribute("tool.success", result.success)

        slot.complete(result)
        self._record(result)

    def _record(self, result: ToolResult):
        status = "ok" if result.success else result.error_kind.value
        get_metrics().record_tool_call(
            result.name,
            status,
            (result.duration_ms or 0) / 1000,
        )
        if not result.success:
            logger.info(
                "Tool call failed",
                tool=result.name,
                call_id=result.call_id,
                error_kind=status,
                error=result.error,
            )
