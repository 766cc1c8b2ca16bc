"""
localchat - Chat Service

Ties one backend adapter to the tool layer. A turn is streamed to
completion, its text is scanned for tool-call markers, the calls are
dispatched concurrently and the results are rendered into the final
assistant message.
"""

import time
from dataclasses import dataclass, field, replace
from typing import Any, AsyncIterator, Dict, List, Optional

from ..adapters.base import BaseAdapter
from ..core.errors import InvalidRequestError, LocalChatException, create_stream_error_chunk
from ..core.models import ChatRequest, ChatResponse
from ..observability.logging import get_logger
from ..tools.extractor import ToolCallExtractor
from ..tools.formatting import render_tool_results
from ..tools.parallel import ParallelToolExecutor
from ..tools.registry import ToolRegistry
from ..tools.schema import ToolCall, ToolResult


logger = get_logger(__name__)


@dataclass
class Transcript:
    """Text accumulated while a stream is relayed."""
    parts: List[str] = field(default_factory=list)
    done: bool = False
    error: Optional[LocalChatException] = None

    @property
    def text(self) -> str:
        return "".join(self.parts)


@dataclass
class TurnResult:
    """Outcome of one complete turn."""
    text: str
    visible_text: str
    calls: List[ToolCall] = field(default_factory=list)
    results: List[ToolResult] = field(default_factory=list)
    rendered: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "content": self.rendered,
            "text": self.text,
            "visibleText": self.visible_text,
            "toolCalls": [call.to_dict() for call in self.calls],
            "toolResults": [result.to_dict() for result in self.results],
        }


class ChatService:
    """
    Chat orchestration over a single adapter.

    Usage:
        service = ChatService(adapter, registry, executor, extractor)
        async for record in service.stream(request):
            ...
        turn = await service.run_turn(request)
    """

    def __init__(
        self,
        adapter: BaseAdapter,
        registry: Optional[ToolRegistry] = None,
        executor: Optional[ParallelToolExecutor] = None,
        extractor: Optional[ToolCallExtractor] = None,
        system_prompt: Optional[str] = None,
    ):
        self.adapter = adapter
        self.registry = registry or ToolRegistry()
        self.executor = executor or ParallelToolExecutor(self.registry)
        self.extractor = extractor or ToolCallExtractor()
        self.system_prompt = system_prompt

    def prepare(self, request: ChatRequest) -> ChatRequest:
        """Request with the effective system prompt, tool instructions included."""
        base = request.system_prompt or self.system_prompt or ""
        tools = self.registry.build_system_prompt(
            self.extractor.marker_open,
            self.extractor.marker_close,
        )
        prompt = (base + tools) if tools else base
        return replace(request, system_prompt=prompt or None)

    # ============================================================
    # Streaming
    # ============================================================

    async def stream(
        self,
        request: ChatRequest,
        request_id: str = "",
        transcript: Optional[Transcript] = None,
    ) -> AsyncIterator[str]:
        """
        Relay output records for one request.

        Failures end the stream with one error record and ``[DONE]``;
        ``transcript`` (when given) receives the text and the error.
        """
        transcript = transcript if transcript is not None else Transcript()
        deltas = self.adapter.stream_deltas(self.prepare(request), request_id)
        try:
            async for delta in deltas:
                if delta.content:
                    transcript.parts.append(delta.content)
                if delta.terminal:
                    transcript.done = True
                for record in delta.to_sse():
                    yield record
        except LocalChatException as e:
            transcript.error = e
            yield create_stream_error_chunk(e)
        finally:
            await deltas.aclose()

    async def complete(self, request: ChatRequest, request_id: str = "") -> ChatResponse:
        """Non-streaming round trip."""
        return await self.adapter.chat_completion(self.prepare(request), request_id)

    # ============================================================
    # Full turn
    # ============================================================

    async def run_turn(self, request: ChatRequest, request_id: str = "") -> TurnResult:
        """
        Stream to completion, then extract and dispatch tool calls.

        Raises the mapped LocalChatException if the stream fails; tool
        failures are reported in the results.
        """
        start = time.perf_counter()
        parts: List[str] = []
        async for delta in self.adapter.stream_deltas(self.prepare(request), request_id):
            parts.append(delta.content)

        text = "".join(parts)
        extraction = self.extractor.extract(text)

        results: List[ToolResult] = []
        if extraction.has_calls:
            results = await self.executor.dispatch(extraction.calls)
            rendered = render_tool_results(extraction.visible_text, results)
        else:
            rendered = extraction.visible_text

        logger.info(
            "Turn completed",
            request_id=request_id,
            chars=len(text),
            tool_calls=len(extraction.calls),
            tool_failures=sum(1 for r in results if not r.success),
            duration_ms=int((time.perf_counter() - start) * 1000),
        )

        return TurnResult(
            text=text,
            visible_text=extraction.visible_text,
            calls=extraction.calls,
            results=results,
            rendered=rendered,
        )

    async def execute_tools(
        self,
        calls: List[ToolCall],
        timeout: Optional[float] = None,
    ) -> List[ToolResult]:
        """Dispatch an explicit batch of calls."""
        if not calls:
            raise InvalidRequestError("No tool calls provided", param="toolCalls")
        return await self.executor.dispatch(calls, timeout=timeout)
