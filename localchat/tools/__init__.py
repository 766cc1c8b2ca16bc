"""
localchat - Tool Calling Module

Tool calls embedded as markers in generated text:
- Extractor: parses markers out of accumulated text
- Registry: tool definitions and executors, system prompt rendering
- Parallel: concurrent, isolated dispatch with per-call deadlines
- Remote: client for the external tool-execution service
- Formatting: final message rendering of tool results
"""

from .schema import (
    ToolErrorKind,
    ToolParameter,
    ToolDefinition,
    ToolCall,
    ToolOutput,
    ToolResult,
    ToolExecutor,
)
from .extractor import (
    DEFAULT_MARKER_OPEN,
    DEFAULT_MARKER_CLOSE,
    ExtractionResult,
    ToolCallExtractor,
    extract_tool_calls,
    parse_payload,
    repair_json,
)
from .registry import ToolRegistry, RegisteredTool
from .parallel import (
    ToolCallStatus,
    ToolCallSlot,
    DispatchTracker,
    ParallelToolExecutor,
)
from .remote import (
    RemoteToolService,
    DEFAULT_REMOTE_TOOLS,
    WEB_SEARCH_TOOL,
    IMAGE_SEARCH_TOOL,
)
from .formatting import (
    render_tool_result,
    render_tool_results,
    format_tool_result_for_display,
)

__all__ = [
    # Schema
    "ToolErrorKind",
    "ToolParameter",
    "ToolDefinition",
    "ToolCall",
    "ToolOutput",
    "ToolResult",
    "ToolExecutor",
    # Extractor
    "DEFAULT_MARKER_OPEN",
    "DEFAULT_MARKER_CLOSE",
    "ExtractionResult",
    "ToolCallExtractor",
    "extract_tool_calls",
    "parse_payload",
    "repair_json",
    # Registry
    "ToolRegistry",
    "RegisteredTool",
    # Parallel
    "ToolCallStatus",
    "ToolCallSlot",
    "DispatchTracker",
    "ParallelToolExecutor",
    # Remote
    "RemoteToolService",
    "DEFAULT_REMOTE_TOOLS",
    "WEB_SEARCH_TOOL",
    "IMAGE_SEARCH_TOOL",
    # Formatting
    "render_tool_result",
    "render_tool_results",
    "format_tool_result_for_display",
]
