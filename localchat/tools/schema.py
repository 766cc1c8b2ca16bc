"""
localchat - Tool Schema Definitions

Tool definitions offered to the model, the calls it makes, and the
results the dispatch coordinator hands back.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, List, Optional


class ToolErrorKind(str, Enum):
    """Why a tool call failed."""
    UNKNOWN_TOOL = "unknown_tool"          # No such tool; never invoked
    EXECUTION_FAILED = "execution_failed"  # Executor raised
    TIMEOUT = "timeout"                    # Exceeded the per-call deadline
    CANCELLED = "cancelled"                # Dispatch itself was cancelled


@dataclass
class ToolParameter:
    """One named parameter of a tool."""
    name: str
    type: str
    description: str = ""
    required: bool = False
    enum: Optional[List[str]] = None
    default: Optional[Any] = None

    def to_property(self) -> Dict[str, Any]:
        """JSON Schema property for this parameter."""
        result: Dict[str, Any] = {
            "type": self.type,
            "description": self.description,
        }
        if self.enum is not None:
            result["enum"] = self.enum
        if self.default is not None:
            result["default"] = self.default
        return result


@dataclass
class ToolDefinition:
    """
    A tool the model may call.

    ``display_name`` and ``icon`` are only used when describing the tool
    to the model in the system prompt.
    """
    name: str
    description: str
    parameters: List[ToolParameter] = field(default_factory=list)
    display_name: str = ""
    icon: str = ""

    def validate_name(self) -> tuple:
        """
        Validate tool name.

        Rules:
        - Must be 1-64 characters
        - Must match pattern [a-zA-Z0-9_-]+
        """
        if not self.name:
            return False, "Tool name is required"

        if len(self.name) > 64:
            return False, f"Tool name exceeds 64 characters: {len(self.name)}"

        if not re.match(r'^[a-zA-Z0-9_-]+$', self.name):
            return False, f"Tool name contains invalid characters: {self.name}"

        return True, None

    def to_llm_format(self) -> Dict[str, Any]:
        """OpenAI-style function schema."""
        return {
            "type": "function",
            "function": {
                "name": self.name,
                "description": self.description,
                "parameters": {
                    "type": "object",
                    "properties": {p.name: p.to_property() for p in self.parameters},
                    "required": [p.name for p in self.parameters if p.required],
                },
            },
        }


@dataclass(frozen=True)
class ToolCall:
    """A tool invocation extracted from generated text. Immutable."""
    id: str
    name: str
    arguments: Any = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {"id": self.id, "name": self.name, "arguments": self.arguments}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ToolCall":
        return cls(
            id=str(data.get("id") or ""),
            name=str(data.get("name") or ""),
            arguments=data.get("arguments") if data.get("arguments") is not None else {},
        )


@dataclass
class ToolOutput:
    """
    Executor return value carrying a rendering hint.

    Executors may return any JSON-compatible value; this wrapper is only
    needed to attach a ``display_type``.
    """
    value: Any
    display_type: Optional[str] = None


@dataclass
class ToolResult:
    """Outcome of one ToolCall; exactly one per call."""
    call_id: str
    name: str
    success: bool
    value: Any = None
    error: Optional[str] = None
    error_kind: Optional[ToolErrorKind] = None
    display_type: Optional[str] = None
    duration_ms: Optional[int] = None

    @classmethod
    def ok(
        cls,
        call: ToolCall,
        value: Any,
        display_type: Optional[str] = None,
        duration_ms: Optional[int] = None,
    ) -> "ToolResult":
        return cls(
            call_id=call.id,
            name=call.name,
            success=True,
            value=value,
            display_type=display_type,
            duration_ms=duration_ms,
        )

    @classmethod
    def failure(
        cls,
        call: ToolCall,
        kind: ToolErrorKind,
        error: str,
        duration_ms: Optional[int] = None,
    ) -> "ToolResult":
        return cls(
            call_id=call.id,
            name=call.name,
            success=False,
            error=error,
            error_kind=kind,
            duration_ms=duration_ms,
        )

    def to_dict(self) -> Dict[str, Any]:
        """Wire format shared with the tool-execution service."""
        result: Dict[str, Any] = {
            "toolCallId": self.call_id,
            "name": self.name,
            "success": self.success,
        }
        if self.success:
            result["result"] = self.value
        else:
            result["error"] = self.error
            if self.error_kind is not None:
                result["errorKind"] = self.error_kind.value
        if self.display_type:
            result["displayType"] = self.display_type
        if self.duration_ms is not None:
            result["durationMs"] = self.duration_ms
        return result


# Executors receive the call's arguments, or the whole ToolCall when
# registered with receives_call=True
ToolExecutor = Callable[[Any], Awaitable[Any]]
