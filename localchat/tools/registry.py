"""
localchat - Tool Registry

Name -> (definition, executor). The registry describes the tools to the
model and resolves executors for the dispatch coordinator.
"""

from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from .extractor import DEFAULT_MARKER_CLOSE, DEFAULT_MARKER_OPEN
from .schema import ToolDefinition, ToolExecutor


@dataclass
class RegisteredTool:
    definition: ToolDefinition
    executor: ToolExecutor
    receives_call: bool = False


class ToolRegistry:
    """
    Central registry of the tools available to the model.

    Usage:
        registry = ToolRegistry()
        registry.register(definition, executor)
        prompt = registry.build_system_prompt()
    """

    def __init__(self):
        self._tools: Dict[str, RegisteredTool] = {}

    def register(
        self,
        definition: ToolDefinition,
        executor: ToolExecutor,
        receives_call: bool = False,
    ) -> None:
        """
        Register a tool; a later registration under the same name replaces it.

        With ``receives_call`` the executor is handed the whole ToolCall
        (id included) instead of just its arguments.
        """
        valid, error = definition.validate_name()
        if not valid:
            raise ValueError(error)
        self._tools[definition.name] = RegisteredTool(definition, executor, receives_call)

    def unregister(self, name: str) -> None:
        self._tools.pop(name, None)

    def get(self, name: str) -> Optional[RegisteredTool]:
        return self._tools.get(name)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def __len__(self) -> int:
        return len(self._tools)

    @property
    def names(self) -> List[str]:
        return list(self._tools)

    @property
    def definitions(self) -> List[ToolDefinition]:
        return [tool.definition for tool in self._tools.values()]

    def to_llm_format(self) -> List[Dict[str, Any]]:
        """OpenAI-style function schemas for every registered tool."""
        return [definition.to_llm_format() for definition in self.definitions]

    def build_system_prompt(
        self,
        marker_open: str = DEFAULT_MARKER_OPEN,
        marker_close: str = DEFAULT_MARKER_CLOSE,
    ) -> str:
        """
        System prompt section describing the tools and the marker syntax.

        Empty when no tools are registered.
        """
        if not self._tools:
            return ""

        lines = [
            "",
            "",
            "## Available Tools",
            "",
            f"You have access to the following tools. To use a tool, wrap your call in {marker_open} tags with JSON:",
            "",
            "```",
            f'{marker_open}{{"name": "tool_name", "arguments": {{"param": "value"}}}}{marker_close}',
            "```",
            "",
            "Available tools:",
            "",
        ]

        for definition in self.definitions:
            title = " ".join(part for part in (definition.icon, definition.display_name or definition.name) if part)
            lines.append(f"### {title} ({definition.name})")
            lines.append(definition.description)
            lines.append("")
            if definition.parameters:
                lines.append("Parameters:")
                for param in definition.parameters:
                    required = " (required)" if param.required else " (optional)"
                    lines.append(f"- **{param.name}** ({param.type}){required}: {param.description}")
                lines.append("")

        lines.append(
            "When you need information you don't have, use the appropriate tool. "
            "Always explain what you're doing before calling a tool."
        )
        return "\n".join(lines) + "\n"
