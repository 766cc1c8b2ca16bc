"""
localchat - Tool Result Rendering

Turns the visible text of a response plus its tool results into the
final assistant message. Tool failures appear inline, per tool.
"""

import json
from typing import Any, List

from .schema import ToolResult


def _is_search_payload(value: Any) -> bool:
    return (
        isinstance(value, dict)
        and isinstance(value.get("results"), list)
        and all(isinstance(item, dict) and item.get("url") for item in value["results"])
    )


def _render_search(value: dict) -> str:
    lines = [f'🔍 **Search results for "{value.get("query", "")}"**', ""]

    if value.get("instant_answer"):
        lines.extend([f"> 💡 {value['instant_answer']}", ""])

    for i, item in enumerate(value["results"], start=1):
        lines.append(f"**{i}. {item.get('title') or item['url']}**")
        if item.get("snippet"):
            lines.append(item["snippet"])
        lines.append(f"🔗 [{item.get('source') or item['url']}]({item['url']})")
        lines.append("")

    return "\n".join(lines).rstrip()


def render_tool_result(result: ToolResult) -> str:
    """One result as a message block."""
    if not result.success:
        return f"❌ {result.name} failed: {result.error}"

    if _is_search_payload(result.value):
        return _render_search(result.value)

    return f"✅ {result.name}: {json.dumps(result.value, ensure_ascii=False, default=str)}"


def render_tool_results(visible_text: str, results: List[ToolResult]) -> str:
    """Final message: the visible text followed by one block per result."""
    blocks: List[str] = []
    if visible_text.strip():
        blocks.append(visible_text.strip())
    blocks.extend(render_tool_result(result) for result in results)
    return "\n\n".join(blocks)


def format_tool_result_for_display(result: ToolResult) -> str:
    """Compact rendering of a single result for a tool panel."""
    if not result.success:
        return f"❌ Error: {result.error}"

    value = result.value
    if _is_search_payload(value):
        return "\n\n".join(
            f"{i}. **{item.get('title', '')}**\n   {item.get('snippet', '')}\n   [{item['url']}]({item['url']})"
            for i, item in enumerate(value["results"], start=1)
        )

    if isinstance(value, str):
        return value

    return json.dumps(value, indent=2, ensure_ascii=False, default=str)
