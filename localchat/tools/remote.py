"""
localchat - Remote Tool Service

Client for the external tool-execution service. The service takes a
batch of calls and answers with one result per call:

    POST {base}/api/tools/execute  {"toolCalls": [{"id", "name", "arguments"}]}
    -> {"results": [{"toolCallId", "name", "success", "result" | "error", "displayType"?}]}

Each remote tool is registered with ``execute`` as its executor, so the
service sees the extracted call id; the dispatch coordinator supplies
concurrency and deadlines.
"""

from typing import List, Optional

import httpx

from ..core.errors import ToolExecutionError
from ..observability.logging import TimedOperation, get_logger
from .registry import ToolRegistry
from .schema import ToolCall, ToolDefinition, ToolOutput, ToolParameter


logger = get_logger(__name__)


WEB_SEARCH_TOOL = ToolDefinition(
    name="web_search",
    display_name="Web Search",
    icon="🔍",
    description=(
        "Search the web for current information, news, facts, or any topic. "
        "Use this when you need up-to-date information or to find specific websites/resources."
    ),
    parameters=[
        ToolParameter("query", "string", "The search query - be specific for better results", required=True),
        ToolParameter("limit", "number", "Maximum number of results to return (default: 5)", default=5),
    ],
)

IMAGE_SEARCH_TOOL = ToolDefinition(
    name="image_search",
    display_name="Image Search",
    icon="🖼️",
    description=(
        "Search for images on the web. Use this when the user asks for pictures, "
        "photos, images, or wants to see what something looks like."
    ),
    parameters=[
        ToolParameter("query", "string", "What to search for - be descriptive", required=True),
        ToolParameter("count", "number", "Number of images to return (default: 6)", default=6),
    ],
)

DEFAULT_REMOTE_TOOLS: List[ToolDefinition] = [WEB_SEARCH_TOOL, IMAGE_SEARCH_TOOL]


class RemoteToolService:
    """httpx client for the tool-execution service."""

    EXECUTE_PATH = "/api/tools/execute"

    def __init__(
        self,
        base_url: str,
        timeout: float = 30.0,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.client = httpx.AsyncClient(
            base_url=self.base_url,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
            transport=transport,
        )

    async def execute(self, call: ToolCall) -> ToolOutput:
        """
        Run one call remotely.

        Raises:
            ToolExecutionError: transport failure, or the service reported
                the call as failed
        """
        try:
            async with TimedOperation("tool_service_call", logger, extra={"tool": call.name}):
                response = await self.client.post(
                    self.EXECUTE_PATH,
                    json={"toolCalls": [call.to_dict()]},
                )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPError as e:
            logger.warning("Tool service request failed", tool=call.name, error=str(e))
            raise ToolExecutionError(f"Tool service unavailable: {e}") from e
        except ValueError as e:
            raise ToolExecutionError("Tool service returned invalid JSON") from e

        results = data.get("results") if isinstance(data, dict) else None
        if not isinstance(results, list) or not results or not isinstance(results[0], dict):
            raise ToolExecutionError("Tool service returned no result")

        result = results[0]
        if not result.get("success"):
            raise ToolExecutionError(str(result.get("error") or "Tool execution failed"))

        return ToolOutput(value=result.get("result"), display_type=result.get("displayType"))

    def register_all(
        self,
        registry: ToolRegistry,
        definitions: Optional[List[ToolDefinition]] = None,
    ) -> None:
        """Register the service's tools with ``registry``."""
        for definition in definitions if definitions is not None else DEFAULT_REMOTE_TOOLS:
            registry.register(definition, self.execute, receives_call=True)

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()
