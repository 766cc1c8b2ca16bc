"""
localchat - Tools API

Lists the registered tools and executes explicit batches of tool calls.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from ...chat.service import ChatService
from ...observability.middleware import get_request_id
from ..dependencies import get_chat_service
from ..models import ToolExecuteBody


router = APIRouter(prefix="/api/tools", tags=["tools"])


@router.get("")
async def list_tools(service: ChatService = Depends(get_chat_service)):
    """Registered tools in OpenAI function-schema form."""
    return {"tools": service.registry.to_llm_format()}


@router.post("/execute")
async def execute_tools(
    request: Request,
    body: ToolExecuteBody,
    service: ChatService = Depends(get_chat_service),
):
    """
    Execute a batch of tool calls concurrently.

    Returns one result per call, in request order. Individual failures
    (unknown tool, timeout, executor error) are reported per result; an
    empty batch is rejected with 400.
    """
    results = await service.execute_tools(body.to_internal(), timeout=body.timeout)

    return JSONResponse(
        content={"results": [result.to_dict() for result in results]},
        headers={"X-Request-Id": get_request_id(request)}
    )
