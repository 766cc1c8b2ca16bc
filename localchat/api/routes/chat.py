"""
localchat - Chat API

Streaming, non-streaming and full-turn chat endpoints.
"""

from typing import AsyncIterator

from fastapi import APIRouter, Depends, Request, Response
from fastapi.responses import JSONResponse, StreamingResponse

from ...chat.service import ChatService
from ...core.config import Settings
from ...observability.middleware import get_request_id
from ..dependencies import get_app_settings, get_chat_service
from ..models import ChatBody, ChatResponseBody


router = APIRouter(prefix="/api/chat", tags=["chat"])


@router.post("/stream")
async def stream_chat(
    request: Request,
    body: ChatBody,
    service: ChatService = Depends(get_chat_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Stream a chat completion as Server-Sent Events.

    Every record is ``data: {"content": ..., "done": ...}``; the stream
    ends with ``data: [DONE]``. A failure at any point is reported as one
    error record followed by ``[DONE]``.
    """
    request_id = get_request_id(request)
    chat_request = body.to_internal(settings.model, stream=True)

    async def generate() -> AsyncIterator[str]:
        async for record in service.stream(chat_request, request_id):
            yield record

    return StreamingResponse(
        generate(),
        media_type="text/event-stream",
        headers={
            "Cache-Control": "no-cache",
            "Connection": "keep-alive",
            "X-Request-Id": request_id,
        }
    )


@router.post("", response_model=ChatResponseBody)
async def chat(
    request: Request,
    response: Response,
    body: ChatBody,
    service: ChatService = Depends(get_chat_service),
    settings: Settings = Depends(get_app_settings),
):
    """Non-streaming chat completion: ``{content, model, done}``."""
    request_id = get_request_id(request)
    result = await service.complete(body.to_internal(settings.model, stream=False), request_id)

    response.headers["X-Request-Id"] = request_id
    return ChatResponseBody(**result.to_dict())


@router.post("/turn")
async def chat_turn(
    request: Request,
    body: ChatBody,
    service: ChatService = Depends(get_chat_service),
    settings: Settings = Depends(get_app_settings),
):
    """
    Run a full turn: stream to completion, then extract and dispatch any
    tool calls. ``content`` is the final rendered message.
    """
    request_id = get_request_id(request)
    turn = await service.run_turn(body.to_internal(settings.model, stream=True), request_id)

    return JSONResponse(
        content=turn.to_dict(),
        headers={"X-Request-Id": request_id}
    )
