"""
localchat - API Dependencies

Shared dependencies for FastAPI routes. The application state is built
by the server lifespan; routes read it through these functions.
"""

from fastapi import Request

from ..adapters.base import BaseAdapter
from ..chat.service import ChatService
from ..core.config import Settings
from ..core.errors import ServiceUnavailableError


def get_chat_service(request: Request) -> ChatService:
    service = getattr(request.app.state, "chat_service", None)
    if service is None:
        raise ServiceUnavailableError("Chat service")
    return service


def get_adapter(request: Request) -> BaseAdapter:
    return get_chat_service(request).adapter


def get_app_settings(request: Request) -> Settings:
    settings = getattr(request.app.state, "settings", None)
    if settings is None:
        raise ServiceUnavailableError("Settings")
    return settings
