"""
localchat - API Routes

Route modules for different API endpoints.
"""

from .chat import router as chat_router
from .tools import router as tools_router
from .providers import router as providers_router

__all__ = [
    "chat_router",
    "tools_router",
    "providers_router",
]
