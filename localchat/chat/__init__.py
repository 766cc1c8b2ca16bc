"""
localchat - Chat Module

Turn orchestration: streaming relay, tool extraction and dispatch.
"""

from .service import ChatService, Transcript, TurnResult

__all__ = [
    "ChatService",
    "Transcript",
    "TurnResult",
]
