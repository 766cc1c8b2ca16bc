"""
localchat - Main API Server

FastAPI server in front of one local or hosted model backend.

Features:
- One streaming output protocol for Ollama, OpenAI-compatible and
  Anthropic backends
- Tool calls embedded in generated text, dispatched concurrently
- Full observability (metrics, tracing, logging)
"""

from contextlib import asynccontextmanager
from typing import Optional

import httpx
from fastapi import FastAPI, HTTPException, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from . import __version__
from .adapters import create_adapter
from .api import chat_router, providers_router, tools_router
from .chat.service import ChatService
from .core.config import Settings, get_settings
from .core.errors import ErrorType, LocalChatException
from .observability import (
    ObservabilityMiddleware,
    get_logger,
    get_request_id,
    metrics_endpoint,
    setup_observability,
)
from .tools.extractor import ToolCallExtractor
from .tools.parallel import ParallelToolExecutor
from .tools.registry import ToolRegistry
from .tools.remote import RemoteToolService


def create_app(
    settings: Optional[Settings] = None,
    transport: Optional[httpx.AsyncBaseTransport] = None,
) -> FastAPI:
    """
    Build the application.

    Args:
        settings: Resolved configuration (read from the environment if omitted)
        transport: Optional httpx transport for the backend adapter
    """
    settings = settings or get_settings()

    # ============================================================
    # Lifespan management
    # ============================================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        """Manage application lifespan - startup and shutdown."""
        # Initialize observability first (for logging during startup)
        observability = setup_observability(settings, service_version=__version__)
        logger = get_logger("server")

        provider_config = settings.provider_config()
        adapter = create_adapter(
            provider_config,
            timeout=settings.upstream_timeout,
            transport=transport,
            marker_open=settings.tool_marker_open,
            marker_close=settings.tool_marker_close,
        )

        registry = ToolRegistry()
        tool_service: Optional[RemoteToolService] = None
        if settings.tool_service_url:
            tool_service = RemoteToolService(settings.tool_service_url, timeout=settings.tool_timeout)
            tool_service.register_all(registry)
            logger.info("Tool service configured", url=settings.tool_service_url, tools=registry.names)

        app.state.settings = settings
        app.state.chat_service = ChatService(
            adapter,
            registry=registry,
            executor=ParallelToolExecutor(
                registry,
                max_concurrent=settings.tool_max_concurrent,
                default_timeout=settings.tool_timeout,
            ),
            extractor=ToolCallExtractor(settings.tool_marker_open, settings.tool_marker_close),
            system_prompt=settings.system_prompt,
        )

        logger.info(
            "localchat server ready",
            provider=provider_config.type.value,
            base_url=provider_config.base_url,
            model=settings.model,
            tools=len(registry),
        )

        yield

        # Shutdown: Close clients
        await adapter.close()
        if tool_service:
            await tool_service.close()

        # Shutdown tracing
        if "tracing" in observability:
            observability["tracing"].shutdown()

        app.state.chat_service = None
        logger.info("localchat server stopped")

    # ============================================================
    # FastAPI App
    # ============================================================

    app = FastAPI(
        title="localchat",
        description="Streaming chat gateway for local and hosted model backends",
        version=__version__,
        lifespan=lifespan,
        docs_url="/docs",
        redoc_url="/redoc",
        openapi_url="/openapi.json"
    )

    # Add custom middleware (order matters - first added = innermost)
    app.add_middleware(ObservabilityMiddleware)

    # CORS middleware
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_allow_origins or ["*"],
        allow_credentials=bool(settings.cors_allow_origins),
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(chat_router)
    app.include_router(tools_router)
    app.include_router(providers_router)

    # ============================================================
    # Core Endpoints (not in routes)
    # ============================================================

    @app.get("/health")
    async def health_check():
        """Liveness check; does not contact the backend."""
        service = getattr(app.state, "chat_service", None)
        return {
            "status": "healthy" if service is not None else "starting",
            "version": __version__,
            "provider": settings.provider.value,
            "model": settings.model,
        }

    @app.get("/metrics")
    async def prometheus_metrics():
        """
        Prometheus metrics endpoint.

        Exposes all collected metrics in Prometheus text format.
        """
        return metrics_endpoint()

    # ============================================================
    # Error handlers
    # ============================================================

    @app.exception_handler(LocalChatException)
    async def localchat_exception_handler(request: Request, exc: LocalChatException):
        """Handle all canonical localchat errors."""
        headers = {
            "X-Error-Type": exc.error.type.value,
            "X-Error-Code": exc.error.code,
        }
        if exc.error.request_id:
            headers["X-Request-Id"] = exc.error.request_id
        if exc.error.provider:
            headers["X-Provider"] = exc.error.provider

        return JSONResponse(
            status_code=exc.status_code,
            content=exc.error.to_dict(),
            headers=headers
        )

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request: Request, exc: HTTPException):
        """Handle standard HTTP exceptions."""
        request_id = get_request_id(request)

        return JSONResponse(
            status_code=exc.status_code,
            content={
                "error": {
                    "code": "http_error",
                    "message": str(exc.detail),
                    "type": ErrorType.SEMANTIC.value if exc.status_code < 500 else ErrorType.INFRA.value,
                    "request_id": request_id,
                    "retryable": exc.status_code >= 500
                }
            },
            headers={"X-Request-Id": request_id}
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request: Request, exc: Exception):
        """Handle unexpected exceptions."""
        request_id = get_request_id(request)
        get_logger("server").exception(
            "Unhandled error",
            request_id=request_id,
            path=request.url.path,
        )

        return JSONResponse(
            status_code=500,
            content={
                "error": {
                    "code": "internal_error",
                    "message": "An unexpected error occurred",
                    "type": ErrorType.INFRA.value,
                    "request_id": request_id,
                    "retryable": True
                }
            },
            headers={"X-Request-Id": request_id}
        )

    return app


app = create_app()
