"""
localchat - Providers API

Connectivity and model listing for the configured backend.
"""

from fastapi import APIRouter, Depends

from ...adapters.base import BaseAdapter
from ...observability.logging import get_logger
from ..dependencies import get_adapter


router = APIRouter(prefix="/api/providers", tags=["providers"])

logger = get_logger(__name__)


@router.get("/status")
async def provider_status(adapter: BaseAdapter = Depends(get_adapter)):
    """Whether the backend is reachable, with latency and available models."""
    health = await adapter.health_check()
    if not health.is_healthy:
        logger.warning(
            "Provider unavailable",
            provider=health.provider.value,
            error=health.last_error,
        )
    return health.to_dict()


@router.get("/models")
async def provider_models(adapter: BaseAdapter = Depends(get_adapter)):
    """Models the backend can serve."""
    models = await adapter.list_models()
    return {
        "provider": adapter.provider.value,
        "models": [model.to_dict() for model in models],
    }
