# /orderbot/routes/public.py

from fastapi import APIRouter, Depends
from fastapi.responses import PlainTextResponse
from prometheus_client import generate_latest, CONTENT_TYPE_LATEST
from datetime import datetime, timezone

from orderbot.config.settings import settings
from orderbot.services.cache_service import order_cache
from orderbot.utils.dependencies import verify_api_key

# This file defines public-facing endpoints that do not require
# authentication, such as health checks used to keep the service awake.
# The /metrics endpoint is protected by an API key when one is configured.

router = APIRouter()

@router.get("/")
async def root():
    """Root endpoint."""
    return {
        "service": "Order Checklist Bot",
        "version": "1.0.0",
        "status": "operational",
        "environment": settings.environment
    }

@router.get("/health", summary="Basic Health Check")
async def health_check():
    """Basic health check for load balancers and keep-alive pings."""
    return {"status": "healthy", "cached_orders": len(order_cache), "timestamp": datetime.now(timezone.utc)}

@router.get("/metrics", dependencies=[Depends(verify_api_key)], include_in_schema=False)
async def metrics():
    return PlainTextResponse(generate_latest().decode(), media_type=CONTENT_TYPE_LATEST)
