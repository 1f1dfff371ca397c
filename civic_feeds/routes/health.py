"""Health check endpoints."""

from fastapi import APIRouter, Depends
from datetime import datetime, timezone
import logging

from ..service import CalendarFeedService, get_service

router = APIRouter()
logger = logging.getLogger(__name__)


@router.get("/")
async def health_check():
    """Basic health check - always returns ok if service is running."""
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "service": "civic-feeds",
        "version": "0.1.0"
    }


@router.get("/ready")
async def readiness_check(service: CalendarFeedService = Depends(get_service)):
    """Readiness check with registry counts."""
    sources = service.registry.all()
    active = [s for s in sources if s.is_active]
    return {
        "status": "ok",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "checks": {
            "registry": {
                "status": "ok" if sources else "empty",
                "sources": len(sources),
                "active": len(active),
            },
        },
    }
