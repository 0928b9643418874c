"""
Health check endpoints for the realtime session service.

Provides:
- /health/ready - Readiness probe (startup complete and below session limit)
- /health/live - Liveness probe (service is running)
- /health/status - Detailed status for monitoring
"""

import logging
import time
from typing import Any

from fastapi import APIRouter, HTTPException, status

from ..config import settings
from ..core.registry import session_registry
from . import deps

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/health", tags=["health"])

# Startup state
_startup_complete = False
_startup_time: float | None = None


def mark_startup_complete() -> None:
    """Mark startup as complete."""
    global _startup_complete, _startup_time
    _startup_complete = True
    _startup_time = time.time()
    logger.info("Startup marked as complete")


def is_startup_complete() -> bool:
    """Check if startup is complete."""
    return _startup_complete


@router.get("/ready")
async def readiness() -> dict[str, Any]:
    """
    Readiness probe.

    Returns 503 until startup completes or while every session slot is taken.
    """
    if not _startup_complete:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Startup not complete",
        )

    if session_registry.active_sessions >= session_registry.max_sessions:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Maximum sessions reached",
        )

    return {
        "status": "ready",
        "active_sessions": session_registry.active_sessions,
        "uptime_seconds": round(time.time() - _startup_time, 1) if _startup_time else 0,
    }


@router.get("/live")
async def liveness() -> dict[str, str]:
    """Liveness probe."""
    return {"status": "alive"}


@router.get("/status")
async def detailed_status() -> dict[str, Any]:
    """Detailed status for dashboards."""
    return {
        "startup_complete": _startup_complete,
        "model": settings.model,
        "language": settings.language,
        "sessions": {
            "active": session_registry.active_sessions,
            "connected": session_registry.connected_sessions,
            "max": session_registry.max_sessions,
        },
        "saved_conversations": deps.history_store.count,
    }
