"""
Main application entry point for the realtime session service.

Initializes:
- FastAPI application
- Presentation WebSocket bridge
- Health and metrics endpoints
"""

import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import health, metrics, websocket
from .config import settings
from .core.registry import session_registry
from .observability.logging import configure_logging
from .observability.metrics import update_session_metrics

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Application lifespan manager.

    Startup: configure logging, reset gauges, mark ready.
    Shutdown: log the sessions still open (each closes with its socket).
    """
    configure_logging()
    logger.info(f"Starting realtime session service for model {settings.model}")

    if not settings.api_key:
        logger.warning("OMNI_API_KEY is not set; realtime connections will be rejected")

    update_session_metrics(session_registry.active_sessions)
    health.mark_startup_complete()

    logger.info(f"Realtime session service ready - listening on {settings.host}:{settings.port}")

    yield

    logger.info(
        f"Shutting down realtime session service "
        f"({session_registry.active_sessions} sessions open)"
    )


# Create FastAPI app
app = FastAPI(
    title="Omni Realtime Session Service",
    description="Realtime multimodal conversations with speech-triggered frame gating",
    version="0.1.0",
    lifespan=lifespan,
)

# Add CORS middleware
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

# Include routers
app.include_router(websocket.router)
app.include_router(health.router)
app.include_router(metrics.router)


@app.get("/")
async def root() -> dict:
    """Root endpoint with service info."""
    return {
        "service": "omni-realtime",
        "version": "0.1.0",
        "model": settings.model,
        "status": "running",
        "health": "/health/ready",
        "websocket": "/ws/session",
        "metrics": "/metrics",
    }


def run() -> None:
    """Run the application with uvicorn."""
    uvicorn.run(
        "omni_realtime.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    run()
