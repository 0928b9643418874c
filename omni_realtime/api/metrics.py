"""
Prometheus scrape endpoint.

Session gauges are refreshed from the registry on every scrape, so they are
current even when no session has started or ended since the last one.
"""

from fastapi import APIRouter, Request, Response
from prometheus_client import REGISTRY
from prometheus_client.exposition import choose_encoder

from ..core.registry import session_registry
from ..observability.metrics import update_session_metrics

router = APIRouter(tags=["metrics"])


@router.get("/metrics")
async def metrics(request: Request) -> Response:
    """Metrics in the format the scraper asks for (text or OpenMetrics)."""
    update_session_metrics(
        session_registry.active_sessions,
        connected_sessions=session_registry.connected_sessions,
    )

    encoder, content_type = choose_encoder(request.headers.get("accept", ""))
    return Response(content=encoder(REGISTRY), media_type=content_type)
