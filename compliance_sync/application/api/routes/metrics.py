"""Prometheus scrape endpoint."""

from fastapi import APIRouter
from fastapi.responses import Response

from compliance_sync.application.api.dependencies import ContextDep

router = APIRouter(tags=["Metrics"])


@router.get("/metrics")
async def prometheus_metrics(ctx: ContextDep):
    # Refresh the queue gauges so a scrape never reports stale depth
    await ctx.orchestrator.refresh_status()
    return Response(
        content=ctx.metrics.get_prometheus_metrics(),
        media_type=ctx.metrics.get_content_type(),
    )
