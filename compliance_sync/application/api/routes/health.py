"""
Health Check Route

Reports whether the local agent can do its job:
- store: the durable store answers (required; 503 otherwise)
- circuit: the backend breaker is closed (open = degraded)
- connectivity / session: informational
"""

from datetime import datetime, timezone

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from compliance_sync.application.api.dependencies import ContextDep
from compliance_sync.application.api.models import HealthResponse

router = APIRouter(prefix="/health", tags=["Health"])


@router.get("", response_model=HealthResponse)
async def health_check(ctx: ContextDep):
    store_ok = await ctx.store.ping()
    breakers = ctx.breakers.get_all_stats()
    circuit_open = any(stats["isOpen"] for stats in breakers.values())

    if not store_ok:
        status = "unhealthy"
    elif circuit_open or not ctx.connectivity.is_online():
        status = "degraded"
    else:
        status = "healthy"

    body = HealthResponse(
        status=status,
        timestamp=datetime.now(timezone.utc).isoformat(),
        components={
            "store": "up" if store_ok else "down",
            "online": ctx.connectivity.is_online(),
            "session": ctx.session.status.value,
            "circuitBreakers": breakers,
        },
    )
    if not store_ok:
        return JSONResponse(status_code=503, content=body.model_dump())
    return body
