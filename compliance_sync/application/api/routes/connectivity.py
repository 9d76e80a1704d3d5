"""Connectivity Route: the host UI reports online/offline transitions."""

from fastapi import APIRouter

from compliance_sync.application.api.dependencies import ContextDep
from compliance_sync.application.api.models import ConnectivityRequest

router = APIRouter(prefix="/connectivity", tags=["Connectivity"])


@router.post("")
async def set_connectivity(body: ConnectivityRequest, ctx: ContextDep):
    # Going online fires the orchestrator's drain listener before returning
    await ctx.connectivity.set_online(body.online)
    return {"online": ctx.connectivity.is_online(), "status": ctx.orchestrator.last_status.to_dict()}
