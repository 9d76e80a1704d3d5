"""
Queue Routes

The UI's window onto the submission queue: enqueue, status badge, manual
drain, and the human workflow for entries the backend rejected.
"""

from fastapi import APIRouter, BackgroundTasks, HTTPException

from compliance_sync.application.api.dependencies import ContextDep
from compliance_sync.application.api.models import EnqueueResponse, QueueStatusResponse
from compliance_sync.core.config.constants import EntryStatus
from compliance_sync.core.logging.logger import get_logger
from compliance_sync.core.models.queue import LogEntryPayload

logger = get_logger(__name__)

router = APIRouter(prefix="/queue", tags=["Queue"])


@router.get("/status", response_model=QueueStatusResponse)
async def queue_status(ctx: ContextDep):
    status = await ctx.orchestrator.refresh_status()
    return {
        **status.to_dict(),
        "auth_required": ctx.orchestrator.auth_required,
        "circuit": ctx.api.breaker.get_status().to_dict(),
    }


@router.post("/entries", response_model=EnqueueResponse, status_code=201)
async def enqueue_entry(payload: LogEntryPayload, ctx: ContextDep, background_tasks: BackgroundTasks):
    """
    Queue a log entry.

    The entry is durable once this returns; delivery is attempted in the
    background (and by every later drain trigger).
    """
    key = await ctx.queue.enqueue(payload)
    if ctx.connectivity.is_online():
        background_tasks.add_task(ctx.orchestrator.attempt_drain, "enqueue")
    return {"idempotency_key": key}


@router.post("/drain")
async def drain_queue(ctx: ContextDep):
    if not ctx.session.is_authenticated:
        raise HTTPException(status_code=401, detail="Authentication required to drain the queue")

    result = await ctx.orchestrator.attempt_drain("manual")
    return {
        "result": result.to_dict() if result else None,
        "authRequired": ctx.orchestrator.auth_required,
        "status": ctx.orchestrator.last_status.to_dict(),
    }


@router.post("/foreground")
async def foreground(ctx: ContextDep):
    """The UI became visible again: eviction check, then status refresh and drain."""
    eviction = await ctx.orchestrator.on_foreground()
    return {
        "eviction": eviction.to_dict() if eviction else None,
        "status": ctx.orchestrator.last_status.to_dict(),
    }


@router.get("/failed")
async def failed_entries(ctx: ContextDep):
    entries = await ctx.queue.entries_by_status(EntryStatus.FAILED)
    return {"entries": [entry.to_storage() for entry in entries]}


@router.post("/failed/{idempotency_key}/retry")
async def retry_failed(idempotency_key: str, ctx: ContextDep):
    if not await ctx.queue.requeue_failed([idempotency_key]):
        raise HTTPException(status_code=404, detail="No failed entry with that key")
    return {"requeued": 1}


@router.delete("/failed/{idempotency_key}")
async def dismiss_failed(idempotency_key: str, ctx: ContextDep):
    if not await ctx.queue.dismiss_failed(idempotency_key):
        raise HTTPException(status_code=404, detail="No failed entry with that key")
    return {"dismissed": 1}


@router.post("/cleanup")
async def cleanup(ctx: ContextDep):
    return {"cleaned": await ctx.queue.cleanup_synced()}
