"""
Data synchronization endpoints
"""
import asyncio
from fastapi import APIRouter, Depends, Query

from channelsync.api.deps import get_orchestrator
from channelsync.services.sync_service import SyncOrchestrator, sync_history
from channelsync.utils.logger import log

router = APIRouter(prefix="/sync", tags=["sync"])


@router.post("")
async def sync_all_platforms(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """
    Fetch every connected platform and push storefront products into the
    website datastore. Partial failures are reported, not raised.
    """
    report = await orchestrator.sync_all(trigger="manual")
    log.info(f"Manual sync finished: success={report.success}, written={report.records_written}")

    response = {
        "success": report.success,
        "count": report.records_written,
        "report": report.to_dict(),
    }
    if report.error:
        response["error"] = report.error
    return response


@router.get("/history")
async def get_sync_history(
    limit: int = Query(20, ge=1, le=200),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """Recent sync runs, newest first"""
    runs = await asyncio.to_thread(sync_history, limit, orchestrator.session_factory)
    return {"runs": runs, "count": len(runs)}
