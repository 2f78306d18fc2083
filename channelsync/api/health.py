"""
Health check and dashboard summary endpoints
"""
from fastapi import APIRouter, Depends
from datetime import datetime

from channelsync import __version__
from channelsync.api.deps import get_orchestrator, http_error
from channelsync.errors import ChannelSyncError
from channelsync.services.sync_service import SyncOrchestrator

router = APIRouter()


@router.get("/health")
async def health_check():
    """Health check endpoint"""
    return {
        "status": "healthy",
        "timestamp": datetime.utcnow().isoformat(),
        "version": __version__
    }


@router.get("/dashboard/stats")
async def dashboard_stats(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Sales, refunds and taxes for the last 14 days plus per-platform product counts"""
    try:
        stats = await orchestrator.dashboard_stats()
    except ChannelSyncError as e:
        raise http_error(e)
    return {"success": True, "stats": stats}
