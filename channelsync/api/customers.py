"""
Customer endpoints
"""
from fastapi import APIRouter, Depends

from channelsync.api.deps import get_orchestrator, http_error
from channelsync.errors import ChannelSyncError
from channelsync.services.sync_service import SyncOrchestrator

router = APIRouter(prefix="/customers", tags=["customers"])


@router.get("")
async def list_customers(orchestrator: SyncOrchestrator = Depends(get_orchestrator)):
    """Customers merged by email across every connected platform's orders."""
    try:
        result = await orchestrator.get_customers()
    except ChannelSyncError as e:
        raise http_error(e)
    return {"customers": [c.to_dict() for c in result["customers"]], "logs": result["logs"]}
