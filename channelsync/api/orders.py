"""
Order endpoints
"""
from datetime import datetime
from fastapi import APIRouter, Depends, HTTPException, Query
from typing import Optional

from channelsync.api.deps import get_orchestrator, http_error, parse_platform
from channelsync.connectors.base import DateRange
from channelsync.errors import ChannelSyncError
from channelsync.services.sync_service import SyncOrchestrator

router = APIRouter(prefix="/orders", tags=["orders"])


@router.get("")
async def list_orders(
    source: str = Query("shopify", description="Platform to read orders from"),
    created_at_min: Optional[datetime] = Query(None, description="Inclusive lower bound (ISO 8601)"),
    created_at_max: Optional[datetime] = Query(None, description="Inclusive upper bound (ISO 8601)"),
    orchestrator: SyncOrchestrator = Depends(get_orchestrator),
):
    """
    Orders from one platform, optionally limited to a created-at window.

    Example: GET /orders?source=shopify&created_at_min=2025-01-01T00:00:00Z
    """
    platform = parse_platform(source)
    try:
        date_range = DateRange(created_at_min, created_at_max)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))

    try:
        result = await orchestrator.get_orders(platform, date_range)
    except ChannelSyncError as e:
        raise http_error(e)

    return {"orders": [o.to_dict() for o in result["orders"]], "logs": result["logs"]}
