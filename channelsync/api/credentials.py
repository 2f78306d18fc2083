"""
Platform credential endpoints

Secrets are write-only over HTTP: the API reports connected/disconnected and
never returns stored values.
"""
from fastapi import APIRouter, Depends
from typing import Dict

from channelsync.api.deps import get_resolver, http_error
from channelsync.errors import ChannelSyncError
from channelsync.services.credential_service import CredentialResolver

router = APIRouter(prefix="/credentials", tags=["credentials"])


@router.get("/status")
async def credential_status(resolver: CredentialResolver = Depends(get_resolver)):
    """Connected flag for every marketplace"""
    return {"success": True, "statuses": await resolver.get_all()}


@router.post("/{platform}")
async def save_credentials(
    platform: str,
    credentials: Dict[str, str],
    resolver: CredentialResolver = Depends(get_resolver),
):
    """
    Store credentials for one platform. Other platforms are untouched.

    Example: POST /credentials/shopify {"store_name": "acme", "access_token": "shpat_..."}
    """
    try:
        await resolver.save(platform, credentials)
        connected = await resolver.get_status(platform)
    except ChannelSyncError as e:
        raise http_error(e)
    return {"success": True, "platform": platform.lower(), "connected": connected}
