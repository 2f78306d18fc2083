"""
Shared request dependencies and error mapping for the API routers
"""
from fastapi import HTTPException, Request

from channelsync.errors import (
    ChannelSyncError,
    ConfigurationError,
    NotSupportedError,
    UpstreamError,
    ValidationError,
    WriteError,
)
from channelsync.schemas import Platform
from channelsync.services.credential_service import CredentialResolver
from channelsync.services.sync_service import SyncOrchestrator
from channelsync.utils.cache import ClientCache
from channelsync.utils.logger import log


def get_cache(request: Request) -> ClientCache:
    return request.app.state.cache


def get_resolver() -> CredentialResolver:
    return CredentialResolver()


def get_orchestrator(request: Request) -> SyncOrchestrator:
    return SyncOrchestrator(cache=get_cache(request))


def parse_platform(value: str) -> Platform:
    try:
        return Platform.parse(value)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))


def http_error(e: ChannelSyncError) -> HTTPException:
    """Map a domain error to an HTTP error; the message is passed through verbatim."""
    if isinstance(e, ConfigurationError):
        return HTTPException(status_code=400, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=422, detail=str(e))
    if isinstance(e, UpstreamError):
        return HTTPException(status_code=502, detail=str(e))
    if isinstance(e, NotSupportedError):
        return HTTPException(status_code=501, detail=str(e))
    if isinstance(e, WriteError):
        log.error(f"Datastore write failed: {e}")
        return HTTPException(status_code=500, detail=str(e))
    log.error(f"Request failed: {e}")
    return HTTPException(status_code=500, detail=str(e))
