"""Database models for channelsync"""

from channelsync.models.product import WebsiteProduct
from channelsync.models.credential import PlatformCredential
from channelsync.models.sync_log import SyncRun

__all__ = [
    "WebsiteProduct",
    "PlatformCredential",
    "SyncRun",
]
