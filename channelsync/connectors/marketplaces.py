"""
Marketplace connectors that are registered but not wired to their APIs yet

They validate credentials like every other connector so status reporting and
sync skipping work, then return no records and decline to create listings.
"""
from typing import List, Optional

from channelsync.connectors.base import BaseConnector, DateRange
from channelsync.errors import NotSupportedError
from channelsync.schemas import Order, Platform, Product
from channelsync.utils.logger import log


class _PendingMarketplaceConnector(BaseConnector):

    async def fetch_products(self) -> List[Product]:
        self.require_credentials()
        log.info(f"{self.name} product fetching is not implemented yet")
        return []

    async def fetch_orders(self, date_range: Optional[DateRange] = None) -> List[Order]:
        self.require_credentials()
        log.info(f"{self.name} order fetching is not implemented yet")
        return []

    async def create_listing(self, product: Product) -> str:
        self.require_credentials()
        raise NotSupportedError(f"{self.name} listing creation is not implemented yet")


class AmazonConnector(_PendingMarketplaceConnector):
    platform = Platform.AMAZON
    required_fields = ("refresh_token", "seller_id", "client_id", "client_secret")


class WalmartConnector(_PendingMarketplaceConnector):
    platform = Platform.WALMART
    required_fields = ("client_id", "client_secret")


class EbayConnector(_PendingMarketplaceConnector):
    platform = Platform.EBAY
    required_fields = ("app_id", "cert_id", "refresh_token")


class EtsyConnector(_PendingMarketplaceConnector):
    platform = Platform.ETSY
    required_fields = ("api_key",)


class WayfairConnector(_PendingMarketplaceConnector):
    platform = Platform.WAYFAIR
    required_fields = ("client_id", "client_secret")
