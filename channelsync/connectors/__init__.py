"""Upstream connectors for channelsync"""
from typing import Any, Dict, Optional

from channelsync.connectors.base import BaseConnector, DateRange
from channelsync.connectors.marketplaces import (
    AmazonConnector,
    EbayConnector,
    EtsyConnector,
    WalmartConnector,
    WayfairConnector,
)
from channelsync.connectors.shopify import ShopifyConnector
from channelsync.connectors.website import WebsiteConnector
from channelsync.schemas import Platform


def connector_class(platform: Platform) -> type:
    """Connector implementation for a platform"""
    match platform:
        case Platform.SHOPIFY:
            return ShopifyConnector
        case Platform.WEBSITE:
            return WebsiteConnector
        case Platform.AMAZON:
            return AmazonConnector
        case Platform.WALMART:
            return WalmartConnector
        case Platform.EBAY:
            return EbayConnector
        case Platform.ETSY:
            return EtsyConnector
        case Platform.WAYFAIR:
            return WayfairConnector
    raise ValueError(f"No connector for platform {platform!r}")


def build_connector(platform: Platform, credentials: Optional[Dict[str, Any]] = None, **kwargs) -> BaseConnector:
    """Instantiate the connector for ``platform`` with resolved credentials"""
    cls = connector_class(platform)
    if cls is WebsiteConnector:
        return WebsiteConnector(**kwargs)
    return cls(credentials, **kwargs)


def required_fields(platform: Platform) -> tuple:
    return tuple(connector_class(platform).required_fields)


__all__ = [
    "BaseConnector",
    "DateRange",
    "ShopifyConnector",
    "WebsiteConnector",
    "AmazonConnector",
    "WalmartConnector",
    "EbayConnector",
    "EtsyConnector",
    "WayfairConnector",
    "build_connector",
    "connector_class",
    "required_fields",
]
