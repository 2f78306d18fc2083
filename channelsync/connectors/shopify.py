"""
Shopify Connector

Reads products and orders from the Shopify Admin REST API and passes product
writes straight through to it. Shopify is the source of truth for the catalog.
"""
import httpx
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from dateutil import parser as date_parser

from channelsync.config import get_settings
from channelsync.connectors.base import BaseConnector, DateRange
from channelsync.errors import UpstreamError
from channelsync.schemas import (
    Address,
    FinancialStatus,
    FulfillmentStatus,
    LineItem,
    Order,
    OrderCustomer,
    Platform,
    Product,
    ProductStatus,
    Variant,
    money_string,
)
from channelsync.utils.logger import log

settings = get_settings()

_FINANCIAL_STATUS = {
    "paid": FinancialStatus.PAID,
    "partially_paid": FinancialStatus.PAID,
    "refunded": FinancialStatus.REFUNDED,
    "partially_refunded": FinancialStatus.PARTIALLY_REFUNDED,
}


def parse_datetime(val) -> Optional[datetime]:
    """Parse datetime from string or return datetime object as-is"""
    if val is None or val == "":
        return None
    if isinstance(val, datetime):
        return val
    try:
        return date_parser.parse(val)
    except (ValueError, OverflowError, TypeError):
        log.warning(f"Could not parse date: {val}")
        return None


def _parse_tags(tags) -> set:
    if not tags:
        return set()
    if isinstance(tags, (list, tuple, set)):
        return {str(t).strip() for t in tags if str(t).strip()}
    return {t.strip() for t in str(tags).split(",") if t.strip()}


def _qualified_id(raw: Dict[str, Any], kind: str) -> str:
    return raw.get("admin_graphql_api_id") or f"gid://shopify/{kind}/{raw.get('id')}"


def _optional_str(value) -> Optional[str]:
    return str(value) if value not in (None, "") else None


def _int_or_zero(value) -> int:
    """Whole-number field from an upstream payload; unparseable values count as 0."""
    try:
        return int(value or 0)
    except (TypeError, ValueError):
        try:
            return int(float(value))
        except (TypeError, ValueError, OverflowError):
            return 0


def map_shopify_product(raw: Dict[str, Any], placeholder_image: Optional[str] = None) -> Product:
    """Map a Shopify product payload to the canonical Product.

    Missing optional fields degrade to defaults rather than failing.
    """
    variants = [
        Variant(
            id=_optional_str(v.get("id")),
            sku=(v.get("sku") or "").strip() or None,
            price=money_string(v.get("price")),
            inventory_quantity=_int_or_zero(v.get("inventory_quantity")),
        )
        for v in raw.get("variants") or []
    ]

    image = raw.get("image") or {}
    if not image.get("src") and raw.get("images"):
        image = raw["images"][0] or {}

    try:
        status = ProductStatus((raw.get("status") or "").lower())
    except ValueError:
        status = ProductStatus.DRAFT

    return Product(
        id=_qualified_id(raw, "Product"),
        handle=raw.get("handle"),
        title=raw.get("title") or "Untitled product",
        description_html=raw.get("body_html") or "No description available.",
        vendor=raw.get("vendor"),
        product_type=raw.get("product_type"),
        tags=_parse_tags(raw.get("tags")),
        variants=variants,
        primary_image_url=image.get("src") or placeholder_image or settings.placeholder_image_url,
        status=status,
        updated_at=parse_datetime(raw.get("updated_at")),
        source_platforms={Platform.SHOPIFY.value},
        raw=raw,
    )


def _map_address(raw: Optional[Dict[str, Any]]) -> Optional[Address]:
    if not raw:
        return None
    return Address(
        first_name=raw.get("first_name"),
        last_name=raw.get("last_name"),
        address1=raw.get("address1"),
        address2=raw.get("address2"),
        city=raw.get("city"),
        province=raw.get("province"),
        country=raw.get("country"),
        zip=raw.get("zip"),
        phone=raw.get("phone"),
    )


def map_shopify_order(raw: Dict[str, Any]) -> Order:
    """Map a Shopify order payload to the canonical Order"""
    customer_raw = raw.get("customer")
    customer = None
    if customer_raw:
        customer = OrderCustomer(
            id=_optional_str(customer_raw.get("id")),
            email=customer_raw.get("email") or raw.get("email"),
            first_name=customer_raw.get("first_name"),
            last_name=customer_raw.get("last_name"),
            phone=customer_raw.get("phone"),
        )
    elif raw.get("email"):
        customer = OrderCustomer(email=raw.get("email"))

    fulfillment = raw.get("fulfillment_status")
    if fulfillment is None:
        fulfillment_status = None
    elif fulfillment == "fulfilled":
        fulfillment_status = FulfillmentStatus.FULFILLED
    else:
        fulfillment_status = FulfillmentStatus.UNFULFILLED

    return Order(
        id=_qualified_id(raw, "Order"),
        name=raw.get("name") or str(raw.get("order_number") or raw.get("id")),
        created_at=parse_datetime(raw.get("created_at")),
        customer=customer,
        shipping_address=_map_address(raw.get("shipping_address")),
        line_items=[
            LineItem(
                id=_optional_str(item.get("id")),
                title=item.get("title") or "",
                quantity=_int_or_zero(item.get("quantity")),
                price=money_string(item.get("price")),
                sku=item.get("sku") or None,
                vendor=item.get("vendor"),
            )
            for item in raw.get("line_items") or []
        ],
        total_price=money_string(raw.get("total_price")),
        total_tax=money_string(raw.get("total_tax")),
        currency=raw.get("currency") or "USD",
        financial_status=_FINANCIAL_STATUS.get(raw.get("financial_status") or "", FinancialStatus.PENDING),
        fulfillment_status=fulfillment_status,
        platform=Platform.SHOPIFY.value,
    )


class ShopifyConnector(BaseConnector):
    """
    Connector for the Shopify Admin REST API

    Args:
        credentials: {"store_name": ..., "access_token": ...}
        api_version: Admin API version
        transport: optional httpx transport (tests inject a MockTransport)
    """

    platform = Platform.SHOPIFY
    required_fields = ("store_name", "access_token")

    def __init__(
        self,
        credentials: Optional[Dict[str, Any]] = None,
        api_version: Optional[str] = None,
        transport: Optional[httpx.AsyncBaseTransport] = None,
    ):
        super().__init__(credentials)
        self.api_version = api_version or self.credentials.get("api_version") or settings.shopify_api_version
        self.transport = transport
        self.page_limit = settings.shopify_page_limit

    @staticmethod
    def store_url(store_name: str) -> str:
        store = store_name.replace("https://", "").replace("http://", "").strip("/")
        return f"https://{store}" if "." in store else f"https://{store}.myshopify.com"

    @property
    def base_url(self) -> str:
        creds = self.require_credentials()
        return f"{self.store_url(creds['store_name'])}/admin/api/{self.api_version}"

    def _get_headers(self) -> Dict[str, str]:
        """Get HTTP headers for Shopify API requests"""
        return {
            "X-Shopify-Access-Token": self.require_credentials()["access_token"],
            "Content-Type": "application/json",
        }

    def _get_next_page_url(self, link_header: Optional[str]) -> Optional[str]:
        """
        Parse next page URL from Link header

        Shopify uses cursor-based pagination with Link headers
        """
        if not link_header:
            return None

        # Parse Link header: <url>; rel="next"
        for link in link_header.split(","):
            parts = link.split(";")
            if len(parts) == 2 and 'rel="next"' in parts[1]:
                return parts[0].strip().strip("<>")

        return None

    def _client(self) -> httpx.AsyncClient:
        return httpx.AsyncClient(transport=self.transport, timeout=settings.shopify_timeout_seconds)

    async def _request(self, method: str, url: str, **kwargs) -> httpx.Response:
        # Credentials are resolved before the client is opened
        headers = self._get_headers()
        try:
            async with self._client() as client:
                response = await client.request(method, url, headers=headers, **kwargs)
        except httpx.HTTPError as e:
            raise UpstreamError(None, f"Shopify request failed: {e}") from e

        if not response.is_success:
            raise UpstreamError(response.status_code, f"Shopify API error: {response.text[:500]}")
        return response

    async def _paginate(self, resource: str, key: str, params: Dict[str, Any]) -> List[Dict]:
        """Follow Link-header pages for a list endpoint and collect ``key`` items."""
        url: Optional[str] = f"{self.base_url}/{resource}.json"
        items: List[Dict] = []
        page = 1

        while url:
            response = await self._request("GET", url, params=params if params else None)
            batch = response.json().get(key, [])
            items.extend(batch)
            log.debug(f"Fetched {resource} page {page}: {len(batch)} items")

            url = self._get_next_page_url(response.headers.get("Link"))
            params = None  # Params are in the URL for subsequent pages
            page += 1

        return items

    async def fetch_raw_products(self) -> List[Dict[str, Any]]:
        """Fetch every product payload exactly as Shopify returns it"""
        raw = await self._paginate("products", "products", {"limit": self.page_limit})
        log.info(f"Fetched {len(raw)} products from Shopify")
        return raw

    async def fetch_products(self) -> List[Product]:
        return [map_shopify_product(p) for p in await self.fetch_raw_products()]

    async def fetch_orders(self, date_range: Optional[DateRange] = None) -> List[Order]:
        params: Dict[str, Any] = {"status": "any", "limit": self.page_limit}
        if date_range and date_range.start:
            params["created_at_min"] = date_range.start.isoformat()
        if date_range and date_range.end:
            params["created_at_max"] = date_range.end.isoformat()

        raw = await self._paginate("orders", "orders", params)
        log.info(f"Fetched {len(raw)} orders from Shopify")
        return [map_shopify_order(o) for o in raw]

    async def count_products(self) -> int:
        response = await self._request("GET", f"{self.base_url}/products/count.json")
        return int(response.json().get("count", 0))

    async def get_product(self, product_id) -> Optional[Dict[str, Any]]:
        """Fetch one product payload; None when Shopify answers 404"""
        try:
            response = await self._request("GET", f"{self.base_url}/products/{product_id}.json")
        except UpstreamError as e:
            if e.status_code == 404:
                return None
            raise
        return response.json()["product"]

    async def create_product(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create a product; returns Shopify's representation of it"""
        body = {"product": {"published": True, **payload}}
        response = await self._request("POST", f"{self.base_url}/products.json", json=body)
        product = response.json()["product"]
        log.info(f"Created Shopify product {product.get('id')}")
        return product

    async def update_product(self, product_id, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Update a product in place; returns Shopify's representation of it"""
        body = {"product": {**payload, "id": product_id}}
        response = await self._request("PUT", f"{self.base_url}/products/{product_id}.json", json=body)
        product = response.json()["product"]
        log.info(f"Updated Shopify product {product.get('id')}")
        return product

    async def upsert(self, records) -> int:
        written = 0
        for record in records:
            if record.get("id"):
                await self.update_product(record["id"], {k: v for k, v in record.items() if k != "id"})
            else:
                await self.create_product(record)
            written += 1
        return written


def split_gid(product_id: str) -> Tuple[str, str]:
    """'gid://shopify/Product/42' -> ('Product', '42'); plain ids pass through."""
    if product_id.startswith("gid://"):
        parts = product_id.split("/")
        return parts[-2], parts[-1]
    return "", product_id
