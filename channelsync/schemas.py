"""
Canonical record shapes

Every connector maps its upstream's wire format into these types. Monetary
values are kept as the upstream's decimal strings; use the ``amount``
properties when arithmetic is needed.
"""
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from typing import Any, Dict, List, Optional, Set


class Platform(str, Enum):
    """Upstream systems the dashboard knows about"""
    SHOPIFY = "shopify"
    WEBSITE = "website"
    AMAZON = "amazon"
    WALMART = "walmart"
    EBAY = "ebay"
    ETSY = "etsy"
    WAYFAIR = "wayfair"

    @classmethod
    def parse(cls, value: str) -> "Platform":
        try:
            return cls(value.strip().lower())
        except ValueError:
            raise ValueError(f"Unknown platform: {value}")


# Platforms that hold merchant credentials (the website datastore is ours)
CREDENTIALED_PLATFORMS = [p for p in Platform if p is not Platform.WEBSITE]


class ProductStatus(str, Enum):
    ACTIVE = "active"
    DRAFT = "draft"
    ARCHIVED = "archived"


class FinancialStatus(str, Enum):
    PENDING = "pending"
    PAID = "paid"
    REFUNDED = "refunded"
    PARTIALLY_REFUNDED = "partially_refunded"


class FulfillmentStatus(str, Enum):
    UNFULFILLED = "unfulfilled"
    FULFILLED = "fulfilled"


def parse_decimal(value: Optional[str]) -> Decimal:
    """Parse a money string; blanks and garbage count as zero."""
    if value is None or value == "":
        return Decimal("0")
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError):
        return Decimal("0")


def money_string(value: Any, default: str = "0.00") -> str:
    """Keep an upstream money value as its original string form."""
    if value is None or value == "":
        return default
    if isinstance(value, str):
        return value
    if isinstance(value, float):
        # repr keeps the shortest round-tripping form ("19.99", not 19.990000000000002)
        return repr(value)
    return str(value)


@dataclass
class Variant:
    id: Optional[str]
    sku: Optional[str]
    price: str
    inventory_quantity: int = 0

    @property
    def amount(self) -> Decimal:
        return parse_decimal(self.price)

    @property
    def has_negative_inventory(self) -> bool:
        return self.inventory_quantity < 0


@dataclass
class Product:
    id: str
    title: str
    description_html: str
    vendor: Optional[str]
    product_type: Optional[str]
    tags: Set[str]
    variants: List[Variant]
    primary_image_url: str
    status: ProductStatus
    updated_at: Optional[datetime]
    source_platforms: Set[str] = field(default_factory=set)
    handle: Optional[str] = None
    raw: Dict[str, Any] = field(default_factory=dict, repr=False)

    @property
    def skus(self) -> List[str]:
        return [v.sku for v in self.variants if v.sku]

    @property
    def price(self) -> str:
        """Display price: the first variant's price string."""
        return self.variants[0].price if self.variants else "0.00"

    @property
    def inventory(self) -> int:
        return sum(v.inventory_quantity for v in self.variants)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "handle": self.handle,
            "title": self.title,
            "description": self.description_html,
            "vendor": self.vendor,
            "product_type": self.product_type,
            "tags": sorted(self.tags),
            "price": self.price,
            "inventory": self.inventory,
            "variants": [
                {
                    "id": v.id,
                    "sku": v.sku,
                    "price": v.price,
                    "inventory_quantity": v.inventory_quantity,
                    "negative_inventory": v.has_negative_inventory,
                }
                for v in self.variants
            ],
            "image_url": self.primary_image_url,
            "status": self.status.value,
            "updated_at": self.updated_at.isoformat() if self.updated_at else None,
            "source_platforms": sorted(self.source_platforms),
        }


@dataclass
class Address:
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    address1: Optional[str] = None
    address2: Optional[str] = None
    city: Optional[str] = None
    province: Optional[str] = None
    country: Optional[str] = None
    zip: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class OrderCustomer:
    """Customer as embedded in a single order (not the merged Customer)"""
    id: Optional[str] = None
    email: Optional[str] = None
    first_name: Optional[str] = None
    last_name: Optional[str] = None
    phone: Optional[str] = None


@dataclass
class LineItem:
    id: Optional[str]
    title: str
    quantity: int
    price: str
    sku: Optional[str] = None
    vendor: Optional[str] = None


@dataclass
class Order:
    id: str
    name: str
    created_at: Optional[datetime]
    customer: Optional[OrderCustomer]
    shipping_address: Optional[Address]
    line_items: List[LineItem]
    total_price: str
    currency: str
    financial_status: FinancialStatus
    fulfillment_status: Optional[FulfillmentStatus]
    platform: str = Platform.SHOPIFY.value
    total_tax: str = "0.00"

    @property
    def total_amount(self) -> Decimal:
        return parse_decimal(self.total_price)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "name": self.name,
            "platform": self.platform,
            "created_at": self.created_at.isoformat() if self.created_at else None,
            "customer": vars(self.customer) if self.customer else None,
            "shipping_address": vars(self.shipping_address) if self.shipping_address else None,
            "line_items": [vars(li) for li in self.line_items],
            "total_price": self.total_price,
            "total_tax": self.total_tax,
            "currency": self.currency,
            "financial_status": self.financial_status.value,
            "fulfillment_status": self.fulfillment_status.value if self.fulfillment_status else None,
        }


@dataclass
class Customer:
    email: str
    name: str
    platforms: Set[str] = field(default_factory=set)

    def to_dict(self) -> Dict[str, Any]:
        return {"email": self.email, "name": self.name, "platforms": sorted(self.platforms)}
