"""
Identity reconciliation across platforms

Customers are keyed on lower-cased email; products are joined across
platforms by SKU (ids are only unique within one platform). Platform tags are
only ever added during a merge, never removed.

Folding order is fixed: platforms in lexicographic order of their id, then
each platform's records in the order given. Ties such as "whose display name
wins" therefore resolve to the alphabetically-first platform.
"""
from dataclasses import replace
from decimal import Decimal
from typing import Dict, Iterable, List, Mapping, Optional, Sequence

from channelsync.errors import ReconciliationError
from channelsync.schemas import Customer, FinancialStatus, Order, Product, parse_decimal
from channelsync.utils.logger import log


def customer_key(order: Order) -> Optional[str]:
    """Join key for an order's customer, or None when the order has no email.

    Raises ReconciliationError for an email that cannot be a real address.
    """
    email = order.customer.email if order.customer else None
    if email is None:
        return None
    if not isinstance(email, str):
        raise ReconciliationError(f"Order {order.id} has a non-string email: {email!r}")
    key = email.strip().lower()
    if not key:
        return None
    local, sep, domain = key.partition("@")
    if not sep or not local or not domain or any(c.isspace() for c in key):
        raise ReconciliationError(f"Order {order.id} has a malformed email: {email!r}")
    return key


def _display_name(order: Order) -> str:
    customer = order.customer
    name = f"{customer.first_name or ''} {customer.last_name or ''}".strip()
    return name or "N/A"


def merge_customers(orders_by_platform: Mapping[str, Sequence[Order]]) -> List[Customer]:
    """Fold every platform's orders into unified customers keyed by email"""
    customers: Dict[str, Customer] = {}
    skipped = 0

    for platform in sorted(orders_by_platform):
        for order in orders_by_platform[platform] or []:
            try:
                key = customer_key(order)
            except ReconciliationError as e:
                log.warning(f"Skipping order during customer merge: {e}")
                skipped += 1
                continue
            if key is None:
                continue

            existing = customers.get(key)
            if existing is None:
                customers[key] = Customer(email=key, name=_display_name(order), platforms={platform})
            else:
                # First-seen name wins; only the platform set grows
                existing.platforms.add(platform)

    if skipped:
        log.info(f"Customer merge skipped {skipped} malformed orders")
    return sorted(customers.values(), key=lambda c: c.email)


class _Groups:
    """Union-find over product indices"""

    def __init__(self):
        self.parent: List[int] = []

    def add(self) -> int:
        self.parent.append(len(self.parent))
        return len(self.parent) - 1

    def find(self, i: int) -> int:
        while self.parent[i] != i:
            self.parent[i] = self.parent[self.parent[i]]
            i = self.parent[i]
        return i

    def union(self, a: int, b: int) -> int:
        ra, rb = self.find(a), self.find(b)
        if ra == rb:
            return ra
        keep, drop = (ra, rb) if ra < rb else (rb, ra)
        self.parent[drop] = keep
        return keep


def _newer(candidate: Product, current: Product) -> bool:
    if candidate.updated_at is None:
        return False
    if current.updated_at is None:
        return True
    try:
        return candidate.updated_at > current.updated_at
    except TypeError:
        # naive vs aware timestamps from different upstreams
        return candidate.updated_at.replace(tzinfo=None) > current.updated_at.replace(tzinfo=None)


def merge_products(products_by_platform: Mapping[str, Sequence[Product]]) -> List[Product]:
    """Merge products observed on several platforms into one entity per SKU group.

    Products sharing any SKU (transitively) are one entity. Products without
    SKUs keep their own (platform, id) identity. The representative record is
    the most recently updated member; ``source_platforms`` is the union.
    """
    members: List[Product] = []
    platforms_of: List[str] = []
    groups = _Groups()
    by_sku: Dict[str, int] = {}
    by_id: Dict[tuple, int] = {}

    for platform in sorted(products_by_platform):
        for product in products_by_platform[platform] or []:
            idx = groups.add()
            members.append(product)
            platforms_of.append(platform)

            id_key = (platform, product.id)
            if id_key in by_id:
                groups.union(by_id[id_key], idx)
            else:
                by_id[id_key] = idx

            for sku in product.skus:
                if sku in by_sku:
                    groups.union(by_sku[sku], idx)
                else:
                    by_sku[sku] = idx

    grouped: Dict[int, List[int]] = {}
    for idx in range(len(members)):
        grouped.setdefault(groups.find(idx), []).append(idx)

    merged: List[Product] = []
    for root in sorted(grouped):
        indices = grouped[root]
        representative = members[indices[0]]
        sources = set()
        for idx in indices:
            sources |= members[idx].source_platforms
            sources.add(platforms_of[idx])
            if _newer(members[idx], representative):
                representative = members[idx]
        merged.append(replace(representative, source_platforms=sources))

    return merged


def summarize_sales(orders: Iterable[Order]) -> Dict[str, str]:
    """Sales, refund and tax totals computed in Decimal.

    Totals are returned as decimal strings without re-rounding.
    """
    total_sales = Decimal("0")
    total_refunds = Decimal("0")
    total_taxes = Decimal("0")
    count = 0

    for order in orders:
        count += 1
        amount = parse_decimal(order.total_price)
        if order.financial_status in (FinancialStatus.REFUNDED, FinancialStatus.PARTIALLY_REFUNDED):
            total_refunds += amount
        elif order.financial_status is FinancialStatus.PAID:
            total_sales += amount
        total_taxes += parse_decimal(order.total_tax)

    return {
        "order_count": count,
        "total_sales": str(total_sales),
        "total_refunds": str(total_refunds),
        "total_taxes": str(total_taxes),
    }
