"""
Sync Orchestration Service
Fans out across every connected platform, reconciles the results and keeps
the website datastore in step with the storefront.
"""
import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

from channelsync.connectors import build_connector
from channelsync.connectors.base import BaseConnector, DateRange
from channelsync.connectors.shopify import ShopifyConnector, map_shopify_product, split_gid
from channelsync.connectors.website import WebsiteConnector
from channelsync.errors import ChannelSyncError, ConfigurationError, ValidationError, WriteError
from channelsync.models.base import SessionLocal
from channelsync.models.sync_log import SyncRun
from channelsync.schemas import Order, Platform, Product
from channelsync.services.credential_service import CredentialResolver
from channelsync.services.reconciliation import merge_customers, merge_products, summarize_sales
from channelsync.utils.cache import ClientCache
from channelsync.utils.logger import log, sync_trail_log

# Cache key for the cross-platform product list built by the reconciler
MERGED_PRODUCTS_KEY = ("products", "all")


class SyncLog:
    """
    User-visible trail for one operation

    Lines are timestamped and kept in emission order; each one is also
    mirrored to the application log.
    """

    def __init__(self):
        self.lines: List[str] = []

    def add(self, message: str, level: str = "INFO") -> None:
        stamp = datetime.utcnow().isoformat(timespec="milliseconds")
        self.lines.append(f"[{stamp}Z] {message}")
        sync_trail_log.log(level, message)

    def error(self, message: str) -> None:
        self.add(message, level="ERROR")

    def __iter__(self):
        return iter(self.lines)

    def __len__(self) -> int:
        return len(self.lines)


@dataclass
class SyncReport:
    """Outcome of one ``sync_all`` run"""
    per_platform: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    logs: List[str] = field(default_factory=list)
    success: bool = False
    records_fetched: int = 0
    records_written: int = 0
    products_merged: int = 0
    write_error: Optional[str] = None
    trigger: str = "manual"
    started_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    duration_seconds: float = 0.0
    sync_log_id: Optional[int] = None

    @property
    def error(self) -> Optional[str]:
        """Single-line failure summary, or None when nothing failed."""
        problems = [
            f"{platform}: {outcome['error']}"
            for platform, outcome in self.per_platform.items()
            if outcome.get("error")
        ]
        if self.write_error:
            problems.append(f"write: {self.write_error}")
        return "; ".join(problems) or None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "per_platform": self.per_platform,
            "records_fetched": self.records_fetched,
            "records_written": self.records_written,
            "products_merged": self.products_merged,
            "write_error": self.write_error,
            "trigger": self.trigger,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "completed_at": self.completed_at.isoformat() if self.completed_at else None,
            "duration_seconds": round(self.duration_seconds, 3),
            "sync_log_id": self.sync_log_id,
            "logs": self.logs,
        }


ConnectorFactory = Callable[[Platform, Optional[Dict[str, Any]]], BaseConnector]


def _persist_sync_run(report: SyncReport, session_factory) -> Optional[int]:
    """Store the report in sync_logs. Returns the row id."""
    with session_factory() as session:
        row = SyncRun(
            trigger=report.trigger,
            success=report.success,
            records_fetched=report.records_fetched,
            records_written=report.records_written,
            write_error=report.write_error,
            per_platform=report.per_platform,
            logs=report.logs,
            started_at=report.started_at,
            completed_at=report.completed_at,
            duration_seconds=report.duration_seconds,
        )
        session.add(row)
        session.commit()
        return row.id


class SyncOrchestrator:
    """
    Coordinates connectors, the credential resolver and the reconciler

    Args:
        resolver: credential source for every marketplace
        website: datastore connector that receives storefront products
        cache: client cache for product listings; optional
        connector_factory: builds a connector from (platform, credentials)
        session_factory: where sync reports are persisted
    """

    def __init__(
        self,
        resolver: Optional[CredentialResolver] = None,
        website: Optional[WebsiteConnector] = None,
        cache: Optional[ClientCache] = None,
        connector_factory: Optional[ConnectorFactory] = None,
        session_factory=None,
    ):
        self.session_factory = session_factory or SessionLocal
        self.resolver = resolver or CredentialResolver(session_factory=self.session_factory)
        self.website = website or WebsiteConnector(session_factory=self.session_factory)
        self.cache = cache
        self.connector_factory = connector_factory or build_connector

    async def _connector(self, platform: Platform) -> Optional[BaseConnector]:
        """Connector for ``platform``, or None when it is not connected"""
        if platform is Platform.WEBSITE:
            return self.website
        if not await self.resolver.get_status(platform):
            return None
        credentials = await self.resolver.get_credentials(platform)
        return self.connector_factory(platform, credentials)

    async def _require(self, platform: Platform) -> BaseConnector:
        connector = await self._connector(platform)
        if connector is None:
            raise ConfigurationError(f"{platform.value} credentials not found or are placeholders")
        return connector

    async def _connected(
        self,
        logs: SyncLog,
        outcomes: Optional[Dict[str, Dict[str, Any]]] = None,
    ) -> Dict[Platform, BaseConnector]:
        """
        Connectors for every connected marketplace

        A platform whose credential lookup fails is dropped and, when
        ``outcomes`` is given, recorded there with its error.
        """
        connectors: Dict[Platform, BaseConnector] = {}
        for platform in Platform:
            if platform is Platform.WEBSITE:
                continue
            try:
                connector = await self._connector(platform)
            except ChannelSyncError as e:
                logs.error(f"{platform.value}: credential lookup failed: {e}")
                if outcomes is not None:
                    outcomes[platform.value] = {"count": 0, "error": str(e)}
                continue
            if connector is None:
                if outcomes is not None:
                    outcomes[platform.value] = {"count": 0, "note": "not connected"}
                    logs.add(f"{platform.value}: not connected, skipping")
                continue
            connectors[platform] = connector
        return connectors

    def _cache_merged(self, products_by_platform: Dict[str, List[Product]], logs: SyncLog) -> List[Dict[str, Any]]:
        merged = [p.to_dict() for p in merge_products(products_by_platform)]
        logs.add(f"Reconciled {len(merged)} products across {len(products_by_platform)} platforms")
        if self.cache is not None:
            self.cache.set(MERGED_PRODUCTS_KEY, merged)
        return merged

    # Full sync

    async def _fetch_for_sync(self, platform: Platform, connector: BaseConnector) -> list:
        # Storefront payloads are kept raw so they can be written to the datastore verbatim
        if platform is Platform.SHOPIFY:
            return await connector.fetch_raw_products()
        return await connector.fetch_products()

    async def sync_all(self, trigger: str = "manual") -> SyncReport:
        """
        Fetch products from every connected platform and push the storefront
        catalog into the website datastore.

        One platform failing never stops the others; a failed datastore write
        is reported separately from the fetch results.
        """
        logs = SyncLog()
        report = SyncReport(trigger=trigger, started_at=datetime.utcnow())
        start_time = time.time()
        logs.add(f"Starting {trigger} sync across all platforms")

        connectors = await self._connected(logs, outcomes=report.per_platform)

        results = await asyncio.gather(
            *(self._fetch_for_sync(p, c) for p, c in connectors.items()),
            return_exceptions=True,
        )

        storefront_payloads: Optional[list] = None
        canonical: Dict[str, List[Product]] = {}
        succeeded = 0
        for (platform, connector), result in zip(connectors.items(), results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                connector.record_failure(result)
                report.per_platform[platform.value] = {"count": 0, "error": str(result)}
                logs.error(f"{platform.value}: fetch failed: {result}")
                continue

            connector.record_success()
            succeeded += 1
            report.per_platform[platform.value] = {"count": len(result)}
            report.records_fetched += len(result)
            logs.add(f"{platform.value}: fetched {len(result)} products")
            if platform is Platform.SHOPIFY:
                storefront_payloads = result
                canonical[platform.value] = [map_shopify_product(raw) for raw in result]
            else:
                canonical[platform.value] = result

        if canonical:
            report.products_merged = len(self._cache_merged(canonical, logs))

        if storefront_payloads:
            try:
                report.records_written = await self.website.upsert_batch(storefront_payloads)
                logs.add(f"website: upserted {report.records_written} products")
            except WriteError as e:
                report.records_written = e.committed
                report.write_error = str(e)
                logs.error(f"website: {e}")
            report.per_platform[Platform.SHOPIFY.value]["written"] = report.records_written
            if self.cache is not None:
                self.cache.invalidate(("products", Platform.WEBSITE.value))
        elif Platform.SHOPIFY in connectors and storefront_payloads is not None:
            logs.add("shopify: no products found to sync")

        report.success = succeeded > 0
        if not connectors:
            logs.add("No platforms connected; nothing to sync", level="WARNING")
        elif report.success and report.error:
            logs.add(f"Sync finished with errors: {report.error}", level="WARNING")

        report.completed_at = datetime.utcnow()
        report.duration_seconds = time.time() - start_time
        logs.add(f"Sync complete: {succeeded}/{len(connectors)} connected platforms succeeded")
        report.logs = list(logs)

        try:
            report.sync_log_id = await asyncio.to_thread(_persist_sync_run, report, self.session_factory)
        except Exception as e:
            log.error(f"Failed to persist sync report: {e}")

        return report

    # Reads for the dashboard

    async def get_products(self, source: Platform, refresh: bool = False) -> Dict[str, Any]:
        """
        Products from one platform, served from the cache when present

        Returns {"products", "logs", "is_stale"}; a stale entry is still served.
        """
        key = ("products", source.value)
        logs = SyncLog()

        if self.cache is not None and not refresh:
            entry = self.cache.get(key)
            if entry is not None:
                logs.add(f"Serving {len(entry.data)} {source.value} products from cache")
                return {"products": entry.data, "logs": list(logs), "is_stale": entry.is_stale}

        connector = await self._require(source)
        logs.add(f"Fetching products from {source.value}")
        products = [p.to_dict() for p in await connector.fetch_products()]
        logs.add(f"Fetched {len(products)} products from {source.value}")

        if self.cache is not None:
            self.cache.set(key, products)
        return {"products": products, "logs": list(logs), "is_stale": False}

    async def get_merged_products(self, refresh: bool = False) -> Dict[str, Any]:
        """
        One product per SKU group across every connected platform, each tagged
        with the platforms it was seen on. Served from the cache when present.
        """
        logs = SyncLog()

        if self.cache is not None and not refresh:
            entry = self.cache.get(MERGED_PRODUCTS_KEY)
            if entry is not None:
                logs.add(f"Serving {len(entry.data)} reconciled products from cache")
                return {"products": entry.data, "logs": list(logs), "is_stale": entry.is_stale}

        connectors = await self._connected(logs)
        results = await asyncio.gather(
            *(c.fetch_products() for c in connectors.values()),
            return_exceptions=True,
        )

        products_by_platform: Dict[str, List[Product]] = {}
        for platform, result in zip(connectors, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logs.error(f"{platform.value}: product fetch failed: {result}")
                continue
            logs.add(f"{platform.value}: fetched {len(result)} products")
            products_by_platform[platform.value] = result

        products = self._cache_merged(products_by_platform, logs)
        return {"products": products, "logs": list(logs), "is_stale": False}

    async def get_orders(self, source: Platform, date_range: Optional[DateRange] = None) -> Dict[str, Any]:
        logs = SyncLog()
        connector = await self._require(source)
        logs.add(f"Fetching orders from {source.value} for {date_range or 'all time'}")
        orders = await connector.fetch_orders(date_range)
        logs.add(f"Fetched {len(orders)} orders from {source.value}")
        return {"orders": orders, "logs": list(logs)}

    async def _orders_by_platform(self, logs: SyncLog, date_range: Optional[DateRange] = None) -> Dict[str, List[Order]]:
        connectors = await self._connected(logs)

        results = await asyncio.gather(
            *(c.fetch_orders(date_range) for c in connectors.values()),
            return_exceptions=True,
        )

        orders: Dict[str, List[Order]] = {}
        for platform, result in zip(connectors, results):
            if isinstance(result, BaseException):
                if not isinstance(result, Exception):
                    raise result
                logs.error(f"{platform.value}: order fetch failed: {result}")
                continue
            logs.add(f"{platform.value}: fetched {len(result)} orders")
            orders[platform.value] = result
        return orders

    async def get_customers(self) -> Dict[str, Any]:
        """Customers merged across every connected platform's orders"""
        logs = SyncLog()
        orders = await self._orders_by_platform(logs)
        customers = merge_customers(orders)
        logs.add(f"Merged {len(customers)} unique customers from {len(orders)} platforms")
        return {"customers": customers, "logs": list(logs)}

    async def dashboard_stats(self, date_range: Optional[DateRange] = None) -> Dict[str, Any]:
        """Sales totals for the window plus product counts per platform"""
        if date_range is None:
            now = datetime.utcnow()
            date_range = DateRange(now - timedelta(days=14), now)

        logs = SyncLog()
        orders = await self._orders_by_platform(logs, date_range)
        sales = summarize_sales(o for platform_orders in orders.values() for o in platform_orders)

        platform_counts: Dict[str, Optional[int]] = {}
        try:
            connector = await self._connector(Platform.SHOPIFY)
            if connector is not None:
                platform_counts[Platform.SHOPIFY.value] = await connector.count_products()
        except ChannelSyncError as e:
            logs.error(f"shopify: product count failed: {e}")
            platform_counts[Platform.SHOPIFY.value] = None

        return {
            **sales,
            "platform_counts": platform_counts,
            "website_product_count": await self.website.count(),
            "logs": list(logs),
        }

    # Writes

    async def _shopify(self) -> ShopifyConnector:
        return await self._require(Platform.SHOPIFY)

    async def _resync(self, payload: Dict[str, Any], logs: SyncLog) -> Optional[str]:
        try:
            await self.website.upsert_batch([payload])
            logs.add(f"Synced product {payload.get('id')} to the website datastore")
        except WriteError as e:
            logs.error(f"Product saved upstream but datastore sync failed: {e}")
            return str(e)
        finally:
            if self.cache is not None:
                self.cache.invalidate(("products", Platform.SHOPIFY.value))
                self.cache.invalidate(("products", Platform.WEBSITE.value))
                self.cache.invalidate(MERGED_PRODUCTS_KEY)
        return None

    async def create_product(self, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create on the storefront, then write the returned product to the datastore"""
        logs = SyncLog()
        shopify = await self._shopify()
        logs.add(f"Creating product \"{payload.get('title', '')}\" on shopify")
        created = await shopify.create_product(payload)
        sync_error = await self._resync(created, logs)
        return {
            "product": map_shopify_product(created).to_dict(),
            "sync_error": sync_error,
            "logs": list(logs),
        }

    async def update_product(self, product_id, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Update on the storefront, then re-sync that product into the datastore"""
        logs = SyncLog()
        shopify = await self._shopify()
        logs.add(f"Updating product {product_id} on shopify")
        updated = await shopify.update_product(split_gid(str(product_id))[1], payload)
        sync_error = await self._resync(updated, logs)
        return {
            "product": map_shopify_product(updated).to_dict(),
            "sync_error": sync_error,
            "logs": list(logs),
        }

    async def get_product(self, product_id) -> Optional[Product]:
        shopify = await self._shopify()
        raw = await shopify.get_product(split_gid(str(product_id))[1])
        return map_shopify_product(raw) if raw else None

    async def link_product(
        self,
        product_id,
        platform: Platform,
        marketplace_id: Optional[str] = None,
    ) -> Optional[Dict[str, Any]]:
        """
        Put a website product on another marketplace and record the link

        With ``marketplace_id`` the product is already listed there and only
        the link is stored; otherwise the marketplace connector creates the
        listing and returns its id. Returns None when the product is not in
        the website datastore.
        """
        if platform in (Platform.WEBSITE, Platform.SHOPIFY):
            raise ValidationError(f"Website products cannot be linked to {platform.value}")

        logs = SyncLog()
        key = website_product_id(product_id)
        raw = await self.website.get(key)
        if raw is None:
            return None

        connector = await self._require(platform)
        if not marketplace_id:
            product = map_shopify_product(raw)
            logs.add(f"Creating product \"{product.title}\" on {platform.value}")
            marketplace_id = await connector.create_listing(product)

        await self.website.link_marketplace(key, platform.value, marketplace_id)
        logs.add(f"Linked {key} to {platform.value} with ID {marketplace_id}")

        if self.cache is not None:
            self.cache.invalidate(("products", Platform.WEBSITE.value))
            self.cache.invalidate(MERGED_PRODUCTS_KEY)
        return {
            "product_id": key,
            "platform": platform.value,
            "marketplace_id": marketplace_id,
            "logs": list(logs),
        }


def website_product_id(product_id) -> str:
    """Datastore key for a product id given either as a gid or a bare number"""
    product_id = str(product_id).strip()
    if product_id.startswith("gid://"):
        return product_id
    return f"gid://shopify/Product/{product_id}"


def sync_history(limit: int = 20, session_factory=None) -> List[Dict[str, Any]]:
    """Most recent sync runs, newest first"""
    session_factory = session_factory or SessionLocal
    with session_factory() as session:
        rows = (
            session.query(SyncRun)
            .order_by(SyncRun.started_at.desc(), SyncRun.id.desc())
            .limit(limit)
            .all()
        )
        return [
            {
                "id": row.id,
                "trigger": row.trigger,
                "success": row.success,
                "records_fetched": row.records_fetched,
                "records_written": row.records_written,
                "write_error": row.write_error,
                "per_platform": row.per_platform,
                "started_at": row.started_at.isoformat() if row.started_at else None,
                "duration_seconds": row.duration_seconds,
            }
            for row in rows
        ]
