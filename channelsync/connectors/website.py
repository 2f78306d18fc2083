"""
Website datastore connector

Reads and batch-upserts the ``products`` table of the website database.
Rows hold the storefront payload verbatim; this connector never reprojects it.
"""
import asyncio
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence

from sqlalchemy import desc, func, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.orm import Session, sessionmaker

from channelsync.config import get_settings
from channelsync.connectors.base import BaseConnector, DateRange
from channelsync.connectors.shopify import parse_datetime, map_shopify_product
from channelsync.errors import ConnectorError, WriteError
from channelsync.models.base import SessionLocal
from channelsync.models.product import WebsiteProduct
from channelsync.schemas import Order, Platform, Product
from channelsync.utils.helpers import chunk_list
from channelsync.utils.logger import log

settings = get_settings()

# Columns replaced on conflict; marketplace links survive a re-sync
_UPSERT_COLUMNS = ("shopify_product_id", "handle", "shopify_data", "updated_at", "last_synced")


def _row_from_payload(raw: Dict[str, Any], synced_at: datetime) -> Dict[str, Any]:
    if not raw.get("admin_graphql_api_id") and raw.get("id") is None:
        raise ValueError("Product payload has neither admin_graphql_api_id nor id")
    raw_id = raw.get("id")
    return {
        "id": raw.get("admin_graphql_api_id") or f"gid://shopify/Product/{raw_id}",
        "shopify_product_id": int(raw_id) if str(raw_id or "").isdigit() else None,
        "handle": raw.get("handle"),
        "shopify_data": raw,
        "updated_at": parse_datetime(raw.get("updated_at")),
        "last_synced": synced_at,
    }


class WebsiteConnector(BaseConnector):
    """Connector for the website product datastore"""

    platform = Platform.WEBSITE
    required_fields = ()

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        batch_size: Optional[int] = None,
        page_size: Optional[int] = None,
    ):
        super().__init__()
        self.session_factory = session_factory or SessionLocal
        self.batch_size = batch_size or settings.upsert_batch_size
        self.page_size = page_size or settings.fetch_page_size

    def _insert(self, session: Session):
        dialect = session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert(WebsiteProduct)
        if dialect == "sqlite":
            return sqlite_insert(WebsiteProduct)
        raise ConnectorError(f"Upsert is not supported on the {dialect} dialect")

    # Reads

    def _fetch_rows(self) -> List[WebsiteProduct]:
        rows: List[WebsiteProduct] = []
        page = 0
        with self.session_factory() as session:
            while True:
                stmt = (
                    select(WebsiteProduct)
                    .order_by(desc(WebsiteProduct.updated_at), WebsiteProduct.id)
                    .offset(page * self.page_size)
                    .limit(self.page_size)
                )
                batch = list(session.scalars(stmt))
                rows.extend(batch)
                log.debug(f"Fetched website products page {page}: {len(batch)} rows")
                if len(batch) < self.page_size:
                    break
                page += 1
            session.expunge_all()
        return rows

    async def fetch_all(self) -> List[Dict[str, Any]]:
        """Return every stored raw payload, newest first"""
        try:
            rows = await asyncio.to_thread(self._fetch_rows)
        except Exception as e:
            raise ConnectorError(f"Error fetching website products: {e}") from e
        log.info(f"Fetched {len(rows)} products from website database")
        return [row.shopify_data for row in rows]

    async def fetch_products(self) -> List[Product]:
        try:
            rows = await asyncio.to_thread(self._fetch_rows)
        except Exception as e:
            raise ConnectorError(f"Error fetching website products: {e}") from e

        products = []
        for row in rows:
            product = map_shopify_product(row.shopify_data)
            product.source_platforms = {Platform.WEBSITE.value, *(row.linked_to_platforms or [])}
            products.append(product)
        return products

    async def fetch_orders(self, date_range: Optional[DateRange] = None) -> List[Order]:
        # The website datastore holds catalog data only
        return []

    def _count(self) -> int:
        with self.session_factory() as session:
            return session.scalar(select(func.count()).select_from(WebsiteProduct)) or 0

    async def count(self) -> int:
        return await asyncio.to_thread(self._count)

    def _get(self, product_id: str) -> Optional[Dict[str, Any]]:
        with self.session_factory() as session:
            row = session.get(WebsiteProduct, product_id)
            return dict(row.shopify_data) if row else None

    async def get(self, product_id: str) -> Optional[Dict[str, Any]]:
        return await asyncio.to_thread(self._get, product_id)

    # Writes

    def _execute_batch(self, session: Session, rows: List[Dict[str, Any]]) -> None:
        """Issue one INSERT ... ON CONFLICT (id) DO UPDATE for a batch"""
        stmt = self._insert(session).values(rows)
        stmt = stmt.on_conflict_do_update(
            index_elements=["id"],
            set_={col: getattr(stmt.excluded, col) for col in _UPSERT_COLUMNS},
        )
        session.execute(stmt)

    def _upsert_batches(self, records: Sequence[Dict[str, Any]]) -> int:
        committed = 0
        synced_at = datetime.utcnow()

        for index, batch in enumerate(chunk_list(list(records), self.batch_size)):
            with self.session_factory() as session:
                try:
                    # Last occurrence wins when one batch repeats an id
                    rows = {}
                    for raw in batch:
                        row = _row_from_payload(raw, synced_at)
                        rows[row["id"]] = row

                    self._execute_batch(session, list(rows.values()))
                    session.commit()
                except Exception as e:
                    session.rollback()
                    log.error(f"Website upsert failed on batch {index} ({len(batch)} records): {e}")
                    raise WriteError(index, str(e), committed=committed) from e

            committed += len(batch)
            log.info(f"Upserted batch {index} of {len(batch)} products")

        return committed

    async def upsert_batch(self, records: Sequence[Dict[str, Any]]) -> int:
        """Upsert raw product payloads in fixed-size batches keyed on id.

        A failing batch raises WriteError; earlier batches stay committed.
        """
        if not records:
            return 0
        return await asyncio.to_thread(self._upsert_batches, records)

    async def upsert(self, records) -> int:
        return await self.upsert_batch(list(records))

    def _link_marketplace(self, product_id: str, platform: str, marketplace_id: str) -> None:
        with self.session_factory() as session:
            row = session.get(WebsiteProduct, product_id)
            if row is None:
                raise ConnectorError(f"Product {product_id} not found in website database")

            if platform == Platform.AMAZON.value:
                row.amazon_asin = marketplace_id
            elif platform == Platform.WALMART.value:
                row.walmart_id = marketplace_id
            else:
                row.marketplace_ids = {**(row.marketplace_ids or {}), platform: marketplace_id}

            platforms = list(row.linked_to_platforms or [])
            if platform not in platforms:
                row.linked_to_platforms = platforms + [platform]
            row.last_synced = datetime.utcnow()
            session.commit()

    async def link_marketplace(self, product_id: str, platform: str, marketplace_id: str) -> None:
        """Record a product's id on another marketplace and tag the link"""
        await asyncio.to_thread(self._link_marketplace, product_id, platform, marketplace_id)
        log.info(f"Linked product {product_id} to {platform} with ID {marketplace_id}")
