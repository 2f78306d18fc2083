"""
Shared fixtures.

Environment is pinned before any channelsync import so settings, the logger
and the default engine all point at throwaway locations.
"""
import os
import tempfile

os.environ["DATABASE_URL"] = "sqlite://"
os.environ["ENCRYPTION_KEY"] = "test-encryption-secret"
os.environ["LOG_DIR"] = tempfile.mkdtemp(prefix="channelsync-logs-")
os.environ["ENABLE_SCHEDULER"] = "false"
for _var in (
    "SHOPIFY_STORE_NAME",
    "SHOPIFY_ACCESS_TOKEN",
    "AMAZON_REFRESH_TOKEN",
    "AMAZON_SELLER_ID",
    "AMAZON_CLIENT_ID",
    "AMAZON_CLIENT_SECRET",
    "WALMART_CLIENT_ID",
    "WALMART_CLIENT_SECRET",
    "ETSY_API_KEY",
):
    os.environ.pop(_var, None)

import pytest
from sqlalchemy.orm import sessionmaker

from channelsync.connectors.base import BaseConnector
from channelsync.models.base import build_engine, init_db
from channelsync.schemas import Platform


@pytest.fixture
def engine():
    engine = build_engine("sqlite://")
    init_db(engine)
    yield engine
    engine.dispose()


@pytest.fixture
def session_factory(engine):
    return sessionmaker(autocommit=False, autoflush=False, bind=engine)


@pytest.fixture
def make_raw_product():
    """Factory for storefront product payloads shaped like the Admin REST API."""

    def _make(n, sku=None, price="19.99", updated_at="2025-01-01T00:00:00Z", title=None):
        return {
            "id": n,
            "admin_graphql_api_id": f"gid://shopify/Product/{n}",
            "title": title or f"Product {n}",
            "handle": f"product-{n}",
            "body_html": f"<p>Product {n}</p>",
            "vendor": "Acme",
            "product_type": "Tapware",
            "tags": "kitchen, sale",
            "status": "active",
            "updated_at": updated_at,
            "variants": [
                {"id": n * 10, "sku": sku or f"SKU-{n}", "price": price, "inventory_quantity": 5}
            ],
            "image": {"src": f"https://cdn.example.com/{n}.jpg"},
        }

    return _make


class FakeConnector(BaseConnector):
    """In-memory connector; raises ``error`` from every fetch when set."""

    def __init__(self, platform, products=None, orders=None, raw_products=None, error=None):
        super().__init__({})
        self.platform = platform
        self.products = products or []
        self.orders = orders or []
        self.raw_products = raw_products or []
        self.error = error
        self.fetch_calls = 0

    async def fetch_raw_products(self):
        self.fetch_calls += 1
        if self.error:
            raise self.error
        return list(self.raw_products)

    async def fetch_products(self):
        self.fetch_calls += 1
        if self.error:
            raise self.error
        return list(self.products)

    async def fetch_orders(self, date_range=None):
        if self.error:
            raise self.error
        return list(self.orders)

    async def count_products(self):
        if self.error:
            raise self.error
        return len(self.raw_products or self.products)


class StaticResolver:
    """Credential resolver double: a fixed set of platforms is connected."""

    def __init__(self, connected):
        self.connected = {Platform(p) for p in connected}

    async def get_status(self, platform):
        return platform is Platform.WEBSITE or platform in self.connected

    async def get_credentials(self, platform):
        return {} if platform in self.connected else None


@pytest.fixture
def fake_connector():
    return FakeConnector


@pytest.fixture
def static_resolver():
    return StaticResolver


@pytest.fixture
def connector_factory():
    """Build a connector_factory that hands out pre-built connectors by platform."""

    def _factory(connectors):
        def build(platform, credentials):
            return connectors[platform]
        return build

    return _factory
