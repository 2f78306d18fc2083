"""
Tests for the sync orchestrator.

One platform failing must never prevent the others from being fetched and
reported, and the datastore write is reported separately from fetches.
"""
from dataclasses import replace

import pytest

from channelsync.config import Settings
from channelsync.connectors import build_connector
from channelsync.connectors.shopify import map_shopify_product
from channelsync.connectors.website import WebsiteConnector
from channelsync.errors import (
    ConfigurationError,
    CredentialStoreError,
    NotSupportedError,
    UpstreamError,
    ValidationError,
    WriteError,
)
from channelsync.schemas import FinancialStatus, Order, OrderCustomer, Platform
from channelsync.services.credential_service import CredentialResolver
from channelsync.services.sync_service import (
    MERGED_PRODUCTS_KEY,
    SyncLog,
    SyncOrchestrator,
    sync_history,
    website_product_id,
)
from channelsync.utils.cache import ClientCache
from channelsync.utils.logger import is_sync_trail, log


def _order(order_id, email, platform):
    return Order(
        id=order_id,
        name=order_id,
        created_at=None,
        customer=OrderCustomer(email=email, first_name="Pat", last_name="Lee"),
        shipping_address=None,
        line_items=[],
        total_price="10.00",
        currency="USD",
        financial_status=FinancialStatus.PAID,
        fulfillment_status=None,
        platform=platform,
    )


@pytest.fixture
def website(session_factory):
    return WebsiteConnector(session_factory=session_factory)


@pytest.fixture
def build(session_factory, website, static_resolver, connector_factory):
    """Orchestrator over fake connectors; only the given platforms are connected."""

    def _build(connectors, cache=None, website_connector=None):
        return SyncOrchestrator(
            resolver=static_resolver(connectors.keys()),
            website=website_connector or website,
            cache=cache,
            connector_factory=connector_factory(connectors),
            session_factory=session_factory,
        )

    return _build


@pytest.fixture
def flaky_resolver(static_resolver):
    """Resolver double whose credential lookup raises for the ``broken`` platforms."""

    class FlakyResolver(static_resolver):
        def __init__(self, connected, broken):
            super().__init__(connected)
            self.broken = {Platform(p) for p in broken}

        async def get_status(self, platform):
            if platform in self.broken:
                raise CredentialStoreError(f"Could not read stored {platform.value} credentials: database is locked")
            return await super().get_status(platform)

    return FlakyResolver


class TestSyncAll:

    @pytest.mark.asyncio
    async def test_partial_failure_is_isolated(self, build, fake_connector, make_raw_product, website):
        """A failing marketplace does not stop the storefront sync or the report."""
        orchestrator = build({
            Platform.SHOPIFY: fake_connector(Platform.SHOPIFY, raw_products=[make_raw_product(n) for n in (1, 2, 3)]),
            Platform.AMAZON: fake_connector(Platform.AMAZON, error=UpstreamError(503, "Service Unavailable")),
            Platform.WALMART: fake_connector(Platform.WALMART),
        })

        report = await orchestrator.sync_all()

        assert report.success is True
        assert report.per_platform["shopify"] == {"count": 3, "written": 3}
        assert "HTTP 503" in report.per_platform["amazon"]["error"]
        assert report.per_platform["walmart"] == {"count": 0}
        assert report.per_platform["ebay"] == {"count": 0, "note": "not connected"}
        assert report.records_written == 3
        assert "amazon" in report.error
        assert await website.count() == 3

    @pytest.mark.asyncio
    async def test_all_connected_platforms_fail(self, build, fake_connector):
        orchestrator = build({
            Platform.SHOPIFY: fake_connector(Platform.SHOPIFY, error=UpstreamError(500, "boom")),
            Platform.ETSY: fake_connector(Platform.ETSY, error=ConfigurationError("etsy credentials missing")),
        })

        report = await orchestrator.sync_all()

        assert report.success is False
        assert report.records_written == 0
        assert set(report.per_platform) == {p.value for p in Platform if p is not Platform.WEBSITE}

    @pytest.mark.asyncio
    async def test_nothing_connected(self, build):
        report = await build({}).sync_all()

        assert report.success is False
        assert all(outcome.get("note") == "not connected" for outcome in report.per_platform.values())

    @pytest.mark.asyncio
    async def test_write_failure_reported_separately(self, build, fake_connector, make_raw_product):
        class FailingWebsite(WebsiteConnector):
            async def upsert_batch(self, records):
                raise WriteError(0, "disk full", committed=0)

        orchestrator = build(
            {Platform.SHOPIFY: fake_connector(Platform.SHOPIFY, raw_products=[make_raw_product(1)])},
            website_connector=FailingWebsite(),
        )

        report = await orchestrator.sync_all()

        assert report.success is True
        assert report.per_platform["shopify"]["count"] == 1
        assert report.per_platform["shopify"]["written"] == 0
        assert "disk full" in report.write_error

    @pytest.mark.asyncio
    async def test_report_is_persisted(self, build, fake_connector, make_raw_product, session_factory):
        orchestrator = build({Platform.SHOPIFY: fake_connector(Platform.SHOPIFY, raw_products=[make_raw_product(1)])})

        report = await orchestrator.sync_all(trigger="scheduled")

        [run] = sync_history(session_factory=session_factory)
        assert run["id"] == report.sync_log_id
        assert run["trigger"] == "scheduled"
        assert run["success"] is True
        assert run["records_written"] == 1

    @pytest.mark.asyncio
    async def test_logs_are_timestamped_in_order(self, build, fake_connector):
        report = await build({Platform.WALMART: fake_connector(Platform.WALMART)}).sync_all()

        assert report.logs[0].endswith("Starting manual sync across all platforms")
        assert report.logs[-1].endswith("Sync complete: 1/1 connected platforms succeeded")
        assert all(line.startswith("[") for line in report.logs)

    @pytest.mark.asyncio
    async def test_sync_invalidates_website_listing(self, build, fake_connector, make_raw_product):
        cache = ClientCache()
        cache.set(("products", "website"), [])
        orchestrator = build(
            {Platform.SHOPIFY: fake_connector(Platform.SHOPIFY, raw_products=[make_raw_product(1)])},
            cache=cache,
        )

        await orchestrator.sync_all()
        assert cache.get(("products", "website")) is None


class TestReads:

    @pytest.mark.asyncio
    async def test_products_served_from_cache(self, build, fake_connector, make_raw_product):
        from channelsync.connectors.shopify import map_shopify_product

        shopify = fake_connector(Platform.SHOPIFY, products=[map_shopify_product(make_raw_product(1))])
        orchestrator = build({Platform.SHOPIFY: shopify}, cache=ClientCache())

        first = await orchestrator.get_products(Platform.SHOPIFY)
        second = await orchestrator.get_products(Platform.SHOPIFY)

        assert shopify.fetch_calls == 1
        assert second["products"] == first["products"]
        assert second["is_stale"] is False

        await orchestrator.get_products(Platform.SHOPIFY, refresh=True)
        assert shopify.fetch_calls == 2

    @pytest.mark.asyncio
    async def test_unconnected_source_is_configuration_error(self, build):
        with pytest.raises(ConfigurationError) as exc_info:
            await build({}).get_orders(Platform.SHOPIFY)
        assert "shopify" in str(exc_info.value)

    @pytest.mark.asyncio
    async def test_website_products_need_no_credentials(self, build, website, make_raw_product):
        await website.upsert_batch([make_raw_product(1)])
        result = await build({}).get_products(Platform.WEBSITE)
        assert [p["id"] for p in result["products"]] == ["gid://shopify/Product/1"]

    @pytest.mark.asyncio
    async def test_customers_merged_across_platforms(self, build, fake_connector):
        orchestrator = build({
            Platform.SHOPIFY: fake_connector(Platform.SHOPIFY, orders=[_order("1", "Pat@Example.com", "shopify")]),
            Platform.WALMART: fake_connector(Platform.WALMART, orders=[_order("2", "pat@example.com", "walmart")]),
            Platform.EBAY: fake_connector(Platform.EBAY, error=UpstreamError(429, "Too Many Requests")),
        })

        result = await orchestrator.get_customers()

        [customer] = result["customers"]
        assert customer.platforms == {"shopify", "walmart"}
        assert any("ebay: order fetch failed" in line for line in result["logs"])


class TestDashboardStats:

    @pytest.mark.asyncio
    async def test_totals_and_counts(self, build, fake_connector, website, make_raw_product):
        await website.upsert_batch([make_raw_product(1), make_raw_product(2)])
        refunded = _order("3", "c@example.com", "shopify")
        refunded.financial_status = FinancialStatus.REFUNDED
        orchestrator = build({
            Platform.SHOPIFY: fake_connector(
                Platform.SHOPIFY,
                raw_products=[make_raw_product(n) for n in range(5)],
                orders=[_order("1", "a@example.com", "shopify"), refunded],
            ),
            Platform.WALMART: fake_connector(Platform.WALMART, orders=[_order("2", "b@example.com", "walmart")]),
        })

        stats = await orchestrator.dashboard_stats()

        assert stats["total_sales"] == "20.00"
        assert stats["total_refunds"] == "10.00"
        assert stats["platform_counts"] == {"shopify": 5}
        assert stats["website_product_count"] == 2

    @pytest.mark.asyncio
    async def test_count_failure_is_logged_not_raised(self, build, fake_connector):
        orchestrator = build({
            Platform.SHOPIFY: fake_connector(Platform.SHOPIFY, error=UpstreamError(502, "Bad Gateway")),
        })

        stats = await orchestrator.dashboard_stats()

        assert stats["platform_counts"] == {"shopify": None}
        assert stats["order_count"] == 0
        assert any("product count failed" in line for line in stats["logs"])


class TestWriteThrough:

    @pytest.mark.asyncio
    async def test_update_resyncs_datastore(self, session_factory, website, static_resolver, make_raw_product):
        import httpx

        from channelsync.connectors.shopify import ShopifyConnector

        def handler(request):
            return httpx.Response(200, json={"product": make_raw_product(5, title="Updated", price="19.99")})

        cache = ClientCache()
        cache.set(("products", "website"), [])
        orchestrator = SyncOrchestrator(
            resolver=static_resolver([Platform.SHOPIFY]),
            website=website,
            cache=cache,
            connector_factory=lambda platform, creds: ShopifyConnector(
                {"store_name": "acme", "access_token": "shpat_x"}, transport=httpx.MockTransport(handler)
            ),
            session_factory=session_factory,
        )

        result = await orchestrator.update_product("gid://shopify/Product/5", {"title": "Updated"})

        assert result["sync_error"] is None
        assert result["product"]["price"] == "19.99"
        assert (await website.get("gid://shopify/Product/5"))["title"] == "Updated"
        assert cache.get(("products", "website")) is None


class TestSyncLog:

    def test_lines_keep_emission_order(self):
        logs = SyncLog()
        logs.add("first")
        logs.error("second")
        logs.add("third")

        assert [line.split("] ", 1)[1] for line in logs] == ["first", "second", "third"]
        assert len(logs) == 3

    def test_only_trail_lines_reach_the_sync_sink(self):
        captured = []
        handler_id = log.add(captured.append, filter=is_sync_trail, format="{message}")
        try:
            SyncLog().add("fetched 3 products")
            log.info("unrelated application line")
        finally:
            log.remove(handler_id)

        assert [str(message).strip() for message in captured] == ["fetched 3 products"]


class TestCredentialLookupIsolation:

    @pytest.mark.asyncio
    async def test_missing_encryption_key_is_reported_per_platform(self, session_factory, website):
        """Stored rows that cannot be decrypted fail their platform, not the sync."""
        writer = CredentialResolver(session_factory=session_factory, encryption_key="k1", use_env_fallback=False)
        await writer.save("shopify", {"store_name": "acme", "access_token": "shpat_x"})
        await writer.save("etsy", {"api_key": "etsy-key"})

        orchestrator = SyncOrchestrator(
            resolver=CredentialResolver(
                session_factory=session_factory,
                settings=Settings(encryption_key=None),
                use_env_fallback=False,
            ),
            website=website,
            session_factory=session_factory,
        )

        report = await orchestrator.sync_all()

        assert report.success is False
        assert "ENCRYPTION_KEY" in report.per_platform["shopify"]["error"]
        assert "ENCRYPTION_KEY" in report.per_platform["etsy"]["error"]
        assert report.per_platform["walmart"] == {"count": 0, "note": "not connected"}
        assert report.sync_log_id is not None

    @pytest.mark.asyncio
    async def test_other_platforms_still_sync(
        self, session_factory, website, flaky_resolver, fake_connector, connector_factory, make_raw_product
    ):
        connectors = {
            Platform.SHOPIFY: fake_connector(Platform.SHOPIFY, raw_products=[make_raw_product(1)]),
            Platform.WALMART: fake_connector(Platform.WALMART),
        }
        orchestrator = SyncOrchestrator(
            resolver=flaky_resolver(connectors.keys(), broken=[Platform.AMAZON]),
            website=website,
            connector_factory=connector_factory(connectors),
            session_factory=session_factory,
        )

        report = await orchestrator.sync_all()

        assert report.success is True
        assert report.per_platform["shopify"] == {"count": 1, "written": 1}
        assert report.per_platform["amazon"]["count"] == 0
        assert "database is locked" in report.per_platform["amazon"]["error"]
        assert "amazon" in report.error
        assert report.logs[-1].endswith("Sync complete: 2/2 connected platforms succeeded")

    @pytest.mark.asyncio
    async def test_customers_and_stats_survive_a_broken_lookup(
        self, session_factory, website, flaky_resolver, fake_connector, connector_factory
    ):
        connectors = {
            Platform.WALMART: fake_connector(Platform.WALMART, orders=[_order("2", "b@example.com", "walmart")]),
        }
        orchestrator = SyncOrchestrator(
            resolver=flaky_resolver(connectors.keys(), broken=[Platform.SHOPIFY]),
            website=website,
            connector_factory=connector_factory(connectors),
            session_factory=session_factory,
        )

        customers = await orchestrator.get_customers()
        assert [c.email for c in customers["customers"]] == ["b@example.com"]
        assert any("shopify: credential lookup failed" in line for line in customers["logs"])

        stats = await orchestrator.dashboard_stats()
        assert stats["total_sales"] == "10.00"
        assert stats["platform_counts"] == {"shopify": None}


class TestMergedProducts:

    @staticmethod
    def _walmart_listing(make_raw_product, sku):
        mapped = map_shopify_product(make_raw_product(99, sku=sku, title="Walmart Tap", updated_at="2025-06-01T00:00:00Z"))
        return replace(mapped, id="walmart-99", source_platforms={"walmart"})

    @pytest.mark.asyncio
    async def test_sync_reconciles_shared_sku(self, build, fake_connector, make_raw_product):
        """A SKU listed on two platforms comes back as one product tagged with both."""
        cache = ClientCache()
        orchestrator = build(
            {
                Platform.SHOPIFY: fake_connector(
                    Platform.SHOPIFY,
                    raw_products=[make_raw_product(1, sku="TAP-1"), make_raw_product(2, sku="TAP-2")],
                ),
                Platform.WALMART: fake_connector(
                    Platform.WALMART, products=[self._walmart_listing(make_raw_product, "TAP-1")]
                ),
            },
            cache=cache,
        )

        report = await orchestrator.sync_all()

        assert report.products_merged == 2
        merged = {p["variants"][0]["sku"]: p for p in cache.get(MERGED_PRODUCTS_KEY).data}
        assert merged["TAP-1"]["source_platforms"] == ["shopify", "walmart"]
        assert merged["TAP-1"]["title"] == "Walmart Tap"
        assert merged["TAP-2"]["source_platforms"] == ["shopify"]

    @pytest.mark.asyncio
    async def test_merged_listing_is_cached(self, build, fake_connector, make_raw_product):
        shopify = fake_connector(Platform.SHOPIFY, products=[map_shopify_product(make_raw_product(1, sku="TAP-1"))])
        walmart = fake_connector(Platform.WALMART, products=[self._walmart_listing(make_raw_product, "TAP-1")])
        orchestrator = build({Platform.SHOPIFY: shopify, Platform.WALMART: walmart}, cache=ClientCache())

        first = await orchestrator.get_merged_products()
        second = await orchestrator.get_merged_products()

        assert [p["source_platforms"] for p in first["products"]] == [["shopify", "walmart"]]
        assert second["products"] == first["products"]
        assert shopify.fetch_calls == 1

    @pytest.mark.asyncio
    async def test_failed_platform_is_left_out(self, build, fake_connector, make_raw_product):
        orchestrator = build({
            Platform.SHOPIFY: fake_connector(Platform.SHOPIFY, products=[map_shopify_product(make_raw_product(1))]),
            Platform.EBAY: fake_connector(Platform.EBAY, error=UpstreamError(429, "Too Many Requests")),
        })

        result = await orchestrator.get_merged_products()

        assert [p["source_platforms"] for p in result["products"]] == [["shopify"]]
        assert any("ebay: product fetch failed" in line for line in result["logs"])


class TestLinkProduct:

    @pytest.mark.asyncio
    async def test_existing_listing_is_recorded(self, build, fake_connector, website, make_raw_product):
        await website.upsert_batch([make_raw_product(1)])
        cache = ClientCache()
        cache.set(("products", "website"), [])
        orchestrator = build({Platform.AMAZON: fake_connector(Platform.AMAZON)}, cache=cache)

        result = await orchestrator.link_product("1", Platform.AMAZON, marketplace_id="B00TEST123")

        assert result["product_id"] == "gid://shopify/Product/1"
        assert result["marketplace_id"] == "B00TEST123"
        [product] = await website.fetch_products()
        assert product.source_platforms == {"website", "amazon"}
        assert cache.get(("products", "website")) is None

    @pytest.mark.asyncio
    async def test_connector_creates_the_listing(self, build, fake_connector, website, make_raw_product):
        class ListingConnector(fake_connector):
            async def create_listing(self, product):
                self.listed = product.title
                return "W-123"

        await website.upsert_batch([make_raw_product(1, title="Basin Mixer")])
        walmart = ListingConnector(Platform.WALMART)
        orchestrator = build({Platform.WALMART: walmart})

        result = await orchestrator.link_product("gid://shopify/Product/1", Platform.WALMART)

        assert result["marketplace_id"] == "W-123"
        assert walmart.listed == "Basin Mixer"

    @pytest.mark.asyncio
    async def test_pending_marketplace_declines(self, session_factory, website, static_resolver, make_raw_product):
        await website.upsert_batch([make_raw_product(1)])
        orchestrator = SyncOrchestrator(
            resolver=static_resolver([Platform.ETSY]),
            website=website,
            connector_factory=lambda platform, creds: build_connector(platform, {"api_key": "k"}),
            session_factory=session_factory,
        )

        with pytest.raises(NotSupportedError):
            await orchestrator.link_product("1", Platform.ETSY)

        [product] = await website.fetch_products()
        assert product.source_platforms == {"website"}

    @pytest.mark.asyncio
    async def test_unknown_product_returns_none(self, build, fake_connector):
        orchestrator = build({Platform.AMAZON: fake_connector(Platform.AMAZON)})
        assert await orchestrator.link_product("404", Platform.AMAZON, marketplace_id="B0") is None

    @pytest.mark.asyncio
    async def test_storefront_is_not_a_link_target(self, build):
        with pytest.raises(ValidationError):
            await build({}).link_product("1", Platform.SHOPIFY, marketplace_id="x")

    def test_website_product_id(self):
        assert website_product_id(42) == "gid://shopify/Product/42"
        assert website_product_id("gid://shopify/Product/42") == "gid://shopify/Product/42"

