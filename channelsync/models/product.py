"""
Website product table

Each row *is* the canonical record: the storefront payload is kept verbatim
in ``shopify_data`` next to the identifiers the dashboard queries by.
"""
from sqlalchemy import Column, String, DateTime, JSON, BigInteger
from datetime import datetime

from channelsync.models.base import Base


class WebsiteProduct(Base):
    """Product row in the website datastore, keyed on the storefront's qualified id"""
    __tablename__ = "products"

    id = Column(String, primary_key=True)  # gid://shopify/Product/<n>
    shopify_product_id = Column(BigInteger, index=True, nullable=True)
    handle = Column(String, index=True, nullable=True)

    # Entire upstream record
    shopify_data = Column(JSON, nullable=False)

    # Marketplace links
    linked_to_platforms = Column(JSON, nullable=True)
    amazon_asin = Column(String, nullable=True)
    walmart_id = Column(String, nullable=True)
    marketplace_ids = Column(JSON, nullable=True)  # other marketplaces: {"etsy": "..."}

    # Timestamps
    updated_at = Column(DateTime, index=True, nullable=True)  # upstream updated_at
    last_synced = Column(DateTime, default=datetime.utcnow)
