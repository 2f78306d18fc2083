"""
Configuration management for channelsync
"""
from pydantic_settings import BaseSettings
from functools import lru_cache
from typing import Optional


class Settings(BaseSettings):
    """Application settings"""

    # Application
    app_name: str = "channelsync Multi-Channel Dashboard API"
    environment: str = "development"
    debug: bool = True
    log_level: str = "INFO"
    log_dir: str = "logs"

    # API
    api_host: str = "0.0.0.0"
    api_port: int = 8000

    # Datastore (the "website" product database)
    database_url: str = "sqlite:///./channelsync.db"
    upsert_batch_size: int = 50
    fetch_page_size: int = 1000

    # Secret storage for platform credentials (Fernet key, urlsafe base64)
    encryption_key: Optional[str] = None

    # Shopify storefront
    shopify_api_version: str = "2025-07"
    shopify_page_limit: int = 250
    shopify_timeout_seconds: float = 60.0
    placeholder_image_url: str = "https://placehold.co/600x400?text=No+Image"

    # Environment credential fallback (used when nothing is stored in the DB)
    shopify_store_name: Optional[str] = None
    shopify_access_token: Optional[str] = None
    amazon_refresh_token: Optional[str] = None
    amazon_seller_id: Optional[str] = None
    amazon_client_id: Optional[str] = None
    amazon_client_secret: Optional[str] = None
    walmart_client_id: Optional[str] = None
    walmart_client_secret: Optional[str] = None
    etsy_api_key: Optional[str] = None

    # Client cache
    cache_ttl_hours: float = 5.0

    # Scheduled sync
    enable_scheduler: bool = False
    sync_all_schedule: str = "0 */6 * * *"

    class Config:
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
