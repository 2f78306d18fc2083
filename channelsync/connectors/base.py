"""
Base connector class for all upstream platforms
"""
from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional, Sequence

from channelsync.errors import ConfigurationError, ConnectorError, NotSupportedError
from channelsync.schemas import Order, Platform, Product
from channelsync.utils.logger import log


class DateRange:
    """Inclusive created-at window for order fetches. Either bound may be open."""

    def __init__(self, start: Optional[datetime] = None, end: Optional[datetime] = None):
        if start and end and start > end:
            raise ValueError("Date range start must not be after its end")
        self.start = start
        self.end = end

    def __repr__(self) -> str:
        return f"DateRange({self.start}, {self.end})"


def is_placeholder(value: Optional[str]) -> bool:
    """Template values like 'your-store-name' count as missing."""
    return value is None or not str(value).strip() or "your-" in str(value)


class BaseConnector(ABC):
    """Base class for all upstream connectors

    Connectors raise ``ConnectorError`` subclasses on failure and never retry;
    retry policy belongs to the caller.
    """

    platform: Platform
    required_fields: Sequence[str] = ()

    def __init__(self, credentials: Optional[Dict[str, Any]] = None):
        self.credentials = credentials or {}
        self.last_sync = None
        self.sync_count = 0
        self.error_count = 0

    @property
    def name(self) -> str:
        return self.platform.value

    def require_credentials(self) -> Dict[str, str]:
        """Return the credential fields or raise before any network call."""
        missing = [f for f in self.required_fields if is_placeholder(self.credentials.get(f))]
        if missing:
            raise ConfigurationError(
                f"{self.name} credentials missing or placeholder: {', '.join(missing)}"
            )
        return {f: str(self.credentials[f]).strip() for f in self.required_fields}

    @abstractmethod
    async def fetch_products(self) -> List[Product]:
        """Fetch every product from the upstream, mapped to canonical shape"""
        pass

    @abstractmethod
    async def fetch_orders(self, date_range: Optional[DateRange] = None) -> List[Order]:
        """Fetch orders, optionally limited to an inclusive created-at window"""
        pass

    async def upsert(self, records: Iterable[Dict[str, Any]]) -> int:
        """Write raw records back to the upstream. Returns count written."""
        raise ConnectorError(f"Writes to {self.name} are not supported")

    async def create_listing(self, product: Product) -> str:
        """List a canonical product on this platform. Returns the new listing id."""
        raise NotSupportedError(f"Creating listings on {self.name} is not supported")

    def record_success(self):
        self.last_sync = datetime.utcnow()
        self.sync_count += 1

    def record_failure(self, error: Exception):
        self.error_count += 1
        log.error(f"{self.name} connector failure: {error}")

    def get_status(self) -> Dict[str, Any]:
        """Get connector status"""
        connected = all(not is_placeholder(self.credentials.get(f)) for f in self.required_fields)
        return {
            "name": self.name,
            "connected": connected,
            "last_sync": self.last_sync,
            "sync_count": self.sync_count,
            "error_count": self.error_count,
            "error_rate": self.error_count / max(self.sync_count, 1),
        }
