"""
Platform credential storage and connectivity status

Credentials are stored Fernet-encrypted, one row per platform. "Connected"
means the required fields are on file; nothing here calls the upstream to
check that they actually work.
"""
import asyncio
import base64
import hashlib
import json
from datetime import datetime
from typing import Any, Dict, Optional

from cryptography.fernet import Fernet, InvalidToken
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from channelsync.config import Settings, get_settings
from channelsync.connectors import required_fields
from channelsync.connectors.base import is_placeholder
from channelsync.errors import ChannelSyncError, ConfigurationError, CredentialStoreError, ValidationError
from channelsync.models.base import SessionLocal
from channelsync.models.credential import PlatformCredential
from channelsync.schemas import CREDENTIALED_PLATFORMS, Platform
from channelsync.utils.logger import log


def _fernet_key(raw_key: str) -> bytes:
    """Accept a proper Fernet key or derive one from an arbitrary secret."""
    try:
        key = raw_key.encode()
        Fernet(key)
        return key
    except ValueError:
        return base64.urlsafe_b64encode(hashlib.sha256(raw_key.encode()).digest())


def _env_credentials(settings: Settings) -> Dict[Platform, Dict[str, Optional[str]]]:
    return {
        Platform.SHOPIFY: {
            "store_name": settings.shopify_store_name,
            "access_token": settings.shopify_access_token,
        },
        Platform.AMAZON: {
            "refresh_token": settings.amazon_refresh_token,
            "seller_id": settings.amazon_seller_id,
            "client_id": settings.amazon_client_id,
            "client_secret": settings.amazon_client_secret,
        },
        Platform.WALMART: {
            "client_id": settings.walmart_client_id,
            "client_secret": settings.walmart_client_secret,
        },
        Platform.ETSY: {"api_key": settings.etsy_api_key},
    }


class CredentialResolver:
    """Resolves per-platform credentials and reports connected/disconnected"""

    def __init__(
        self,
        session_factory: Optional[sessionmaker] = None,
        encryption_key: Optional[str] = None,
        settings: Optional[Settings] = None,
        use_env_fallback: bool = True,
    ):
        self.settings = settings or get_settings()
        self.session_factory = session_factory or SessionLocal
        self.encryption_key = encryption_key or self.settings.encryption_key
        self.use_env_fallback = use_env_fallback

    def _fernet(self) -> Fernet:
        if not self.encryption_key:
            raise ConfigurationError("ENCRYPTION_KEY is not configured; cannot store or read platform credentials")
        return Fernet(_fernet_key(self.encryption_key))

    @staticmethod
    def _platform(platform) -> Platform:
        if isinstance(platform, Platform):
            return platform
        try:
            return Platform.parse(platform)
        except ValueError as e:
            raise ValidationError(str(e)) from e

    def validate(self, platform, credentials: Dict[str, Any]) -> Dict[str, str]:
        """Structural check only: every required field present and non-empty."""
        platform = self._platform(platform)
        if platform not in CREDENTIALED_PLATFORMS:
            raise ValidationError(f"{platform.value} does not take credentials")
        if not isinstance(credentials, dict):
            raise ValidationError("Credentials must be an object of field values")

        fields = required_fields(platform)
        missing = [f for f in fields if is_placeholder(credentials.get(f))]
        if missing:
            raise ValidationError(f"Missing required {platform.value} fields: {', '.join(missing)}")

        cleaned = {f: str(credentials[f]).strip() for f in fields}
        # Optional extras (e.g. api_version, marketplace_id) are kept as given
        for key, value in credentials.items():
            if key not in cleaned and value not in (None, ""):
                cleaned[key] = str(value).strip()
        return cleaned

    # Storage

    def _save(self, platform: Platform, cleaned: Dict[str, str]) -> None:
        token = self._fernet().encrypt(json.dumps(cleaned).encode()).decode()
        with self.session_factory() as session:
            row = session.get(PlatformCredential, platform.value)
            if row is None:
                row = PlatformCredential(platform=platform.value, value_encrypted=token)
                session.add(row)
            else:
                row.value_encrypted = token
                row.updated_at = datetime.utcnow()
            session.commit()

    async def save(self, platform, credentials: Dict[str, Any]) -> None:
        """Validate and store credentials for one platform; other platforms are untouched."""
        platform = self._platform(platform)
        cleaned = self.validate(platform, credentials)
        await asyncio.to_thread(self._save, platform, cleaned)
        log.info(f"Saved credentials for {platform.value}")

    def _load(self, platform: Platform) -> Optional[Dict[str, Any]]:
        try:
            with self.session_factory() as session:
                row = session.get(PlatformCredential, platform.value)
                token = row.value_encrypted if row else None
        except SQLAlchemyError as e:
            raise CredentialStoreError(f"Could not read stored {platform.value} credentials: {e}") from e
        if token is None:
            return None
        try:
            return json.loads(self._fernet().decrypt(token.encode()).decode())
        except InvalidToken:
            log.error(f"Stored credentials for {platform.value} cannot be decrypted with the configured key")
            return None

    async def get_credentials(self, platform) -> Optional[Dict[str, Any]]:
        """Raw credential values, for connectors making outbound calls only."""
        platform = self._platform(platform)
        stored = await asyncio.to_thread(self._load, platform)
        if stored:
            return stored
        if self.use_env_fallback:
            env = _env_credentials(self.settings).get(platform)
            if env and any(v for v in env.values()):
                return {k: v for k, v in env.items() if v}
        return None

    # Status

    async def get_status(self, platform) -> bool:
        platform = self._platform(platform)
        if platform is Platform.WEBSITE:
            return True
        credentials = await self.get_credentials(platform) or {}
        return all(not is_placeholder(credentials.get(f)) for f in required_fields(platform))

    async def _status_or_false(self, platform: Platform) -> bool:
        try:
            return await self.get_status(platform)
        except ChannelSyncError as e:
            log.warning(f"{platform.value}: credential lookup failed, reporting disconnected: {e}")
            return False

    async def get_all(self) -> Dict[str, bool]:
        """Connected flag per marketplace; one unreadable platform never hides the rest."""
        statuses = await asyncio.gather(*(self._status_or_false(p) for p in CREDENTIALED_PLATFORMS))
        return {p.value: status for p, status in zip(CREDENTIALED_PLATFORMS, statuses)}
