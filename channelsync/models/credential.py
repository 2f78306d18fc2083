"""
Encrypted per-platform credentials
"""
from sqlalchemy import Column, String, DateTime, Text
from datetime import datetime

from channelsync.models.base import Base


class PlatformCredential(Base):
    """One row per platform; the JSON credential blob is Fernet-encrypted"""
    __tablename__ = "platform_credentials"

    platform = Column(String, primary_key=True)
    value_encrypted = Column(Text, nullable=False)

    created_at = Column(DateTime, default=datetime.utcnow)
    updated_at = Column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
