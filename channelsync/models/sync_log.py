"""
Sync run history
"""
from sqlalchemy import Column, Integer, String, DateTime, Float, JSON, Boolean
from datetime import datetime

from channelsync.models.base import Base


class SyncRun(Base):
    """
    One row per orchestrated sync

    Stores the per-platform outcome and the full log trail shown in the
    dashboard's debug panel.
    """
    __tablename__ = "sync_logs"

    id = Column(Integer, primary_key=True, index=True)
    trigger = Column(String, default="manual")  # manual, scheduled

    success = Column(Boolean, index=True)
    records_fetched = Column(Integer, default=0)
    records_written = Column(Integer, default=0)
    write_error = Column(String, nullable=True)

    per_platform = Column(JSON, nullable=True)
    logs = Column(JSON, nullable=True)

    started_at = Column(DateTime, default=datetime.utcnow, index=True)
    completed_at = Column(DateTime, nullable=True)
    duration_seconds = Column(Float, nullable=True)
