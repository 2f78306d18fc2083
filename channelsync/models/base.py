"""
Base database model and session management
"""
import logging
import os
from sqlalchemy import create_engine, inspect, text
from sqlalchemy.pool import NullPool, StaticPool
from sqlalchemy.orm import declarative_base, sessionmaker
from channelsync.config import get_settings

logger = logging.getLogger(__name__)

settings = get_settings()


def build_engine(database_url: str):
    """Create an engine tuned for the given backend."""
    # Resolve relative SQLite paths to absolute so cwd changes can't break it
    if database_url.startswith("sqlite:///") and not database_url.startswith("sqlite:////"):
        rel_path = database_url[len("sqlite:///"):]
        database_url = "sqlite:///" + os.path.abspath(rel_path)

    if database_url in ("sqlite://", "sqlite:///:memory:"):
        # In-memory database must be shared across sessions
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    if database_url.startswith("sqlite"):
        return create_engine(
            database_url,
            connect_args={"check_same_thread": False, "timeout": 60},
            poolclass=NullPool,
            pool_pre_ping=True
        )
    return create_engine(
        database_url,
        pool_pre_ping=True,
        pool_size=3,
        max_overflow=5,
        pool_recycle=300,
    )


# Create database engine
engine = build_engine(settings.database_url)

# Create session factory
SessionLocal = sessionmaker(autocommit=False, autoflush=False, bind=engine)

# Base class for all models
Base = declarative_base()


def _migrate_missing_columns(bind):
    """Add columns defined in models but missing from existing DB tables.

    create_all() only creates missing *tables*; it cannot add new columns
    to tables that already exist.
    """
    inspector = inspect(bind)
    with bind.connect() as conn:
        for table_name, table in Base.metadata.tables.items():
            if not inspector.has_table(table_name):
                continue  # create_all will handle it
            existing = {c["name"] for c in inspector.get_columns(table_name)}
            for col in table.columns:
                if col.name not in existing:
                    col_type = col.type.compile(dialect=bind.dialect)
                    sql = f'ALTER TABLE {table_name} ADD COLUMN {col.name} {col_type}'
                    logger.info(f"Auto-migrating: {sql}")
                    conn.execute(text(sql))
        conn.commit()


def init_db(bind=None):
    """Initialize database tables and auto-migrate new columns."""
    # Register every model on the metadata before create_all
    import channelsync.models  # noqa: F401

    bind = bind or engine
    Base.metadata.create_all(bind=bind)
    _migrate_missing_columns(bind)
