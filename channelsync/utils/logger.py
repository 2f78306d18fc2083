"""
Logging configuration

Application records go to the console and a daily file. Lines emitted through
a ``SyncLog`` trail are bound with ``sync_trail=True`` and additionally land
in their own daily file, so the history a user saw in the dashboard can be
read back per day.
"""
from loguru import logger
import sys
from channelsync.config import get_settings

settings = get_settings()

SYNC_TRAIL_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS!UTC} UTC | {level: <8} | {message}"


def is_sync_trail(record) -> bool:
    """Sink filter: only records bound by a SyncLog trail"""
    return bool(record["extra"].get("sync_trail"))


def setup_logger():
    """Configure logger with appropriate settings"""
    logger.remove()  # Remove default handler

    # Console logging
    logger.add(
        sys.stdout,
        colorize=True,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{name}</cyan>:<cyan>{function}</cyan> - <level>{message}</level>",
        level=settings.log_level
    )

    # File logging
    logger.add(
        f"{settings.log_dir}/channelsync_{{time:YYYY-MM-DD}}.log",
        rotation="00:00",
        retention="30 days",
        compression="zip",
        level="INFO"
    )

    # Error file
    logger.add(
        f"{settings.log_dir}/errors_{{time:YYYY-MM-DD}}.log",
        rotation="00:00",
        retention="90 days",
        level="ERROR"
    )

    # Sync trails, in UTC to match the timestamps returned to the dashboard
    logger.add(
        f"{settings.log_dir}/sync_{{time:YYYY-MM-DD}}.log",
        rotation="00:00",
        retention="30 days",
        format=SYNC_TRAIL_FORMAT,
        filter=is_sync_trail,
        level="INFO"
    )

    return logger


# Initialize logger
log = setup_logger()
sync_trail_log = log.bind(sync_trail=True)
