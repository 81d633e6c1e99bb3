"""Logging configuration for the overdue sweep and any embedding server.

Level, log file and SQL echo come from Settings (LOG_LEVEL, LOG_FILE and
DATABASE_ECHO in the environment or .env). Aggregation queries log at DEBUG.
"""

import logging
import sys
from pathlib import Path
from typing import Optional

from condo_finance.config import Settings, get_settings

LOG_FORMAT = "[%(asctime)s] %(name)s - %(levelname)s - %(message)s"
LOG_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LOG_LEVEL_MAP = {
    "DEBUG": logging.DEBUG,
    "INFO": logging.INFO,
    "WARNING": logging.WARNING,
    "ERROR": logging.ERROR,
    "CRITICAL": logging.CRITICAL,
}


def get_log_level(name: str) -> int:
    """Logging constant for a level name; unknown names fall back to INFO."""
    return LOG_LEVEL_MAP.get(name.strip().upper(), logging.INFO)


def setup_server_logging(
    settings: Optional[Settings] = None,
    log_file: Optional[str] = None,
) -> None:
    """
    Configure the root logger for stdout and file output.

    Args:
        settings: Source of log_level, log_file and database_echo
            (defaults to get_settings())
        log_file: Overrides settings.log_file
    """
    settings = settings or get_settings()
    log_path = Path(log_file or settings.log_file)
    log_path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATE_FORMAT)
    log_level = get_log_level(settings.log_level)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    root_logger.handlers.clear()

    for handler in (logging.StreamHandler(sys.stdout), logging.FileHandler(log_path)):
        handler.setLevel(log_level)
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    # With echo on, the engine manages its own logger
    if not settings.database_echo:
        logging.getLogger("sqlalchemy.engine").setLevel(logging.WARNING)


__all__ = ["LOG_LEVEL_MAP", "get_log_level", "setup_server_logging"]
