"""Logging setup"""
import logging
import sys
from typing import Optional

from cachepool.config import settings

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def setup_logging(level: Optional[str] = None) -> None:
    """Configure the cachepool loggers, defaulting to settings.log_level"""
    level = (level or settings.log_level).upper()

    logger = logging.getLogger("cachepool")
    logger.setLevel(level)

    if not logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logger.addHandler(handler)
