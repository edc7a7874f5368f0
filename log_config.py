"""
Configuration des logs du client de streaming.
"""
import logging
import sys
from typing import Optional

from config import LOG_TIMESTAMP_FORMAT

ROOT_LOGGER_NAME = "vi_streaming"


def setup_logging(level: str = "INFO") -> logging.Logger:
    """Configure les logs sur stderr : stdout est réservé aux résultats de l'API."""
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(
        fmt="%(asctime)s - %(levelname)s - %(message)s",
        datefmt=LOG_TIMESTAMP_FORMAT,
    ))

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.handlers.clear()
    logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logger.propagate = False
    return logger


def get_logger(name: Optional[str] = None) -> logging.Logger:
    if name:
        return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")
    return logging.getLogger(ROOT_LOGGER_NAME)
