"""Bookkeeping engine for a small cosmetics reseller.

Importing the package wires a shared logger that every layer (allocation,
pricing, cash ledger, processors, persistence, CLI) writes to.
"""

import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path


__version__ = "1.0.0"

PROJECT_ROOT = Path(__file__).resolve().parents[2]
LOG_DIR = Path(os.environ.get("NANIS_BOOKS_LOG_DIR", PROJECT_ROOT / ".logs"))
LOG_FILE = LOG_DIR / "nanis_books.log"
LOG_LEVEL_ENV = "NANIS_BOOKS_LOG_LEVEL"


def _resolve_level() -> int:
    """Read the log level override from the environment, defaulting to INFO."""

    name = os.environ.get(LOG_LEVEL_ENV, "INFO").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.INFO


def _configure_logging() -> logging.Logger:
    """Attach the rotating file handler and the stderr handler once."""

    logger = logging.getLogger(__name__)
    if logger.handlers:
        return logger

    level = _resolve_level()
    logger.setLevel(level)
    formatter = logging.Formatter(
        fmt="%(asctime)s | %(name)s | %(levelname)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    try:
        LOG_DIR.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            LOG_FILE,
            maxBytes=1_000_000,
            backupCount=5,
            encoding="utf-8",
        )
        file_handler.setLevel(level)
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
    except (OSError, PermissionError) as exc:
        print(
            f"Warning: unable to open log file '{LOG_FILE}': {exc}",
            file=sys.stderr,
        )

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setLevel(level)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    return logger


log = _configure_logging()
log.debug("Logger ready for the 'nanis_books' package (level=%s).", logging.getLevelName(log.level))
