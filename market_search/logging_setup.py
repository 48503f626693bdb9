"""Process-wide logging configuration."""
from __future__ import annotations

import logging

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
THIRD_PARTY_LOGGERS = ("uvicorn", "uvicorn.error", "uvicorn.access", "elastic_transport")


def configure_logging(level: str) -> None:
    log_level = logging.getLevelName(level.upper())
    # force=True replaces the handlers uvicorn installs before the app loads.
    logging.basicConfig(level=log_level, format=LOG_FORMAT, force=True)
    for name in THIRD_PARTY_LOGGERS:
        logging.getLogger(name).setLevel(log_level)
    logging.getLogger(__name__).info("Logging configured at %s", level.upper())
