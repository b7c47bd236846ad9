"""
Logging setup shared by the API process and the background import workers.

Import jobs run on worker threads, so the thread name is part of every line;
that is usually enough to tell two concurrent imports apart in the output.
"""
from __future__ import annotations

import logging
from logging.config import dictConfig
from typing import Any, Dict, Optional


LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(threadName)s | %(name)s | %(message)s"

# Third-party loggers that drown out job lifecycle messages below WARNING
QUIET_LOGGERS = ("sqlalchemy.engine", "multipart", "urllib3")

_configured_level: Optional[str] = None


def build_logging_config(level: str) -> Dict[str, Any]:
    """Return the ``dictConfig`` mapping for ``level`` without applying it."""
    level = level.upper()
    loggers: Dict[str, Any] = {name: {"level": "WARNING"} for name in QUIET_LOGGERS}
    loggers["catalog_import"] = {"level": level}
    return {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "import_service": {"format": LOG_FORMAT, "datefmt": "%Y-%m-%d %H:%M:%S"},
        },
        "handlers": {
            "stdout": {
                "class": "logging.StreamHandler",
                "stream": "ext://sys.stdout",
                "formatter": "import_service",
            },
        },
        "loggers": loggers,
        "root": {"handlers": ["stdout"], "level": level},
    }


def configure_logging(level: Optional[str] = None, *, force: bool = False) -> None:
    """
    Apply the logging configuration once per process.

    ``create_app`` calls this for every application it builds; later calls
    are ignored unless ``force`` is set or a different level is requested.
    """
    global _configured_level

    requested = (level or "INFO").upper()
    if _configured_level == requested and not force:
        return

    dictConfig(build_logging_config(requested))
    _configured_level = requested
    logging.getLogger(__name__).debug("Logging configured at %s", requested)
