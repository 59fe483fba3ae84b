# roomcast/core/logging.py

from __future__ import annotations

import logging
import sys
from typing import Optional

from roomcast.core.config import Settings, settings as default_settings

APP_LOGGER = "roomcast"
LOG_FORMAT = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"


def _level(name: str) -> int:
    level = logging.getLevelName(name.strip().upper())
    return level if isinstance(level, int) else logging.INFO


def setup_logging(settings: Optional[Settings] = None) -> int:
    """
    Route the roomcast.* loggers to stdout at ``settings.LOG_LEVEL``.

    The level is applied to the ``roomcast`` logger, so every module logger
    (``roomcast.services.chat_service`` and friends) inherits it while
    uvicorn's loggers keep their own. A stdout handler is attached to the
    root logger only when nobody (uvicorn included) has configured one yet.

    Returns the numeric level that was applied.
    """
    settings = settings or default_settings
    level = _level(settings.LOG_LEVEL)
    logging.getLogger(APP_LOGGER).setLevel(level)

    root = logging.getLogger()
    if not root.handlers:
        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        root.addHandler(handler)
        root.setLevel(level)
        logging.getLogger("uvicorn.access").setLevel(logging.WARNING)

    return level


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Logger under the roomcast namespace; ``get_logger("api")`` -> ``roomcast.api``."""
    if not name:
        return logging.getLogger(APP_LOGGER)
    if name == APP_LOGGER or name.startswith(APP_LOGGER + "."):
        return logging.getLogger(name)
    return logging.getLogger(f"{APP_LOGGER}.{name}")
