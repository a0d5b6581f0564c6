"""Console and rotating file logging for the hub."""

from __future__ import annotations

import logging
import logging.handlers
from pathlib import Path
from typing import Optional

from . import constants

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"

# Chatty below WARNING: per-packet paho traces and one line per HTTP request.
NETWORK_LOGGERS = ("homehub.adapters.mqtt.paho", "aiohttp.access")


def configure_logging(
    level: str = "INFO",
    *,
    log_path: Optional[Path] = None,
    log_network: bool = False,
    max_bytes: int = constants.DEFAULT_LOG_MAX_BYTES,
    backup_count: int = constants.DEFAULT_LOG_BACKUP_COUNT,
) -> None:
    """Install the hub's log handlers on the root logger.

    Console output is always on. With ``log_path`` set, records are also
    appended to that file, rolled over at ``max_bytes`` with ``backup_count``
    old files kept (``max_bytes=0`` disables rollover). Network loggers are
    held at WARNING unless ``log_network`` is true.
    """

    logging.captureWarnings(True)

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    formatter = logging.Formatter(LOG_FORMAT)
    console = logging.StreamHandler()
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_path:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path,
            maxBytes=max_bytes,
            backupCount=backup_count,
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        root.addHandler(file_handler)

    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    network_level = logging.NOTSET if log_network else logging.WARNING
    for name in NETWORK_LOGGERS:
        logging.getLogger(name).setLevel(network_level)
