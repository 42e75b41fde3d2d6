from __future__ import annotations

import logging
import os
from logging.handlers import RotatingFileHandler
from typing import Optional


LOGGER_NAME = "sse_hub"
FORMAT = "%(asctime)s %(levelname)s %(name)s [%(process)d:%(threadName)s] %(message)s"


def setup_logging(level: Optional[str] = None) -> logging.Logger:
    """Configure the ``sse_hub`` package logger once per process.

    - Console output always; a rotating ``server.log`` when ``LOG_DIR`` is set.
    - Level from ``level`` or ``LOG_LEVEL`` (default INFO).
    - uvicorn's loggers share the same handlers and level.
    """
    logger = logging.getLogger(LOGGER_NAME)
    if logger.handlers:
        return logger

    level_name = (level or os.getenv("LOG_LEVEL", "INFO")).upper()
    lvl = getattr(logging, level_name, logging.INFO)
    logger.setLevel(lvl)
    fmt = logging.Formatter(FORMAT)

    log_dir = os.getenv("LOG_DIR")
    if log_dir:
        os.makedirs(log_dir, exist_ok=True)
        fh = RotatingFileHandler(os.path.join(log_dir, "server.log"), maxBytes=5_000_000, backupCount=5)
        fh.setFormatter(fmt)
        logger.addHandler(fh)

    ch = logging.StreamHandler()
    ch.setFormatter(fmt)
    logger.addHandler(ch)

    for name in ("uvicorn", "uvicorn.error", "uvicorn.access"):
        uv = logging.getLogger(name)
        uv.handlers = logger.handlers
        uv.setLevel(lvl)
        uv.propagate = False

    return logger
