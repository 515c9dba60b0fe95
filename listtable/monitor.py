"""Logging setup for the list table service."""
from __future__ import annotations

import logging
import os
import sys
from pathlib import Path
from typing import Optional

LOGGER_NAME = "listtable"
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE")

_INITIALIZED = False


def setup_logging(level: Optional[str] = None, log_file: Optional[str] = None) -> logging.Logger:
    """Configure the package logger once per process and return it."""
    global _INITIALIZED
    logger = logging.getLogger(LOGGER_NAME)
    if _INITIALIZED:
        return logger

    resolved_level = logging.getLevelName(str(level or LOG_LEVEL).upper())
    logger.setLevel(resolved_level if isinstance(resolved_level, int) else logging.INFO)
    logger.propagate = False

    formatter = logging.Formatter(
        fmt="%(asctime)s | %(levelname)s | %(name)s | %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(formatter)
    logger.addHandler(stream_handler)

    target = log_file or LOG_FILE
    if target:
        path = Path(target)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(path, encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)
        logger.info("Log file: %s", path)

    _INITIALIZED = True
    return logger
