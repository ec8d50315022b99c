"""Console and rotating file logs for the dashboard."""

from __future__ import annotations

import sys
from pathlib import Path

from loguru import logger

import config


def setup_logger(log_dir: str | Path = config.LOG_DIR, level: str = config.LOG_LEVEL):
    path = Path(log_dir)
    path.mkdir(parents=True, exist_ok=True)

    logger.remove()
    logger.add(sys.stdout, level=level)
    logger.add(
        path / "dashboard.log",
        level=level,
        rotation="5 MB",
        retention=5,
        encoding="utf-8",
    )
    return logger
