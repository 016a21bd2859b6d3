from __future__ import annotations

import os
import sys
from pathlib import Path

from loguru import logger


LOG_LEVEL_ENV = "VOYAGER_E2E_LOG_LEVEL"
CONSOLE_FORMAT = "<green>{time:HH:mm:ss.SSS}</green> <level>{level: <7}</level> {message}"
FILE_FORMAT = "{time:YYYY-MM-DDTHH:mm:ss.SSSZ} {level: <7} {name}:{function}:{line} {message}"


def configure_logging(level: str | None = None) -> None:
    logger.remove()
    logger.add(
        sys.stderr,
        level=(level or os.getenv(LOG_LEVEL_ENV, "INFO")).upper(),
        format=CONSOLE_FORMAT,
        colorize=None,
    )


def add_file_sink(path: Path) -> int:
    path.parent.mkdir(parents=True, exist_ok=True)
    return logger.add(path, level="DEBUG", format=FILE_FORMAT, encoding="utf-8")
