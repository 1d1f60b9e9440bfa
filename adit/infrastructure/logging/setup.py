"""
Logging setup and configuration utilities.

Centralized logging configuration using loguru, with optional file
rotation. Records from libraries that use the standard ``logging`` module
(asyncssh in particular) are routed into the same sinks.
"""

import logging
import sys
from pathlib import Path
from types import FrameType
from typing import Optional

from loguru import logger

from ..config.models import LoggingConfig

CONSOLE_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss.SSS}</green> | "
    "<level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - "
    "<level>{message}</level>"
)
FILE_FORMAT = "{time:YYYY-MM-DD HH:mm:ss.SSS} | {level: <8} | {name}:{function}:{line} - {message}"
LOG_FILE_NAME = "adit.log"

# asyncssh logs every channel open at INFO
LIBRARY_LOGGERS = {"asyncssh": logging.WARNING}


class InterceptHandler(logging.Handler):
    """Forwards standard logging records to loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = logger.level(record.levelname).name
        except ValueError:
            level = record.levelno  # type: ignore[assignment]

        frame: Optional[FrameType] = logging.currentframe()
        depth = 2
        while frame is not None and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())


def setup_logging(config: LoggingConfig) -> None:
    """
    Setup application logging with the given configuration.

    Args:
        config: Logging configuration
    """
    logger.remove()

    if config.console_enabled:
        logger.add(
            sys.stderr,
            format=CONSOLE_FORMAT,
            level=config.level.upper(),
            colorize=True,
            backtrace=True,
            diagnose=False
        )

    if config.file_enabled:
        log_dir = Path(config.log_directory)
        log_dir.mkdir(parents=True, exist_ok=True)

        logger.add(
            log_dir / LOG_FILE_NAME,
            format=FILE_FORMAT,
            level=config.level.upper(),
            rotation=config.max_file_size,
            retention=config.backup_count,
            compression="zip",
            backtrace=True,
            diagnose=False
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)
    for name, level in LIBRARY_LOGGERS.items():
        logging.getLogger(name).setLevel(level)
