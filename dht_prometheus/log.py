"""
Logging setup for the exporter.

Loggers live under the "dht_prometheus" hierarchy and are handed to readers
and collectors explicitly at construction.
"""

import logging
import sys
from typing import TextIO

LOGGER_NAME = "dht_prometheus"

DEFAULT_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DEFAULT_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

LEVELS = {
    "debug": logging.DEBUG,
    "info": logging.INFO,
    "warn": logging.WARNING,
    "warning": logging.WARNING,
    "error": logging.ERROR,
    "fatal": logging.CRITICAL,
    "panic": logging.CRITICAL,
    "critical": logging.CRITICAL,
}

LEVEL_COLORS = {
    logging.DEBUG: "\033[2m\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1m\033[91m",
}
RESET = "\033[0m"


class ColoredFormatter(logging.Formatter):
    """Formatter that colors the level name."""

    def format(self, record: logging.LogRecord) -> str:
        original_levelname = record.levelname
        color = LEVEL_COLORS.get(record.levelno, "")
        record.levelname = f"{color}{record.levelname}{RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original_levelname


def parse_level(name: str) -> int:
    """
    Convert a level name to a logging level.

    Raises:
        ValueError: If the name is not a known level
    """
    try:
        return LEVELS[name.strip().lower()]
    except KeyError:
        raise ValueError(f"invalid log level: {name}") from None


def setup_logging(
    level: int | str = logging.INFO,
    stream: TextIO | None = None,
    colors: bool | None = None,
) -> logging.Logger:
    """
    Install a single stream handler on the exporter's root logger.

    Args:
        level: Logging level or level name
        stream: Output stream (stderr if None)
        colors: Force colors on/off (auto-detect TTY if None)

    Returns:
        The exporter's root logger
    """
    if isinstance(level, str):
        level = parse_level(level)
    if stream is None:
        stream = sys.stderr
    if colors is None:
        colors = hasattr(stream, "isatty") and stream.isatty()

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)
    logger.handlers.clear()

    handler = logging.StreamHandler(stream)
    formatter_class = ColoredFormatter if colors else logging.Formatter
    handler.setFormatter(formatter_class(DEFAULT_FORMAT, DEFAULT_DATE_FORMAT))
    logger.addHandler(handler)
    return logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger for a component, prefixed with the exporter's name."""
    if name.startswith(LOGGER_NAME):
        return logging.getLogger(name)
    return logging.getLogger(f"{LOGGER_NAME}.{name}")
