"""Logging helpers."""

import logging
from pathlib import Path

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"


def parse_level(level: str) -> int:
    """Translate a string log level into a logging constant."""
    value = logging.getLevelName(level.upper())
    if not isinstance(value, int):
        raise ValueError(f"Unknown log level: {level}")
    return value


def setup_logging(level: str = "INFO", log_file: Path | None = None) -> None:
    """Configure the root logger for the CLI and background workers."""
    logging.basicConfig(level=parse_level(level), format=LOG_FORMAT)
    if log_file:
        handler = logging.FileHandler(log_file, encoding="utf-8")
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        logging.getLogger().addHandler(handler)
    # httpx logs every request at INFO
    logging.getLogger("httpx").setLevel(logging.WARNING)
