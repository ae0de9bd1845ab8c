"""
Logging configuration for console output.

Usage:
    import logging_config
    logging_config.setup()
"""

import logging
import sys

from constants import C_BLUE, C_GREEN, C_RED, C_RESET, C_YELLOW

_LEVEL_COLORS = {
    logging.DEBUG: C_BLUE,
    logging.INFO: C_GREEN,
    logging.WARNING: C_YELLOW,
    logging.ERROR: C_RED,
    logging.CRITICAL: C_RED,
}


class ColorLevelFormatter(logging.Formatter):
    """Colours only the level name so log lines stay grep-friendly."""

    def format(self, record: logging.LogRecord) -> str:
        color = _LEVEL_COLORS.get(record.levelno)
        original = record.levelname
        if color:
            record.levelname = f"{color}{original:<7}{C_RESET}"
        try:
            return super().format(record)
        finally:
            record.levelname = original


def setup(level=logging.INFO, color: bool = True) -> None:
    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(level)
    fmt = "%(asctime)s | %(levelname)-7s | %(name)s | %(message)s"
    formatter_cls = ColorLevelFormatter if color else logging.Formatter
    console.setFormatter(formatter_cls(fmt=fmt, datefmt="%H:%M:%S"))
    root.addHandler(console)

    # aiohttp and web3 are chatty at INFO
    logging.getLogger("aiohttp").setLevel(logging.WARNING)
    logging.getLogger("web3").setLevel(logging.WARNING)
    logging.getLogger("urllib3").setLevel(logging.WARNING)
