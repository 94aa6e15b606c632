"""Logging setup for the CLI.

stdout carries the MCP protocol, so every handler writes to stderr.
"""

import logging
import sys

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DATE_FORMAT = "%H:%M:%S"


def setup_logger(level: str = "WARNING") -> logging.Logger:
    """Configure the root logger on stderr and return the ``mcpbridge`` logger."""
    level_num = getattr(logging, level.upper(), None)
    if not isinstance(level_num, int):
        raise ValueError(f"Unknown log level: {level}")

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(handler)
    root.setLevel(level_num)

    logger = logging.getLogger("mcpbridge")
    logger.setLevel(level_num)
    return logger
