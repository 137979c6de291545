# tinyclaw - Message relay queue for chat-to-agent bridges
# Copyright (c) 2025 xnoto
"""Log setup: ``[timestamp] [LEVEL] message`` lines to a log file and the console."""

import logging
import sys
from pathlib import Path

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

_handlers: list[logging.Handler] = []


def setup_logging(log_file: Path | None, level: str = "INFO") -> logging.Logger:
    """Attach file and console handlers to the ``tinyclaw`` logger.

    Calling again replaces the handlers installed by the previous call.
    """
    logger = logging.getLogger("tinyclaw")
    for handler in _handlers:
        logger.removeHandler(handler)
        handler.close()
    _handlers.clear()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    _handlers.append(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, mode="a", encoding="utf-8")
        file_handler.setFormatter(formatter)
        _handlers.append(file_handler)

    for handler in _handlers:
        logger.addHandler(handler)
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    return logger
