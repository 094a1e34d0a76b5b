"""Idempotent stdlib logging setup for the ``arch_graph`` namespace."""

import logging
import os
from typing import Optional, Union

LOGGER_NAME = "arch_graph"
_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"


def setup_logging(level: Optional[Union[str, int]] = None, stream=None) -> logging.Logger:
    """Configure the project logger once and return it.

    Level priority: explicit ``level`` > ``ARCH_GRAPH_LOG_LEVEL`` > INFO.
    """
    if level is None:
        level = os.getenv("ARCH_GRAPH_LOG_LEVEL", "INFO")
    if isinstance(level, str):
        log_level = logging.getLevelName(level.upper())
        if not isinstance(log_level, int):
            log_level = logging.INFO
    else:
        log_level = int(level)

    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(log_level)
    if not any(getattr(handler, "_arch_graph", False) for handler in logger.handlers):
        handler = logging.StreamHandler(stream)
        handler.setFormatter(logging.Formatter(_FORMAT))
        handler._arch_graph = True  # type: ignore[attr-defined]
        logger.addHandler(handler)
        logger.propagate = False
    return logger
