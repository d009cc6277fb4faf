# Ensemble Core
# Copyright (C) 2024-2026 Markus Kirsten
# SPDX-License-Identifier: GPL-3.0-or-later
#
# Attribution required — see LICENSE, Section 7(b).

"""Logging setup for shells embedding the session core.

The library only creates named loggers (``ensemble.*``); it never touches
handlers on import.  Call ``setup_logging()`` once from the application.
"""

import logging

from .config import cfg

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(level: str | int | None = None) -> logging.Logger:
    """Configure root logging and return the ``ensemble`` logger.

    *level* falls back to ``logging.level`` in config.json, then INFO.
    """
    if level is None:
        level = cfg("logging", "level", default="INFO")
    if isinstance(level, str):
        level = getattr(logging, level.upper(), logging.INFO)

    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=DATE_FORMAT)
    logger = logging.getLogger("ensemble")
    logger.setLevel(level)
    return logger
