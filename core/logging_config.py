"""
Logging configuration for the BlackGem backend.

All modules log through ``logging.getLogger(__name__)`` and prefix messages
with a bracketed subsystem tag, e.g. ``[Audit]`` or ``[Supabase]``.
``setup_logging`` is called once by ``backend.main``.
"""

from __future__ import annotations

import logging
import sys
from datetime import datetime
from typing import Optional

from core.config import LOG_LEVEL

_PACKAGES = ("backend", "core", "database", "analytics", "copilot", "supabase_client")


class StructuredFormatter(logging.Formatter):
    """
    Format: [TIMESTAMP] [LEVEL] [MODULE:FUNCTION:LINE] MESSAGE
    """

    def format(self, record: logging.LogRecord) -> str:
        timestamp = datetime.fromtimestamp(record.created).strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]
        location = f"{record.module}:{record.funcName}:{record.lineno}"
        message = f"[{timestamp}] [{record.levelname:8s}] [{location}] {record.getMessage()}"
        if record.exc_info:
            message += f"\n{self.formatException(record.exc_info)}"
        return message


def setup_logging(level: Optional[str] = None) -> None:
    """
    Attach a stdout handler to every first-party package logger.

    Safe to call more than once; handlers are only added the first time.
    """
    log_level = getattr(logging, (level or LOG_LEVEL).upper(), logging.INFO)
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(StructuredFormatter())

    for name in _PACKAGES:
        logger = logging.getLogger(name)
        logger.setLevel(log_level)
        if not logger.handlers:
            logger.addHandler(handler)
        logger.propagate = False
