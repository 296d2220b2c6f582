"""Centralized logging configuration for the ``finflow`` package.

This module provides two public helpers:

- ``configure_logging(...)``: attach a single ``StreamHandler`` to the package
  root logger (``"finflow"``). Called once by entrypoints (the CLI, a worker
  host) at process startup.
- ``get_logger(name)``: acquire a logger by name, making sure the package root
  logger has at least a ``NullHandler`` when nothing has been configured yet.

Library modules never attach their own handlers. They call
``get_logger("finflow.<module>")`` and rely on the host for output.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from typing import IO

_PKG_LOGGER_NAME = "finflow"
_LEVEL_ENV = "FINFLOW_LOG_LEVEL"
_CONFIGURED = False
_CONFIG_LOCK = threading.Lock()


def _parse_level(level: int | str | None) -> int:
    if isinstance(level, int):
        return level
    if isinstance(level, str):
        # Numeric strings or standard names (INFO/DEBUG/...).
        level = level.strip().upper()
        if level.isdigit():
            return int(level)
        numeric = getattr(logging, level, None)
        if isinstance(numeric, int):
            return numeric
    if level is None:
        env_val = os.getenv(_LEVEL_ENV)
        if env_val:
            return _parse_level(env_val)
    return logging.INFO


def configure_logging(
    level: int | str | None = None,
    *,
    fmt: str | None = None,
    stream: IO[str] = sys.stderr,
) -> None:
    """Configure the package root logger exactly once.

    Parameters
    ----------
    level:
        Logging level as ``int`` or level-name string (e.g., ``"DEBUG"``). If
        ``None``, the ``FINFLOW_LOG_LEVEL`` environment variable is used when
        set, otherwise ``logging.INFO``.
    fmt:
        Optional format string. Defaults to
        ``"%(asctime)s %(name)s %(levelname)s %(message)s"``.
    stream:
        Output stream for the handler (``sys.stderr`` by default).
    """

    global _CONFIGURED
    with _CONFIG_LOCK:
        if _CONFIGURED:
            return

        logger = logging.getLogger(_PKG_LOGGER_NAME)
        for h in list(logger.handlers):
            if isinstance(h, logging.NullHandler):
                logger.removeHandler(h)

        resolved = _parse_level(level)
        handler = logging.StreamHandler(stream)
        handler.setLevel(resolved)
        handler.setFormatter(
            logging.Formatter(fmt or "%(asctime)s %(name)s %(levelname)s %(message)s")
        )

        logger.setLevel(resolved)
        logger.addHandler(handler)
        # Avoid double emission via the root logger.
        logger.propagate = False
        _CONFIGURED = True


def get_logger(name: str) -> logging.Logger:
    """Return a logger by name, with a silent default until configured."""

    pkg_logger = logging.getLogger(_PKG_LOGGER_NAME)
    if not _CONFIGURED and not pkg_logger.handlers:
        pkg_logger.addHandler(logging.NullHandler())
    return logging.getLogger(name)


__all__ = ["configure_logging", "get_logger"]
