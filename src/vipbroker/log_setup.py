"""Logging setup for the command line entry points."""

from __future__ import annotations

import logging
import sys

_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"

_logging_initialized: bool = False


def setup_logging(*, verbose: bool = False) -> None:
    """Attach a stderr handler to the root logger.

    Idempotent; later calls only adjust the level.
    """
    global _logging_initialized

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    if _logging_initialized:
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(_LOG_FORMAT))
    root_logger.addHandler(handler)
    _logging_initialized = True
