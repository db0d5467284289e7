# src/config/logging_config.py

"""Per-run timestamped logging configuration for price_sync.

Every CLI invocation (a sync run, an alert pass, a report) writes to its
own file inside ``logs/``, e.g. ``logs/sync_20260214_020000.log``.  All
``price_sync.*`` loggers propagate to the handlers installed here, so
the rate limiter, the API clients and the orchestrator share one log.

The console only shows warnings and above unless ``PRICE_SYNC_LOG_LEVEL``
says otherwise; the file always captures DEBUG.
"""

import logging
import os
import sys
from datetime import datetime
from pathlib import Path

from src.config.settings import Settings

_DETAILED_FORMAT = (
    "%(asctime)s | %(levelname)-8s | %(name)s | "
    "%(module)s:%(funcName)s:%(lineno)d | %(message)s"
)

_CONSOLE_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"

_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

ROOT_LOGGER_NAME = "price_sync"


def _console_level() -> int:
    """Resolve the console level from the environment (default WARNING)."""
    name = os.getenv("PRICE_SYNC_LOG_LEVEL", "WARNING").upper()
    level = logging.getLevelName(name)
    return level if isinstance(level, int) else logging.WARNING


def setup_logging(
    run_name: str = "run",
    logs_dir: Path | None = None,
) -> Path:
    """Attach file and console handlers to the ``price_sync`` logger.

    Args:
        run_name: Prefix for the log file (``sync``, ``alerts``...).
        logs_dir: Directory override, defaults to ``Settings.LOGS_DIR``.

    Returns:
        The :class:`~pathlib.Path` of the log file for this run.
    """
    directory = logs_dir or Settings.LOGS_DIR
    directory.mkdir(parents=True, exist_ok=True)

    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")
    log_file = directory / f"{run_name}_{timestamp}.log"

    root_logger = logging.getLogger(ROOT_LOGGER_NAME)
    root_logger.setLevel(logging.DEBUG)

    # Repeated calls (tests, nested CLI helpers) keep the first handlers
    if root_logger.handlers:
        return log_file

    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(
        logging.Formatter(_DETAILED_FORMAT, datefmt=_DATE_FORMAT)
    )

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(_console_level())
    console_handler.setFormatter(
        logging.Formatter(_CONSOLE_FORMAT, datefmt=_DATE_FORMAT)
    )

    root_logger.addHandler(file_handler)
    root_logger.addHandler(console_handler)

    root_logger.info("Logging initialised, log file: %s", log_file)
    return log_file
