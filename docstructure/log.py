"""Logging setup for the docstructure CLI.

``setup_logging`` is called once from ``cli.main()``.  It configures the
``docstructure`` package logger; every module logs through a child logger
(``logging.getLogger(__name__)``) and lets records propagate up to it.
"""

import logging
import sys
from pathlib import Path

LOGGER_NAME = "docstructure"

_FMT = "%(asctime)s  %(levelname)-7s [%(name)s] %(message)s"
_DATE = "%H:%M:%S"

# HTTP client loggers used under the openai SDK; they log every request at INFO.
_NOISY_LOGGERS = ("httpx", "httpcore", "openai")


def setup_logging(verbose: bool = False, log_file: Path | None = None) -> None:
    """Configure the package logger for one CLI run.

    Args:
        verbose:  DEBUG level (state transitions, request sizes) instead of INFO.
        log_file: Also write records to this file, creating parent directories.

    Safe to call repeatedly: previous handlers are closed and replaced.
    """
    logger = logging.getLogger(LOGGER_NAME)
    for handler in logger.handlers[:]:
        handler.close()
        logger.removeHandler(handler)
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False

    fmt = logging.Formatter(_FMT, datefmt=_DATE)

    console = logging.StreamHandler(sys.stderr)
    console.setFormatter(fmt)
    logger.addHandler(console)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setFormatter(fmt)
        logger.addHandler(file_handler)

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.DEBUG if verbose else logging.WARNING)
