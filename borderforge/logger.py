"""Shared logger for the batch exporter."""

import logging
import sys
from pathlib import Path
from typing import Optional


LOGGER = logging.getLogger("borderforge")

LOG_FORMAT = "%(asctime)s %(levelname)s %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_logging(log_path: Optional[Path] = None, verbose: bool = False, quiet: bool = False) -> logging.Logger:
    """Attach console and append-only file handlers to LOGGER.

    Args:
        log_path: Log sink; opened in append mode so earlier runs are kept
        verbose: Show debug messages on the console
        quiet: Only show errors on the console

    Returns:
        The configured LOGGER
    """
    for handler in list(LOGGER.handlers):
        LOGGER.removeHandler(handler)
        handler.close()

    LOGGER.setLevel(logging.DEBUG)
    LOGGER.propagate = False

    console = logging.StreamHandler(sys.stderr)
    if quiet:
        console.setLevel(logging.ERROR)
    elif verbose:
        console.setLevel(logging.DEBUG)
    else:
        console.setLevel(logging.INFO)
    console.setFormatter(logging.Formatter("%(levelname)s: %(message)s"))
    LOGGER.addHandler(console)

    if log_path is not None:
        log_path = Path(log_path)
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_path, mode="a", encoding="utf-8")
        file_handler.setLevel(logging.DEBUG)
        file_handler.setFormatter(logging.Formatter(LOG_FORMAT, DATE_FORMAT))
        LOGGER.addHandler(file_handler)

    return LOGGER
