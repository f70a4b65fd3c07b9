from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Iterator, Optional

LOG_FORMAT = "%(asctime)s | %(levelname)s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def init_logging(level: str = "INFO", log_file: Optional[str] = None) -> int:
    """Configure root logging for scripts and return the numeric level.

    Console output goes to stderr so JSON written to stdout stays clean.
    Calling again replaces the previous handlers.
    """
    numeric_level = getattr(logging, str(level).upper(), logging.INFO)

    handlers = [logging.StreamHandler()]
    if log_file:
        file_handler = logging.FileHandler(log_file, mode="w")
        file_handler.setLevel(numeric_level)
        handlers.append(file_handler)

    logging.basicConfig(
        level=numeric_level,
        format=LOG_FORMAT,
        datefmt=DATE_FORMAT,
        handlers=handlers,
        force=True,
    )
    return numeric_level


def get_logger(name: Optional[str] = None) -> logging.Logger:
    """Return a module-specific logger. Ensure logging is initialized upstream."""
    return logging.getLogger(name if name else "darksim")


@contextmanager
def log_timing(logger: logging.Logger, label: str, level: int = logging.INFO) -> Iterator[None]:
    """Log how long the wrapped block took."""
    start = time.perf_counter()
    try:
        yield
    finally:
        logger.log(level, "%s finished in %.2fs", label, time.perf_counter() - start)
