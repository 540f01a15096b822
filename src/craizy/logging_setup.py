"""Logging configuration for the CLI process.

Library code only ever calls ``logging.getLogger(__name__)`` (or uses the
logger it was handed); handlers are attached here, once, by ``__main__``.
"""

from __future__ import annotations

import logging
import sys
from datetime import date
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def log_file_path(log_dir: Path, day: date | None = None) -> Path:
    """``<log_dir>/YYYY-MM-DD.log`` for ``day`` (today by default)."""
    day = day or date.today()
    return log_dir / f"{day.isoformat()}.log"


def configure_logging(
    log_dir: Path | None,
    level: str = "INFO",
    root: logging.Logger | None = None,
) -> Path | None:
    """Send everything to the daily log file and ``level`` and above to stderr.

    Handlers go on ``root`` (the root logger by default), replacing any it
    already has.  Returns the log file path, or None when ``log_dir`` is None.
    """
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)
    root = root or logging.getLogger()
    root.setLevel(logging.DEBUG)
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()

    console = logging.StreamHandler(sys.stderr)
    console.setLevel(getattr(logging, level.upper()))
    console.setFormatter(formatter)
    root.addHandler(console)

    if log_dir is None:
        return None

    log_dir.mkdir(parents=True, exist_ok=True)
    path = log_file_path(log_dir)
    file_handler = logging.FileHandler(path, mode="a", encoding="utf-8")
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(formatter)
    root.addHandler(file_handler)

    # aiosqlite logs every statement at DEBUG
    logging.getLogger("aiosqlite").setLevel(logging.INFO)
    return path
