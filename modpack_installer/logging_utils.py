"""Logging setup: one file per run in the log folder, rich output on the console."""

import logging
from datetime import datetime
from pathlib import Path

from rich.console import Console
from rich.logging import RichHandler

LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"

# Log file of this process once configured.
_log_file: Path | None = None


def configure_logging(
    log_dir: Path,
    level: int = logging.INFO,
    console: Console | None = None,
    console_level: int = logging.WARNING,
) -> Path:
    """
    Configure the root logger.

    Every run gets its own timestamped file; old files are never deleted.
    Calling this again is a no-op. Returns the log file path in use.
    """
    global _log_file
    if _log_file is not None:
        return _log_file

    root = logging.getLogger()
    root.setLevel(level)

    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / f"installer-{datetime.now():%Y%m%d-%H%M%S}.log"
    file_handler = logging.FileHandler(log_file, encoding="utf-8")
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%dT%H:%M:%S%z"))
    root.addHandler(file_handler)

    if console is not None:
        console_handler = RichHandler(console=console, show_path=False, markup=False)
        console_handler.setLevel(console_level)
        root.addHandler(console_handler)

    _log_file = log_file
    return log_file
