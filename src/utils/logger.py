"""
Logging Setup
=============

Root logger configuration with console output and a rotating log file.
"""

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def setup_root_logger(
    level: str = "INFO",
    log_file: Optional[str] = "./logs/app.log",
    max_bytes: int = 10485760,
    backup_count: int = 5,
) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        level: Log level name
        log_file: Path of the rotating log file (None disables file logging)
        max_bytes: Rotate after this many bytes
        backup_count: Number of rotated files to keep

    Returns:
        The root logger
    """
    root = logging.getLogger()
    root.setLevel(getattr(logging, str(level).upper(), logging.INFO))

    # Re-running setup (tests, reload) must not stack handlers
    for handler in list(root.handlers):
        if getattr(handler, "_nog_auth", False):
            root.removeHandler(handler)
            handler.close()

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(formatter)
    console._nog_auth = True
    root.addHandler(console)

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file, maxBytes=max_bytes, backupCount=backup_count, encoding="utf-8"
        )
        file_handler.setFormatter(formatter)
        file_handler._nog_auth = True
        root.addHandler(file_handler)

    # Third-party loggers that are too chatty at INFO
    logging.getLogger("passlib").setLevel(logging.ERROR)
    logging.getLogger("urllib3").setLevel(logging.WARNING)

    return root

