"""Logging setup for the dutyroster package.

Modules log through ``logging.getLogger(__name__)``; this helper attaches
handlers to the package logger once, so repeated calls (CLI re-entry, tests)
do not duplicate output.
"""

import logging
import sys
from pathlib import Path
from typing import Optional, Union

LOGGER_NAME = "dutyroster"

STREAM_FORMAT = "[%(levelname)s] %(name)s: %(message)s"
FILE_FORMAT = "%(asctime)s - %(levelname)s - %(name)s - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(
    level: Union[int, str] = logging.INFO,
    log_file: Optional[Union[str, Path]] = None,
) -> logging.Logger:
    """Configure the package logger.

    Args:
        level: Logging level for the package logger.
        log_file: Optional path of a file that receives a copy of the log.

    Returns:
        The configured ``dutyroster`` logger.
    """
    logger = logging.getLogger(LOGGER_NAME)
    logger.setLevel(level)

    if not any(getattr(h, "_dutyroster_stream", False) for h in logger.handlers):
        stream_handler = logging.StreamHandler(sys.stdout)
        stream_handler.setFormatter(logging.Formatter(STREAM_FORMAT))
        stream_handler._dutyroster_stream = True
        logger.addHandler(stream_handler)

    if log_file is not None:
        path = Path(log_file)
        already_attached = any(
            isinstance(h, logging.FileHandler) and Path(h.baseFilename) == path.resolve()
            for h in logger.handlers
        )
        if not already_attached:
            path.parent.mkdir(parents=True, exist_ok=True)
            file_handler = logging.FileHandler(path, encoding="utf-8")
            file_handler.setFormatter(logging.Formatter(FILE_FORMAT, datefmt=DATE_FORMAT))
            logger.addHandler(file_handler)

    return logger
