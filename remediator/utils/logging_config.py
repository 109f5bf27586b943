import logging
import sys
import os
from datetime import datetime
from typing import Optional

from remediator.core.config import LOG_DIR


class ColoredFormatter(logging.Formatter):
    """Custom formatter to add colors to console output."""

    cyan = "\x1b[36m"
    green = "\x1b[32m"
    yellow = "\x1b[33m"
    red = "\x1b[31m"
    bold_red = "\x1b[31;1m"
    reset = "\x1b[0m"

    format_str = "%(asctime)s | %(levelname)-8s | %(name)s:%(lineno)d - %(message)s"

    FORMATS = {
        logging.DEBUG: cyan + format_str + reset,
        logging.INFO: green + format_str + reset,
        logging.WARNING: yellow + format_str + reset,
        logging.ERROR: red + format_str + reset,
        logging.CRITICAL: bold_red + format_str + reset
    }

    def format(self, record):
        log_fmt = self.FORMATS.get(record.levelno)
        if not log_fmt:
            log_fmt = self.format_str
        formatter = logging.Formatter(log_fmt, datefmt="%Y-%m-%d %H:%M:%S")
        return formatter.format(record)


def setup_logging(level=logging.INFO, log_dir: Optional[str] = LOG_DIR, color: bool = True):
    """
    Setup centralized logging configuration.

    Console output goes to stderr so that ``--json`` CLI output on stdout
    stays machine-readable. Pass ``log_dir=None`` to skip the file handler.
    """
    root_logger = logging.getLogger()

    # Clear existing handlers to prevent duplicate logs
    if root_logger.handlers:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)

    root_logger.setLevel(level)

    plain_fmt = logging.Formatter(ColoredFormatter.format_str, datefmt="%Y-%m-%d %H:%M:%S")

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setFormatter(ColoredFormatter() if color else plain_fmt)
    root_logger.addHandler(console_handler)

    if log_dir:
        if not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = logging.FileHandler(
            os.path.join(log_dir, f"remediator_{datetime.now().strftime('%Y%m%d')}.log")
        )
        file_handler.setFormatter(plain_fmt)
        root_logger.addHandler(file_handler)

    for logger_name in ["remediator", "uvicorn", "uvicorn.error", "uvicorn.access", "main"]:
        l = logging.getLogger(logger_name)
        l.setLevel(level)
        l.propagate = True

    root_logger.debug("Logging initialized (console%s).", " + file" if log_dir else "")
