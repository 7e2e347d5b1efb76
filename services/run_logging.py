"""
Run logging setup
Timestamped lines to the console and an append-only log file
"""
import logging
import sys
from pathlib import Path
from typing import List

LOG_FORMAT = "[%(asctime)s] - %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

_installed_handlers: List[logging.Handler] = []


class RunLogFileHandler(logging.FileHandler):
    """Append-mode file handler that raises on write errors instead of printing them"""

    def handleError(self, record):
        raise


def configure_run_logging(log_path: str, level: int = logging.INFO) -> logging.Logger:
    """Attach console and file handlers to the root logger (replacing earlier ones)"""
    path = Path(log_path)
    path.parent.mkdir(parents=True, exist_ok=True)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    # Opening the file here makes an unwritable path fail before any instance is processed
    file_handler = RunLogFileHandler(path, mode='a', encoding='utf-8')
    file_handler.setFormatter(formatter)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setFormatter(formatter)

    root = logging.getLogger()
    reset_run_logging()
    root.setLevel(level)
    for handler in (console_handler, file_handler):
        root.addHandler(handler)
        _installed_handlers.append(handler)

    return root


def reset_run_logging():
    """Remove and close handlers installed by configure_run_logging"""
    root = logging.getLogger()
    while _installed_handlers:
        handler = _installed_handlers.pop()
        root.removeHandler(handler)
        handler.close()
