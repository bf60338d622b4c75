"""
Logging for ScanGuard.

All component loggers are children of the ``scanguard`` logger, which owns
the handlers: a console handler (INFO, coloured on a TTY) and one rotating
file per process under ``logs/`` (DEBUG). Set ``SCANGUARD_LOG_DIR`` to write
the files somewhere else.
"""

import logging
import os
import sys
from datetime import datetime
from logging.handlers import RotatingFileHandler
from pathlib import Path

ROOT_LOGGER_NAME = "scanguard"

LOG_FORMAT = "[%(asctime)s] [%(levelname)s] [%(name)s:%(funcName)s:%(lineno)d] %(message)s"
DATE_FORMAT = "%Y-%m-%d %H-%M-%S"

LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[1;31m",
}
RESET_COLOR = "\033[0m"

QUIET_LIBRARIES = ("discord", "websockets", "aiohttp", "urllib3", "PIL", "aiosqlite")

_log_filepath: Path | None = None


class ColorFormatter(logging.Formatter):
    """Wraps each formatted record in the ANSI colour of its level."""

    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        return f"{color}{message}{RESET_COLOR}" if color else message


def should_use_color() -> bool:
    isatty = getattr(sys.stderr, "isatty", None)
    return bool(isatty and isatty())


def get_log_filepath() -> Path:
    """Path of this process's log file, fixed on first call."""
    global _log_filepath
    if _log_filepath is None:
        log_dir = Path(os.getenv("SCANGUARD_LOG_DIR") or Path(__file__).parents[3] / "logs").resolve()
        log_dir.mkdir(parents=True, exist_ok=True)
        _log_filepath = log_dir / f"{datetime.now().strftime(DATE_FORMAT)}.log"
    return _log_filepath


def _configure_root() -> logging.Logger:
    root = logging.getLogger(ROOT_LOGGER_NAME)
    if root.handlers:
        return root

    root.setLevel(logging.DEBUG)
    root.propagate = False

    console = logging.StreamHandler()
    console.setLevel(logging.INFO)
    formatter_cls = ColorFormatter if should_use_color() else logging.Formatter
    console.setFormatter(formatter_cls(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(console)

    file_handler = RotatingFileHandler(get_log_filepath(), encoding="utf-8", maxBytes=5 * 1024 * 1024, backupCount=5)
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT))
    root.addHandler(file_handler)

    for name in QUIET_LIBRARIES:
        logging.getLogger(name).setLevel(logging.ERROR)
    return root


def get_logger(name: str) -> logging.Logger:
    """Component logger, e.g. ``get_logger("escalation")`` -> ``scanguard.escalation``."""
    _configure_root()
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def handle_exception(exc_type, exc_value, exc_traceback) -> None:
    """``sys.excepthook`` replacement; Ctrl+C still goes to the default hook."""
    if issubclass(exc_type, KeyboardInterrupt):
        sys.__excepthook__(exc_type, exc_value, exc_traceback)
        return
    get_logger("main").critical("Uncaught exception", exc_info=(exc_type, exc_value, exc_traceback))
