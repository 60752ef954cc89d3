"""Logging configuration for CLI runs."""

from __future__ import annotations

import logging
from logging.handlers import TimedRotatingFileHandler

from wv_runner.config import LoggingSettings

LOG_FILE_NAME = "wv_runner.log"
_FILE_FORMAT = "[%(asctime)s] %(levelname)-5s - %(message)s"
_CONSOLE_FORMAT = "%(message)s"
_DATE_FORMAT = "%Y-%m-%d %H:%M:%S"


def configure_logging(settings: LoggingSettings, *, verbose: bool = False) -> None:
    """Attach a daily-rotating file handler and a console handler to the package logger.

    The file receives everything at the configured level; the console shows
    INFO and above, or DEBUG when ``verbose`` is set. Calling it again replaces
    the handlers installed by the previous call.
    """

    package_logger = logging.getLogger("wv_runner")
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()

    settings.log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = TimedRotatingFileHandler(
        settings.log_dir / LOG_FILE_NAME,
        when="midnight",
        encoding="utf-8",
    )
    file_handler.setLevel(settings.level)
    file_handler.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_DATE_FORMAT))

    console_handler = logging.StreamHandler()
    console_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
    console_handler.setFormatter(logging.Formatter(_CONSOLE_FORMAT))

    package_logger.setLevel(logging.DEBUG)
    package_logger.addHandler(file_handler)
    package_logger.addHandler(console_handler)
    package_logger.propagate = False
