"""Coloured log formatting and date-partitioned log files."""

from __future__ import annotations

import logging
import os
import sys
import time
from pathlib import Path
from typing import IO

from dialogtree.config import Config

PACKAGE_LOGGER = "dialogtree"

RED = 31
YELLOW = 33
BLUE = 36
GRAY = 37

TIME_FORMAT = "%Y-%m-%d %H:%M:%S"
DATE_FORMAT = "%Y-%m-%d"

_LEVEL_NAMES = {
    logging.DEBUG: "debug",
    logging.INFO: "info",
    logging.WARNING: "warning",
    logging.ERROR: "error",
    logging.CRITICAL: "fatal",
}

logger = logging.getLogger(__name__)


def _level_color(levelno: int) -> int:
    if levelno <= logging.DEBUG:
        return GRAY
    if levelno < logging.WARNING:
        return BLUE
    if levelno < logging.ERROR:
        return YELLOW
    return RED


def _day_of(timestamp: float) -> str:
    return time.strftime(DATE_FORMAT, time.localtime(timestamp))


class LogFormatter(logging.Formatter):
    """Formats records as '[time] [level] file:line function message' with colour."""

    def __init__(self, report_caller: bool = True) -> None:
        super().__init__()
        self.report_caller = report_caller

    def format(self, record: logging.LogRecord) -> str:
        timestamp = time.strftime(TIME_FORMAT, time.localtime(record.created))
        level = _LEVEL_NAMES.get(record.levelno, record.levelname.lower())
        message = record.getMessage()
        if record.exc_info:
            message = f"{message}\n{self.formatException(record.exc_info)}"
        head = f"[{timestamp}] \x1b[{_level_color(record.levelno)}m[{level}]\x1b[0m"
        if self.report_caller:
            location = f"{os.path.basename(record.pathname)}:{record.lineno}"
            function = f"{record.module}.{record.funcName}"
            return f"{head} {location} {function} {message}"
        return f"{head} {message}"


class DateFileHandler(logging.Handler):
    """Writes records to <log_path>/<date>/<app_name>.log, switching files by day."""

    def __init__(self, log_path: str | os.PathLike, app_name: str) -> None:
        super().__init__()
        self.log_path = Path(log_path)
        self.app_name = app_name
        self.setFormatter(LogFormatter())
        self._file_date = _day_of(time.time())
        self._stream: IO[str] | None = self._open(self._file_date)

    @property
    def file_date(self) -> str:
        return self._file_date

    def _open(self, day: str) -> IO[str]:
        directory = self.log_path / day
        directory.mkdir(parents=True, exist_ok=True)
        filename = directory / f"{self.app_name}.log"
        fd = os.open(filename, os.O_WRONLY | os.O_APPEND | os.O_CREAT, 0o600)
        return os.fdopen(fd, "a", encoding="utf-8")

    def emit(self, record: logging.LogRecord) -> None:
        try:
            line = self.format(record) + "\n"
            day = _day_of(record.created)
            if self._stream is None or day != self._file_date:
                if self._stream is not None:
                    self._stream.close()
                self._stream = self._open(day)
                self._file_date = day
            self._stream.write(line)
            self._stream.flush()
        except Exception:
            self.handleError(record)

    def close(self) -> None:
        self.acquire()
        try:
            if self._stream is not None:
                self._stream.close()
                self._stream = None
        finally:
            self.release()
        super().close()


def init_file(log_path: str | os.PathLike, app_name: str) -> DateFileHandler | None:
    """Attach a dated file handler to the package logger; None if it cannot be opened."""
    try:
        handler = DateFileHandler(log_path, app_name)
    except OSError as exc:
        logger.error("%s", exc)
        return None
    logging.getLogger(PACKAGE_LOGGER).addHandler(handler)
    return handler


def init_logging(config: Config) -> logging.Logger:
    """Configure the package logger for stdout and dated files at debug level."""
    package_logger = logging.getLogger(PACKAGE_LOGGER)
    for handler in list(package_logger.handlers):
        package_logger.removeHandler(handler)
        handler.close()
    console = logging.StreamHandler(sys.stdout)
    console.setFormatter(LogFormatter())
    package_logger.addHandler(console)
    package_logger.setLevel(logging.DEBUG)
    package_logger.propagate = False
    init_file(config.logrus.dir, config.logrus.app)
    package_logger.info("logging init success")
    return package_logger