"""Loguru-backed logger used across table-fetch."""

import logging
import sys
from typing import Any, Dict, Optional

from loguru import logger as _loguru_logger

from table_fetch.constants import LOG_LEVEL

_loggers: Dict[str, "TableFetchLogger"] = {}

LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> <blue>[{level}]</blue> "
    "<cyan>{extra[logger_name]}</cyan> - <level>{message}</level>"
)


class InterceptHandler(logging.Handler):
    """Route standard library log records (sqlalchemy, dapr) into loguru."""

    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = _loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while frame and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back
            depth += 1

        _loguru_logger.opt(depth=depth, exception=record.exc_info).bind(
            logger_name=record.name
        ).log(level, record.getMessage())


def _configure_sinks() -> None:
    _loguru_logger.remove()
    _loguru_logger.configure(extra={"logger_name": "table_fetch"})
    _loguru_logger.add(sys.stderr, format=LOG_FORMAT, level=LOG_LEVEL, colorize=True)
    logging.basicConfig(
        level=logging.getLevelNamesMapping()[LOG_LEVEL], handlers=[InterceptHandler()]
    )


_configure_sinks()


class TableFetchLogger:
    """Thin adapter over loguru that keeps the standard logging call surface."""

    def __init__(self, name: str) -> None:
        self._name = name
        self._log = _loguru_logger.bind(logger_name=name)

    def debug(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log.debug(msg, *args, **kwargs)

    def info(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log.info(msg, *args, **kwargs)

    def warning(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log.warning(msg, *args, **kwargs)

    def error(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log.error(msg, *args, **kwargs)

    def exception(self, msg: str, *args: Any, **kwargs: Any) -> None:
        self._log.exception(msg, *args, **kwargs)


def get_logger(name: Optional[str] = None) -> TableFetchLogger:
    if name is None:
        name = "table_fetch"
    if name not in _loggers:
        _loggers[name] = TableFetchLogger(name)
    return _loggers[name]
