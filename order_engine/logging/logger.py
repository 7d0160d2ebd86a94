import logging
import os
import sys
from logging.handlers import RotatingFileHandler
from typing import Any, Dict, Optional, Set

from .formatters import JSONFormatter, PrettyFormatter

LOG_FILE_MAX_BYTES = 10 * 1024 * 1024
LOG_FILE_BACKUPS = 5

# Third-party loggers that flood DEBUG output with connection chatter
QUIET_LOGGERS = ("aiohttp", "asyncio")

_configured: Set[str] = set()


def _console_handler(env: str) -> logging.Handler:
    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(PrettyFormatter() if env == "development" else JSONFormatter())
    return handler


def _file_handler(path: str) -> logging.Handler:
    directory = os.path.dirname(path)
    if directory:
        os.makedirs(directory, exist_ok=True)
    handler = RotatingFileHandler(path, maxBytes=LOG_FILE_MAX_BYTES, backupCount=LOG_FILE_BACKUPS)
    handler.setFormatter(JSONFormatter())
    return handler


class EngineLogger:
    """
    Context-carrying wrapper around a stdlib logger.

    Keyword fields given to a log call are merged over the bound context
    and attached to the record as ``extra_data``, where both formatters
    render them. Module loggers (``logging.getLogger(__name__)``) under
    ``order_engine`` share the handlers installed by ``setup``.
    """

    def __init__(self, name: str = "order_engine", context: Optional[Dict[str, Any]] = None):
        self.logger = logging.getLogger(name)
        self._context: Dict[str, Any] = dict(context or {})

    def setup(self, config) -> None:
        """Install handlers once per logger name; later calls are ignored."""
        name = self.logger.name
        if name in _configured:
            return

        self.logger.setLevel(logging.DEBUG if config.debug else config.log_level)
        self.logger.propagate = False
        self.logger.handlers.clear()
        self.logger.addHandler(_console_handler(config.env))
        if config.log_file:
            self.logger.addHandler(_file_handler(config.log_file))

        for quiet in QUIET_LOGGERS:
            logging.getLogger(quiet).setLevel(logging.WARNING)
        _configured.add(name)

    def with_context(self, **fields) -> "EngineLogger":
        """Child logger with ``fields`` bound on top of this one's context."""
        return EngineLogger(self.logger.name, {**self._context, **fields})

    def log(self, level: int, msg: str, **fields) -> None:
        data = {**self._context, **fields}
        self.logger.log(level, msg, extra={"extra_data": data} if data else None)

    def debug(self, msg: str, **fields) -> None:
        self.log(logging.DEBUG, msg, **fields)

    def info(self, msg: str, **fields) -> None:
        self.log(logging.INFO, msg, **fields)

    def warning(self, msg: str, **fields) -> None:
        self.log(logging.WARNING, msg, **fields)

    def error(self, msg: str, **fields) -> None:
        self.log(logging.ERROR, msg, **fields)

    def critical(self, msg: str, **fields) -> None:
        self.log(logging.CRITICAL, msg, **fields)

    def order_event(self, event: str, **fields) -> None:
        """Order lifecycle event (created, signed, filled, ...) at INFO."""
        self.info(f"ORDER: {event}", order_event=event, **fields)


logger = EngineLogger()


def setup_logging(config) -> None:
    """Configure the package logger from ``config``."""
    logger.setup(config)
