import logging
import json
import coloredlogs
from datetime import datetime, timezone


class JSONFormatter(logging.Formatter):
    """Formats logs as JSON."""

    def format(self, record):
        log_obj = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "message": record.getMessage(),
            "logger": record.name,
            "module": record.module,
        }

        # Context attached by EngineLogger
        if hasattr(record, "extra_data"):
            log_obj.update(record.extra_data)

        if record.exc_info:
            log_obj["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_obj, default=str)


class PrettyFormatter(coloredlogs.ColoredFormatter):
    """Colored console output for development, context appended."""

    DEFAULT_FORMAT = "%(asctime)s %(levelname)-8s %(name)s %(message)s"

    def __init__(self, fmt: str = DEFAULT_FORMAT, datefmt: str = "%H:%M:%S"):
        super().__init__(fmt=fmt, datefmt=datefmt)

    def format(self, record):
        msg = super().format(record)
        extra = getattr(record, "extra_data", None)
        if extra:
            msg += f" | {json.dumps(extra, default=str)}"
        return msg
