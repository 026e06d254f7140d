import logging
import sys
import json
import os
import time

# Determine log level from environment variable or default to INFO
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

NOISY_LOGGERS = ("uvicorn", "urllib3", "docker", "kubernetes", "asyncio")


class JsonFormatter(logging.Formatter):
    """
    A custom formatter to output log records as a JSON string.
    This is ideal for consumption by log management systems like Loki.
    """

    converter = time.gmtime

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "timestamp": self.formatTime(record, self.datefmt),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        if record.stack_info:
            log_record["stack_info"] = self.formatStack(record.stack_info)

        return json.dumps(log_record)


def setup_root_logging(verbose: bool = False):
    """
    Configures the root logger for the controller.

    All records are emitted as JSON on stdout with UTC timestamps, which is
    what the container log collectors expect. When `verbose` is set the
    level is forced to DEBUG regardless of LOG_LEVEL.
    """
    level = logging.DEBUG if verbose else logging.getLevelName(LOG_LEVEL)

    root_logger = logging.getLogger()
    root_logger.setLevel(level)

    # Clear any existing handlers to avoid duplicate logs
    if root_logger.hasHandlers():
        root_logger.handlers.clear()

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(JsonFormatter(datefmt="%Y-%m-%dT%H:%M:%SZ"))
    root_logger.addHandler(handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> logging.Logger:
    """
    Retrieves a logger instance with the specified name.
    """
    return logging.getLogger(name)
