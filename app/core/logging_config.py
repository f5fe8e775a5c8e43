import logging
import os
import sys

import json_log_formatter

from .config import Config


class CustomJSONFormatter(json_log_formatter.JSONFormatter):
    def json_record(self, message, extra, record):
        extra['message'] = message  # the event name, e.g. "category.created"
        extra['timestamp'] = self.formatTime(record, self.datefmt)
        extra['level'] = record.levelname
        extra['logger'] = record.name
        if record.exc_info:
            extra['exc_info'] = self.formatException(record.exc_info)
        return extra


def setup_logging(log_file=None, level=None):
    log_file = log_file or Config.LOG_FILE
    level = level or Config.LOG_LEVEL

    if log_file:
        directory = os.path.dirname(log_file)
        if directory:
            os.makedirs(directory, exist_ok=True)
        handler = logging.FileHandler(log_file)
    else:
        handler = logging.StreamHandler(sys.stdout)

    handler.setFormatter(CustomJSONFormatter())

    # Configure the `app` logger tree; uvicorn keeps its own handlers
    app_logger = logging.getLogger("app")
    app_logger.setLevel(level)
    app_logger.handlers = [handler]
    app_logger.propagate = False
