"""Logging setup for workers and the health API.

Installs a single handler on the ``supportflow`` logger, either a
human-readable formatter or a minimal JSON formatter (``log_json``), and
optionally a timed rotating file handler when ``log_dir`` is set.
"""

from __future__ import annotations

import json
import logging
import os
from logging.handlers import TimedRotatingFileHandler

from supportflow.core.config import AppSettings

ROOT_LOGGER = "supportflow"


class JsonFormatter(logging.Formatter):
    """Minimal JSON log formatter used when log_json is enabled."""

    def format(self, record: logging.LogRecord) -> str:
        log_record = {
            "level": record.levelname,
            "time": self.formatTime(record, "%Y-%m-%dT%H:%M:%S"),
            "logger": record.name,
            "message": record.getMessage(),
        }
        if record.exc_info:
            log_record["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(log_record)


def _get_formatter(log_json: bool) -> logging.Formatter:
    if log_json:
        return JsonFormatter()
    return logging.Formatter("[%(asctime)s] %(levelname)s in %(name)s: %(message)s")


def init_logging(settings: AppSettings | None = None) -> logging.Logger:
    """Initialise the package logger from settings. Safe to call twice."""
    if settings is None:
        settings = AppSettings()

    formatter = _get_formatter(settings.log_json)
    log_level = getattr(logging, settings.log_level.upper(), logging.INFO)

    logger = logging.getLogger(ROOT_LOGGER)
    if not logger.handlers:
        stream = logging.StreamHandler()
        stream.setFormatter(formatter)
        logger.addHandler(stream)

        if settings.log_dir:
            os.makedirs(settings.log_dir, exist_ok=True)
            file_handler = TimedRotatingFileHandler(
                os.path.join(settings.log_dir, "supportflow.log"),
                when="midnight",
                backupCount=7,
            )
            file_handler.setFormatter(formatter)
            logger.addHandler(file_handler)
    logger.setLevel(log_level)
    return logger
