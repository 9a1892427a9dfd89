"""Structured logging configuration"""

import logging
import json
import os
from datetime import datetime
from typing import Any, Dict, Optional


class StructuredLogger:
    """
    Structured JSON logger for the co-pilot.

    Keyword arguments become top-level JSON fields. Fields that hold for a
    whole component (the watched user, say) are attached once with bind().
    """

    def __init__(self, name: str, level: str = "INFO", context: Optional[Dict[str, Any]] = None):
        self.logger = logging.getLogger(name)
        self.logger.setLevel(getattr(logging, level.upper(), logging.INFO))
        self.context = dict(context or {})

        # One handler per logger name; get_logger may be called repeatedly
        if not self.logger.handlers:
            handler = logging.StreamHandler()
            handler.setFormatter(JSONFormatter())
            self.logger.addHandler(handler)
            self.logger.propagate = False

    def bind(self, **context) -> "StructuredLogger":
        """Logger writing to the same stream with extra fields on every record"""
        return StructuredLogger(
            self.logger.name,
            logging.getLevelName(self.logger.level),
            {**self.context, **context}
        )

    def log(self, level: str, message: str, **kwargs):
        """Log structured message"""
        getattr(self.logger, level.lower())(message, extra={'fields': {**self.context, **kwargs}})

    def info(self, message: str, **kwargs):
        self.log("info", message, **kwargs)

    def warning(self, message: str, **kwargs):
        self.log("warning", message, **kwargs)

    def error(self, message: str, **kwargs):
        self.log("error", message, **kwargs)

    def debug(self, message: str, **kwargs):
        self.log("debug", message, **kwargs)


class JSONFormatter(logging.Formatter):
    """One JSON object per record, structured fields merged in"""

    def format(self, record):
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            **getattr(record, 'fields', {})
        }

        if record.exc_info:
            log_data["exception"] = self.formatException(record.exc_info)

        return json.dumps(log_data, default=str)


def get_logger(name: str) -> StructuredLogger:
    """Get or create structured logger"""
    log_level = os.getenv("LOG_LEVEL", "INFO")
    return StructuredLogger(name, log_level)
