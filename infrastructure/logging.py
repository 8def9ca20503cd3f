"""Structured JSON logging for the order service."""
import contextvars
import json
import logging
import sys
import traceback
from datetime import datetime, timezone
from typing import Union

# Correlation id of the request being handled; set by the request logging middleware.
REQUEST_ID_CTX: contextvars.ContextVar[str | None] = contextvars.ContextVar("request_id", default=None)


class StructuredLogger:
    """Logger that outputs structured JSON logs."""

    def __init__(self, service_name: str, level: Union[int, str] = logging.INFO):
        self.service_name = service_name
        self.logger = logging.getLogger(service_name)
        self.logger.setLevel(level)
        self.logger.propagate = False

        # Remove existing handlers to avoid duplicates
        self.logger.handlers.clear()
        self.logger.addHandler(self._setup_handler(sys.stdout))

    def _setup_handler(self, stream):
        handler = logging.StreamHandler(stream)
        handler.setFormatter(JsonFormatter(self.service_name))
        return handler

    def debug(self, message: str, **context):
        self.logger.debug(message, extra={"context": context})

    def info(self, message: str, **context):
        self.logger.info(message, extra={"context": context})

    def warning(self, message: str, **context):
        self.logger.warning(message, extra={"context": context})

    def error(self, message: str, exc_info: bool = False, **context):
        self.logger.error(message, exc_info=exc_info, extra={"context": context})


class JsonFormatter(logging.Formatter):
    """Formats records as single-line JSON objects."""

    def __init__(self, service_name: str):
        super().__init__()
        self.service_name = service_name

    def format(self, record: logging.LogRecord) -> str:
        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "service": self.service_name,
            "message": record.getMessage(),
        }

        request_id = REQUEST_ID_CTX.get()
        if request_id:
            log_entry["request_id"] = request_id

        context = getattr(record, "context", None)
        if context:
            log_entry.update(context)

        if record.exc_info:
            log_entry["exception"] = "".join(traceback.format_exception(*record.exc_info))

        return json.dumps(log_entry, default=str)


def get_logger(service_name: str, level: Union[int, str] = logging.INFO) -> StructuredLogger:
    """Get a structured logger for the service."""
    return StructuredLogger(service_name=service_name, level=level)
