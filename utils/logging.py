"""
Logging utilities module.

Plain-text and JSON logging setup, plus small helpers that attach
structured fields to records: a context manager that tags every record of
a rescan, a request logger for the API and a timer for scan durations.
Structured fields travel on the record as ``context_fields`` (set by
LogContext) and ``extra_fields`` (passed by callers through ``extra=``).
"""

import itertools
import logging
import os
import sys
import json
import time
from datetime import datetime
from typing import Dict, Optional, Union

DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
DEFAULT_LOG_LEVEL = "INFO"

STRUCTURED_ATTRS = ("context_fields", "extra_fields")


def _configure_root(
    formatter: logging.Formatter,
    log_level: Optional[str],
    log_file: Optional[str],
    enable_console: bool
) -> logging.Logger:
    root_logger = logging.getLogger()

    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    level = getattr(logging, (log_level or DEFAULT_LOG_LEVEL).upper(), logging.INFO)
    root_logger.setLevel(level)

    handlers = []
    if enable_console:
        # stdout carries scan output
        handlers.append(logging.StreamHandler(sys.stderr))
    if log_file:
        log_dir = os.path.dirname(log_file)
        if log_dir:
            os.makedirs(log_dir, exist_ok=True)
        handlers.append(logging.FileHandler(log_file, encoding="utf-8"))

    for handler in handlers:
        handler.setFormatter(formatter)
        root_logger.addHandler(handler)

    return root_logger


def setup_logging(
    log_level: str = None,
    log_file: str = None,
    log_format: str = None,
    enable_console: bool = True
) -> logging.Logger:
    """
    Configure plain-text logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a log file
        log_format: Log message format
        enable_console: Whether to log to stderr

    Returns:
        The root logger instance
    """
    formatter = logging.Formatter(log_format or DEFAULT_LOG_FORMAT)
    return _configure_root(formatter, log_level, log_file, enable_console)


def setup_structured_logging(
    log_level: str = None,
    log_file: str = None,
    enable_console: bool = True
) -> logging.Logger:
    """Configure one-JSON-object-per-line logging."""
    return _configure_root(JsonFormatter(), log_level, log_file, enable_console)


class JsonFormatter(logging.Formatter):
    """
    Formats records as single-line JSON objects.

    Structured fields are merged into the top level without overriding the
    standard keys.
    """

    def __init__(self, include_extra_fields: bool = True):
        super().__init__()
        self.include_extra_fields = include_extra_fields

    def format(self, record: logging.LogRecord) -> str:
        log_data = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "name": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "lineno": record.lineno
        }

        if record.exc_info:
            log_data["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": self.formatException(record.exc_info)
            }

        if self.include_extra_fields:
            for attr in STRUCTURED_ATTRS:
                fields = getattr(record, attr, None)
                if isinstance(fields, dict):
                    for key, value in fields.items():
                        log_data.setdefault(key, value)

        return json.dumps(log_data, default=str)


class LogContext:
    """
    Context manager that tags every log record created inside the block.

    Used by the registry to stamp records of one rescan with the page
    source, the trigger reason and the scan number. Contexts nest; inner
    fields win.
    """

    def __init__(self, logger: logging.Logger, **context):
        self.logger = logger
        self.context = context
        self.old_factory = None

    def __enter__(self):
        self.old_factory = logging.getLogRecordFactory()
        old_factory = self.old_factory
        context = self.context

        def record_factory(*args, **kwargs):
            record = old_factory(*args, **kwargs)
            fields = dict(getattr(record, "context_fields", {}))
            fields.update(context)
            record.context_fields = fields
            return record

        logging.setLogRecordFactory(record_factory)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        logging.setLogRecordFactory(self.old_factory)


class RequestLogger:
    """
    Logs API requests and their responses under a shared request id.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self._ids = itertools.count(1)

    def log_request(self, method: str, url: str) -> str:
        """
        Log an incoming request.

        Returns:
            Request id to pass to log_response
        """
        request_id = f"req_{next(self._ids)}"
        self.logger.info(f"{method} {url}", extra={"extra_fields": {
            "event": "api_request",
            "request_id": request_id,
            "method": method,
            "url": url
        }})
        return request_id

    def log_response(self, status_code: int, request_id: str, elapsed_ms: int) -> None:
        """Log a response; 4xx at WARNING, 5xx at ERROR."""
        if status_code >= 500:
            level = logging.ERROR
        elif status_code >= 400:
            level = logging.WARNING
        else:
            level = logging.INFO
        self.logger.log(level, f"Response {status_code} in {elapsed_ms}ms", extra={"extra_fields": {
            "event": "api_response",
            "request_id": request_id,
            "status_code": status_code,
            "elapsed_ms": elapsed_ms
        }})


class PerformanceLogger:
    """
    Named timers and gauges logged at DEBUG.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.timers: Dict[str, float] = {}

    def start_timer(self, operation: str) -> None:
        self.timers[operation] = time.perf_counter()

    def end_timer(self, operation: str) -> float:
        """
        Stop a timer and log the elapsed time.

        Args:
            operation: Name passed to start_timer

        Returns:
            Elapsed time in milliseconds

        Raises:
            ValueError: If the timer was not started
        """
        if operation not in self.timers:
            raise ValueError(f"Timer for '{operation}' was not started")

        elapsed_ms = (time.perf_counter() - self.timers.pop(operation)) * 1000
        self.logger.debug(f"Operation '{operation}' took {elapsed_ms:.2f}ms", extra={"extra_fields": {
            "event": "performance",
            "operation": operation,
            "elapsed_ms": elapsed_ms
        }})
        return elapsed_ms

    def log_metric(self, name: str, value: Union[int, float], **context) -> None:
        """Log a gauge value with optional context fields."""
        fields = {"event": "metric", "metric_name": name, "metric_value": value}
        fields.update(context)
        self.logger.debug(f"Metric: {name}={value}", extra={"extra_fields": fields})
