"""Logging configuration for the automation engine.

Log records carry the workflow context bound to the current thread (workflow
id, execution id, request id, ...). JSON output nests it under ``context``;
plain output appends it to the message as ``[key=value ...]``.
"""

import logging
import sys
import json
import threading
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from typing import Optional, Dict, Any
from pathlib import Path


DEFAULT_LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

# Third-party loggers that are noisy at INFO
_LIBRARY_LEVELS = {
    "uvicorn": logging.INFO,
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "sqlalchemy.pool": logging.WARNING,
    "urllib3": logging.WARNING,
}

_local = threading.local()


def _current_context() -> Dict[str, Any]:
    context = getattr(_local, "context", None)
    if context is None:
        context = _local.context = {}
    return context


class WorkflowContextFilter(logging.Filter):
    """Attaches the thread's bound context and any per-call fields to a record."""

    def filter(self, record: logging.LogRecord) -> bool:
        fields = dict(_current_context())
        fields.update(getattr(record, "extra_fields", None) or {})
        record.log_context = fields
        return True


class StructuredFormatter(logging.Formatter):
    """One JSON object per line."""

    def format(self, record: logging.LogRecord) -> str:
        entry = {
            "timestamp": datetime.fromtimestamp(record.created, timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "location": f"{record.module}:{record.funcName}:{record.lineno}",
        }
        context = getattr(record, "log_context", None)
        if context:
            entry["context"] = context
        if record.exc_info:
            entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "traceback": self.formatException(record.exc_info),
            }
        return json.dumps(entry, default=str)


class ContextFormatter(logging.Formatter):
    """Plain-text formatter that appends the bound context, if any."""

    def format(self, record: logging.LogRecord) -> str:
        line = super().format(record)
        context = getattr(record, "log_context", None)
        if not context:
            return line
        fields = " ".join(f"{key}={value}" for key, value in context.items() if value is not None)
        head, newline, tail = line.partition("\n")
        return f"{head} [{fields}]{newline}{tail}"


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,  # 10MB
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the root logger for the automation engine.

    Replaces any handlers already on the root logger, so calling it twice
    does not duplicate output.

    Args:
        level: Logging level name
        log_file: Also write to this file, rotated at ``max_size``
        log_format: Format for plain output; ignored when ``structured``
        structured: Emit JSON lines instead of plain text
        max_size: Maximum log file size in bytes before rotation
        backup_count: Number of rotated files to keep

    Returns:
        Root logger instance
    """
    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = ContextFormatter(fmt=log_format or DEFAULT_LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    handlers: list = [logging.StreamHandler(sys.stdout)]
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        handlers.append(RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count))

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    context_filter = WorkflowContextFilter()
    for handler in handlers:
        handler.setFormatter(formatter)
        handler.addFilter(context_filter)
        root_logger.addHandler(handler)

    for name, library_level in _LIBRARY_LEVELS.items():
        logging.getLogger(name).setLevel(library_level)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)


def set_logging_context(**kwargs):
    """Bind fields to every subsequent record logged on this thread."""
    _current_context().update(kwargs)


def clear_logging_context():
    _current_context().clear()


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log a message with fields that apply to this record only."""
    logger.log(level, message, extra={"extra_fields": context})


class ErrorRecoveryLogger:
    """Logs the attempts of a retried operation under ``automation_engine.retry``."""

    def __init__(self, component_name: str):
        self.logger = get_logger(f"automation_engine.retry.{component_name}")
        self.component_name = component_name

    def log_recovery_attempt(self, operation: str, error: Exception, attempt: int,
                             max_attempts: int, delay: Optional[float] = None):
        """Log a failed attempt that will be retried after ``delay`` seconds."""
        wait = f", retrying in {delay:.2f}s" if delay is not None else ""
        log_with_context(
            self.logger, logging.WARNING,
            f"{operation} attempt {attempt}/{max_attempts} failed: {error}{wait}",
            component=self.component_name,
            error_type=type(error).__name__,
            attempt=attempt,
        )

    def log_recovery_success(self, operation: str, attempts_used: int):
        log_with_context(
            self.logger, logging.INFO,
            f"{operation} succeeded on attempt {attempts_used}",
            component=self.component_name,
            attempt=attempts_used,
        )

    def log_recovery_failure(self, operation: str, final_error: Exception, attempts_used: int):
        """Log an operation that will not be retried again."""
        log_with_context(
            self.logger, logging.ERROR,
            f"{operation} gave up after {attempts_used} attempt(s): {final_error}",
            component=self.component_name,
            error_type=type(final_error).__name__,
            attempt=attempts_used,
        )
