"""Diagnostic logging for the agent workflow engine.

Execution logs (the ones stored on an Execution) are mirrored here, so
every record can carry the run it belongs to. ``set_logging_context``
attaches identifiers such as ``execution_id`` and ``agent_id`` to all
records emitted in the current request or thread.
"""

import logging
import sys
import json
import traceback
from contextvars import ContextVar
from datetime import datetime, timezone
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional, Dict, Any

DEFAULT_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s%(run_suffix)s"
NOISY_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "sqlalchemy.pool", "urllib3", "google")


class StructuredFormatter(logging.Formatter):
    """One JSON object per record, context fields flattened into it."""

    def format(self, record: logging.LogRecord) -> str:
        payload = {
            "timestamp": datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "thread": record.threadName,
        }
        payload.update(getattr(record, "extra_fields", {}))

        if record.exc_info and record.exc_info[0]:
            payload["exception"] = {
                "type": record.exc_info[0].__name__,
                "message": str(record.exc_info[1]),
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(payload, default=str)


class ExecutionContextFilter(logging.Filter):
    """Attach the current run identifiers to every record.

    Fields live in a ``ContextVar``: every asyncio task (one per request)
    and every thread sees its own copy, so concurrent requests and the
    parallel branches of one run never see each other's identifiers.
    The stored dict is replaced, never mutated.
    """

    def __init__(self):
        super().__init__()
        self._fields: ContextVar[Dict[str, Any]] = ContextVar("agentflow_log_context", default={})

    def set_context(self, **kwargs):
        self._fields.set({**self._fields.get(), **kwargs})

    def clear_context(self):
        self._fields.set({})

    def get_context(self) -> Dict[str, Any]:
        return dict(self._fields.get())

    def filter(self, record: logging.LogRecord) -> bool:
        fields = dict(self._fields.get())
        fields.update(getattr(record, "extra_fields", {}))
        record.extra_fields = fields
        execution_id = fields.get("execution_id")
        record.run_suffix = f" [execution={execution_id}]" if execution_id else ""
        return True


_context_filter = ExecutionContextFilter()


def _build_handler(handler: logging.Handler, formatter: logging.Formatter) -> logging.Handler:
    handler.setFormatter(formatter)
    handler.addFilter(_context_filter)
    return handler


def setup_logging(
    level: str = "INFO",
    log_file: Optional[str] = None,
    log_format: Optional[str] = None,
    structured: bool = False,
    max_size: int = 10 * 1024 * 1024,
    backup_count: int = 5
) -> logging.Logger:
    """
    Configure the root logger for the engine.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_file: Optional path of a rotating log file
        log_format: Format string for plain output; may use ``%(run_suffix)s``
        structured: Emit JSON lines instead of plain text
        max_size: Maximum log file size in bytes before rotation
        backup_count: Number of rotated files to keep

    Returns:
        The configured root logger
    """
    if structured:
        formatter: logging.Formatter = StructuredFormatter()
    else:
        formatter = logging.Formatter(fmt=log_format or DEFAULT_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper()))
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)

    root_logger.addHandler(_build_handler(logging.StreamHandler(sys.stdout), formatter))

    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(log_file, maxBytes=max_size, backupCount=backup_count)
        root_logger.addHandler(_build_handler(file_handler, formatter))

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance for the given name."""
    return logging.getLogger(name)


def set_logging_context(**kwargs):
    """Set context fields for subsequent log messages in the current context."""
    _context_filter.set_context(**kwargs)


def get_logging_context() -> Dict[str, Any]:
    """Snapshot of the current context fields, for handing to worker threads."""
    return _context_filter.get_context()


def clear_logging_context():
    _context_filter.clear_context()


def log_with_context(logger: logging.Logger, level: int, message: str, **context):
    """Log a message with additional context fields."""
    logger.log(level, message, extra={"extra_fields": context})


class ErrorRecoveryLogger:
    """Reports retries of storage operations on ``agentflow.recovery.<operation>``."""

    def __init__(self, operation: str):
        self.operation = operation
        self.logger = get_logger(f"agentflow.recovery.{operation}")

    def log_recovery_attempt(self, error: Exception, attempt: int, max_attempts: int, delay: float):
        log_with_context(
            self.logger, logging.WARNING,
            f"{self.operation} failed (attempt {attempt}/{max_attempts}), retrying in {delay:.2f}s: {error}",
            operation=self.operation,
            error_type=type(error).__name__,
            attempt=attempt,
        )

    def log_recovery_failure(self, error: Exception, attempts_used: int):
        log_with_context(
            self.logger, logging.ERROR,
            f"{self.operation} gave up after {attempts_used} attempt(s): {error}",
            operation=self.operation,
            error_type=type(error).__name__,
            attempts_used=attempts_used,
        )
