"""
Structured JSON logging configuration.

- JSON output (python-json-logger) on the console and in rotating files
- Request ID propagation via contextvars, so every log line emitted while
  labeling a batch can be correlated with the HTTP request
- Log-injection sanitizing of messages and string args
"""
import logging
import logging.handlers
import os
import contextvars
import re
from datetime import datetime, timezone
from typing import Optional
from pythonjsonlogger import jsonlogger

from app.core.config import settings

# Context variable for request ID propagation
request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'request_id', default=None
)

SERVICE_NAME = "apm-labeling"
APP_VERSION = "1.0.0"

# backend/data/logs unless LOG_DIR is configured
DEFAULT_LOG_DIR = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), 'data', 'logs')

_LINE_BREAKS = re.compile(r'\r\n|\r|\n')
MAX_LOG_VALUE_LENGTH = 10000


class RequestIdFilter(logging.Filter):
    """Attach the current request's ID (or '-') to every record."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


class SanitizingFilter(logging.Filter):
    """
    Replace line breaks in messages and string args with spaces.

    Device IDs, labeler identities and titles come straight from request
    bodies and must not be able to forge extra log lines.
    """

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = _LINE_BREAKS.sub(' ', record.msg)

        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                _LINE_BREAKS.sub(' ', arg) if isinstance(arg, str) else arg
                for arg in record.args
            )

        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    JSON formatter adding the standard fields to every entry:

    {
        "timestamp": "2025-03-05T10:30:00.000000+00:00",
        "level": "INFO",
        "service": "apm-labeling",
        "logger": "app.services.labeling_service",
        "module": "labeling_service",
        "request_id": "uuid-here",
        "message": "Labeled segment created",
        ...extra fields...
    }
    """

    def add_fields(
        self,
        log_record: dict,
        record: logging.LogRecord,
        message_dict: dict
    ) -> None:
        super().add_fields(log_record, record, message_dict)

        if not log_record.get('timestamp'):
            log_record['timestamp'] = datetime.now(timezone.utc).isoformat()

        log_record['level'] = record.levelname
        log_record['service'] = SERVICE_NAME
        log_record['logger'] = record.name
        log_record['module'] = record.module
        log_record['request_id'] = getattr(record, 'request_id', '-')

        if record.funcName:
            log_record['function'] = record.funcName
        if record.lineno:
            log_record['line'] = record.lineno

        if 'message' not in log_record:
            log_record['message'] = record.getMessage()


def _build_handler(
    handler: logging.Handler,
    level: int,
    formatter: logging.Formatter
) -> logging.Handler:
    handler.setLevel(level)
    handler.setFormatter(formatter)
    handler.addFilter(RequestIdFilter())
    handler.addFilter(SanitizingFilter())
    return handler


def setup_logging(
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
    app_version: Optional[str] = None,
    log_to_file: bool = True
) -> logging.Logger:
    """
    Configure application-wide logging with JSON format and rotation.

    Args:
        log_level: Override log level (default from settings.LOG_LEVEL)
        log_dir: Override log directory (default settings.LOG_DIR or backend/data/logs)
        app_version: Application version to include in startup logs
        log_to_file: Disable to log to the console only

    Returns:
        Root logger configured for the application
    """
    global APP_VERSION

    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    if app_version:
        APP_VERSION = app_version

    json_formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    root_logger.addHandler(_build_handler(logging.StreamHandler(), level, json_formatter))

    if log_to_file:
        directory = log_dir or settings.LOG_DIR or DEFAULT_LOG_DIR
        os.makedirs(directory, exist_ok=True)

        # 100MB per file, 7 backups
        root_logger.addHandler(_build_handler(
            logging.handlers.RotatingFileHandler(
                os.path.join(directory, 'app.log'),
                maxBytes=100 * 1024 * 1024,
                backupCount=7,
                encoding='utf-8'
            ),
            level,
            json_formatter
        ))

        # Errors only, including orphaned-image reports from failed persists
        root_logger.addHandler(_build_handler(
            logging.handlers.RotatingFileHandler(
                os.path.join(directory, 'error.log'),
                maxBytes=50 * 1024 * 1024,
                backupCount=5,
                encoding='utf-8'
            ),
            logging.ERROR,
            json_formatter
        ))

    # Suppress noisy third-party loggers
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('botocore').setLevel(logging.WARNING)
    logging.getLogger('boto3').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    return root_logger


def get_logger(name: str) -> logging.Logger:
    """Get a logger instance (typically called with __name__)."""
    return logging.getLogger(name)


def set_request_id(request_id: Optional[str]) -> contextvars.Token:
    """Set the request ID for the current context; returns a reset token."""
    return request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context, or None."""
    return request_id_var.get()


def clear_request_id(token: contextvars.Token) -> None:
    """Restore the request ID context using the token from set_request_id."""
    request_id_var.reset(token)


def sanitize_log_value(value) -> str:
    """
    Sanitize a value for safe logging.

    Line breaks become spaces and values longer than MAX_LOG_VALUE_LENGTH
    are truncated.
    """
    if not isinstance(value, str):
        return str(value)

    sanitized = _LINE_BREAKS.sub(' ', value)
    if len(sanitized) > MAX_LOG_VALUE_LENGTH:
        sanitized = sanitized[:MAX_LOG_VALUE_LENGTH] + '...[truncated]'

    return sanitized
