"""
JSON logging for the push service.

Every record carries the request id bound by RequestLoggingMiddleware.
Client-supplied text is flattened to one line, and push tokens are passed
through mask_token before they reach a log call.
"""
import logging
import logging.handlers
import os
import contextvars
import re
from datetime import datetime, timezone
from typing import Optional
from pythonjsonlogger import jsonlogger

from coursepush.core.config import settings

# Context variable for request ID propagation
request_id_var: contextvars.ContextVar[Optional[str]] = contextvars.ContextVar(
    'request_id', default=None
)

# Number of token characters that may appear in logs
TOKEN_LOG_PREFIX = 20


class RequestIdFilter(logging.Filter):
    """Stamps record.request_id from the request context, "-" outside a request."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.request_id = request_id_var.get() or "-"
        return True


class SanitizingFilter(logging.Filter):
    """Flattens CR/LF in messages and string args so one record stays one line."""

    LINE_BREAKS = re.compile(r"\r\n|\r|\n")

    def filter(self, record: logging.LogRecord) -> bool:
        if isinstance(record.msg, str):
            record.msg = self.LINE_BREAKS.sub(" ", record.msg)
        if record.args and isinstance(record.args, tuple):
            record.args = tuple(
                self.LINE_BREAKS.sub(" ", a) if isinstance(a, str) else a
                for a in record.args
            )
        return True


class CustomJsonFormatter(jsonlogger.JsonFormatter):
    """
    Custom JSON formatter that adds standard fields to all log entries.

    Output format:
    {
        "timestamp": "2025-11-23T10:30:00.000Z",
        "level": "INFO",
        "message": "Dispatch complete",
        "module": "dispatch_service",
        "request_id": "uuid-here",
        "logger": "coursepush.services.push.dispatch_service",
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
        log_record['module'] = record.module
        log_record['logger'] = record.name
        log_record['request_id'] = getattr(record, 'request_id', '-')

        if record.funcName:
            log_record['function'] = record.funcName
        if record.lineno:
            log_record['line'] = record.lineno

        if 'message' not in log_record:
            log_record['message'] = record.getMessage()


def _rotating(directory: str, filename: str, max_mb: int, backups: int) -> logging.Handler:
    return logging.handlers.RotatingFileHandler(
        os.path.join(directory, filename),
        maxBytes=max_mb * 1024 * 1024,
        backupCount=backups,
        encoding='utf-8'
    )


def setup_logging(
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
    app_version: Optional[str] = None
) -> logging.Logger:
    """
    Configure application-wide logging with JSON format and rotation.

    Args:
        log_level: Override log level (default from settings.LOG_LEVEL)
        log_dir: Override log directory (default from settings.LOG_DIR)
        app_version: Application version recorded in the startup line

    Returns:
        Root logger configured for the application
    """
    level = getattr(logging, (log_level or settings.LOG_LEVEL).upper(), logging.INFO)
    directory = log_dir or settings.LOG_DIR
    os.makedirs(directory, exist_ok=True)

    formatter = CustomJsonFormatter('%(timestamp)s %(level)s %(name)s %(message)s')

    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.handlers.clear()

    # console, app.log (50MB x 7), error.log (20MB x 5)
    handlers = [
        (logging.StreamHandler(), level),
        (_rotating(directory, 'app.log', 50, 7), level),
        (_rotating(directory, 'error.log', 20, 5), logging.ERROR),
    ]
    for handler, handler_level in handlers:
        handler.setLevel(handler_level)
        handler.setFormatter(formatter)
        handler.addFilter(RequestIdFilter())
        handler.addFilter(SanitizingFilter())
        root_logger.addHandler(handler)

    # Suppress noisy third-party loggers
    logging.getLogger('uvicorn.access').setLevel(logging.WARNING)
    logging.getLogger('google.auth').setLevel(logging.WARNING)
    logging.getLogger('urllib3').setLevel(logging.WARNING)

    root_logger.info(
        "Logging configured",
        extra={"log_level": logging.getLevelName(level), "log_dir": directory, "version": app_version}
    )
    return root_logger


def set_request_id(request_id: Optional[str]) -> contextvars.Token:
    """
    Set the request ID for the current context.

    Returns:
        Token that can be used to reset the context
    """
    return request_id_var.set(request_id)


def get_request_id() -> Optional[str]:
    """Get the current request ID from context, None if not set."""
    return request_id_var.get()


def clear_request_id(token: contextvars.Token) -> None:
    """Clear the request ID context using the token from set_request_id."""
    request_id_var.reset(token)


def mask_token(token: Optional[str]) -> str:
    """
    Shorten a push token for logging.

    Args:
        token: Device registration token (may be empty)

    Returns:
        First TOKEN_LOG_PREFIX characters followed by '...' (first half for
        shorter tokens), or '-' when empty
    """
    if not token:
        return "-"
    if len(token) <= TOKEN_LOG_PREFIX:
        return token[:len(token) // 2] + "..."
    return token[:TOKEN_LOG_PREFIX] + "..."
