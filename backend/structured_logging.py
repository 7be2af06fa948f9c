"""
Structured Logging Module

Provides JSON-formatted logging for the triage review service.

Features:
- JSON log formatting for machine-readable logs
- Request context tracking (request ID, correlation ID, provider ID)
- stdout and rotating NDJSON file outputs
- Masking of secrets and patient identifiers (PHI)

Usage:
    from structured_logging import get_logger, LogContext

    logger = get_logger(__name__)

    with LogContext(request_id="abc123", provider_id="provider-1"):
        logger.info("Review stored", extra={"interaction_id": "..."})

Configuration (environment variables, see config.py):
    LOG_FORMAT: "json" or "text" (default: "json")
    LOG_OUTPUT: "stdout", "file", "all" (default: "stdout")
    LOG_LEVEL: DEBUG, INFO, WARNING, ERROR, CRITICAL (default: "INFO")
    LOG_FILE: path of the NDJSON file for file output
"""

import json
import logging
import sys
import os
import threading
import traceback
from datetime import datetime, timezone
from typing import Any, Dict
from contextvars import ContextVar
from pathlib import Path
import socket
import uuid

from config import LOG_LEVEL, LOG_FORMAT, LOG_OUTPUT, LOG_FILE

SERVICE_NAME = "triage-review"

# Context variables for request tracking
_request_context: ContextVar[Dict[str, Any]] = ContextVar('request_context', default={})


# =============================================================================
# LOG CONTEXT MANAGEMENT
# =============================================================================

class LogContext:
    """
    Context manager for adding contextual information to logs.

    Usage:
        with LogContext(request_id="abc", provider_id="provider-1"):
            logger.info("Processing")  # Will include request_id and provider_id
    """

    def __init__(self, **kwargs):
        self.context = kwargs
        self._token = None

    def __enter__(self):
        current = _request_context.get().copy()
        current.update(self.context)
        self._token = _request_context.set(current)
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._token:
            _request_context.reset(self._token)
        return False


def get_context() -> Dict[str, Any]:
    """Get current logging context."""
    return _request_context.get().copy()


# =============================================================================
# JSON LOG FORMATTER
# =============================================================================

class JSONFormatter(logging.Formatter):
    """
    Formats log records as one JSON object per line.

    Output format:
    {
        "timestamp": "2026-01-15T10:30:45.123Z",
        "level": "INFO",
        "logger": "routers.reviews",
        "message": "Review stored",
        "service": "triage-review",
        "environment": "production",
        "host": "server-01",
        "request_id": "abc123",
        "provider_id": "provider-1",
        "extra": {...}
    }
    """

    # Fields to always include at the top level
    STANDARD_FIELDS = {
        'timestamp', 'level', 'logger', 'message', 'service',
        'environment', 'host', 'request_id', 'correlation_id', 'provider_id'
    }

    # Secrets, matched as substrings of the field name
    SENSITIVE_FIELDS = {
        'password', 'token', 'secret', 'api_key', 'authorization'
    }

    # Patient identifiers, matched exactly
    PHI_FIELDS = {
        'email', 'phone', 'date_of_birth', 'medical_record_number',
        'parent_concern', 'content', 'preferred_pharmacy'
    }

    def __init__(
        self,
        service_name: str = SERVICE_NAME,
        environment: str = None,
        include_extra: bool = True,
        mask_sensitive: bool = True
    ):
        super().__init__()
        self.service_name = service_name
        self.environment = environment or os.getenv("ENVIRONMENT", "development")
        self.include_extra = include_extra
        self.mask_sensitive = mask_sensitive
        self.hostname = socket.gethostname()

    def format(self, record: logging.LogRecord) -> str:
        """Format the log record as JSON."""
        context = get_context()

        log_entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "service": self.service_name,
            "environment": self.environment,
            "host": self.hostname,
        }

        for key in ['request_id', 'correlation_id', 'provider_id']:
            if key in context:
                log_entry[key] = context[key]

        # Source location for errors
        if record.levelno >= logging.ERROR:
            log_entry["source"] = {
                "file": record.pathname,
                "line": record.lineno,
                "function": record.funcName
            }

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "stacktrace": ''.join(traceback.format_exception(*record.exc_info))
            }

        if self.include_extra:
            extra = {}
            for key, value in record.__dict__.items():
                if key in _RESERVED_RECORD_ATTRS or key.startswith('_'):
                    continue
                if key in self.STANDARD_FIELDS:
                    continue
                if self.mask_sensitive and self._is_sensitive(key):
                    extra[key] = "***MASKED***"
                else:
                    extra[key] = self._serialize_value(value)

            for key, value in context.items():
                if key not in log_entry and key not in extra:
                    extra[key] = self._serialize_value(value)

            if extra:
                log_entry["extra"] = extra

        return json.dumps(log_entry, default=str, ensure_ascii=False)

    def _is_sensitive(self, key: str) -> bool:
        key_lower = key.lower()
        if key_lower in self.PHI_FIELDS:
            return True
        return any(sensitive in key_lower for sensitive in self.SENSITIVE_FIELDS)

    def _serialize_value(self, value: Any) -> Any:
        if isinstance(value, (str, int, float, bool, type(None))):
            return value
        elif isinstance(value, datetime):
            return value.isoformat()
        elif isinstance(value, (list, tuple)):
            return [self._serialize_value(v) for v in value]
        elif isinstance(value, dict):
            return {k: self._serialize_value(v) for k, v in value.items()}
        else:
            return str(value)


# Attributes every LogRecord carries; anything else came in through `extra`
_RESERVED_RECORD_ATTRS = set(vars(logging.LogRecord("", 0, "", 0, "", None, None))) | {"message", "asctime"}


# =============================================================================
# NDJSON FILE HANDLER
# =============================================================================

class RotatingJSONFileHandler(logging.Handler):
    """
    File handler that writes one JSON object per line and rotates by size.
    """

    def __init__(
        self,
        filename: str,
        max_bytes: int = 10 * 1024 * 1024,  # 10MB
        backup_count: int = 5,
        encoding: str = 'utf-8'
    ):
        super().__init__()
        self.filename = Path(filename)
        self.max_bytes = max_bytes
        self.backup_count = backup_count
        self.encoding = encoding
        self._lock = threading.Lock()

        self.filename.parent.mkdir(parents=True, exist_ok=True)

    def emit(self, record: logging.LogRecord):
        try:
            msg = self.format(record)

            with self._lock:
                if self.filename.exists() and self.filename.stat().st_size >= self.max_bytes:
                    self._rotate()

                with open(self.filename, 'a', encoding=self.encoding) as f:
                    f.write(msg + '\n')

        except Exception:
            self.handleError(record)

    def _rotate(self):
        oldest = Path(f"{self.filename}.{self.backup_count}")
        if oldest.exists():
            oldest.unlink()

        for i in range(self.backup_count - 1, 0, -1):
            src = Path(f"{self.filename}.{i}")
            if src.exists():
                src.rename(Path(f"{self.filename}.{i + 1}"))

        if self.filename.exists():
            self.filename.rename(Path(f"{self.filename}.1"))


# =============================================================================
# LOGGER FACTORY
# =============================================================================

_loggers: Dict[str, logging.Logger] = {}
_configured = False


def configure_logging(
    level: str = None,
    format: str = None,
    output: str = None,
    log_file: str = None
):
    """
    Configure structured logging for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        format: Log format ("json" or "text")
        output: Output destination ("stdout", "file", "all")
        log_file: Path to log file (for file output)
    """
    global _configured

    level = level or LOG_LEVEL
    format = format or LOG_FORMAT
    output = output or LOG_OUTPUT
    log_file = log_file or LOG_FILE

    root_logger = logging.getLogger()
    root_logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    root_logger.handlers.clear()

    if format.lower() == "json":
        formatter = JSONFormatter()
    else:
        formatter = logging.Formatter(
            '%(asctime)s | %(levelname)s | %(name)s | %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

    for out in (part.strip() for part in output.lower().split(",")):
        if out in ("stdout", "all"):
            stdout_handler = logging.StreamHandler(sys.stdout)
            stdout_handler.setFormatter(formatter)
            root_logger.addHandler(stdout_handler)

        if out in ("file", "all"):
            if format.lower() == "json":
                file_handler = RotatingJSONFileHandler(log_file)
            else:
                file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(formatter)
            root_logger.addHandler(file_handler)

    _configured = True

    root_logger.info(
        "Logging configured",
        extra={
            "log_level": level,
            "log_format": format,
            "log_output": output,
            "service": SERVICE_NAME
        }
    )


def get_logger(name: str = None) -> logging.Logger:
    """
    Get a logger instance with structured logging support.

    Args:
        name: Logger name (typically __name__)
    """
    if not _configured:
        configure_logging()

    name = name or "app"

    if name not in _loggers:
        _loggers[name] = logging.getLogger(name)

    return _loggers[name]


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def log_request(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    request_id: str = None,
    provider_id: str = None,
    client_ip: str = None,
    **extra
):
    """Log an HTTP request in structured format."""
    logger = get_logger("http")

    log_data = {
        "http_method": method,
        "http_path": path,
        "http_status": status_code,
        "duration_ms": round(duration_ms, 2),
        "request_id": request_id,
        "provider_id": provider_id,
        "client_ip": client_ip,
        **extra
    }

    if status_code >= 500:
        logger.error("HTTP request failed", extra=log_data)
    elif status_code >= 400:
        logger.warning("HTTP request client error", extra=log_data)
    else:
        logger.info("HTTP request completed", extra=log_data)


def log_database_query(
    operation: str,
    table: str,
    duration_ms: float,
    rows_affected: int = None,
    error: str = None,
    **extra
):
    """Log a database operation in structured format."""
    logger = get_logger("db")

    log_data = {
        "db_operation": operation,
        "db_table": table,
        "duration_ms": round(duration_ms, 2),
        "rows_affected": rows_affected,
        **extra
    }

    if error:
        log_data["error"] = error
        logger.error("Database query failed", extra=log_data)
    else:
        logger.debug("Database query completed", extra=log_data)


# =============================================================================
# REQUEST ID GENERATION
# =============================================================================

def generate_request_id() -> str:
    """Generate a unique request ID."""
    return str(uuid.uuid4())[:12]
