"""
Structured logging configuration with security focus.

Session transitions (login, logout, refresh, expiry) and every outgoing API
call are logged through the standard library logger hierarchy. The filter
installed here masks bearer tokens and e-mail addresses before any handler
sees a record, so callers can log request details freely.
"""

import json
import logging
import logging.config
import re
import traceback
import uuid
from contextvars import ContextVar
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Optional

from storefront.core.config import settings

# Correlation ID of the API call currently being processed
correlation_id_ctx: ContextVar[Optional[str]] = ContextVar("correlation_id", default=None)

SECURITY_LOGGER_NAME = "storefront.security"


class SecurityLogFilter(logging.Filter):
    """
    Filter to identify and tag security-related log events.

    Adds security context and ensures credentials are not logged.
    """

    SECURITY_KEYWORDS = (
        "authentication", "authorization", "credential", "token", "login",
        "logout", "session", "refresh", "unauthorized", "forbidden", "expired",
    )

    def filter(self, record: logging.LogRecord) -> bool:
        message_lower = record.getMessage().lower()
        is_security = any(keyword in message_lower for keyword in self.SECURITY_KEYWORDS)

        if not hasattr(record, "security_event"):
            record.security_event = is_security
        if not hasattr(record, "security_level"):
            record.security_level = self._determine_security_level(message_lower) if is_security else "info"

        record.msg = self._sanitize_message(record.getMessage())
        record.args = ()

        return True

    def _determine_security_level(self, message_lower: str) -> str:
        """Determine the security severity level"""
        if any(word in message_lower for word in ("unauthorized", "expired", "forbidden")):
            return "high"
        elif any(word in message_lower for word in ("failed", "invalid")):
            return "medium"
        else:
            return "low"

    @staticmethod
    def _sanitize_message(message: str) -> str:
        """Sanitize log messages to prevent credential exposure"""
        # Bearer credentials in headers
        message = re.sub(r"(Bearer\s+)[^\s'\"]+", r"\1****", message, flags=re.IGNORECASE)

        # JWT-shaped strings
        message = re.sub(r"\beyJ[A-Za-z0-9_-]+\.[A-Za-z0-9_-]+\.[A-Za-z0-9_-]*", "****", message)

        # Mask email addresses partially (keep first letter and domain)
        message = re.sub(
            r"\b([a-zA-Z])[a-zA-Z0-9._%+-]*@([a-zA-Z0-9.-]+\.[a-zA-Z]{2,})\b", r"\1****@\2", message
        )

        # Mask passwords and tokens in key=value pairs
        message = re.sub(
            r"(password|secret|token)[\s]*[=:][\s]*[^\s,}]+", r"\1=****", message, flags=re.IGNORECASE
        )

        return message


class StructuredFormatter(logging.Formatter):
    """
    Structured JSON log formatter with security awareness.
    """

    def format(self, record: logging.LogRecord) -> str:
        log_entry: Dict[str, Any] = {
            "timestamp": datetime.fromtimestamp(record.created).isoformat(),
            "level": record.levelname,
            "logger": record.name,
            "message": record.getMessage(),
            "module": record.module,
            "function": record.funcName,
            "line": record.lineno,
        }

        if getattr(record, "security_event", False):
            log_entry["security"] = {
                "event": True,
                "level": getattr(record, "security_level", "info"),
                "type": getattr(record, "event_type", "security_event"),
            }

        correlation_id = getattr(record, "correlation_id", None) or correlation_id_ctx.get()
        if correlation_id:
            log_entry["correlation_id"] = correlation_id

        if hasattr(record, "role"):
            log_entry["role"] = record.role

        if getattr(record, "extra_data", None):
            log_entry["extra"] = record.extra_data

        if record.exc_info:
            log_entry["exception"] = {
                "type": record.exc_info[0].__name__ if record.exc_info[0] else None,
                "message": str(record.exc_info[1]) if record.exc_info[1] else None,
                "traceback": traceback.format_exception(*record.exc_info),
            }

        return json.dumps(log_entry, default=str)


class PlainTextSecurityFormatter(logging.Formatter):
    """
    Plain text formatter with security markers.

    Used when structured logging is disabled but security filtering is still needed.
    """

    def format(self, record: logging.LogRecord) -> str:
        formatted = super().format(record)

        if getattr(record, "security_event", False):
            security_level = getattr(record, "security_level", "info").upper()
            formatted = f"[SECURITY:{security_level}] {formatted}"

        return formatted


def setup_logging(
    structured: Optional[bool] = None,
    log_level: Optional[str] = None,
    log_dir: Optional[str] = None,
) -> None:
    """
    Set up logging configuration with security focus.

    Args:
        structured: Whether to use structured JSON logging (defaults to settings)
        log_level: Root log level (defaults to settings)
        log_dir: Directory for rotating log files; console only when unset
    """
    structured = settings.STRUCTURED_LOGGING if structured is None else structured
    log_level = (log_level or settings.LOG_LEVEL).upper()
    log_dir = log_dir if log_dir is not None else settings.LOG_DIR

    formatter_name = "structured" if structured else "plain_security"

    handlers: Dict[str, Dict[str, Any]] = {
        "console": {
            "class": "logging.StreamHandler",
            "level": log_level,
            "formatter": formatter_name,
            "filters": ["security_filter"],
        }
    }
    root_handlers = ["console"]
    security_handlers = []

    if log_dir:
        Path(log_dir).mkdir(parents=True, exist_ok=True)
        handlers["file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(Path(log_dir) / "storefront.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 10,
            "level": "DEBUG",
            "formatter": formatter_name,
            "filters": ["security_filter"],
        }
        handlers["security_file"] = {
            "class": "logging.handlers.RotatingFileHandler",
            "filename": str(Path(log_dir) / "security_events.log"),
            "maxBytes": 10485760,  # 10MB
            "backupCount": 20,
            "level": "INFO",
            "formatter": formatter_name,
            "filters": ["security_filter"],
        }
        root_handlers.append("file")
        security_handlers.append("security_file")

    logging_config = {
        "version": 1,
        "disable_existing_loggers": False,
        "formatters": {
            "structured": {
                "()": StructuredFormatter,
            },
            "plain_security": {
                "()": PlainTextSecurityFormatter,
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "datefmt": "%Y-%m-%d %H:%M:%S",
            },
        },
        "filters": {
            "security_filter": {
                "()": SecurityLogFilter,
            }
        },
        "handlers": handlers,
        "loggers": {
            "": {  # Root logger
                "level": log_level,
                "handlers": root_handlers,
            },
            SECURITY_LOGGER_NAME: {
                "level": "DEBUG",
                "handlers": security_handlers,
                "propagate": True,
            },
            "httpx": {"level": "WARNING"},
            "httpcore": {"level": "WARNING"},
            "sqlalchemy.engine": {"level": "WARNING"},
        },
    }

    logging.config.dictConfig(logging_config)

    logging.getLogger(SECURITY_LOGGER_NAME).debug(
        "Structured security logging enabled" if structured else "Security-aware logging enabled"
    )


def new_correlation_id() -> str:
    """Create a correlation ID and bind it to the current context"""
    correlation_id = uuid.uuid4().hex[:12]
    correlation_id_ctx.set(correlation_id)
    return correlation_id


def log_security_event(
    event_type: str,
    message: str,
    level: str = "low",
    role: Optional[str] = None,
    extra: Optional[Dict[str, Any]] = None,
) -> None:
    """
    Log a security event with structured context.

    Args:
        event_type: Type of security event (e.g., 'login', 'session_expired')
        message: Human-readable message
        level: Security level ('low', 'medium', 'high')
        role: Session role the event concerns
        extra: Optional additional context
    """
    logger = logging.getLogger(SECURITY_LOGGER_NAME)

    log_level = logging.WARNING if level == "high" else logging.INFO

    log_extra: Dict[str, Any] = {
        "event_type": event_type,
        "security_level": level,
        "security_event": True,
    }
    if role:
        log_extra["role"] = role
    if extra:
        log_extra["extra_data"] = extra

    logger.log(log_level, message, extra=log_extra)


def log_session_transition(role: str, transition: str, success: bool = True) -> None:
    """Log a credential transition (login, logout, refresh, expired) for a role"""
    if transition == "expired":
        level = "high"
    else:
        level = "low" if success else "medium"
    outcome = "succeeded" if success else "failed"
    log_security_event(
        f"session_{transition}",
        f"Session {transition} for {role} role {outcome}",
        level=level,
        role=role,
        extra={"transition": transition, "success": success},
    )
