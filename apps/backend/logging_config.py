"""
LexFill - Logging Configuration
===============================
structlog setup shared by the API, the parsing pipeline and the agent.

Log fields may carry client data (placeholder values, chat prompts,
extracted document text). Secrets are redacted and free text is cut
short before anything is rendered.
"""

import enum
import logging
import sys
from pathlib import PurePath
from typing import Any, Dict
from uuid import UUID

import structlog
from structlog.types import EventDict, Processor

SENSITIVE_KEYS = {
    "password", "api_key", "secret", "token", "authorization", "llm_api_key",
}

# Free text fields: kept for debugging, but never in full
CLIENT_TEXT_KEYS = {"raw_text", "prompt", "content", "response", "value"}
CLIENT_TEXT_LIMIT = 200
MAX_FIELD_LENGTH = 1000

NOISY_LOGGERS = ("httpx", "httpcore", "aiosqlite", "multipart", "python_multipart")


def add_app_context(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add application-level context to all log entries."""
    event_dict["app"] = "lexfill"
    event_dict["service"] = "backend"
    return event_dict


def stringify_values(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Render ids, paths and enums (document status) as plain strings."""
    for key, value in event_dict.items():
        if isinstance(value, enum.Enum):
            event_dict[key] = value.value
        elif isinstance(value, (UUID, PurePath)):
            event_dict[key] = str(value)
    return event_dict


def _shorten(value: str, limit: int) -> str:
    if len(value) <= limit:
        return value
    return f"{value[:limit]}...[{len(value) - limit} more chars]"


def sanitize_event(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Redact secrets and shorten client text, recursing into nested dicts."""

    def _sanitize_dict(d: Dict[str, Any]) -> Dict[str, Any]:
        sanitized = {}
        for key, value in d.items():
            key_lower = str(key).lower()

            if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
                sanitized[key] = "***REDACTED***"
            elif isinstance(value, dict):
                sanitized[key] = _sanitize_dict(value)
            elif isinstance(value, str) and key_lower in CLIENT_TEXT_KEYS:
                sanitized[key] = _shorten(value, CLIENT_TEXT_LIMIT)
            elif isinstance(value, str):
                sanitized[key] = _shorten(value, MAX_FIELD_LENGTH)
            else:
                sanitized[key] = value
        return sanitized

    return _sanitize_dict(event_dict)


def configure_logging(environment: str = "development", log_level: str = "INFO") -> None:
    """
    Configure structlog and the standard library root logger.

    Args:
        environment: "production" renders JSON lines, anything else the
                     colored console renderer
        log_level: Level name for the root logger (DEBUG, INFO, ...)
    """
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        add_app_context,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        stringify_values,
        sanitize_event,
    ]

    if environment == "production":
        renderer: list[Processor] = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        renderer = [
            structlog.dev.ConsoleRenderer(
                colors=sys.stdout.isatty(),
                exception_formatter=structlog.dev.plain_traceback,
            ),
        ]

    structlog.configure(
        processors=shared_processors + renderer,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    level = getattr(logging, log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)
    # One INFO line per LLM request is already logged by the LLM service
    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))


def get_logger(name: str = __name__) -> structlog.stdlib.BoundLogger:
    """Get a structlog logger; modules call this with `__name__`."""
    return structlog.get_logger(name)
