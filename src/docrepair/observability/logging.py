"""
Structured Logging Configuration.

structlog on top of stdlib logging:
- JSON lines in production, colored console output in development
- Per-message context (document id, message id, delivery count) bound for
  the duration of one handler run
- Credentials redacted before rendering
"""

import logging
import sys
from contextvars import ContextVar
from typing import Any, Literal

import structlog
from structlog.types import EventDict, Processor, WrappedLogger

SERVICE_NAME = "docrepair"

# Substrings that mark a key as holding a secret
SENSITIVE_KEY_PARTS = frozenset(
    {"password", "api_key", "apikey", "api-key", "secret", "authorization", "bearer", "credential", "private_key"}
)
REDACTED = "***REDACTED***"

# Third-party loggers lowered to WARNING
QUIET_LOGGERS = ("botocore", "boto3", "urllib3", "neo4j", "httpx", "httpcore", "openai", "anthropic", "asyncio")

_message_context: ContextVar[dict[str, Any]] = ContextVar("message_context", default={})


class LogContext:
    """
    Bind keys to every log event emitted inside the block.

    Contexts nest; inner keys shadow outer ones until the inner block exits.
    Context variables are copied per asyncio task, so concurrent handlers
    never see each other's ids.

    Usage:
        with LogContext(document_id="q-42", message_id="m-1"):
            logger.info("Handling correction job")
    """

    def __init__(self, **kwargs: Any):
        self.values = kwargs
        self._token = None

    def __enter__(self) -> "LogContext":
        self._token = _message_context.set({**_message_context.get(), **self.values})
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> bool:
        if self._token is not None:
            _message_context.reset(self._token)
            self._token = None
        return False


def add_message_context(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Merge bound message context; keys passed to the log call win."""
    for key, value in _message_context.get().items():
        event_dict.setdefault(key, value)
    return event_dict


def add_service_name(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    event_dict["service"] = SERVICE_NAME
    return event_dict


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return any(part in lowered for part in SENSITIVE_KEY_PARTS)


def _redact(key: str, value: Any) -> Any:
    if isinstance(value, dict):
        return {k: _redact(str(k), v) for k, v in value.items()}
    if isinstance(value, str) and _is_sensitive(key):
        return REDACTED
    return value


def redact_secrets(
    logger: WrappedLogger,
    method_name: str,
    event_dict: EventDict,
) -> EventDict:
    """Replace string values under secret-looking keys, nested dicts included."""
    return {key: _redact(key, value) for key, value in event_dict.items()}


def _renderer(format: str) -> list[Processor]:
    if format == "json":
        return [structlog.processors.format_exc_info, structlog.processors.JSONRenderer()]
    return [structlog.dev.ConsoleRenderer(colors=True)]


def configure_logging(
    level: str = "INFO",
    format: Literal["json", "console"] = "json",
) -> None:
    """
    Configure structlog for the application.

    Args:
        level: Log level (DEBUG, INFO, WARNING, ERROR)
        format: "json" for production, "console" for development
    """
    processors: list[Processor] = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True, key="timestamp"),
        add_service_name,
        add_message_context,
        redact_secrets,
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        *_renderer(format),
    ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, level.upper()),
    )
    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
