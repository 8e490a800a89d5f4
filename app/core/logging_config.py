"""
Structured logging with structlog.

JSON lines in production, colored console output in development. Every
event carries the service identity plus whatever request context is bound
(request id, tenant, user), and credential-like fields are redacted before
rendering.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from app.config import settings

# Substrings that mark a field as secret material
SENSITIVE_MARKERS = ("password", "secret", "authorization", "credential", "token_hash")

# Exact keys that hold raw tokens
SENSITIVE_KEYS = frozenset({"token", "access_token", "refresh_token", "hashed_password"})

REDACTED = "***REDACTED***"

QUIET_LOGGERS = {
    "uvicorn.access": logging.WARNING,
    "sqlalchemy.engine": logging.WARNING,
    "passlib": logging.ERROR,
    "httpx": logging.WARNING,
}


def add_app_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    event_dict["service"] = settings.app_name
    event_dict["version"] = settings.app_version
    event_dict["environment"] = settings.environment
    return event_dict


def add_request_context(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    """Merge request id, tenant and user bound by the middleware and dependencies."""
    from app.core.context import get_request_context

    for key, value in get_request_context().items():
        event_dict.setdefault(key, value)
    return event_dict


def _is_sensitive(key: str) -> bool:
    lowered = key.lower()
    return lowered in SENSITIVE_KEYS or any(marker in lowered for marker in SENSITIVE_MARKERS)


def censor_sensitive_data(logger: Any, method_name: str, event_dict: EventDict) -> EventDict:
    for key in event_dict:
        if _is_sensitive(key):
            event_dict[key] = REDACTED
    return event_dict


def _renderer() -> Processor:
    if settings.log_format == "json":
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=settings.is_development)


def setup_logging() -> None:
    """Configure structlog over the stdlib root logger (stdout)."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(format="%(message)s", stream=sys.stdout, level=level)

    for name, quiet_level in QUIET_LOGGERS.items():
        logging.getLogger(name).setLevel(quiet_level)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso", utc=True),
            add_app_context,
            add_request_context,
            censor_sensitive_data,
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            _renderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    structlog.get_logger(__name__).info(
        "logging_configured",
        log_level=settings.log_level,
        log_format=settings.log_format,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Usage:
        logger = get_logger(__name__)
        logger.info("role_assigned", user_id=user.id, role=role.name)
    """
    return structlog.get_logger(name)
