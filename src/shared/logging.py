"""Structured logging setup for the Commerce MCP Bridge.

Uses structlog for consistent, machine-parseable log output. Credential
material that ends up in an event is masked before rendering.
"""

import logging
import re
import sys
from typing import Any

import structlog
from structlog.types import Processor

MASK = "***"

SENSITIVE_KEYS = frozenset({
    "api_key",
    "apikey",
    "authorization",
    "password",
    "token",
    "access_token",
    "bearer_token",
    "client_secret",
    "secret",
})

# api_key=... inside URLs when the platform key is sent as a query parameter
_QUERY_SECRET = re.compile(r"(?i)\b(api_key|apikey|access_token)=([^&\s\"']+)")


def _mask(key: str, value: Any) -> Any:
    if key.lower() in SENSITIVE_KEYS and value:
        return MASK
    if isinstance(value, dict):
        return {k: _mask(str(k), v) for k, v in value.items()}
    if isinstance(value, str) and "=" in value:
        return _QUERY_SECRET.sub(lambda m: f"{m.group(1)}={MASK}", value)
    return value


def mask_credentials(
    logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    """Mask credential values, including nested header maps and URL query strings."""
    for key, value in list(event_dict.items()):
        event_dict[key] = _mask(key, value)
    return event_dict


def setup_logging(log_level: str = "INFO", json_output: bool = False) -> None:
    """
    Configure structured logging for the application.

    Args:
        log_level: Minimum log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_output: If True, output JSON; otherwise, use colored console output
    """
    level = getattr(logging, log_level.upper())
    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.processors.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        mask_credentials,
    ]

    if json_output:
        processors: list[Processor] = [
            *shared_processors,
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]
    else:
        processors = [
            *shared_processors,
            structlog.dev.ConsoleRenderer(colors=True),
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.make_filtering_bound_logger(level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(format="%(message)s", stream=sys.stderr, level=level)
    # httpx logs full request URLs at INFO, which may carry the API key
    logging.getLogger("httpx").setLevel(max(level, logging.WARNING))


def get_logger(name: str | None = None, **initial_context: Any) -> structlog.BoundLogger:
    """
    Get a configured logger instance.

    Args:
        name: Logger name (typically module name)
        **initial_context: Initial context values to bind to logger
    """
    logger = structlog.get_logger(name)
    if initial_context:
        logger = logger.bind(**initial_context)
    return logger


def bind_context(**context: Any) -> None:
    """Bind request-scoped values such as ``request_id`` to every logger."""
    structlog.contextvars.bind_contextvars(**context)


def clear_context() -> None:
    structlog.contextvars.clear_contextvars()
