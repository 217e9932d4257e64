"""Structured logging for FreshCart (structlog over stdlib logging).

Every entry carries the service name and, inside a request, the
``correlation_id`` taken from ``X-Request-ID``. Credentials that flow through
the OAuth and upstream code paths are masked before rendering.

Usage:
    from freshcart.core.logging import configure_logging, get_logger

    configure_logging(settings)
    logger = get_logger(__name__)
    logger.info("cache_miss", cache_key="products:page:ab12cd34")
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor

from freshcart.config import Settings

SERVICE_NAME = "freshcart"

# Event keys whose values must never reach the log sink
SENSITIVE_KEYS = frozenset(
    {"access_token", "authorization", "client_secret", "password", "token"}
)

# Libraries that log every request/connection at INFO
NOISY_LOGGERS = ("uvicorn.access", "httpx", "httpcore", "aiosqlite")


# -----------------------------------------------------------------------------
# Correlation ID
# -----------------------------------------------------------------------------


def set_correlation_id(correlation_id: str) -> None:
    """Attach the request's correlation id to every entry logged in this context."""
    structlog.contextvars.bind_contextvars(correlation_id=correlation_id)


def clear_correlation_id() -> None:
    structlog.contextvars.unbind_contextvars("correlation_id")


def get_correlation_id() -> str | None:
    return structlog.contextvars.get_contextvars().get("correlation_id")


def log_context(**kwargs: Any) -> structlog.contextvars.bound_contextvars:
    """Bind ``kwargs`` to every entry logged inside the ``with`` block.

    Example:
        with log_context(event_id="evt_1", event_type="order.created"):
            logger.info("webhook_dispatch")
    """
    return structlog.contextvars.bound_contextvars(**kwargs)


# -----------------------------------------------------------------------------
# Processors
# -----------------------------------------------------------------------------


def add_service_name(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    event_dict.setdefault("service", SERVICE_NAME)
    return event_dict


def mask_secrets(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Replace credential values with a fixed marker."""
    for key in event_dict.keys() & SENSITIVE_KEYS:
        event_dict[key] = "****"
    return event_dict


# -----------------------------------------------------------------------------
# Setup
# -----------------------------------------------------------------------------


def configure_logging(settings: Settings | None = None) -> None:
    """Route structlog and stdlib logging through one handler on stdout.

    JSON lines in production (or with ``LOG_FORMAT=json``), coloured console
    output otherwise.

    Args:
        settings: Application settings; defaults to ``get_settings()``
    """
    if settings is None:
        from freshcart.config import get_settings

        settings = get_settings()

    level = getattr(logging, settings.log_level.value, logging.INFO)

    pre_chain: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        add_service_name,
        mask_secrets,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
    ]

    renderer: Processor
    if settings.use_json_logs:
        pre_chain.append(structlog.processors.format_exc_info)
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())

    structlog.configure(
        processors=[
            *pre_chain,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=pre_chain,
            processors=[
                structlog.stdlib.ProcessorFormatter.remove_processors_meta,
                renderer,
            ],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(level)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """Get a structured logger, typically ``get_logger(__name__)``."""
    return structlog.get_logger(name)
