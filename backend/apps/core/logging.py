"""
Structured logging configuration using structlog.

Every log line is an event name plus key/value context, rendered as JSON in
deployed environments and as coloured console output locally.

Usage:
    from apps.core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("credit_granted", organization_id=42, amount=200)

Context bound with bind_contextvars() (e.g. by RequestContextMiddleware or the
Stripe webhook view) is merged into every record emitted while it is bound:
    - trace_id: request correlation ID
    - organization.id: tenant the work is being done for
    - stripe.event_id: provider event being processed
"""

import logging
import sys
from typing import Any

import structlog
from structlog.types import EventDict, Processor


def _add_trace_id(logger: logging.Logger, method_name: str, event_dict: EventDict) -> EventDict:
    """Expose correlation_id as trace_id so log search and APM agree on one key."""
    if "correlation_id" in event_dict:
        event_dict["trace_id"] = str(event_dict.pop("correlation_id"))
    return event_dict


def _stringify_organization_id(
    logger: logging.Logger, method_name: str, event_dict: EventDict
) -> EventDict:
    """
    Normalise tenant identifiers to strings.

    Organization IDs are integers in the database but are indexed as strings
    in the log backend; mixed types break faceting.
    """
    for key in ("organization_id", "organization.id"):
        if event_dict.get(key) is not None:
            event_dict[key] = str(event_dict[key])
    return event_dict


def configure_logging(json_format: bool = True, log_level: str = "INFO") -> None:
    """
    Configure structlog and route stdlib logging through the same pipeline.

    Args:
        json_format: If True, render JSON (production). If False, console output.
        log_level: Minimum log level to output.
    """
    log_level_int = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.UnicodeDecoder(),
        _add_trace_id,
        _stringify_organization_id,
    ]

    if json_format:
        renderer: Processor = structlog.processors.JSONRenderer()
        shared_processors.append(structlog.processors.format_exc_info)
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level_int)


def get_logger(name: str | None = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name, typically __name__ of the calling module.
    """
    return structlog.get_logger(name)


def bind_contextvars(**kwargs: Any) -> None:
    """
    Bind key-value pairs to the current context.

    Use dict unpacking for dotted keys:
        bind_contextvars(**{"organization.id": str(org.id)})
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_contextvars() -> None:
    """Clear all bound context variables (end of request / job)."""
    structlog.contextvars.clear_contextvars()
