#!/usr/bin/env python3
"""
Structured Logging Module using structlog

This module provides structured logging for the delivery engine with:
- Correlation ID injection for tracing a request or loop iteration
- JSON formatting for log aggregation
- Automatic redaction of secrets that may leak into event text
- Context processors for automatic field injection

Architectural Decision: structlog for production logging
- Context-aware logging with keyword fields (job_id=..., webhook_id=...)
- JSON output for log aggregation, console output for development
"""

import logging
import re
import sys
from contextvars import ContextVar
from datetime import datetime, timezone

import structlog
from structlog.types import EventDict, WrappedLogger

from src.core.config.settings import get_settings

correlation_id_ctx: ContextVar[str | None] = ContextVar("correlation_id", default=None)

_REDACTIONS: tuple[tuple[re.Pattern, str], ...] = (
    (re.compile(r"\b[\w.-]+@[\w.-]+\.\w+\b"), "[EMAIL]"),
    (re.compile(r"\bsk-[a-zA-Z0-9_-]+\b"), "[REDACTED]"),
    (re.compile(r"\bAIza[a-zA-Z0-9_-]+\b"), "[REDACTED]"),
    (re.compile(r"\bwhsec_[a-fA-F0-9]+\b"), "[REDACTED]"),
    (re.compile(r"(?i)\bbearer\s+[a-z0-9._~+/-]+=*"), "Bearer [REDACTED]"),
)


def add_correlation_id(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add the correlation ID from context to every log entry."""
    correlation_id = correlation_id_ctx.get()
    if correlation_id:
        event_dict["correlation_id"] = correlation_id
    return event_dict


def add_timestamp(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """Add ISO UTC timestamp to log event."""
    event_dict["timestamp"] = datetime.now(timezone.utc).isoformat().replace("+00:00", "Z")
    return event_dict


def redact_secrets(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    """
    Redact secrets from log messages.

    Patterns redacted:
    - Email addresses -> [EMAIL]
    - API keys (sk-..., AIza...) -> [REDACTED]
    - Webhook secrets (whsec_...) -> [REDACTED]
    - Bearer tokens -> Bearer [REDACTED]
    """
    message = event_dict.get("event", "")

    if isinstance(message, str):
        for pattern, replacement in _REDACTIONS:
            message = pattern.sub(replacement, message)
        event_dict["event"] = message

    return event_dict


def add_log_level_name(logger: WrappedLogger, method_name: str, event_dict: EventDict) -> EventDict:
    if "level" in event_dict:
        event_dict["level"] = event_dict["level"].upper()
    return event_dict


def setup_logging(log_level: str | None = None, log_format: str | None = None) -> None:
    """
    Setup structured logging with structlog.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log format ('json' or 'console')
    """
    settings = get_settings()

    log_level = log_level or settings.logging.LOG_LEVEL
    log_format = log_format or settings.logging.LOG_FORMAT

    logging.basicConfig(
        format="%(message)s", stream=sys.stdout, level=getattr(logging, log_level.upper())
    )

    if log_format == "json":
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            add_correlation_id,
            add_timestamp,
            structlog.stdlib.add_log_level,
            add_log_level_name,
            structlog.stdlib.PositionalArgumentsFormatter(),
            structlog.processors.StackInfoRenderer(),
            structlog.processors.format_exc_info,
            redact_secrets,
            renderer,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Usage:
        logger = get_logger(__name__)
        logger.info("Job claimed", job_id=job.id, platform=job.platform)
    """
    return structlog.get_logger(name)


def set_correlation_id(correlation_id: str) -> None:
    """Set the correlation ID for the current request or loop iteration."""
    correlation_id_ctx.set(correlation_id)


def get_correlation_id() -> str | None:
    return correlation_id_ctx.get()


def clear_correlation_id() -> None:
    correlation_id_ctx.set(None)
