"""Structured logging for the insights chat engine, built on structlog."""

from __future__ import annotations

import logging
import sys
from typing import Any

import structlog


def setup_logging(level: str = "INFO", json_output: bool = False) -> None:
    """Configure structlog once for the process.

    Console output goes to stderr so that the interactive chat on stdout stays
    readable. ``json_output`` switches to one JSON object per line, which is
    what log shippers expect when the engine runs headless.
    """
    log_level = getattr(logging, level.upper(), logging.INFO)

    renderer: Any
    if json_output:
        renderer = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            structlog.contextvars.merge_contextvars,
            structlog.processors.add_log_level,
            structlog.processors.StackInfoRenderer(),
            structlog.dev.set_exc_info,
            structlog.processors.TimeStamper(fmt="iso"),
            renderer,
        ],
        wrapper_class=structlog.make_filtering_bound_logger(log_level),
        context_class=dict,
        logger_factory=structlog.PrintLoggerFactory(file=sys.stderr),
        cache_logger_on_first_use=True,
    )


def bind_conversation(conversation_id: str | None) -> None:
    """Attach the active conversation id to every subsequent log line."""
    if conversation_id:
        structlog.contextvars.bind_contextvars(conversation_id=conversation_id)
    else:
        structlog.contextvars.unbind_contextvars("conversation_id")


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    """Get a named logger instance."""
    return structlog.get_logger(name)
