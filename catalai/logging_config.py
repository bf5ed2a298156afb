"""
Structured logging for the classification pipeline.

structlog renders every event either as JSON (for log ingestion) or as
coloured console lines (local development), selected by the
``LOG_FORMAT`` setting. Two correlation IDs ride along on every event:

- ``trace_id``: one per HTTP request, set by ``RequestIdMiddleware``
- ``conversation_id``: one per interview, bound for the length of a turn

Process descriptions and interview answers are free text and can be
long, so string fields are clipped before rendering.

Usage:
    from catalai.logging_config import get_logger

    logger = get_logger(__name__)
    logger.info("route_decided", action="clarify", confidence=0.72)
"""

from __future__ import annotations

import logging
import sys
import uuid
from contextlib import contextmanager
from contextvars import ContextVar
from typing import Any, Iterator

import structlog

from catalai.config import LogFormat, Settings, get_settings

trace_id_var: ContextVar[str] = ContextVar("trace_id", default="")
conversation_id_var: ContextVar[str] = ContextVar("conversation_id", default="")

MAX_FIELD_LENGTH = 300

_NOISY_LOGGERS = ("httpx", "httpcore", "hpack", "urllib3", "asyncio")


def generate_trace_id() -> str:
    """Short random ID for request correlation."""
    return uuid.uuid4().hex[:12]


@contextmanager
def bind_conversation(conversation_id: str) -> Iterator[None]:
    """Tag every event logged inside the block with ``conversation_id``."""
    token = conversation_id_var.set(conversation_id)
    try:
        yield
    finally:
        conversation_id_var.reset(token)


def _add_correlation_ids(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    trace_id = trace_id_var.get()
    if trace_id:
        event_dict["trace_id"] = trace_id
    conversation_id = conversation_id_var.get()
    if conversation_id:
        event_dict.setdefault("conversation_id", conversation_id)
    return event_dict


def _clip_long_strings(
    logger: Any, method_name: str, event_dict: dict[str, Any]
) -> dict[str, Any]:
    for key, value in event_dict.items():
        if key != "event" and isinstance(value, str) and len(value) > MAX_FIELD_LENGTH:
            event_dict[key] = f"{value[:MAX_FIELD_LENGTH]}... [{len(value)} chars]"
    return event_dict


def _renderer(settings: Settings) -> structlog.types.Processor:
    fmt = settings.log_format
    if fmt == LogFormat.AUTO:
        fmt = LogFormat.JSON if settings.is_production else LogFormat.CONSOLE
    if fmt == LogFormat.JSON:
        return structlog.processors.JSONRenderer()
    return structlog.dev.ConsoleRenderer(colors=sys.stdout.isatty())


def setup_logging(settings: Settings | None = None) -> None:
    """
    Configure structlog and route the stdlib root logger through it,
    so uvicorn and library logs come out in the same format.
    """
    settings = settings or get_settings()

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _add_correlation_ids,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        _clip_long_strings,
    ]

    structlog.configure(
        processors=[*shared_processors, structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            _renderer(settings),
        ],
    ))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(settings.log_level.upper())

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def get_logger(name: str) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)
