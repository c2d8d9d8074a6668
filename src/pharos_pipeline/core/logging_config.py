"""Structured logging configuration using structlog.

``configure_logging()`` is called by the API factory.  Scraper and relay
modules log through ``logging.getLogger(__name__)`` with ``"scraper: ..."``
/ ``"relay: ..."`` messages; API routes use ``structlog.get_logger`` with
event names and key-value context.  Both render through the same processor
chain.

Two context variables are merged into every record when set:
``request_id`` (HTTP middleware) and ``stream_session_id`` (event-stream
relay, for the lifetime of one relayed session).
"""

from __future__ import annotations

import logging
import sys
from contextvars import ContextVar

import structlog
from structlog.types import EventDict, WrappedLogger

request_id_var: ContextVar[str | None] = ContextVar("request_id", default=None)

stream_session_id_var: ContextVar[str | None] = ContextVar(
    "stream_session_id", default=None
)
"""Upstream stream ID a relay task is serving; set by ``EventStreamRelay.start``."""

_CONTEXT_VARS: tuple[tuple[str, ContextVar[str | None]], ...] = (
    ("request_id", request_id_var),
    ("stream_session_id", stream_session_id_var),
)

#: Substrings of log keys whose values are masked.
_REDACTED_KEYS: frozenset[str] = frozenset({"authorization", "cookie", "api_key", "token"})


def _redact_secrets(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    """Mask secret-bearing keys, including one level inside ``headers={...}``-style dicts."""
    for key, value in list(event_dict.items()):
        if any(secret in key.lower() for secret in _REDACTED_KEYS):
            event_dict[key] = "[REDACTED]"
        elif isinstance(value, dict):
            for nested_key in list(value):
                if any(secret in str(nested_key).lower() for secret in _REDACTED_KEYS):
                    value[nested_key] = "[REDACTED]"
    return event_dict


def _inject_context_ids(
    logger: WrappedLogger,  # noqa: ARG001
    method_name: str,  # noqa: ARG001
    event_dict: EventDict,
) -> EventDict:
    # Explicitly bound values win over the context variables.
    for field_name, var in _CONTEXT_VARS:
        value = var.get()
        if value is not None and field_name not in event_dict:
            event_dict[field_name] = value
    return event_dict


def configure_logging(log_level: str = "INFO") -> None:
    """Route stdlib logging and structlog through one renderer.

    JSON lines by default; structlog's ``ConsoleRenderer`` when
    ``log_level`` is ``DEBUG``.  Safe to call more than once: the root
    handler list is replaced each time.
    """
    level_upper = log_level.upper()
    numeric_level = getattr(logging, level_upper, logging.INFO)
    is_development = level_upper == "DEBUG"

    shared_processors: list[structlog.types.Processor] = [
        structlog.contextvars.merge_contextvars,
        _inject_context_ids,
        _redact_secrets,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
    ]

    renderer: structlog.types.Processor = (
        structlog.dev.ConsoleRenderer(colors=True)
        if is_development
        else structlog.processors.JSONRenderer()
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
    root_logger.setLevel(numeric_level)

    if not is_development:
        # One line per request otherwise.
        for noisy_logger in ("uvicorn.access", "httpx", "httpcore"):
            logging.getLogger(noisy_logger).setLevel(logging.WARNING)

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )
